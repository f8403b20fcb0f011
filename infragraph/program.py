from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import MissingConfigError
from .resource import Declaration
from .values import Secret

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable, Mapping

    from .values import ConfigRef


class ConfigKey(BaseModel):
    secret: bool = False
    default: Any = None
    description: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set


class Program(BaseModel):
    """A parsed infrastructure program: its config schema and its declarations."""

    name: str = "program"
    config: dict[str, ConfigKey] = Field(default_factory=dict)
    declarations: list[Declaration] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class ProgramConfig:
    """
    Configuration values supplied to a program. Keys declared as secret resolve to
    ``Secret`` values so they are masked wherever they flow.
    """

    def __init__(
        self,
        values: "Mapping[str, Any] | None" = None,
        keys: "Mapping[str, ConfigKey] | None" = None,
    ) -> None:
        self.values: dict[str, Any] = dict(values or {})
        self.keys: dict[str, ConfigKey] = dict(keys or {})

    def __contains__(self, key: str) -> bool:
        return key in self.values or (
            key in self.keys and self.keys[key].has_default
        )

    def get(self, key: str, default: Any = None) -> Any:
        if key in self.values:
            value = self.values[key]
        elif key in self.keys and self.keys[key].has_default:
            value = self.keys[key].default
        else:
            return default

        if key in self.keys and self.keys[key].secret:
            return Secret(value)

        return value

    def require(self, key: str) -> Any:
        if key not in self:
            raise MissingConfigError({key})

        return self.get(key)

    def missing(self, keys: "Iterable[str]") -> set[str]:
        return {key for key in keys if key not in self}

    def resolve(self, ref: "ConfigRef") -> Any:
        return self.require(ref.key)
