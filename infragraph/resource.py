from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from . import values

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator


class Declaration(BaseModel):
    id: str = Field(min_length=1)
    type: str = Field(pattern=r"^[^:\s]+:\S+$")
    properties: dict[str, Any] = Field(default_factory=dict)
    parent: str | None = None
    lookup: bool = False

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def package(self) -> str:
        """The provider package of the type token, e.g. 'azure-native'."""
        return self.type.split(":", 1)[0]

    def references(self) -> "Iterator[values.Reference]":
        return values.references(self.properties)

    def config_refs(self) -> "Iterator[values.ConfigRef]":
        return values.config_refs(self.properties)


@dataclass(frozen=True, slots=True)
class ResourceNode:
    declaration: Declaration
    index: int
    dependencies: frozenset[str]

    @property
    def id(self) -> str:
        return self.declaration.id

    @property
    def type(self) -> str:
        return self.declaration.type

    @property
    def parent(self) -> str | None:
        return self.declaration.parent

    @property
    def lookup(self) -> bool:
        return self.declaration.lookup

    @property
    def properties(self) -> dict[str, Any]:
        return self.declaration.properties
