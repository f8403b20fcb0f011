"""
Property values for resource declarations.

A property tree is made of plain literals (str, int, float, bool, None, dicts and
lists of them) plus a few explicit markers: ``Reference`` for an output of another
resource, ``ConfigRef`` for a program configuration value and ``Secret`` for a
sensitive literal. Markers are never parsed out of strings.
"""

from dataclasses import dataclass
from hashlib import blake2b
from typing import TYPE_CHECKING, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable, Iterator
    from typing import Any

T = TypeVar("T")

MASK = "[secret]"
SEALED = "__secret__"


class Reference(BaseModel):
    """The named output of another resource, unknown until that resource applies."""

    kind: Literal["reference"] = "reference"
    node: str
    output: str

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"${{{self.node}.{self.output}}}"


class ConfigRef(BaseModel):
    kind: Literal["config"] = "config"
    key: str

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"${{config.{self.key}}}"


@dataclass(frozen=True, slots=True)
class Secret(Generic[T]):
    value: T

    def __repr__(self) -> str:
        return f"Secret({MASK})"

    __str__ = __repr__


class _Unknown:
    _instance: "_Unknown | None" = None

    def __new__(cls) -> "_Unknown":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "(known after apply)"


UNKNOWN = _Unknown()
"""Placeholder for an output that only exists once its producer has applied."""


def walk(value: "Any") -> "Iterator[Any]":
    """Yield every leaf and marker in a property tree, depth first."""
    if isinstance(value, dict):
        for item in value.values():
            yield from walk(item)
    elif isinstance(value, list | tuple):
        for item in value:
            yield from walk(item)
    elif isinstance(value, Secret):
        yield value
        yield from walk(value.value)
    else:
        yield value


def references(value: "Any") -> "Iterator[Reference]":
    return (leaf for leaf in walk(value) if isinstance(leaf, Reference))


def config_refs(value: "Any") -> "Iterator[ConfigRef]":
    return (leaf for leaf in walk(value) if isinstance(leaf, ConfigRef))


def contains_unknown(value: "Any") -> bool:
    return any(leaf is UNKNOWN for leaf in walk(value))


def substitute(
    value: "Any",
    on_reference: "Callable[[Reference], Any] | None" = None,
    on_config: "Callable[[ConfigRef], Any] | None" = None,
) -> "Any":
    """
    Rebuild a property tree, replacing markers with the result of the given callbacks.
    Markers without a callback are kept as-is. Secrets stay wrapped.
    """
    if isinstance(value, Reference):
        return on_reference(value) if on_reference else value
    elif isinstance(value, ConfigRef):
        return on_config(value) if on_config else value
    elif isinstance(value, Secret):
        return Secret(substitute(value.value, on_reference, on_config))
    elif isinstance(value, dict):
        return {
            key: substitute(item, on_reference, on_config)
            for key, item in value.items()
        }
    elif isinstance(value, list | tuple):
        return [substitute(item, on_reference, on_config) for item in value]

    return value


def reveal(value: "Any") -> "Any":
    """Unwrap secrets so a provider receives plain values."""
    if isinstance(value, Secret):
        return reveal(value.value)
    elif isinstance(value, dict):
        return {key: reveal(item) for key, item in value.items()}
    elif isinstance(value, list | tuple):
        return [reveal(item) for item in value]

    return value


def is_secret(value: "Any") -> bool:
    return any(isinstance(leaf, Secret) for leaf in walk(value))


def mask(value: "Any") -> "Any":
    """Render a property tree for humans: secrets hidden, markers as text."""
    if isinstance(value, Secret) or is_sealed(value):
        return MASK
    elif value is UNKNOWN:
        return repr(value)
    elif isinstance(value, Reference | ConfigRef):
        return str(value)
    elif isinstance(value, dict):
        return {key: mask(item) for key, item in value.items()}
    elif isinstance(value, list | tuple):
        return [mask(item) for item in value]

    return value


def encode(value: "Any", secret_key: bytes) -> "Any":
    """
    Canonical JSON-compatible form of a resolved property tree, used for diffing and
    for storing last-applied inputs. Secrets are replaced by a keyed digest so that a
    changed secret is detected without ever being written out.
    """
    if isinstance(value, Secret):
        digester = blake2b(digest_size=16, key=secret_key, usedforsecurity=True)
        digester.update(repr(reveal(value)).encode())
        return {SEALED: digester.hexdigest()}
    elif value is UNKNOWN:
        return {"__unknown__": True}
    elif isinstance(value, Reference | ConfigRef):
        return {f"__{value.kind}__": value.model_dump(exclude={"kind"})}
    elif isinstance(value, dict):
        return {str(key): encode(item, secret_key) for key, item in value.items()}
    elif isinstance(value, list | tuple):
        return [encode(item, secret_key) for item in value]

    return value


def is_sealed(value: "Any") -> bool:
    """Whether a value is the stored digest of a secret rather than the secret."""
    return isinstance(value, dict) and value.keys() == {SEALED}


def contains_sealed(value: "Any") -> bool:
    if is_sealed(value):
        return True
    elif isinstance(value, dict):
        return any(contains_sealed(item) for item in value.values())
    elif isinstance(value, list | tuple):
        return any(contains_sealed(item) for item in value)
    elif isinstance(value, Secret):
        return contains_sealed(value.value)

    return False


def protect(inputs: dict[str, "Any"], outputs: dict[str, "Any"]) -> dict[str, "Any"]:
    """Wrap outputs that echo a secret input so they stay secret downstream."""
    return {
        key: (
            Secret(value)
            if key in inputs
            and is_secret(inputs[key])
            and not isinstance(value, Secret)
            else value
        )
        for key, value in outputs.items()
    }


def unseal(
    outputs: dict[str, "Any"], inputs: dict[str, "Any"], secret_key: bytes
) -> dict[str, "Any"]:
    """
    Restore stored outputs that were sealed because they echoed a secret input. An
    output is only restored when the current input hashes to the stored digest;
    anything else stays sealed.
    """
    restored = dict(outputs)

    for key, value in outputs.items():
        if is_sealed(value) and key in inputs and is_secret(inputs[key]):
            candidate = Secret(reveal(inputs[key]))
            if encode(candidate, secret_key) == value:
                restored[key] = candidate

    return restored
