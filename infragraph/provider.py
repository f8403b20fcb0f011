import importlib
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar
from uuid import uuid4

import anyio

from .exceptions import ProviderError, ProviderTimeoutError, UnknownProviderError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Awaitable, Callable
    from typing import Any

T = TypeVar("T")


@dataclass(kw_only=True, slots=True)
class ProviderResult:
    id: str
    outputs: dict[str, "Any"] = field(default_factory=dict)


class Provider(ABC):
    """
    The plugin interface a cloud binding implements. Properties arrive fully
    resolved, with secrets unwrapped.
    """

    @abstractmethod
    async def create(
        self, type_: str, properties: dict[str, "Any"]
    ) -> ProviderResult:
        """Create a resource and return its provider id and outputs."""
        raise NotImplementedError()

    @abstractmethod
    async def update(
        self, type_: str, id: str, properties: dict[str, "Any"]
    ) -> dict[str, "Any"]:
        """Update an existing resource in place and return its new outputs."""
        raise NotImplementedError()

    @abstractmethod
    async def delete(self, type_: str, id: str) -> None:
        """Delete an existing resource."""
        raise NotImplementedError()

    async def read(self, type_: str, properties: dict[str, "Any"]) -> dict[str, "Any"]:
        """Look up an existing resource that is not managed by the program."""
        raise NotImplementedError(f"Provider does not support lookups of '{type_}'.")


class ProviderRegistry:
    """Routes resource types to providers by their package prefix."""

    def __init__(self, providers: dict[str, Provider] | None = None) -> None:
        self._providers: dict[str, Provider] = {}

        for package, provider in (providers or {}).items():
            self.register(package, provider)

    def register(self, package: str, provider: Provider) -> None:
        if package in self._providers:
            warnings.warn(
                f"Provider for '{package}' is already registered. This will override"
                " that implementation.",
                stacklevel=2,
            )

        self._providers[package] = provider

    def for_type(self, type_: str) -> Provider:
        if provider := self._providers.get(type_.split(":", 1)[0]):
            return provider

        raise UnknownProviderError(type_)

    def __contains__(self, type_: str) -> bool:
        return type_.split(":", 1)[0] in self._providers


async def call_provider(
    node_id: str,
    action: str,
    timeout: float,
    fn: "Callable[..., Awaitable[T]]",
    *args: "Any",
) -> "T":
    """
    Await a provider operation under a deadline. Whatever the provider raises is
    reported as a ``ProviderError`` of the resource it was called for.
    """
    try:
        with anyio.fail_after(timeout):
            return await fn(*args)
    except TimeoutError as e:
        raise ProviderTimeoutError(node_id, action, timeout) from e
    except ProviderError:
        raise
    except Exception as e:
        raise ProviderError(node_id, f"{action} failed: {e}") from e


def load_provider(ref: str) -> Provider:
    """
    Import a provider from a ``module:attribute`` reference. Classes and factories are
    called with no arguments.
    """
    module_name, _, attr = ref.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Provider reference '{ref}' must look like 'module:attr'.")

    obj = getattr(importlib.import_module(module_name), attr)
    provider = obj if isinstance(obj, Provider) else obj()

    if not isinstance(provider, Provider):
        raise TypeError(f"'{ref}' does not produce a Provider.")

    return provider


class MemoryProvider(Provider):
    """
    A provider keeping resources in process memory. Outputs echo the properties
    plus the assigned ``id``; lookups return the given properties unless a fixture
    was registered for the type.
    """

    def __init__(self, lookups: dict[str, dict[str, "Any"]] | None = None) -> None:
        self.resources: dict[str, tuple[str, dict[str, "Any"]]] = {}
        self.lookups = lookups or {}

    async def create(
        self, type_: str, properties: dict[str, "Any"]
    ) -> ProviderResult:
        id = f"{type_.rsplit(':', 1)[-1].lower()}-{uuid4().hex[:8]}"
        self.resources[id] = (type_, properties)
        return ProviderResult(id=id, outputs={**properties, "id": id})

    async def update(
        self, type_: str, id: str, properties: dict[str, "Any"]
    ) -> dict[str, "Any"]:
        if id not in self.resources:
            raise KeyError(f"{type_} '{id}' does not exist.")

        self.resources[id] = (type_, properties)
        return {**properties, "id": id}

    async def delete(self, type_: str, id: str) -> None:
        if self.resources.pop(id, None) is None:
            raise KeyError(f"{type_} '{id}' does not exist.")

    async def read(self, type_: str, properties: dict[str, "Any"]) -> dict[str, "Any"]:
        return {**properties, **self.lookups.get(type_, {})}
