from typing import Any

import anyio

from infragraph import Declaration, MemoryProvider

THING = "test:index:Thing"
RESOURCE_GROUP = "azure-native:resources:ResourceGroup"


def thing(
    id: str, *, parent: str | None = None, lookup: bool = False, **properties: Any
) -> Declaration:
    """Declare a test resource whose 'name' property is its id."""
    return Declaration(
        id=id,
        type=THING,
        parent=parent,
        lookup=lookup,
        properties={"name": id, **properties},
    )


class RecordingProvider(MemoryProvider):
    """
    Records every call as (action, name), fails resources whose name is in `fail`,
    never finishes for names in `hang`, and tracks peak concurrency.
    """

    def __init__(
        self,
        fail: set[str] | None = None,
        hang: set[str] | None = None,
        delay: float = 0,
        lookups: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(lookups=lookups)
        self.fail = fail or set()
        self.hang = hang or set()
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.active = 0
        self.peak = 0

    async def _perform(self, action: str, name: str) -> None:
        self.calls.append((action, name))
        self.active += 1
        self.peak = max(self.peak, self.active)

        try:
            if name in self.hang:
                await anyio.sleep(60)

            await anyio.sleep(self.delay)
        finally:
            self.active -= 1

        if name in self.fail:
            raise RuntimeError(f"{name} exploded")

    def actions(self, action: str) -> list[str]:
        return [name for act, name in self.calls if act == action]

    async def create(self, type_: str, properties: dict[str, Any]):
        await self._perform("create", properties.get("name", type_))
        return await super().create(type_, properties)

    async def update(self, type_: str, id: str, properties: dict[str, Any]):
        await self._perform("update", properties.get("name", id))
        return await super().update(type_, id, properties)

    async def delete(self, type_: str, id: str) -> None:
        _, properties = self.resources.get(id, (type_, {}))
        await self._perform("delete", properties.get("name", id))
        await super().delete(type_, id)

    async def read(self, type_: str, properties: dict[str, Any]) -> dict[str, Any]:
        await self._perform("read", properties.get("name", type_))
        return await super().read(type_, properties)


class CliProvider(MemoryProvider):
    """Each CLI invocation gets a fresh instance, so unknown ids delete quietly."""

    async def create(self, type_: str, properties: dict[str, Any]):
        if properties.get("name") == "broken":
            raise RuntimeError("broken on purpose")

        return await super().create(type_, properties)

    async def delete(self, type_: str, id: str) -> None:
        self.resources.pop(id, None)


def azure_native() -> MemoryProvider:
    return MemoryProvider(
        lookups={RESOURCE_GROUP: {"name": "rg-prod", "location": "westeurope"}}
    )
