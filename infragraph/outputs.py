from typing import TYPE_CHECKING

import anyio

from . import values
from .exceptions import (
    MissingOutputError,
    OutputAlreadyPublishedError,
    UnavailableOutputError,
)

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Mapping
    from typing import Any


class OutputTable:
    """
    Resolved outputs of every resource in a run. Each resource becomes ready exactly
    once, either with its outputs or abandoned because it did not complete; any
    number of dependents may wait on it.
    """

    def __init__(self) -> None:
        self._events: dict[str, anyio.Event] = {}
        self._outputs: dict[str, dict[str, "Any"] | None] = {}

    def _event(self, node_id: str) -> anyio.Event:
        if (event := self._events.get(node_id)) is None:
            event = self._events[node_id] = anyio.Event()

        return event

    def _settle(self, node_id: str, outputs: dict[str, "Any"] | None) -> None:
        if node_id in self._outputs:
            raise OutputAlreadyPublishedError(node_id)

        self._outputs[node_id] = outputs
        self._event(node_id).set()

    def publish(self, node_id: str, outputs: "Mapping[str, Any]") -> None:
        self._settle(node_id, dict(outputs))

    def abandon(self, node_id: str) -> None:
        self._settle(node_id, None)

    def ready(self, node_id: str) -> bool:
        return node_id in self._outputs

    def get(self, node_id: str) -> dict[str, "Any"] | None:
        return self._outputs.get(node_id)

    async def wait(self, node_id: str) -> dict[str, "Any"]:
        await self._event(node_id).wait()

        if (outputs := self._outputs[node_id]) is None:
            raise UnavailableOutputError(node_id)

        return outputs

    async def resolve(self, node_id: str, properties: "Any") -> "Any":
        """Substitute every reference in a property tree once its producer is ready."""
        available: dict[str, dict[str, "Any"]] = {}
        for ref in values.references(properties):
            if ref.node not in available:
                available[ref.node] = await self.wait(ref.node)

        def _lookup(ref: values.Reference) -> "Any":
            if ref.output not in available[ref.node]:
                raise MissingOutputError(node_id, ref.node, ref.output)

            return available[ref.node][ref.output]

        return values.substitute(properties, on_reference=_lookup)
