from typing import TYPE_CHECKING

import structlog

from .config import Settings
from .context import Context
from .executor import Executor
from .graph import ResourceGraph
from .program import Program, ProgramConfig
from .provider import ProviderRegistry
from .reconciler import reconcile
from .resolver import resolve
from .store import MemoryStateStore

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Mapping
    from typing import Any

    from .executor import ApplyResult
    from .plan import ExecutionPlan
    from .store import StateStore
    from .topology import Topology


class Deployment:
    """
    A program bound to its providers, configuration and state store. Every run
    builds and validates the graph before touching the store or any provider.
    """

    def __init__(
        self,
        program: Program,
        providers: ProviderRegistry | None = None,
        store: "StateStore | None" = None,
        config: "Mapping[str, Any] | None" = None,
        settings: Settings | None = None,
    ) -> None:
        self.program = program
        self.store: "StateStore" = store or MemoryStateStore()
        self.context = Context(
            providers=providers or ProviderRegistry(),
            config=ProgramConfig(config, keys=program.config),
            settings=settings or Settings(),
            logger=structlog.get_logger("infragraph").bind(program=program.name),
        )

        self._executor: Executor | None = None
        self._cancel_requested = False

    def build(self, destroy: bool = False) -> tuple[ResourceGraph, "Topology"]:
        graph = (
            ResourceGraph.empty()
            if destroy
            else ResourceGraph.from_program(self.program)
        ).build(self.context)

        return graph, resolve(graph)

    async def plan(self, destroy: bool = False) -> "ExecutionPlan":
        """Compute the actions a run would take, without changing anything."""
        graph, topology = self.build(destroy=destroy)
        prior = await self.store.load()

        return await reconcile(graph, topology, prior, self.context)

    async def apply(self) -> "ApplyResult":
        return await self._run(destroy=False)

    async def destroy(self) -> "ApplyResult":
        return await self._run(destroy=True)

    def cancel(self) -> None:
        self._cancel_requested = True

        if self._executor is not None:
            self._executor.cancel()

    async def _run(self, destroy: bool) -> "ApplyResult":
        graph, topology = self.build(destroy=destroy)

        async with self.store.lock():
            prior = await self.store.load()
            plan = await reconcile(graph, topology, prior, self.context)

            self._executor = Executor(self.context)
            if self._cancel_requested:
                self._executor.cancel()

            try:
                result = await self._executor.execute(plan)
            finally:
                self._executor = None

            await self.store.save(result.next_state(prior))

        return result
