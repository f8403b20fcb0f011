from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import anyio

from . import values
from .exceptions import ProviderError, SealedSecretError, UnavailableOutputError
from .outputs import OutputTable
from .plan import Action
from .provider import call_provider
from .state import ResourceState

if TYPE_CHECKING:  # pragma: no cover
    from typing import Any

    from .context import Context
    from .plan import ExecutionPlan, Step
    from .state import State


class NodeStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class NodeRecord:
    node: str
    action: Action
    status: NodeStatus = NodeStatus.PENDING
    error: ProviderError | None = None
    cause: str | None = None
    """For skipped resources, the failed resource that blocked them, if any."""

    outputs: dict[str, "Any"] | None = None
    state: ResourceState | None = None
    removed: bool = False


@dataclass
class ApplyResult:
    plan: "ExecutionPlan"
    records: dict[str, NodeRecord]
    cancelled: bool = False

    @property
    def failures(self) -> dict[str, ProviderError]:
        return {
            node_id: record.error
            for node_id, record in self.records.items()
            if record.status is NodeStatus.FAILED
        }

    @property
    def skipped(self) -> dict[str, str | None]:
        return {
            node_id: record.cause
            for node_id, record in self.records.items()
            if record.status is NodeStatus.SKIPPED
        }

    @property
    def ok(self) -> bool:
        return not self.cancelled and all(
            record.status is NodeStatus.SUCCEEDED for record in self.records.values()
        )

    def next_state(self, prior: "State") -> "State":
        """
        The state to persist after this run. Succeeded steps are recorded, anything
        that did not complete keeps its prior record.
        """
        state = prior.model_copy(deep=True)

        for node_id in self.plan.order:
            record = self.records[node_id]

            if record.status is NodeStatus.SUCCEEDED:
                if record.action is Action.DELETE:
                    state.resources.pop(node_id, None)
                elif record.state is not None:
                    # re-insert so resources stay in the order they were applied
                    state.resources.pop(node_id, None)
                    state.resources[node_id] = record.state
            elif record.removed:
                state.resources.pop(node_id, None)

        return state


class Executor:
    """
    Runs an execution plan batch by batch. Steps in a batch run concurrently, bounded
    by the configured parallelism. A failed step skips everything that waits on it
    while independent steps carry on.
    """

    def __init__(self, context: "Context") -> None:
        self.context = context
        self.limiter = anyio.CapacityLimiter(context.settings.parallelism)
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Skip every step that has not started yet. Running steps finish."""
        if not self._cancelled:
            self.context.logger.warning("apply_cancelled")

        self._cancelled = True

    async def execute(
        self,
        plan: "ExecutionPlan",
        outputs: OutputTable | None = None,
    ) -> ApplyResult:
        outputs = outputs or OutputTable()
        records = {
            node_id: NodeRecord(node=node_id, action=step.action)
            for node_id, step in plan.steps.items()
        }
        logger = self.context.logger.bind(plan=str(plan.uuid))

        for batch in plan.batches:
            async with anyio.create_task_group() as tg:
                for node_id in batch:
                    tg.start_soon(
                        self._run_step,
                        plan.steps[node_id],
                        records,
                        outputs,
                        name=f"{plan.uuid}:{node_id}",
                    )

        result = ApplyResult(plan=plan, records=records, cancelled=self._cancelled)
        logger.info(
            "apply_finished",
            failed=sorted(result.failures),
            skipped=sorted(result.skipped),
            cancelled=result.cancelled,
        )

        return result

    @staticmethod
    def _blocker(step: "Step", records: dict[str, NodeRecord]) -> NodeRecord | None:
        for node_id in step.waits_on:
            record = records.get(node_id)
            if record is not None and record.status in (
                NodeStatus.FAILED,
                NodeStatus.SKIPPED,
            ):
                return record

        return None

    def _skip(
        self,
        record: NodeRecord,
        outputs: OutputTable,
        cause: str | None,
    ) -> None:
        record.status = NodeStatus.SKIPPED
        record.cause = cause

        if not outputs.ready(record.node):
            outputs.abandon(record.node)

        self.context.logger.info("step_skipped", node=record.node, cause=cause)

    async def _run_step(
        self,
        step: "Step",
        records: dict[str, NodeRecord],
        outputs: OutputTable,
    ) -> None:
        record = records[step.node]

        if blocker := self._blocker(step, records):
            cause = (
                blocker.node if blocker.status is NodeStatus.FAILED else blocker.cause
            )
            self._skip(record, outputs, cause)
            return

        async with self.limiter:
            if self._cancelled:
                self._skip(record, outputs, None)
                return

            record.status = NodeStatus.RUNNING
            logger = self.context.logger.bind(
                node=step.node, type=step.type, action=record.action.value
            )
            logger.debug("step_started")

            try:
                await self._apply(step, record, outputs)
            except UnavailableOutputError as e:
                self._skip(record, outputs, records[e.node_id].cause or e.node_id)
            except ProviderError as e:
                self._fail(record, outputs, e)
                logger.error("step_failed", error=str(e))
            except Exception as e:
                # only this step fails, the run carries on and its state is saved
                error = ProviderError(step.node, str(e))
                error.__cause__ = e
                self._fail(record, outputs, error)
                logger.error("step_failed", error=str(error), exc_info=e)
            else:
                record.status = NodeStatus.SUCCEEDED
                logger.info("step_succeeded", action=record.action.value)

    @staticmethod
    def _fail(record: NodeRecord, outputs: OutputTable, error: ProviderError) -> None:
        record.status = NodeStatus.FAILED
        record.error = error

        if not outputs.ready(record.node):
            outputs.abandon(record.node)

    async def _call(self, step: "Step", action: Action, fn, *args: "Any") -> "Any":
        return await call_provider(
            step.node, action.value, self.context.settings.provider_timeout, fn, *args
        )

    async def _apply(
        self, step: "Step", record: NodeRecord, outputs: OutputTable
    ) -> None:
        prior = step.prior

        if step.action is Action.DELETE:
            provider = self.context.providers.for_type(prior.type)
            await self._call(step, Action.DELETE, provider.delete, prior.type, prior.id)
            return
        elif step.action is Action.NOOP:
            resolved = (
                await outputs.resolve(step.node, step.properties)
                if any(values.is_sealed(value) for value in prior.outputs.values())
                else {}
            )
            self._keep(step, record, outputs, resolved)
            return
        elif step.action is Action.READ and step.outputs is not None:
            record.outputs = step.outputs
            outputs.publish(step.node, step.outputs)
            return

        provider = self.context.providers.for_type(step.type)
        resolved = await outputs.resolve(step.node, step.properties)
        inputs = values.encode(resolved, self.context.secret_key)

        if step.action is Action.UPDATE and inputs == prior.inputs:
            # dependencies changed but produced the same values
            record.action = Action.NOOP
            self._keep(step, record, outputs, resolved)
            return
        elif values.contains_sealed(resolved):
            raise SealedSecretError(step.node)

        plain = values.reveal(resolved)

        if step.action is Action.READ:
            raw = await self._call(step, Action.READ, provider.read, step.type, plain)
            record.outputs = values.protect(resolved, raw)
            outputs.publish(step.node, record.outputs)
            return
        elif step.action is Action.UPDATE:
            resource_id = prior.id
            raw = await self._call(
                step, Action.UPDATE, provider.update, step.type, prior.id, plain
            )
        else:
            if step.action is Action.REPLACE:
                old_provider = self.context.providers.for_type(prior.type)
                await self._call(
                    step, Action.DELETE, old_provider.delete, prior.type, prior.id
                )
                record.removed = True

            result = await self._call(
                step, Action.CREATE, provider.create, step.type, plain
            )
            resource_id, raw = result.id, result.outputs

        record.outputs = values.protect(resolved, raw)
        record.state = ResourceState(
            type=step.type,
            id=resource_id,
            inputs=inputs,
            outputs=values.encode(record.outputs, self.context.secret_key),
            parent=step.parent,
            dependencies=step.dependencies,
        )
        outputs.publish(step.node, record.outputs)

    def _keep(
        self,
        step: "Step",
        record: NodeRecord,
        outputs: OutputTable,
        resolved: dict[str, "Any"],
    ) -> None:
        # secrets echoed by an unchanged resource come back from its own inputs
        record.outputs = values.unseal(
            step.prior.outputs, resolved, self.context.secret_key
        )
        record.state = step.prior.model_copy(
            update={"parent": step.parent, "dependencies": step.dependencies}
        )
        outputs.publish(step.node, record.outputs)
