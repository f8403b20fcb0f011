"""
Diff a desired resource graph against last-applied state.

Each declared resource gets one of CREATE, UPDATE, REPLACE, NOOP or READ (lookups);
each recorded resource that is no longer declared gets DELETE. Deletions are batched
after everything else, dependents first.
"""

from typing import TYPE_CHECKING

import networkx as nx

from . import values
from .plan import Action, ExecutionPlan, Step
from .provider import call_provider
from .resolver import ordered_generations

if TYPE_CHECKING:  # pragma: no cover
    from typing import Any

    from .context import Context
    from .graph import ResourceGraph
    from .resource import ResourceNode
    from .state import State
    from .topology import Topology


def _diff(
    node: "ResourceNode", preview: dict[str, "Any"], prior: "State", context: "Context"
) -> Action:
    record = prior.get(node.id)

    if record is None:
        return Action.CREATE
    elif record.type != node.type:
        return Action.REPLACE
    elif values.contains_unknown(preview):
        return Action.UPDATE
    elif values.encode(preview, context.secret_key) != record.inputs:
        return Action.UPDATE

    return Action.NOOP


async def _read_ahead(
    node: "ResourceNode", preview: dict[str, "Any"], context: "Context"
) -> dict[str, "Any"]:
    provider = context.providers.for_type(node.type)
    context.logger.debug("lookup_read_ahead", node=node.id, type=node.type)

    return await call_provider(
        node.id,
        Action.READ.value,
        context.settings.provider_timeout,
        provider.read,
        node.type,
        values.reveal(preview),
    )


def _deletion_batches(doomed: list[str], prior: "State") -> list[list[str]]:
    # edges point from dependent to dependency so dependents are deleted first
    digraph = nx.DiGraph()
    digraph.add_nodes_from(doomed)

    for node_id in doomed:
        record = prior.resources[node_id]
        for dependency in {*record.dependencies, record.parent} - {None}:
            if dependency in digraph:
                digraph.add_edge(node_id, dependency)

    # most recently recorded first among independent deletions
    positions = {node_id: index for index, node_id in enumerate(prior.resources)}
    rank = {node_id: -positions[node_id] for node_id in doomed}

    return ordered_generations(digraph, rank)


async def reconcile(
    graph: "ResourceGraph",
    topology: "Topology",
    prior: "State",
    context: "Context",
    read_lookups: bool = True,
) -> ExecutionPlan:
    steps: dict[str, Step] = {}
    known: dict[str, dict[str, "Any"] | None] = {}

    def _known_output(ref: values.Reference) -> "Any":
        outputs = known.get(ref.node)
        if outputs is None or ref.output not in outputs:
            return values.UNKNOWN

        return outputs[ref.output]

    for node_id in topology.order:
        node = graph.nodes[node_id]
        properties = values.substitute(
            node.properties, on_config=context.config.resolve
        )
        preview = values.substitute(properties, on_reference=_known_output)

        step = Step(
            node=node_id,
            type=node.type,
            action=Action.READ,
            properties=properties,
            preview=preview,
            parent=node.parent,
            dependencies=sorted(node.dependencies),
            waits_on=sorted(node.dependencies),
            prior=prior.get(node_id),
        )

        if node.lookup:
            if read_lookups and not values.contains_unknown(preview):
                step.outputs = values.protect(
                    preview, await _read_ahead(node, preview, context)
                )

            known[node_id] = step.outputs
        else:
            step.action = _diff(node, preview, prior, context)
            known[node_id] = (
                step.prior.outputs if step.action is Action.NOOP else None
            )

        steps[node_id] = step

    doomed = [node_id for node_id in prior.resources if node_id not in graph]
    deletion_batches = _deletion_batches(doomed, prior) if doomed else []

    for batch in deletion_batches:
        for node_id in batch:
            record = prior.resources[node_id]
            steps[node_id] = Step(
                node=node_id,
                type=record.type,
                action=Action.DELETE,
                parent=record.parent,
                dependencies=list(record.dependencies),
                waits_on=sorted(
                    dependent
                    for dependent in doomed
                    if node_id
                    in {
                        *prior.resources[dependent].dependencies,
                        prior.resources[dependent].parent,
                    }
                ),
                prior=record,
            )

    # recorded types must still have a provider before anything is removed
    for step in steps.values():
        if step.action in (Action.DELETE, Action.REPLACE):
            context.providers.for_type(step.prior.type)

    plan = ExecutionPlan(batches=[*topology.batches, *deletion_batches], steps=steps)
    context.logger.info(
        "plan_created",
        plan=str(plan.uuid),
        changes={action.value: count for action, count in plan.changes().items()},
    )

    return plan
