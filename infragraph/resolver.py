from typing import TYPE_CHECKING

import networkx as nx

from .exceptions import CycleDetectedError
from .topology import Topology

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Mapping

    from .graph import ResourceGraph


def ordered_generations(
    digraph: nx.DiGraph, rank: "Mapping[str, int]"
) -> list[list[str]]:
    """
    Group nodes into dependency levels, each level sorted by rank so plans are stable
    across runs.
    """
    try:
        return [
            sorted(generation, key=rank.__getitem__)
            for generation in nx.topological_generations(digraph)
        ]
    except nx.NetworkXUnfeasible as e:
        cycles = (
            _rotate(tuple(cycle), rank) for cycle in nx.simple_cycles(digraph)
        )
        # shortest cycles first, then by position of their earliest member
        sorted_cycles = sorted(cycles, key=lambda cycle: (len(cycle), rank[cycle[0]]))

        raise CycleDetectedError(sorted_cycles) from e


def _rotate(cycle: tuple[str, ...], rank: "Mapping[str, int]") -> tuple[str, ...]:
    start = min(range(len(cycle)), key=lambda i: rank[cycle[i]])
    return cycle[start:] + cycle[:start]


def resolve(graph: "ResourceGraph") -> Topology:
    rank = {node_id: node.index for node_id, node in graph.nodes.items()}
    batches = ordered_generations(graph.digraph, rank)

    return Topology(digraph=graph.digraph, batches=batches)
