from typing import TYPE_CHECKING

from networkx import generate_network_text

if TYPE_CHECKING:  # pragma: no cover
    from networkx import DiGraph


class Topology:
    def __init__(self, *, digraph: "DiGraph", batches: list[list[str]]) -> None:
        self.digraph = digraph
        self.batches = batches
        self.order: list[str] = [node_id for batch in batches for node_id in batch]

    def batch_of(self, node_id: str) -> int:
        for index, batch in enumerate(self.batches):
            if node_id in batch:
                return index

        raise KeyError(node_id)

    def __str__(self) -> str:
        return "\n".join(generate_network_text(self.digraph, vertical_chains=True))
