"""
Resource graph building for infragraph programs.
"""

from typing import TYPE_CHECKING

import networkx as nx

from .exceptions import (
    DanglingReferenceError,
    DuplicateIdError,
    MissingConfigError,
    UnbuiltGraphError,
)
from .resource import Declaration, ResourceNode

if TYPE_CHECKING:  # pragma: no cover
    from .context import Context
    from .program import Program


class ResourceGraph:
    def __init__(self, declarations: list[Declaration]) -> None:
        self.declarations = declarations
        self._nodes: dict[str, ResourceNode] | None = None
        self._digraph: nx.DiGraph | None = None

    @classmethod
    def from_declarations(cls, *declarations: Declaration) -> "ResourceGraph":
        return cls(declarations=list(declarations))

    @classmethod
    def from_program(cls, program: "Program") -> "ResourceGraph":
        return cls(declarations=list(program.declarations))

    @classmethod
    def empty(cls) -> "ResourceGraph":
        return cls(declarations=[])

    def build(self, context: "Context | None" = None) -> "ResourceGraph":
        declared: dict[str, Declaration] = {}

        # validate that ids are unique
        for declaration in self.declarations:
            if declaration.id in declared:
                raise DuplicateIdError(declaration.id)

            declared[declaration.id] = declaration

        # validate that every parent and reference targets a declared resource
        dependencies: dict[str, set[str]] = {}
        for declaration in self.declarations:
            deps = dependencies[declaration.id] = set()

            if declaration.parent is not None:
                if declaration.parent not in declared:
                    raise DanglingReferenceError(
                        declaration.id, declaration.parent, via="parent"
                    )

                deps.add(declaration.parent)

            for ref in declaration.references():
                if ref.node not in declared:
                    raise DanglingReferenceError(declaration.id, ref.node)

                deps.add(ref.node)

        if context is not None:
            self._validate_context(context)

        # create a directed graph with edges from dependency to dependent
        digraph = nx.DiGraph()
        nodes: dict[str, ResourceNode] = {}

        for index, declaration in enumerate(self.declarations):
            node = ResourceNode(
                declaration=declaration,
                index=index,
                dependencies=frozenset(dependencies[declaration.id]),
            )
            nodes[node.id] = node
            digraph.add_node(node.id, node=node)

        for declaration in self.declarations:
            if declaration.parent is not None:
                digraph.add_edge(declaration.parent, declaration.id)
                digraph.edges[declaration.parent, declaration.id].setdefault(
                    "via", set()
                ).add("parent")

            for ref in declaration.references():
                digraph.add_edge(ref.node, declaration.id)
                digraph.edges[ref.node, declaration.id].setdefault("via", set()).add(
                    ref.output
                )

        self._nodes = nodes
        self._digraph = digraph

        return self

    def _validate_context(self, context: "Context") -> None:
        # providers and config are checked up front so nothing runs on a bad program
        for declaration in self.declarations:
            context.providers.for_type(declaration.type)

        if missing := context.config.missing(
            ref.key
            for declaration in self.declarations
            for ref in declaration.config_refs()
        ):
            raise MissingConfigError(missing)

    @property
    def built(self) -> bool:
        return self._digraph is not None

    @property
    def digraph(self) -> nx.DiGraph:
        if not self.built:
            raise UnbuiltGraphError()

        return self._digraph

    @property
    def nodes(self) -> dict[str, ResourceNode]:
        if not self.built:
            raise UnbuiltGraphError()

        return self._nodes

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def dependents(self, node_id: str) -> set[str]:
        """All resources that directly or transitively depend on the given one."""
        return nx.descendants(self.digraph, node_id)
