import pytest

from infragraph import ConfigRef, Declaration, ProgramConfig, Reference, ResourceGraph
from infragraph.context import Context
from infragraph.exceptions import (
    DanglingReferenceError,
    DuplicateIdError,
    MissingConfigError,
    UnbuiltGraphError,
    UnknownProviderError,
)

from .providers import thing


def ref(node, output="id"):
    return Reference(node=node, output=output)


@pytest.mark.anyio
async def test_build_required():
    graph = ResourceGraph.from_declarations(thing("a"))

    assert not graph.built

    with pytest.raises(UnbuiltGraphError):
        graph.nodes

    built = graph.build()

    assert built is graph
    assert graph.built
    assert "a" in graph
    assert len(graph) == 1


@pytest.mark.anyio
async def test_edges_from_references_and_parents(context):
    graph = ResourceGraph.from_declarations(
        thing("vault"),
        thing("secret", parent="vault", vault_id=ref("vault"), uri=ref("vault", "uri")),
        thing("app", password=ref("secret", "value")),
    ).build(context)

    assert set(graph.digraph.edges) == {("vault", "secret"), ("secret", "app")}
    assert graph.digraph.edges["vault", "secret"]["via"] == {"parent", "id", "uri"}
    assert graph.nodes["secret"].dependencies == {"vault"}
    assert graph.nodes["app"].index == 2
    assert graph.dependents("vault") == {"secret", "app"}


@pytest.mark.anyio
async def test_references_nested_in_lists_and_mappings(context):
    graph = ResourceGraph.from_declarations(
        thing("a"),
        thing("b"),
        thing("c", rules=[{"source": ref("a")}, {"source": ref("b", "address")}]),
    ).build(context)

    assert graph.nodes["c"].dependencies == {"a", "b"}


@pytest.mark.anyio
async def test_duplicate_ids():
    graph = ResourceGraph.from_declarations(thing("a"), thing("a", size=2))

    with pytest.raises(DuplicateIdError) as e:
        graph.build()

    assert e.value.node_id == "a"


@pytest.mark.anyio
async def test_dangling_reference():
    graph = ResourceGraph.from_declarations(thing("a", subnet=ref("missing")))

    with pytest.raises(DanglingReferenceError) as e:
        graph.build()

    assert (e.value.node_id, e.value.target) == ("a", "missing")
    assert not graph.built


@pytest.mark.anyio
async def test_dangling_parent():
    graph = ResourceGraph.from_declarations(thing("a", parent="ghost"))

    with pytest.raises(DanglingReferenceError, match="parent"):
        graph.build()


@pytest.mark.anyio
async def test_unknown_provider(context):
    graph = ResourceGraph.from_declarations(
        Declaration(id="bucket", type="aws:s3:Bucket")
    )

    with pytest.raises(UnknownProviderError, match="aws:s3:Bucket"):
        graph.build(context)

    # without a context only the shape of the graph is checked
    assert ResourceGraph.from_declarations(
        Declaration(id="bucket", type="aws:s3:Bucket")
    ).build()


@pytest.mark.anyio
async def test_missing_config(providers):
    context = Context(
        providers=providers, config=ProgramConfig({"tenantId": "t-1"})
    )
    graph = ResourceGraph.from_declarations(
        thing("a", tenant=ConfigRef(key="tenantId")),
        thing("b", region=ConfigRef(key="region"), zone=ConfigRef(key="zone")),
    )

    with pytest.raises(MissingConfigError) as e:
        graph.build(context)

    assert e.value.keys == {"region", "zone"}


@pytest.mark.anyio
async def test_empty_graph():
    graph = ResourceGraph.empty().build()

    assert len(graph) == 0
    assert list(graph.digraph.nodes) == []
