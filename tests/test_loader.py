import pytest

from infragraph import (
    ConfigRef,
    Reference,
    ResourceGraph,
    Secret,
    load_program,
    parse_program,
)
from infragraph.exceptions import DuplicateIdError, ProgramFormatError
from infragraph.loader import load_config_values


@pytest.mark.anyio
async def test_load_keyvault(keyvault_program_path):
    program = load_program(keyvault_program_path)

    assert program.name == "keyvault"
    assert program.config["adminPassword"].secret
    assert not program.config["tenantId"].secret
    assert [d.id for d in program.declarations] == [
        "currentResourceGroup",
        "kv-contoso",
        "admin-password",
    ]

    group, vault, secret = program.declarations
    assert group.lookup
    assert group.package == "azure-native"
    assert vault.properties["properties"]["tenantId"] == ConfigRef(key="tenantId")
    assert secret.parent == "kv-contoso"
    assert secret.properties["resourceGroupName"] == Reference(
        node="currentResourceGroup", output="name"
    )


@pytest.mark.anyio
async def test_tags():
    program = parse_program(
        """
resources:
  db:
    type: test:index:Database
    properties:
      password: !secret s3cr3t
      host: !ref server.address
      endpoints:
        - !ref server.name
  server:
    type: test:index:Server
"""
    )

    db = program.declarations[0]
    assert db.properties == {
        "password": Secret("s3cr3t"),
        "host": Reference(node="server", output="address"),
        "endpoints": [Reference(node="server", output="name")],
    }


@pytest.mark.anyio
async def test_list_form_keeps_duplicates_for_validation():
    program = parse_program(
        """
resources:
  - id: a
    type: test:index:Thing
  - id: a
    type: test:index:Thing
"""
    )

    with pytest.raises(DuplicateIdError):
        ResourceGraph.from_program(program).build()


@pytest.mark.anyio
@pytest.mark.parametrize(
    "text",
    (
        "resources:\n  a: {type: 'test:index:Thing'}\n  a: {type: 'test:index:Thing'}",
        "resources:\n  a:\n    type: test:index:Thing\n    properties: {x: !ref nodot}",
        "resources:\n  a:\n    type: not-a-type-token",
        "resources:\n  a:\n    type: test:index:Thing\n    propertys: {}",
        "resources:\n  a: just a string",
        "resources: 3",
        "- a\n- b",
        "resources: [",
    ),
    ids=(
        "duplicate-key",
        "bad-ref",
        "bad-type",
        "unknown-field",
        "scalar-resource",
        "scalar-resources",
        "not-a-mapping",
        "not-yaml",
    ),
)
async def test_invalid_programs(text):
    with pytest.raises(ProgramFormatError):
        parse_program(text, source="broken.yaml")


@pytest.mark.anyio
async def test_empty_program():
    program = parse_program("")

    assert program.name == "program"
    assert program.declarations == []


@pytest.mark.anyio
async def test_config_values(tmp_path):
    path = tmp_path / "prod.yaml"
    path.write_text("tenantId: t-1\nreplicas: 3\n")

    assert load_config_values(path) == {"tenantId": "t-1", "replicas": 3}

    path.write_text("- not\n- a mapping\n")

    with pytest.raises(ProgramFormatError):
        load_config_values(path)
