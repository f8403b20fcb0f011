"""
YAML programs.

```yaml
name: keyvault
config:
  tenantId: {}
  adminPassword: {secret: true}
resources:
  currentResourceGroup:
    type: azure-native:resources:ResourceGroup
    lookup: true
    properties:
      resourceGroupName: !config resourceGroupName
  kv-contoso:
    type: azure-native:keyvault:Vault
    properties:
      resourceGroupName: !ref currentResourceGroup.name
```

``resources`` may also be a list of mappings carrying their own ``id``.
"""

from typing import TYPE_CHECKING, Any

import yaml
from pydantic import ValidationError
from yaml.constructor import ConstructorError

from .exceptions import ProgramFormatError
from .program import Program
from .values import ConfigRef, Reference, Secret

if TYPE_CHECKING:  # pragma: no cover
    import os


class ProgramLoader(yaml.SafeLoader):
    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict:
        seen: set[Any] = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in seen:
                raise ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    f"found duplicate key '{key}'",
                    key_node.start_mark,
                )

            seen.add(key)

        return super().construct_mapping(node, deep=deep)


def _construct_reference(loader: ProgramLoader, node: yaml.Node) -> Reference:
    value = loader.construct_scalar(node)
    target, _, output = value.partition(".")

    if not target or not output:
        raise ConstructorError(
            None,
            None,
            f"!ref expects 'resource.output', got '{value}'",
            node.start_mark,
        )

    return Reference(node=target, output=output)


def _construct_config(loader: ProgramLoader, node: yaml.Node) -> ConfigRef:
    return ConfigRef(key=loader.construct_scalar(node))


def _construct_secret(loader: ProgramLoader, node: yaml.Node) -> Secret:
    return Secret(loader.construct_scalar(node))


ProgramLoader.add_constructor("!ref", _construct_reference)
ProgramLoader.add_constructor("!config", _construct_config)
ProgramLoader.add_constructor("!secret", _construct_secret)


def parse_program(text: str, source: str = "<string>") -> Program:
    try:
        document = yaml.load(text, Loader=ProgramLoader)  # noqa: S506
    except yaml.YAMLError as e:
        raise ProgramFormatError(source, str(e)) from e

    if document is None:
        document = {}
    elif not isinstance(document, dict):
        raise ProgramFormatError(source, "the document must be a mapping")

    resources = document.get("resources") or {}
    if isinstance(resources, dict):
        if invalid := [
            node_id
            for node_id, body in resources.items()
            if not isinstance(body, dict | None)
        ]:
            raise ProgramFormatError(
                source, f"resources {invalid} must be declared as mappings"
            )

        declarations = [
            {"id": node_id, **(body or {})} for node_id, body in resources.items()
        ]
    elif isinstance(resources, list):
        declarations = resources
    else:
        raise ProgramFormatError(source, "'resources' must be a mapping or a list")

    try:
        return Program(
            name=document.get("name", "program"),
            config=document.get("config") or {},
            declarations=declarations,
        )
    except ValidationError as e:
        raise ProgramFormatError(source, str(e)) from e


def load_program(path: "os.PathLike[str] | str") -> Program:
    with open(path, encoding="utf-8") as f:
        return parse_program(f.read(), source=str(path))


def load_config_values(path: "os.PathLike[str] | str") -> dict[str, Any]:
    """Read a flat YAML mapping of program config values."""
    with open(path, encoding="utf-8") as f:
        try:
            document = yaml.load(f, Loader=ProgramLoader)  # noqa: S506
        except yaml.YAMLError as e:
            raise ProgramFormatError(str(path), str(e)) from e

    if document is None:
        return {}
    elif not isinstance(document, dict):
        raise ProgramFormatError(str(path), "config values must be a mapping")

    return document
