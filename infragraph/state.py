from typing import Any

from pydantic import BaseModel, Field


class ResourceState(BaseModel):
    """The last applied record of a managed resource."""

    type: str
    id: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    """Canonical encoding of the resolved properties last sent to the provider."""

    outputs: dict[str, Any] = Field(default_factory=dict)
    parent: str | None = None
    dependencies: list[str] = Field(default_factory=list)


class State(BaseModel):
    version: int = 1
    resources: dict[str, ResourceState] = Field(default_factory=dict)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.resources

    def get(self, node_id: str) -> ResourceState | None:
        return self.resources.get(node_id)
