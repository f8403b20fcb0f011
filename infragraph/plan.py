from collections import Counter
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from .state import ResourceState


class Action(Enum):
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    READ = "read"
    NOOP = "noop"


class Step(BaseModel):
    node: str
    type: str
    action: Action

    properties: dict[str, Any] = Field(default_factory=dict)
    """Declared properties with config resolved and references left in place."""

    preview: dict[str, Any] = Field(default_factory=dict)
    """Properties as far as they are known while planning."""

    parent: str | None = None
    dependencies: list[str] = Field(default_factory=list)

    waits_on: list[str] = Field(default_factory=list)
    """Steps that must succeed before this one may run."""

    prior: ResourceState | None = None
    outputs: dict[str, Any] | None = None
    """Outputs already known while planning, for lookups read ahead of time."""


class ExecutionPlan(BaseModel):
    uuid: UUID = Field(default_factory=uuid4)
    batches: list[list[str]]
    steps: dict[str, Step]

    @property
    def order(self) -> list[str]:
        return [node_id for batch in self.batches for node_id in batch]

    def changes(self) -> Counter[Action]:
        return Counter(
            step.action
            for step in self.steps.values()
            if step.action not in (Action.NOOP, Action.READ)
        )

    @property
    def empty(self) -> bool:
        return not self.changes()
