"""Domain model - corpus documents and indexed workflow records.

Corpus documents are duck-typed JSON with arbitrary extra fields. They are
modelled as a typed core subset plus an opaque passthrough bag (pydantic
``extra="allow"``) so a parsed document dumps back to the same payload.

Workflow records are the immutable metadata rows the index stores. Their
invariants (complexity bucket, set semantics for integrations and tags) are
enforced at construction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


TriggerType = Literal["Manual", "Webhook", "Scheduled", "Triggered", "Complex", "Unknown"]
Complexity = Literal["low", "medium", "high"]

TRIGGER_TYPES: tuple[str, ...] = ("Manual", "Webhook", "Scheduled", "Triggered", "Complex", "Unknown")
COMPLEXITY_LEVELS: tuple[str, ...] = ("low", "medium", "high")

LOW_COMPLEXITY_MAX_NODES = 5
MEDIUM_COMPLEXITY_MAX_NODES = 15


def complexity_for(node_count: int) -> Complexity:
    """Bucket a node count: <=5 low, 6-15 medium, >15 high."""
    if node_count <= LOW_COMPLEXITY_MAX_NODES:
        return "low"
    if node_count <= MEDIUM_COMPLEXITY_MAX_NODES:
        return "medium"
    return "high"


class WorkflowNode(BaseModel):
    """A single step within a workflow document.

    Only ``type`` is interpreted; every other field is carried as-is.
    """

    model_config = ConfigDict(extra="allow")

    name: Any = ""
    type: Any = ""
    credentials: Any = None

    @property
    def type_name(self) -> str:
        return self.type if isinstance(self.type, str) else ""


class WorkflowDocument(BaseModel):
    """Typed view over a corpus document; unknown fields pass through untouched."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Any = None
    name: Any = None
    active: Any = None
    nodes: list[Any] | None = None
    connections: Any = None
    created_at: Any = Field(default=None, alias="createdAt")
    updated_at: Any = Field(default=None, alias="updatedAt")
    tags: Any = None

    @property
    def node_list(self) -> list[WorkflowNode]:
        # Non-object entries still count as nodes, they just have no type.
        return [
            WorkflowNode.model_validate(entry) if isinstance(entry, dict) else WorkflowNode()
            for entry in self.nodes or []
        ]

    @property
    def connection_count(self) -> int:
        return len(self.connections) if isinstance(self.connections, dict) else 0

    def tag_names(self) -> list[str]:
        """Normalize tags given either as strings or as ``{"name": ...}`` objects."""
        names: set[str] = set()
        for tag in self.tags if isinstance(self.tags, list) else []:
            if isinstance(tag, str):
                value = tag.strip()
            elif isinstance(tag, dict):
                value = str(tag.get("name") or "").strip()
            else:
                value = ""
            if value:
                names.add(value)
        return sorted(names)

    def to_payload(self) -> dict[str, Any]:
        """Dump back to the original JSON shape, including passthrough fields."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class WorkflowRecord(BaseModel):
    """Indexed metadata for one corpus document, keyed by filename."""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(min_length=1)
    name: str
    workflow_id: str = ""
    active: bool = False
    description: str = ""
    trigger_type: TriggerType = "Manual"
    complexity: Complexity = "low"
    node_count: int = Field(default=0, ge=0)
    integrations: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    file_hash: str = ""
    file_size: int = Field(default=0, ge=0)
    analyzed_at: datetime | None = None

    @field_validator("integrations", "tags")
    @classmethod
    def _as_sorted_set(cls, values: list[str]) -> list[str]:
        return sorted({value for value in values if value})

    @model_validator(mode="after")
    def _check_complexity(self) -> WorkflowRecord:
        expected = complexity_for(self.node_count)
        if self.complexity != expected:
            raise ValueError(
                f"complexity '{self.complexity}' does not match node_count {self.node_count} (expected '{expected}')"
            )
        return self
