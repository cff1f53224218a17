"""Domain layer - workflow records, corpus documents and query value objects.

No infrastructure dependencies live here: the SQLite store, the indexing
pipeline and the query engines all exchange these pydantic models.
"""

from workflow_index.domain.model import (
    COMPLEXITY_LEVELS,
    TRIGGER_TYPES,
    Complexity,
    TriggerType,
    WorkflowDocument,
    WorkflowNode,
    WorkflowRecord,
    complexity_for,
)


__all__ = [
    "COMPLEXITY_LEVELS",
    "TRIGGER_TYPES",
    "Complexity",
    "TriggerType",
    "WorkflowDocument",
    "WorkflowNode",
    "WorkflowRecord",
    "complexity_for",
]
