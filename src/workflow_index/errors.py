"""Error taxonomy for the workflow index core.

Every exception raised inside the core derives from ``WorkflowIndexError`` and
carries a stable ``code``. The catalog service converts these into
``ErrorInfo`` values so no exception crosses the service boundary.
"""

from __future__ import annotations


class WorkflowIndexError(RuntimeError):
    """Base class for all workflow index failures."""

    code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ParseError(WorkflowIndexError):
    """A corpus document is not well-formed.

    Non-fatal to batch operations: the indexing pipeline counts it and moves on.
    """

    code = "parse_error"

    def __init__(self, filename: str, detail: str) -> None:
        super().__init__(f"Failed to parse {filename}: {detail}")
        self.filename = filename
        self.detail = detail


class NotFoundError(WorkflowIndexError):
    """Key lookup miss."""

    code = "not_found"

    def __init__(self, filename: str) -> None:
        super().__init__(f"Workflow not found: {filename}")
        self.filename = filename


class ValidationError(WorkflowIndexError):
    """Caller supplied an out-of-range or malformed parameter."""

    code = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"Invalid value for '{field}': {message}")
        self.field = field


class StoreUnavailableError(WorkflowIndexError):
    """The index store is uninitialized, missing or corrupt."""

    code = "store_unavailable"


class InternalStoreError(WorkflowIndexError):
    """The underlying SQLite database failed during an operation."""

    code = "internal_store_error"


class CorpusUnavailableError(WorkflowIndexError):
    """The corpus directory could not be enumerated."""

    code = "corpus_unavailable"
