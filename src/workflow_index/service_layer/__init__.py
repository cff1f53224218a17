"""Service layer - the operations transports invoke."""

from .catalog_service import ErrorInfo, OperationResult, WorkflowCatalogService


__all__ = [
    "ErrorInfo",
    "OperationResult",
    "WorkflowCatalogService",
]
