"""Catalog service - the request/response boundary of the workflow index.

Every transport (HTTP routes, MCP tools, CLI commands) calls into
``WorkflowCatalogService``. Each operation returns an ``OperationResult``;
failures are logged and converted into ``ErrorInfo`` values so no exception
crosses this boundary.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import logging
from pathlib import Path
import time
from typing import Any, TypeVar

from opentelemetry.trace import Status, StatusCode
import orjson
from pydantic import BaseModel, ConfigDict

from workflow_index.config import Settings
from workflow_index.domain.search import (
    AnalyticsSnapshot,
    BulkAnalysis,
    BulkCriteria,
    CategorySummary,
    IntegrationListing,
    RecommendationResult,
    ReindexResult,
    SearchPage,
    SearchRequest,
    SimilarityResult,
    ValidationReport,
    WorkflowAnalysis,
    WorkflowDetail,
)
from workflow_index.errors import ParseError, ValidationError, WorkflowIndexError
from workflow_index.observability.context import operation_context
from workflow_index.observability.logging import configure_logging
from workflow_index.observability.metrics import OPERATION_COUNT, OPERATION_LATENCY, init_metrics, track_latency
from workflow_index.observability.tracing import create_span, init_tracing
from workflow_index.search.analyzer import inspect_document, parse_document
from workflow_index.search.indexer import WorkflowIndexer
from workflow_index.search.query import QueryEngine
from workflow_index.search.store import WorkflowIndexStore
from workflow_index.search.validation import validate_document
from workflow_index.services.analytics_service import AnalyticsEngine, SnapshotCache
from workflow_index.services.category_service import CategoryMap
from workflow_index.services.recommendation_service import RecommendationEngine
from workflow_index.services.similarity_service import SimilarityEngine


logger = logging.getLogger(__name__)

T = TypeVar("T")

WorkflowPayload = str | bytes | dict[str, Any]


class ErrorInfo(BaseModel):
    """Structured failure description returned in place of an exception."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    field: str | None = None
    filename: str | None = None

    @classmethod
    def from_exception(cls, exc: WorkflowIndexError) -> ErrorInfo:
        return cls(
            code=exc.code,
            message=exc.message,
            field=getattr(exc, "field", None),
            filename=getattr(exc, "filename", None),
        )


class OperationResult(BaseModel):
    """Outcome of a catalog operation: ``data`` when ``ok``, ``error`` otherwise."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    data: Any = None
    error: ErrorInfo | None = None

    @classmethod
    def success(cls, data: Any) -> OperationResult:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: ErrorInfo) -> OperationResult:
        return cls(ok=False, error=error)


def _payload_bytes(workflow: WorkflowPayload) -> bytes | str:
    if isinstance(workflow, dict):
        return orjson.dumps(workflow)
    return workflow


class WorkflowCatalogService:
    """Wires the index store, pipeline and query-side engines behind one façade."""

    def __init__(
        self,
        settings: Settings,
        *,
        store: WorkflowIndexStore | None = None,
        categories: CategoryMap | None = None,
        clock: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the catalog.

        Args:
            settings: Settings instance with all configuration
            store: Index store; built from ``settings.database_path`` when omitted
            categories: Category map; loaded from ``settings.categories_path`` when omitted
            clock: Wall clock used to stamp ``analyzed_at`` during reindexing
            monotonic: Clock driving the statistics snapshot cache
        """
        self.settings = settings
        self.store = store or WorkflowIndexStore(settings.database_path, busy_timeout_ms=settings.sqlite_busy_timeout_ms)
        self.category_map = categories if categories is not None else CategoryMap.load(settings.categories_path)
        self.workflows_dir = Path(settings.workflows_dir)

        indexer_kwargs = {"clock": clock} if clock is not None else {}
        self.indexer = WorkflowIndexer(self.store, self.workflows_dir, **indexer_kwargs)
        self.query_engine = QueryEngine(self.store, self.category_map)
        self.analytics = AnalyticsEngine(
            self.store,
            SnapshotCache(settings.stats_cache_ttl_seconds, clock=monotonic),
            top_n=settings.top_integrations_limit,
        )
        self.similarity = SimilarityEngine(self.store, result_limit=settings.similarity_result_limit)
        self.recommendations = RecommendationEngine(self.store, self.category_map)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        configure_observability: bool = False,
    ) -> WorkflowCatalogService:
        """Build a catalog from environment configuration, optionally setting up logging and telemetry."""
        settings = settings or Settings()
        if configure_observability:
            configure_logging(settings.log_level, settings.log_json, logger_levels=settings.get_logger_levels())
            init_tracing(service_name=settings.service_name)
            init_metrics(service_name=settings.service_name)
        return cls(settings)

    def close(self) -> None:
        self.store.close()

    def _run(self, operation: str, call: Callable[[], T], **attributes: Any) -> OperationResult:
        span_attributes = {f"catalog.{key}": value for key, value in attributes.items() if value is not None}
        with (
            operation_context(operation),
            create_span(f"catalog.{operation}", attributes=span_attributes) as span,
            track_latency(OPERATION_LATENCY, operation=operation),
        ):
            try:
                data = call()
            except WorkflowIndexError as exc:
                logger.warning("Catalog operation %s failed (%s): %s", operation, exc.code, exc.message)
                span.set_status(Status(StatusCode.ERROR, exc.message))
                OPERATION_COUNT.labels(operation=operation, status=exc.code).inc()
                return OperationResult.failure(ErrorInfo.from_exception(exc))
            except Exception as exc:
                logger.exception("Catalog operation %s failed unexpectedly", operation)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                span.record_exception(exc)
                OPERATION_COUNT.labels(operation=operation, status="internal_error").inc()
                return OperationResult.failure(ErrorInfo(code="internal_error", message=str(exc)))

            OPERATION_COUNT.labels(operation=operation, status="ok").inc()
            return OperationResult.success(data)

    # --- core operations --------------------------------------------------

    def query(self, **filters: Any) -> OperationResult:
        """Search workflows; ``data`` is a ``SearchPage``."""

        def run() -> SearchPage:
            limit = filters.get("limit")
            if limit is None:
                filters["limit"] = self.settings.default_page_size
            elif isinstance(limit, int) and limit > self.settings.max_page_size:
                raise ValidationError("limit", f"must be at most {self.settings.max_page_size}")
            return self.query_engine.search(SearchRequest.parse(filters))

        return self._run("query", run, query=filters.get("query"))

    def get_by_key(self, filename: str, include_document: bool = False) -> OperationResult:
        """Look up one workflow; ``data`` is a ``WorkflowDetail``."""

        def run() -> WorkflowDetail:
            record = self.store.get(filename)
            workflow = self._load_document(filename) if include_document else None
            return WorkflowDetail(metadata=record, workflow=workflow)

        return self._run("get_by_key", run, filename=filename)

    def stats(self) -> OperationResult:
        """Corpus statistics; ``data`` is an ``AnalyticsSnapshot``."""

        def run() -> AnalyticsSnapshot:
            return self.analytics.snapshot()

        return self._run("stats", run)

    def reindex(self, force: bool = False) -> OperationResult:
        """Bring the index up to date with the corpus; ``data`` is a ``ReindexResult``."""

        def run() -> ReindexResult:
            return self.indexer.reindex(force=force)

        return self._run("reindex", run, force=force)

    def find_similar(self, filename: str, threshold: float | None = None) -> OperationResult:
        """Rank workflows similar to ``filename``; ``data`` is a ``SimilarityResult``."""
        resolved = self.settings.similarity_threshold if threshold is None else threshold

        def run() -> SimilarityResult:
            return self.similarity.find_similar(filename, resolved)

        return self._run("find_similar", run, filename=filename, threshold=resolved)

    # --- supplementary operations -----------------------------------------

    def categories(self) -> OperationResult:
        def run() -> list[CategorySummary]:
            return self.category_map.summarize(self.store.count())

        return self._run("categories", run)

    def integrations(self, sort_by: str = "count") -> OperationResult:
        def run() -> IntegrationListing:
            return self.analytics.list_integrations(sort_by)

        return self._run("integrations", run, sort_by=sort_by)

    def bulk_analyze(self, criteria: BulkCriteria | dict[str, Any] | None = None, **overrides: Any) -> OperationResult:
        def run() -> BulkAnalysis:
            if isinstance(criteria, BulkCriteria) and not overrides:
                return self.analytics.bulk_analyze(criteria)
            base = criteria.model_dump() if isinstance(criteria, BulkCriteria) else dict(criteria or {})
            return self.analytics.bulk_analyze(BulkCriteria.parse(base, **overrides))

        return self._run("bulk_analyze", run)

    def recommend(self, use_case: str, preferred_integrations: list[str] | None = None) -> OperationResult:
        """Workflows suited to a described use case; ``data`` is a ``RecommendationResult``."""

        def run() -> RecommendationResult:
            return self.recommendations.recommend(use_case, preferred_integrations)

        return self._run("recommend", run, use_case=use_case)

    def analyze(self, workflow: WorkflowPayload) -> OperationResult:
        """Analyze a payload that is not part of the corpus."""

        def run() -> WorkflowAnalysis:
            return inspect_document(_payload_bytes(workflow))

        return self._run("analyze", run)

    def validate(self, workflow: WorkflowPayload) -> OperationResult:
        """Structural validation; invalid payloads still succeed with ``valid=False``."""

        def run() -> ValidationReport:
            return validate_document(_payload_bytes(workflow))

        return self._run("validate", run)

    def _load_document(self, filename: str) -> dict[str, Any] | None:
        if Path(filename).name != filename:
            raise ValidationError("filename", "must be a bare corpus filename")
        path = self.workflows_dir / filename
        if not path.is_file():
            logger.info("Corpus file %s is gone; returning metadata only", path)
            return None
        try:
            return parse_document(path.read_bytes(), filename).to_payload()
        except (OSError, ParseError) as exc:
            logger.warning("Cannot load corpus document %s: %s", path, exc)
            return None
