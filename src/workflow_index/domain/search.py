"""Request and response value objects for the query-side engines.

All models are immutable. Request models validate caller input and convert
pydantic failures into ``workflow_index.errors.ValidationError`` naming the
offending field.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from workflow_index.domain.model import Complexity, TriggerType, WorkflowRecord
from workflow_index.errors import ValidationError


SortKey = Literal["name", "node_count", "analyzed_at"]

MAX_PAGE_SIZE = 100


class RequestModel(BaseModel):
    """Base for caller-facing requests."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def parse(cls, data: dict[str, Any] | None = None, **overrides: Any) -> Self:
        """Validate raw caller input, raising ``ValidationError`` on the first bad field."""
        payload = {**(data or {}), **overrides}
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            loc = first.get("loc") or ("request",)
            raise ValidationError(str(loc[0]), first.get("msg", "invalid value")) from exc


class SearchRequest(RequestModel):
    """Filtered, paginated and sorted search over the index."""

    query: str = ""
    trigger: TriggerType | Literal["all"] = "all"
    complexity: Complexity | Literal["all"] = "all"
    active_only: bool = False
    integrations: list[str] = Field(default_factory=list)
    category: str | None = None
    limit: int = Field(default=20, ge=1, le=MAX_PAGE_SIZE)
    offset: int = Field(default=0, ge=0)
    sort: SortKey = "name"

    @field_validator("trigger", "complexity", mode="before")
    @classmethod
    def _none_means_all(cls, value: Any) -> Any:
        return "all" if value in (None, "") else value

    @field_validator("query", mode="before")
    @classmethod
    def _none_means_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("category", mode="before")
    @classmethod
    def _blank_means_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SearchPage(BaseModel):
    """One page of search results plus the unpaginated total."""

    model_config = ConfigDict(frozen=True)

    documents: list[WorkflowRecord]
    total: int
    page: int
    pages: int
    limit: int
    offset: int


class IndexFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    detail: str


class ReindexResult(BaseModel):
    """Counters from one indexing run."""

    model_config = ConfigDict(frozen=True)

    processed: int = 0
    skipped: int = 0
    errors: int = 0
    total: int = 0
    failures: list[IndexFailure] = Field(default_factory=list)


class IntegrationCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    count: int


class AnalyticsSnapshot(BaseModel):
    """Corpus-wide aggregates."""

    model_config = ConfigDict(frozen=True)

    total: int
    active: int
    inactive: int
    triggers: dict[str, int]
    complexity: dict[str, int]
    total_nodes: int
    unique_integrations: int
    top_integrations: list[IntegrationCount]
    average_nodes_per_workflow: int
    active_percentage: int
    last_indexed: datetime | None = None


class IntegrationUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    count: int
    percentage: int


class IntegrationListing(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_integrations: int
    integrations: list[IntegrationUsage]


class CategorySummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    count: int
    examples: list[str]
    percentage: int


class BulkCriteria(RequestModel):
    """Selection criteria for pattern analysis across many workflows."""

    min_nodes: int | None = Field(default=None, ge=0)
    max_nodes: int | None = Field(default=None, ge=0)
    must_include_integrations: list[str] = Field(default_factory=list)
    trigger_types: list[TriggerType] = Field(default_factory=list)


class BulkAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_matching: int
    common_integrations: dict[str, int]
    trigger_distribution: dict[str, int]
    complexity_distribution: dict[str, int]
    average_nodes: int


class SimilarityRequest(RequestModel):
    """Reference workflow and minimum combined score for a similarity search."""

    filename: str = Field(min_length=1)
    threshold: float = Field(default=0.7, ge=0.0, le=1.0, allow_inf_nan=False)


class SimilarityReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    name: str
    integrations: list[str]
    node_count: int
    trigger_type: str


class SimilarMatch(BaseModel):
    """A candidate ranked against the reference workflow."""

    model_config = ConfigDict(frozen=True)

    filename: str
    name: str
    similarity_score: float
    integration_similarity: float
    node_count_similarity: float
    trigger_similarity: float
    shared_integrations: list[str]
    trigger_type: str
    node_count: int


class SimilarityResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    reference: SimilarityReference
    similar_workflows: list[SimilarMatch]
    total_found: int
    threshold: float


class RecommendationRequest(RequestModel):
    """A free-text automation need plus services the caller would like to use."""

    use_case: str = Field(min_length=1)
    preferred_integrations: list[str] = Field(default_factory=list)

    @field_validator("preferred_integrations", mode="before")
    @classmethod
    def _none_means_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    name: str
    description: str
    score: int
    integrations: list[str]
    trigger_type: TriggerType
    complexity: Complexity
    reasons: list[str]


class RecommendationResult(BaseModel):
    """Best-scoring workflows for a use case, also grouped by category."""

    model_config = ConfigDict(frozen=True)

    use_case: str
    keywords_detected: list[str]
    total_recommendations: int
    top_recommendations: list[Recommendation]
    by_category: dict[str, list[Recommendation]]


class WorkflowAnalysis(BaseModel):
    """Ad-hoc analysis of an unindexed workflow payload."""

    model_config = ConfigDict(frozen=True)

    name: str
    active: bool
    node_count: int
    complexity: Complexity
    trigger_type: TriggerType
    integrations: list[str]
    node_types: dict[str, int]
    connections: int
    has_credentials: bool
    validation_issues: list[str]


class ValidationInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    nodes: int = 0
    connections: int = 0
    has_trigger: bool = False
    has_credentials: bool = False


class ValidationReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    info: ValidationInfo = Field(default_factory=ValidationInfo)


class WorkflowDetail(BaseModel):
    """Stored metadata plus, optionally, the raw corpus document."""

    model_config = ConfigDict(frozen=True)

    metadata: WorkflowRecord
    workflow: dict[str, Any] | None = None
