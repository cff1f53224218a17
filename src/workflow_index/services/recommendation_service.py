"""Use-case driven workflow recommendations.

A free-text description of an automation need is reduced to keywords, the
full-text index supplies candidates matching any keyword or preferred
integration, and a fixed boost table decides the final order.
"""

from __future__ import annotations

from collections.abc import Sequence
import logging
import string

from workflow_index.domain.model import WorkflowRecord
from workflow_index.domain.search import Recommendation, RecommendationRequest, RecommendationResult
from workflow_index.search.query import build_any_expression
from workflow_index.search.store import WorkflowIndexStore
from workflow_index.services.category_service import CategoryMap


logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({"with", "from", "that", "this", "have", "been", "will"})
KEYWORD_MIN_LENGTH = 4

CANDIDATE_LIMIT = 20
RECOMMENDATION_LIMIT = 10

INTEGRATION_BOOST = 20
ACTIVE_BOOST = 5
KEYWORD_BOOST = 3
COMPREHENSIVE_NODE_COUNT = 10


def extract_keywords(use_case: str) -> list[str]:
    """Lower-cased words longer than three characters, minus stop words, first occurrence order."""
    words = (word.strip(string.punctuation) for word in use_case.lower().split())
    return list(dict.fromkeys(word for word in words if len(word) >= KEYWORD_MIN_LENGTH and word not in STOP_WORDS))


def matched_integrations(record: WorkflowRecord, preferred: Sequence[str]) -> list[str]:
    """Preferred integrations contained (case-insensitively) in one of the record's integrations."""
    used = [integration.lower() for integration in record.integrations]
    return [name for name in preferred if any(name.lower() in integration for integration in used)]


def recommendation_score(record: WorkflowRecord, keywords: Sequence[str], preferred: Sequence[str]) -> int:
    score = INTEGRATION_BOOST * len(matched_integrations(record, preferred))
    if record.active:
        score += ACTIVE_BOOST
    description = record.description.lower()
    score += KEYWORD_BOOST * sum(1 for keyword in keywords if keyword in description)
    return score


def recommendation_reasons(record: WorkflowRecord, keywords: Sequence[str], preferred: Sequence[str]) -> list[str]:
    reasons: list[str] = []
    searchable = f"{record.name}\n{record.description}".lower()
    keyword_hits = [keyword for keyword in keywords if keyword in searchable]
    if keyword_hits:
        reasons.append(f"Matches keywords: {', '.join(keyword_hits)}")
    integration_hits = matched_integrations(record, preferred)
    if integration_hits:
        reasons.append(f"Uses requested integrations: {', '.join(integration_hits)}")
    if record.active:
        reasons.append("Currently active workflow")
    if record.node_count > COMPREHENSIVE_NODE_COUNT:
        reasons.append("Comprehensive automation with multiple steps")
    return reasons


class RecommendationEngine:
    """Ranks full-text candidates for a use case with keyword, integration and activity boosts."""

    def __init__(
        self,
        store: WorkflowIndexStore,
        categories: CategoryMap | None = None,
        *,
        limit: int = RECOMMENDATION_LIMIT,
        candidate_limit: int = CANDIDATE_LIMIT,
    ) -> None:
        self.store = store
        self.categories = categories or CategoryMap()
        self.limit = limit
        self.candidate_limit = candidate_limit

    def recommend(self, use_case: str, preferred_integrations: Sequence[str] | None = None) -> RecommendationResult:
        request = RecommendationRequest.parse(use_case=use_case, preferred_integrations=preferred_integrations)
        preferred = [name.strip() for name in request.preferred_integrations if name.strip()]
        keywords = extract_keywords(request.use_case)

        match = build_any_expression([*keywords, *preferred])
        candidates = self.store.ranked_matches(match, limit=self.candidate_limit) if match else []

        # Stable sort: equal scores keep full-text rank order.
        scored = sorted(
            ((recommendation_score(record, keywords, preferred), record) for record in candidates),
            key=lambda item: -item[0],
        )
        recommendations = [
            Recommendation(
                filename=record.filename,
                name=record.name,
                description=record.description,
                score=score,
                integrations=record.integrations,
                trigger_type=record.trigger_type,
                complexity=record.complexity,
                reasons=recommendation_reasons(record, keywords, preferred),
            )
            for score, record in scored[: self.limit]
        ]

        by_category: dict[str, list[Recommendation]] = {}
        for recommendation in recommendations:
            category = self.categories.category_of(recommendation.filename)
            if category is not None:
                by_category.setdefault(category, []).append(recommendation)

        logger.debug(
            "Recommended %d of %d candidates for keywords %s", len(recommendations), len(candidates), keywords
        )
        return RecommendationResult(
            use_case=request.use_case,
            keywords_detected=keywords,
            total_recommendations=len(recommendations),
            top_recommendations=recommendations,
            by_category=by_category,
        )
