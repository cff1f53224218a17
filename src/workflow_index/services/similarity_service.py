"""Weighted similarity ranking of indexed workflows against a reference workflow."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from workflow_index.domain.model import WorkflowRecord
from workflow_index.domain.search import SimilarityReference, SimilarityRequest, SimilarityResult, SimilarMatch
from workflow_index.search.store import SearchPredicate, WorkflowIndexStore


logger = logging.getLogger(__name__)

INTEGRATION_WEIGHT = 0.5
NODE_COUNT_WEIGHT = 0.3
TRIGGER_WEIGHT = 0.2
TRIGGER_MISMATCH_SCORE = 0.5


@dataclass(frozen=True, slots=True)
class SimilarityScore:
    integrations: float
    node_count: float
    trigger: float

    @property
    def combined(self) -> float:
        return INTEGRATION_WEIGHT * self.integrations + NODE_COUNT_WEIGHT * self.node_count + TRIGGER_WEIGHT * self.trigger


def integration_similarity(left: set[str], right: set[str]) -> float:
    """Jaccard index; 0 when neither side has integrations."""
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def node_count_similarity(left: int, right: int) -> float:
    largest = max(left, right)
    if largest == 0:
        return 0.0
    return 1.0 - abs(left - right) / largest


def trigger_similarity(left: str, right: str) -> float:
    return 1.0 if left == right else TRIGGER_MISMATCH_SCORE


def score(reference: WorkflowRecord, candidate: WorkflowRecord) -> SimilarityScore:
    return SimilarityScore(
        integrations=integration_similarity(set(reference.integrations), set(candidate.integrations)),
        node_count=node_count_similarity(reference.node_count, candidate.node_count),
        trigger=trigger_similarity(reference.trigger_type, candidate.trigger_type),
    )


class SimilarityEngine:
    """Ranks every other indexed workflow by combined similarity to a reference."""

    def __init__(self, store: WorkflowIndexStore, *, result_limit: int = 20) -> None:
        self.store = store
        self.result_limit = result_limit

    def find_similar(self, filename: str, threshold: float = 0.7) -> SimilarityResult:
        request = SimilarityRequest.parse(filename=filename, threshold=threshold)
        threshold = request.threshold

        with self.store.read_snapshot():
            reference = self.store.get(filename)
            candidates = self.store.records(SearchPredicate(exclude_filename=filename))
        reference_integrations = set(reference.integrations)

        matches: list[SimilarMatch] = []
        for candidate in candidates:
            similarity = score(reference, candidate)
            combined = similarity.combined
            if combined < threshold:
                continue
            matches.append(
                SimilarMatch(
                    filename=candidate.filename,
                    name=candidate.name,
                    similarity_score=combined,
                    integration_similarity=similarity.integrations,
                    node_count_similarity=similarity.node_count,
                    trigger_similarity=similarity.trigger,
                    shared_integrations=sorted(reference_integrations & set(candidate.integrations)),
                    trigger_type=candidate.trigger_type,
                    node_count=candidate.node_count,
                )
            )

        matches.sort(key=lambda match: (-match.similarity_score, match.filename))
        logger.debug("Found %d workflows similar to %s at threshold %.2f", len(matches), filename, threshold)
        return SimilarityResult(
            reference=SimilarityReference(
                filename=reference.filename,
                name=reference.name,
                integrations=reference.integrations,
                node_count=reference.node_count,
                trigger_type=reference.trigger_type,
            ),
            similar_workflows=matches[: self.result_limit],
            total_found=len(matches),
            threshold=threshold,
        )
