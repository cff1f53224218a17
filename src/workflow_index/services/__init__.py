"""Query-side services built on the index store."""

from .analytics_service import AnalyticsEngine, SnapshotCache
from .category_service import CategoryMap
from .recommendation_service import RecommendationEngine
from .similarity_service import SimilarityEngine


__all__ = [
    "AnalyticsEngine",
    "CategoryMap",
    "RecommendationEngine",
    "SimilarityEngine",
    "SnapshotCache",
]
