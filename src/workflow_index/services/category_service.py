"""Category map: a read-only grouping of corpus filenames under named categories."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from pathlib import Path

import orjson

from workflow_index.domain.search import CategorySummary
from workflow_index.services.analytics_service import half_up


logger = logging.getLogger(__name__)

EXAMPLE_LIMIT = 5


class CategoryMap:
    """Category name to member filenames, loaded from a JSON object."""

    def __init__(self, categories: Mapping[str, Sequence[str]] | None = None) -> None:
        self._categories: dict[str, tuple[str, ...]] = {
            name: tuple(dict.fromkeys(members)) for name, members in (categories or {}).items()
        }

    @classmethod
    def load(cls, path: str | Path) -> CategoryMap:
        """Read the map from disk. A missing file is an empty map, not an error."""
        path = Path(path)
        if not path.exists():
            logger.info("No category map at %s; categories are empty", path)
            return cls()
        try:
            payload = orjson.loads(path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable category map %s: %s", path, exc)
            return cls()
        if not isinstance(payload, dict):
            logger.warning("Ignoring category map %s: expected a JSON object", path)
            return cls()
        categories = {
            str(name): [str(member) for member in members if isinstance(member, str)]
            for name, members in payload.items()
            if isinstance(members, list)
        }
        return cls(categories)

    def __len__(self) -> int:
        return len(self._categories)

    def __contains__(self, category: object) -> bool:
        return category in self._categories

    def names(self) -> list[str]:
        return sorted(self._categories)

    def members(self, category: str) -> tuple[str, ...]:
        """Member filenames of a category; unknown categories have none."""
        return self._categories.get(category, ())

    def category_of(self, filename: str) -> str | None:
        """First category, in file order, that lists ``filename``."""
        for name, members in self._categories.items():
            if filename in members:
                return name
        return None

    def summarize(self, total: int) -> list[CategorySummary]:
        """Per category: member count, first examples and share of the indexed corpus."""
        return [
            CategorySummary(
                name=name,
                count=len(members),
                examples=list(members[:EXAMPLE_LIMIT]),
                percentage=half_up(len(members) / total * 100) if total else 0,
            )
            for name, members in sorted(self._categories.items())
        ]
