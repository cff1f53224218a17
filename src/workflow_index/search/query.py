"""Query engine: free-text plus structured filters over the index store."""

from __future__ import annotations

from collections.abc import Sequence
import logging
import math
import re
from typing import Any, Protocol

from workflow_index.domain.search import SearchPage, SearchRequest
from workflow_index.search.store import SearchPredicate, WorkflowIndexStore


logger = logging.getLogger(__name__)

# Everything except word characters, whitespace, quotes and hyphens is noise.
_DISALLOWED_CHARS = re.compile(r"[^\w\s\"'\-]")
_QUOTED_PHRASE = re.compile(r'"([^"]*)"')
_WORD_CHAR = re.compile(r"\w")

PREFIX_MIN_LENGTH = 2


class CategoryLookup(Protocol):
    def members(self, category: str) -> Sequence[str]: ...


def _quote(term: str) -> str:
    return '"' + term.replace('"', '""') + '"'


def build_match_expression(query: str) -> str | None:
    """Translate free text into an FTS5 expression.

    Quoted substrings become exact phrases, remaining terms of two or more
    characters become prefix terms, shorter ones exact terms. All parts are
    ANDed. Returns None when nothing searchable is left.
    """
    cleaned = _DISALLOWED_CHARS.sub(" ", query or "")
    parts: list[str] = []

    for phrase in _QUOTED_PHRASE.findall(cleaned):
        phrase = " ".join(phrase.split())
        if _WORD_CHAR.search(phrase):
            parts.append(_quote(phrase))

    remainder = _QUOTED_PHRASE.sub(" ", cleaned).replace('"', " ")
    for term in remainder.split():
        if not _WORD_CHAR.search(term):
            continue
        parts.append(_quote(term) + "*" if len(term) >= PREFIX_MIN_LENGTH else _quote(term))

    if not parts:
        return None
    return " AND ".join(parts)


def build_any_expression(terms: Sequence[str]) -> str | None:
    """FTS5 expression matching documents that contain at least one of ``terms`` (prefix-matched)."""
    parts: list[str] = []
    for term in terms:
        for word in _DISALLOWED_CHARS.sub(" ", term).replace('"', " ").split():
            if not _WORD_CHAR.search(word):
                continue
            parts.append(_quote(word) + "*" if len(word) >= PREFIX_MIN_LENGTH else _quote(word))
    if not parts:
        return None
    return " OR ".join(dict.fromkeys(parts))


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0


class QueryEngine:
    """Filtered, paginated and sorted search over indexed workflows."""

    def __init__(self, store: WorkflowIndexStore, categories: CategoryLookup | None = None) -> None:
        self.store = store
        self.categories = categories

    def predicate_for(self, request: SearchRequest) -> SearchPredicate:
        filenames: tuple[str, ...] | None = None
        if request.category is not None:
            members = self.categories.members(request.category) if self.categories else ()
            filenames = tuple(members)
            if not filenames:
                logger.debug("Category %r resolved to no workflows", request.category)

        return SearchPredicate(
            match=build_match_expression(request.query),
            trigger_types=() if request.trigger == "all" else (request.trigger,),
            complexity=None if request.complexity == "all" else request.complexity,
            active_only=request.active_only,
            integrations=tuple(dict.fromkeys(name for name in request.integrations if name)),
            filenames=filenames,
        )

    def search(self, request: SearchRequest | dict[str, Any] | None = None, **filters: Any) -> SearchPage:
        """Run a search; plain dicts and keyword filters are validated into a ``SearchRequest``."""
        if not isinstance(request, SearchRequest):
            request = SearchRequest.parse(request, **filters)

        predicate = self.predicate_for(request)
        with self.store.read_snapshot():
            total = self.store.count(predicate)
            documents = []
            if request.offset < total:
                documents = self.store.search(
                    predicate, sort=request.sort, limit=request.limit, offset=request.offset
                )

        logger.debug(
            "Search %r matched %d workflows (offset=%d, limit=%d)",
            request.query,
            total,
            request.offset,
            request.limit,
        )
        return SearchPage(
            documents=documents,
            total=total,
            page=request.offset // request.limit + 1,
            pages=page_count(total, request.limit),
            limit=request.limit,
            offset=request.offset,
        )
