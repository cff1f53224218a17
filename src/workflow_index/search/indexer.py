"""Incremental indexing pipeline: corpus directory to index store.

The pipeline is the store's only writer. It walks the corpus in filename
order, analyzes every document and upserts the ones whose content digest
changed since the last run (or all of them when forced). A bad document is
counted and reported, never fatal; only an unreadable corpus directory
aborts the run.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
import logging
from pathlib import Path

from workflow_index.domain.search import IndexFailure, ReindexResult
from workflow_index.errors import CorpusUnavailableError, ParseError, WorkflowIndexError
from workflow_index.observability.metrics import INDEX_DOC_COUNT, REINDEX_DOCUMENTS
from workflow_index.search.analyzer import analyze_document
from workflow_index.search.store import WorkflowIndexStore


logger = logging.getLogger(__name__)

CORPUS_PATTERN = "*.json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowIndexer:
    """Bring the index store up to date with the corpus directory."""

    def __init__(
        self,
        store: WorkflowIndexStore,
        corpus_dir: str | Path,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.corpus_dir = Path(corpus_dir)
        self.clock = clock

    def discover(self) -> list[Path]:
        """Corpus files in filename order."""
        if not self.corpus_dir.is_dir():
            raise CorpusUnavailableError(f"Workflows directory not found: {self.corpus_dir}")
        try:
            return sorted(path for path in self.corpus_dir.glob(CORPUS_PATTERN) if path.is_file())
        except OSError as exc:
            raise CorpusUnavailableError(f"Cannot list workflows in {self.corpus_dir}: {exc}") from exc

    def reindex(self, force: bool = False) -> ReindexResult:
        paths = self.discover()
        self.store.initialize()
        known_hashes = {} if force else self.store.file_hashes()

        processed = skipped = errors = 0
        failures: list[IndexFailure] = []

        for path in paths:
            filename = path.name
            try:
                raw = path.read_bytes()
                record = analyze_document(raw, filename)
            except (OSError, ParseError) as exc:
                detail = exc.detail if isinstance(exc, ParseError) else str(exc)
                logger.warning("Failed to analyze %s: %s", filename, detail)
                errors += 1
                failures.append(IndexFailure(filename=filename, detail=detail))
                REINDEX_DOCUMENTS.labels(outcome="error").inc()
                continue

            if known_hashes.get(filename) == record.file_hash:
                skipped += 1
                REINDEX_DOCUMENTS.labels(outcome="skipped").inc()
                continue

            try:
                self.store.upsert(record.model_copy(update={"analyzed_at": self.clock()}))
            except WorkflowIndexError as exc:
                logger.warning("Failed to store %s: %s", filename, exc)
                errors += 1
                failures.append(IndexFailure(filename=filename, detail=exc.message))
                REINDEX_DOCUMENTS.labels(outcome="error").inc()
                continue

            processed += 1
            REINDEX_DOCUMENTS.labels(outcome="processed").inc()

        INDEX_DOC_COUNT.labels(store=self.store.db_path.name).set(self.store.count())
        logger.info(
            "Reindex of %s finished: %d processed, %d skipped, %d errors (%d files)",
            self.corpus_dir,
            processed,
            skipped,
            errors,
            len(paths),
        )
        return ReindexResult(
            processed=processed,
            skipped=skipped,
            errors=errors,
            total=len(paths),
            failures=failures,
        )
