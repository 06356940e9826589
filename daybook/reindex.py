"""
Embedding backfill.

Walks stored summaries and embeds every one that has no vector for the
configured model, e.g. after an embedding outage or a model change.
"""

import logging
from dataclasses import dataclass

from .embedding_index import EmbeddingIndex
from .errors import DaybookError
from .index_text import extract_index_text
from .periods import SUMMARY_TYPES
from .summary_store import SummaryStore

logger = logging.getLogger(__name__)

SCOPES = SUMMARY_TYPES + ("all",)


@dataclass
class ReindexResult:
    total: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0


class ReindexTool:
    """Backfills missing vectors."""

    def __init__(self, store: SummaryStore, index: EmbeddingIndex):
        self._store = store
        self._index = index

    def reindex(self, scope: str = "all") -> ReindexResult:
        """
        Embed every summary in scope that lacks a vector.

        Args:
            scope: daily, weekly, monthly, or all

        Raises:
            ValueError: unknown scope
        """
        if scope not in SCOPES:
            raise ValueError(f"Invalid scope: {scope!r} (expected one of {', '.join(SCOPES)})")

        records = self._store.list_summaries(None if scope == "all" else scope)
        model = self._index.model
        result = ReindexResult(total=len(records))

        for rec in records:
            if self._store.has_embedding(rec.id, model):
                result.skipped += 1
                continue
            text = extract_index_text(rec.body)
            if not text:
                logger.debug("Skipping %s %s: no index text", rec.type, rec.period_key)
                result.skipped += 1
                continue
            try:
                if self._index.ensure(text, rec.type, rec.period_key):
                    result.created += 1
                else:
                    result.skipped += 1
            except DaybookError as e:
                logger.warning("Embedding %s %s failed: %s", rec.type, rec.period_key, e)
                result.failed += 1

        logger.info(
            "Reindex %s: total=%d created=%d skipped=%d failed=%d",
            scope, result.total, result.created, result.skipped, result.failed,
        )
        return result
