"""
Similarity search over stored summary vectors.

Exact nearest-neighbour: every vector of the configured model is scored by
cosine similarity against the query. Records that fail an integrity check
(dimension mismatch, zero norm, truncated blob, non-finite score) are left
out of the results rather than failing the search.
"""

import json
import logging
import math
from datetime import date
from typing import Optional

from .embedding_index import EmbeddingIndex, decode_vector, l2_norm
from .errors import ValidationError
from .index_text import extract_human_text
from .periods import period_range
from .summary_store import StoredVector, SummaryStore
from .types import SearchHit

logger = logging.getLogger(__name__)


def _hit_text(sv: StoredVector) -> str:
    try:
        data = json.loads(sv.body_json)
    except json.JSONDecodeError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    return extract_human_text(data, sv.summary_type)


def _recency(hit: SearchHit) -> tuple[date, date, str]:
    """Sort key for ties: later end date, then later start, then key."""
    try:
        start, end = period_range(hit.type, hit.period_key)
    except ValueError:
        start = end = date.min
    return end, start, hit.period_key


def rank_hits(hits: list[SearchHit], top_k: int) -> list[SearchHit]:
    """Order by score descending, equal scores by most recent period; keep top_k."""
    ranked = sorted(hits, key=_recency, reverse=True)
    ranked.sort(key=lambda h: h.score, reverse=True)
    return ranked[:max(top_k, 0)]


class SearchEngine:
    """Cosine-similarity ranking of summaries against a query."""

    def __init__(
        self,
        store: SummaryStore,
        index: EmbeddingIndex,
        top_k: int = 5,
        min_score: float = 0.0,
        timeout: Optional[float] = None,
    ):
        self._store = store
        self._index = index
        self._top_k = top_k
        self._min_score = min_score
        self._timeout = timeout

    def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> list[SearchHit]:
        """
        Rank stored summaries against a query.

        Args:
            query: Free text; blank returns no hits without calling the model
            top_k: Maximum hits (configured default if None)
            min_score: Minimum cosine score (configured default if None)

        Raises:
            TransportError / ValidationError: embedding the query failed
        """
        if not query or not query.strip():
            return []
        top_k = self._top_k if top_k is None else top_k
        min_score = self._min_score if min_score is None else min_score
        if top_k <= 0:
            return []

        q = self._index.embed(query, timeout=self._timeout)
        q_norm = l2_norm(q)
        if q_norm == 0 or not math.isfinite(q_norm):
            logger.debug("Query vector has zero norm; no results")
            return []

        hits: list[SearchHit] = []
        skipped = 0
        for sv in self._store.iter_embeddings(self._index.model):
            if sv.dim != len(q) or not sv.l2 or not math.isfinite(sv.l2):
                skipped += 1
                continue
            try:
                v = decode_vector(sv.blob, sv.dim)
            except ValidationError as e:
                logger.debug("Skipping %s %s: %s", sv.summary_type, sv.period_key, e)
                skipped += 1
                continue

            dot = sum(a * b for a, b in zip(q, v))
            score = dot / (q_norm * sv.l2)
            if not math.isfinite(score):
                skipped += 1
                continue
            if score < min_score:
                continue
            hits.append(SearchHit(
                score=score,
                type=sv.summary_type,
                period_key=sv.period_key,
                text=_hit_text(sv),
            ))

        if skipped:
            logger.debug("Search skipped %d stored vector(s) failing integrity checks", skipped)
        return rank_hits(hits, top_k)
