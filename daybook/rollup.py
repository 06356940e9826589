"""
Summary rollups: raw day log -> daily -> weekly -> monthly.

Each level is regenerated idempotently under its (type, period_key). Sources
larger than the chunk budget are summarized per chunk (map) and the partial
results merged by one more model call (reduce). Every model output is parsed
into the level's body type before anything is written.

Failure classes:
- completion or validation failure: the call fails, nothing is persisted
- embedding failure after the summary is stored: logged only; the summary
  stays and reindex fills in the vector later
"""

import logging
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional, cast

from .chunking import split_json_items_into_chunks, split_lines_into_chunks
from .config import MemoryConfig
from .embedding_index import EmbeddingIndex
from .errors import DaybookError
from .facts import extract_user_facts
from .index_text import extract_index_text
from .log_store import day_log_path, read_day_records
from .periods import DAILY, MONTHLY, WEEKLY, period_key as key_for, period_range
from .prompts import build_merge_prompt, load_prompt, part_label, render_prompt
from .providers.base import CompletionProvider
from .summary_store import SummaryStore
from .types import DailyBody, SummaryBody, parse_body

logger = logging.getLogger(__name__)

EXISTS = "exists"
CREATED = "created"
NO_SOURCE = "no_source"


@dataclass
class RollupResult:
    """Outcome of one ensure() call."""
    status: str
    summary_type: str
    period_key: str
    summary_id: Optional[int] = None
    chunks: int = 0

    @property
    def created(self) -> bool:
        return self.status == CREATED


def rendering_path(log_dir: Path, summary_type: str, period_key: str) -> Path:
    """On-disk JSON rendering of a summary."""
    return Path(log_dir) / f"{period_key}.{summary_type}.json"


class RollupEngine:
    """Builds daily, weekly, and monthly summaries."""

    def __init__(
        self,
        config: MemoryConfig,
        store: SummaryStore,
        index: EmbeddingIndex,
        completion: CompletionProvider,
    ):
        self._config = config
        self._store = store
        self._index = index
        self._completion = completion

    # -------------------------------------------------------------------------
    # Public entry points
    # -------------------------------------------------------------------------

    def ensure(self, summary_type: str, period_key: str, force: bool = False) -> RollupResult:
        """
        Make sure the summary for (summary_type, period_key) exists.

        Args:
            summary_type: daily, weekly, or monthly
            period_key: YYYY-MM-DD, YYYY-Www, or YYYY-MM
            force: Delete any existing summary, its vectors, and its
                rendering first, then regenerate

        Raises:
            ValueError: unknown type or malformed key
            TransportError: a completion call failed
            ValidationError: model output failed validation
        """
        start, end = period_range(summary_type, period_key)

        if force:
            self._discard(summary_type, period_key)
        elif self._store.exists(summary_type, period_key):
            return RollupResult(
                EXISTS, summary_type, period_key,
                summary_id=self._store.summary_id(summary_type, period_key),
            )

        if summary_type == DAILY:
            built = self._build_daily(period_key)
        elif summary_type == WEEKLY:
            built = self._build_weekly(period_key, start, end)
        else:
            built = self._build_monthly(period_key, start, end)

        if built is None:
            logger.debug("No source for %s %s", summary_type, period_key)
            return RollupResult(NO_SOURCE, summary_type, period_key)

        body, chunks, source_path = built
        sid = self._persist(summary_type, period_key, start, end, body, source_path)
        logger.info("Created %s summary %s (%d chunk(s))", summary_type, period_key, chunks)
        return RollupResult(CREATED, summary_type, period_key, summary_id=sid, chunks=chunks)

    def ensure_for_date(self, summary_type: str, d: date, force: bool = False) -> RollupResult:
        """ensure() for the period of the given type containing d."""
        return self.ensure(summary_type, key_for(summary_type, d), force=force)

    # -------------------------------------------------------------------------
    # Levels
    # -------------------------------------------------------------------------

    def _build_daily(self, key: str) -> Optional[tuple[SummaryBody, int, str]]:
        log_path = day_log_path(self._config.log_dir, key)
        if not log_path.is_file():
            return None
        text = log_path.read_text(encoding="utf-8", errors="replace")
        chunks = split_lines_into_chunks(text, self._config.max_chunk_bytes)
        if not chunks:
            return None

        template = load_prompt(DAILY, self._config.prompt_dir)
        n = len(chunks)
        partials = []
        for i, chunk in enumerate(chunks):
            transcript = chunk if n == 1 else f"【{part_label(i, n)}】\n{chunk}"
            prompt = render_prompt(template, DATE=key, TRANSCRIPT=transcript)
            partials.append(self._call(DAILY, prompt))

        headers = {"date": key}
        body = cast(DailyBody, self._reduce(DAILY, headers, partials))
        _apply_headers(body, headers)

        body.user_facts = extract_user_facts(read_day_records(log_path))
        return body, n, str(log_path)

    def _build_weekly(self, key: str, monday: date, sunday: date):
        dailies = self._store.range_query(DAILY, monday, sunday)
        if not dailies:
            return None
        chunks = split_json_items_into_chunks(
            [d.slim() for d in dailies], self._config.max_chunk_bytes,
        )

        template = load_prompt(WEEKLY, self._config.prompt_dir)
        headers = {
            "week_key": key,
            "week_start": monday.isoformat(),
            "week_end": sunday.isoformat(),
        }
        n = len(chunks)
        partials = []
        for i, chunk in enumerate(chunks):
            payload = chunk if n == 1 else f"/* {part_label(i, n)} */\n{chunk}"
            prompt = render_prompt(
                template,
                WEEK_KEY=key,
                WEEK_START=headers["week_start"],
                WEEK_END=headers["week_end"],
                DAILY_JSON_ARRAY=payload,
            )
            partials.append(self._call(WEEKLY, prompt))

        body = self._reduce(WEEKLY, headers, partials)
        _apply_headers(body, headers)
        return body, n, f"{DAILY}:{monday.isoformat()}..{sunday.isoformat()}"

    def _build_monthly(self, key: str, first: date, last: date):
        weeklies = self._store.range_query(WEEKLY, first, last)
        if not weeklies:
            return None
        chunks = split_json_items_into_chunks(
            [w.slim() for w in weeklies], self._config.max_chunk_bytes,
        )

        template = load_prompt(MONTHLY, self._config.prompt_dir)
        headers = {
            "month": key,
            "month_start": first.isoformat(),
            "month_end": last.isoformat(),
        }
        n = len(chunks)
        partials = []
        for i, chunk in enumerate(chunks):
            payload = chunk if n == 1 else f"/* {part_label(i, n)} */\n{chunk}"
            prompt = render_prompt(
                template,
                MONTH=key,
                MONTH_START=headers["month_start"],
                MONTH_END=headers["month_end"],
                WEEKLY_JSON_ARRAY=payload,
            )
            partials.append(self._call(MONTHLY, prompt))

        body = self._reduce(MONTHLY, headers, partials)
        _apply_headers(body, headers)
        return body, n, f"{WEEKLY}:{first.isoformat()}..{last.isoformat()}"

    # -------------------------------------------------------------------------
    # Model calls
    # -------------------------------------------------------------------------

    def _call(self, summary_type: str, prompt: str) -> SummaryBody:
        """One completion call, parsed into the level's body type."""
        out = self._completion.complete(
            [{"role": "user", "content": prompt}],
            timeout=self._config.http_timeout,
        )
        return parse_body(summary_type, out)

    def _reduce(self, summary_type: str, headers: dict[str, str],
                partials: list[SummaryBody]) -> SummaryBody:
        if len(partials) == 1:
            return partials[0]
        logger.info("Merging %d partial %s summaries", len(partials), summary_type)
        prompt = build_merge_prompt(
            summary_type, headers, [p.to_json() for p in partials],
        )
        return self._call(summary_type, prompt)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _discard(self, summary_type: str, key: str) -> None:
        """Remove a summary, its vectors, and its rendering. No-op if absent."""
        if self._store.delete(summary_type, key):
            logger.info("Deleted %s summary %s for regeneration", summary_type, key)
        path = rendering_path(self._config.log_dir, summary_type, key)
        path.unlink(missing_ok=True)

    def _persist(self, summary_type: str, key: str, start: date, end: date,
                 body: SummaryBody, source_path: str) -> int:
        path = rendering_path(self._config.log_dir, summary_type, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(body.to_json() + "\n", encoding="utf-8")
        os.replace(tmp, path)

        index_text = extract_index_text(body)
        try:
            sid = self._store.upsert(
                summary_type, key, start, end, body, index_text, source_path,
            )
        except Exception:
            path.unlink(missing_ok=True)
            raise

        if not index_text:
            logger.warning("%s %s has no index text; not embedded", summary_type, key)
            return sid
        try:
            self._index.ensure(index_text, summary_type, key)
        except DaybookError as e:
            logger.warning("Embedding %s %s failed (reindex will retry): %s",
                           summary_type, key, e)
        return sid


def _apply_headers(body: SummaryBody, headers: dict[str, str]) -> None:
    """Pin the scalar header fields to the period being built."""
    for name, value in headers.items():
        setattr(body, name, value)
