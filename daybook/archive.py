"""
Retention sweep for raw day logs.

A raw day file older than the retention window is moved into a per-month
gzip bundle, but only once its daily summary exists. Bundles grow by
appending gzip members, which gzip readers treat as one stream.
"""

import gzip
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from pathlib import Path
from typing import Optional

from .config import MemoryConfig
from .log_store import list_day_files
from .periods import DAILY, daily_key, month_key, parse_month_key
from .summary_store import SummaryStore
from .types import RawRecord

logger = logging.getLogger(__name__)


@dataclass
class ArchiveResult:
    """Day keys handled by one sweep."""
    archived: list[str] = field(default_factory=list)
    unsummarized: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def bundle_path(archive_dir: Path, month: str) -> Path:
    return Path(archive_dir) / f"{month}.jsonl.gz"


class ArchiveManager:
    """Moves summarized, expired day files into monthly bundles."""

    def __init__(self, config: MemoryConfig, store: SummaryStore):
        self._config = config
        self._store = store

    def cutoff(self, now: Optional[datetime] = None) -> datetime:
        """
        Files whose day starts before this instant are expired.

        A naive now is taken to be in the configured timezone.
        """
        now = now or self._config.now()
        if now.tzinfo is None:
            now = now.replace(tzinfo=self._config.tz)
        return now - timedelta(days=self._config.keep_raw_days)

    def sweep(self, now: Optional[datetime] = None) -> ArchiveResult:
        """
        Archive every expired day file that has a daily summary.

        Per-file I/O errors are logged and the sweep continues.
        """
        cutoff = self.cutoff(now)
        tz = cutoff.tzinfo
        result = ArchiveResult()

        for day, path in list_day_files(self._config.log_dir):
            midnight = datetime.combine(day, time(), tzinfo=tz)
            if midnight >= cutoff:
                continue
            key = daily_key(day)
            if not self._store.exists(DAILY, key):
                logger.debug("Keeping %s: no daily summary yet", path.name)
                result.unsummarized.append(key)
                continue
            try:
                self._append_to_bundle(path, month_key(day))
            except (OSError, EOFError) as e:
                logger.warning("Archiving %s failed: %s", path.name, e)
                result.failed.append(key)
                continue
            try:
                path.unlink()
            except OSError as e:
                logger.error("Archived %s but could not remove it: %s", path.name, e)
                result.failed.append(key)
                continue
            logger.info("Archived %s into %s.jsonl.gz", path.name, month_key(day))
            result.archived.append(key)

        return result

    def _append_to_bundle(self, path: Path, month: str) -> None:
        """Append a day file as one gzip member, unless an earlier sweep already did."""
        data = path.read_bytes()
        if data and not data.endswith(b"\n"):
            data += b"\n"
        bundle = bundle_path(self._config.archive_dir, month)
        if data and bundle.is_file():
            with gzip.open(bundle, "rb") as gz:
                if data in gz.read():
                    logger.info("%s is already in %s; not appending again", path.name, bundle.name)
                    return
        bundle.parent.mkdir(parents=True, exist_ok=True)
        with gzip.open(bundle, "ab") as gz:
            gz.write(data)

    def read_bundle(self, month: str) -> list[RawRecord]:
        """All records archived for a month (YYYY-MM), in archive order."""
        parse_month_key(month)
        bundle = bundle_path(self._config.archive_dir, month)
        if not bundle.is_file():
            return []
        records = []
        with gzip.open(bundle, "rt", encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(RawRecord.from_dict(json.loads(line)))
                except ValueError:
                    continue
        return records
