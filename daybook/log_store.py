"""
Append-only conversation log, one JSONL file per calendar day.

The first append of a new day closes the previous one: its daily summary is
built, then the weekly and monthly summaries when the ISO week or month
rolled over, then old raw files are archived. Each of those steps is
best-effort; a failure is logged and the append still happens.
"""

import json
import logging
import re
from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .config import MemoryConfig
from .facts import FORGET_PREFIX, REMEMBER_PREFIX
from .periods import DAILY, MONTHLY, WEEKLY, daily_key, month_key, week_key
from .types import ROLES, RawRecord

if TYPE_CHECKING:
    from .archive import ArchiveManager
    from .rollup import RollupEngine

logger = logging.getLogger(__name__)

DAY_FILE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})\.jsonl$")


def day_log_path(log_dir: Path, d) -> Path:
    """Raw log file for a day (date or YYYY-MM-DD)."""
    key = d if isinstance(d, str) else daily_key(d)
    return Path(log_dir) / f"{key}.jsonl"


def list_day_files(log_dir: Path) -> list[tuple[date, Path]]:
    """(date, path) of every raw day file, oldest first."""
    log_dir = Path(log_dir)
    if not log_dir.is_dir():
        return []
    days = []
    for path in log_dir.iterdir():
        m = DAY_FILE_RE.match(path.name)
        if not m or not path.is_file():
            continue
        try:
            days.append((date.fromisoformat(m.group(1)), path))
        except ValueError:
            continue
    days.sort()
    return days


def read_day_records(path: Path) -> list[RawRecord]:
    """Parse a day log, skipping blank and malformed lines."""
    records = []
    with open(path, encoding="utf-8", errors="replace") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(RawRecord.from_dict(json.loads(line)))
            except ValueError as e:
                logger.debug("%s:%d: skipping malformed record: %s", path.name, lineno, e)
    return records


def _sanitize(text: str) -> str:
    """Replace anything that can't be encoded as UTF-8 (lone surrogates)."""
    return text.encode("utf-8", errors="replace").decode("utf-8")


class LogStore:
    """Writes conversation turns and fires the day-boundary rollups."""

    def __init__(
        self,
        config: MemoryConfig,
        rollup: Optional["RollupEngine"] = None,
        archive: Optional["ArchiveManager"] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            config: Memory configuration
            rollup: Builds summaries when a day closes (none: no rollups)
            archive: Sweeps old raw files when a day closes
            clock: Returns the current aware datetime; config.now by default
        """
        self._config = config
        self._rollup = rollup
        self._archive = archive
        self._clock = clock or config.now
        self._last_day: Optional[date] = None
        self._seeded = False

    @property
    def log_dir(self) -> Path:
        return self._config.log_dir

    def today(self) -> date:
        """Current calendar day in the configured zone."""
        return self._clock().date()

    def _seed_last_day(self) -> Optional[date]:
        """Day of the newest existing log file, so a restart still closes it."""
        days = list_day_files(self.log_dir)
        return days[-1][0] if days else None

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def append(self, record: RawRecord | dict) -> Path:
        """
        Append one turn to today's file.

        Returns:
            Path of the file written

        Raises:
            ValueError: role is not user or assistant
            OSError: the log file could not be written
        """
        if isinstance(record, dict):
            record = RawRecord.from_dict(record)
        if record.role not in ROLES:
            raise ValueError(f"Invalid role: {record.role!r} (expected one of {ROLES})")

        now = self._clock()
        today = now.date()

        if not self._seeded:
            # Seed from disk so a restarted process still closes the previous day
            self._last_day = self._seed_last_day()
            self._seeded = True
        if self._last_day is not None and today > self._last_day:
            self._close_day(self._last_day, today, now)
        if self._last_day is None or today > self._last_day:
            self._last_day = today

        path = day_log_path(self.log_dir, today)
        path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(
            {"role": record.role, "content": _sanitize(record.content)},
            ensure_ascii=False,
        )
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
        return path

    def remember(self, fact: str) -> None:
        """Record an explicit fact as a statement + acknowledgement pair."""
        fact = (fact or "").strip()
        if not fact:
            raise ValueError("fact is empty")
        self.append(RawRecord("user", f"{REMEMBER_PREFIX}{fact}"))
        self.append(RawRecord("assistant", f"我理解了，你确认一个事实：{fact}"))

    def forget(self, fact: str) -> None:
        """Record the retraction of a fact."""
        fact = (fact or "").strip()
        if not fact:
            raise ValueError("fact is empty")
        self.append(RawRecord("user", f"{FORGET_PREFIX}{fact}"))
        self.append(RawRecord("assistant", f"好的，你撤回之前的事实：{fact}"))

    # -------------------------------------------------------------------------
    # Day boundary
    # -------------------------------------------------------------------------

    def _close_day(self, prev: date, today: date, now: datetime) -> None:
        logger.info("Day changed %s -> %s", prev, today)
        if self._rollup is not None:
            self._try_rollup(DAILY, daily_key(prev))
            if week_key(prev) != week_key(today):
                self._try_rollup(WEEKLY, week_key(prev))
            if month_key(prev) != month_key(today):
                self._try_rollup(MONTHLY, month_key(prev))
        if self._archive is not None:
            try:
                self._archive.sweep(now)
            except Exception as e:
                logger.warning("Archive sweep failed: %s", e)

    def _try_rollup(self, summary_type: str, key: str) -> None:
        try:
            self._rollup.ensure(summary_type, key)
        except Exception as e:
            logger.warning("%s rollup for %s failed: %s", summary_type, key, e)

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def read_records(self, d) -> list[RawRecord]:
        """All turns of a day; empty if there is no file."""
        path = day_log_path(self.log_dir, d)
        if not path.is_file():
            return []
        return read_day_records(path)

    def recent_user_lines(self, d, limit: int = 20) -> list[str]:
        """Content of the last `limit` user turns of a day."""
        if limit <= 0:
            return []
        lines = [r.content.strip() for r in self.read_records(d)
                 if r.role == "user" and r.content.strip()]
        return lines[-limit:]
