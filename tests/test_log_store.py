"""Tests for the day log and its day-boundary triggers."""

import json
from datetime import date

import pytest
from conftest import FixedClock, at, write_day_log

from daybook.facts import FORGET_PREFIX, REMEMBER_PREFIX
from daybook.log_store import LogStore, day_log_path, list_day_files, read_day_records
from daybook.types import RawRecord


class RecordingRollup:
    """Collects ensure() calls; optionally fails on some types."""

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def ensure(self, summary_type, period_key, force=False):
        self.calls.append((summary_type, period_key))
        if summary_type in self.fail_on:
            raise RuntimeError(f"{summary_type} failed")


class RecordingArchive:
    def __init__(self):
        self.sweeps = []

    def sweep(self, now=None):
        self.sweeps.append(now)


def read_lines(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


class TestAppend:
    """Turns are appended to the current day's JSONL file."""

    def test_writes_jsonl(self, config):
        log = LogStore(config, clock=FixedClock(at("2025-01-05")))

        path = log.append(RawRecord("user", "我喜欢跑步"))
        log.append({"role": "assistant", "content": "你喜欢跑步"})

        assert path == config.log_dir / "2025-01-05.jsonl"
        assert read_lines(path) == [
            {"role": "user", "content": "我喜欢跑步"},
            {"role": "assistant", "content": "你喜欢跑步"},
        ]

    def test_cjk_written_literally(self, config):
        log = LogStore(config, clock=FixedClock(at("2025-01-05")))
        path = log.append(RawRecord("user", "跑步"))
        assert "跑步" in path.read_text(encoding="utf-8")

    def test_invalid_role(self, config):
        log = LogStore(config, clock=FixedClock(at("2025-01-05")))
        with pytest.raises(ValueError):
            log.append(RawRecord("system", "hi"))
        assert list_day_files(config.log_dir) == []

    def test_lone_surrogate_replaced(self, config):
        log = LogStore(config, clock=FixedClock(at("2025-01-05")))
        path = log.append(RawRecord("user", "bad \ud800 char"))
        assert read_lines(path)[0]["content"] == "bad ? char"

    def test_read_records(self, config):
        log = LogStore(config, clock=FixedClock(at("2025-01-05")))
        log.append(RawRecord("user", "a"))
        assert log.read_records(date(2025, 1, 5)) == [RawRecord("user", "a")]
        assert log.read_records(date(2025, 1, 4)) == []


class TestDayBoundary:
    """The first append of a new day closes the previous day."""

    def test_same_day_no_trigger(self, config):
        rollup = RecordingRollup()
        log = LogStore(config, rollup=rollup, clock=FixedClock(at("2025-01-05", 9)))
        log.append(RawRecord("user", "a"))
        log.append(RawRecord("user", "b"))
        assert rollup.calls == []

    def test_daily_on_day_change(self, config):
        rollup = RecordingRollup()
        archive = RecordingArchive()
        clock = FixedClock(at("2025-01-07"))
        log = LogStore(config, rollup=rollup, archive=archive, clock=clock)
        log.append(RawRecord("user", "a"))

        clock.now = at("2025-01-08")
        log.append(RawRecord("user", "b"))

        assert rollup.calls == [("daily", "2025-01-07")]
        assert archive.sweeps == [clock.now]

    def test_weekly_on_week_change(self, config):
        """Sunday -> Monday also closes the ISO week."""
        rollup = RecordingRollup()
        clock = FixedClock(at("2025-01-12"))
        log = LogStore(config, rollup=rollup, clock=clock)
        log.append(RawRecord("user", "a"))

        clock.now = at("2025-01-13")
        log.append(RawRecord("user", "b"))

        assert rollup.calls == [("daily", "2025-01-12"), ("weekly", "2025-W02")]

    def test_monthly_on_month_change(self, config):
        rollup = RecordingRollup()
        clock = FixedClock(at("2025-01-31"))
        log = LogStore(config, rollup=rollup, clock=clock)
        log.append(RawRecord("user", "a"))

        clock.now = at("2025-02-01")
        log.append(RawRecord("user", "b"))

        assert rollup.calls == [("daily", "2025-01-31"), ("monthly", "2025-01")]

    def test_all_three_in_order(self, config):
        """Aug 31, 2025 is a Sunday and the last day of the month."""
        rollup = RecordingRollup()
        clock = FixedClock(at("2025-08-31"))
        log = LogStore(config, rollup=rollup, clock=clock)
        log.append(RawRecord("user", "a"))

        clock.now = at("2025-09-01")
        log.append(RawRecord("user", "b"))

        assert rollup.calls == [
            ("daily", "2025-08-31"), ("weekly", "2025-W35"), ("monthly", "2025-08"),
        ]

    def test_seeded_from_existing_files(self, config):
        """A fresh process still closes the newest day on disk."""
        write_day_log(config.log_dir, "2025-01-03", [("user", "old")])
        write_day_log(config.log_dir, "2025-01-04", [("user", "older")])
        rollup = RecordingRollup()
        log = LogStore(config, rollup=rollup, clock=FixedClock(at("2025-01-05")))

        log.append(RawRecord("user", "new"))

        assert rollup.calls == [("daily", "2025-01-04")]

    def test_fresh_home_no_trigger(self, config):
        rollup = RecordingRollup()
        log = LogStore(config, rollup=rollup, clock=FixedClock(at("2025-01-05")))
        log.append(RawRecord("user", "a"))
        assert rollup.calls == []

    def test_failures_do_not_block_append(self, config):
        rollup = RecordingRollup(fail_on={"daily", "weekly"})
        clock = FixedClock(at("2025-01-12"))
        log = LogStore(config, rollup=rollup, clock=clock)
        log.append(RawRecord("user", "a"))

        clock.now = at("2025-01-13")
        path = log.append(RawRecord("user", "b"))

        assert rollup.calls == [("daily", "2025-01-12"), ("weekly", "2025-W02")]
        assert read_lines(path) == [{"role": "user", "content": "b"}]

    def test_clock_going_backwards(self, config):
        """An earlier day never closes the later one."""
        rollup = RecordingRollup()
        clock = FixedClock(at("2025-01-06"))
        log = LogStore(config, rollup=rollup, clock=clock)
        log.append(RawRecord("user", "a"))

        clock.now = at("2025-01-05")
        log.append(RawRecord("user", "b"))
        clock.now = at("2025-01-06", 18)
        log.append(RawRecord("user", "c"))

        assert rollup.calls == []

    def test_gap_of_several_days(self, config):
        """Only the last active day is closed."""
        rollup = RecordingRollup()
        clock = FixedClock(at("2025-01-06"))
        log = LogStore(config, rollup=rollup, clock=clock)
        log.append(RawRecord("user", "a"))

        clock.now = at("2025-01-09")
        log.append(RawRecord("user", "b"))

        assert rollup.calls == [("daily", "2025-01-06")]


class TestRememberForget:
    def test_remember_pair(self, config):
        log = LogStore(config, clock=FixedClock(at("2025-01-05")))
        log.remember("我喜欢跑步")

        records = log.read_records(date(2025, 1, 5))
        assert records == [
            RawRecord("user", f"{REMEMBER_PREFIX}我喜欢跑步"),
            RawRecord("assistant", "我理解了，你确认一个事实：我喜欢跑步"),
        ]

    def test_forget_pair(self, config):
        log = LogStore(config, clock=FixedClock(at("2025-01-05")))
        log.forget("我喜欢跑步")

        records = log.read_records(date(2025, 1, 5))
        assert records[0] == RawRecord("user", f"{FORGET_PREFIX}我喜欢跑步")
        assert records[1].role == "assistant"

    def test_empty_fact(self, config):
        log = LogStore(config, clock=FixedClock(at("2025-01-05")))
        with pytest.raises(ValueError):
            log.remember("  ")
        with pytest.raises(ValueError):
            log.forget("")


class TestReading:
    def test_recent_user_lines(self, config):
        log = LogStore(config, clock=FixedClock(at("2025-01-05")))
        for i in range(25):
            log.append(RawRecord("user", f"u{i}"))
            log.append(RawRecord("assistant", f"a{i}"))

        lines = log.recent_user_lines(date(2025, 1, 5), limit=20)

        assert len(lines) == 20
        assert lines[0] == "u5"
        assert lines[-1] == "u24"

    def test_malformed_lines_skipped(self, config):
        path = day_log_path(config.log_dir, "2025-01-05")
        path.write_text(
            '{"role": "user", "content": "ok"}\nnot json\n[1, 2]\n\n'
            '{"role": "assistant", "content": "fine"}\n',
            encoding="utf-8",
        )
        assert read_day_records(path) == [
            RawRecord("user", "ok"), RawRecord("assistant", "fine"),
        ]

    def test_list_day_files_ignores_other_files(self, config):
        write_day_log(config.log_dir, "2025-01-06", [("user", "a")])
        write_day_log(config.log_dir, "2025-01-05", [("user", "a")])
        (config.log_dir / "2025-01-05.daily.json").write_text("{}", encoding="utf-8")
        (config.log_dir / "notes.jsonl").write_text("", encoding="utf-8")

        assert [d for d, _ in list_day_files(config.log_dir)] == [
            date(2025, 1, 5), date(2025, 1, 6),
        ]
