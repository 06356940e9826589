"""Tests for daily / weekly / monthly rollups."""

import json
import sqlite3
from datetime import date

import pytest
from conftest import write_day_log

from daybook.errors import TransportError, ValidationError
from daybook.rollup import CREATED, EXISTS, NO_SOURCE, rendering_path
from daybook.types import DailyBody, WeeklyBody


FACT_DAY = [
    ("user", "今天跑了五公里"),
    ("assistant", "不错，坚持下去。"),
    ("user", "我喜欢跑步"),
    ("assistant", "你喜欢跑步，很好的习惯。"),
]


def put_daily(store, key, topic="t"):
    d = date.fromisoformat(key)
    store.upsert("daily", key, d, d, DailyBody(date=key, topics=[topic]), topic)


def put_weekly(store, key, start, end):
    store.upsert("weekly", key, date.fromisoformat(start), date.fromisoformat(end),
                 WeeklyBody(week_key=key, week_start=start, week_end=end, themes=[key]), key)


class TestDaily:
    """Daily summaries are built from one raw day file."""

    def test_end_to_end_fact(self, config, store, rollup, mock_completion):
        """A self-statement acknowledged by the assistant lands in user_facts."""
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)

        result = rollup.ensure("daily", "2025-01-05")

        assert result.status == CREATED
        assert result.chunks == 1
        body = store.load_body("daily", "2025-01-05")
        assert body.user_facts == ["我喜欢跑步"]
        assert body.date == "2025-01-05"
        assert body.topics == ["跑步"]

        prompt = mock_completion.prompts[0]
        assert '"date": "2025-01-05"' in prompt
        assert "我喜欢跑步" in prompt

    def test_rendering_written(self, config, rollup):
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)
        rollup.ensure("daily", "2025-01-05")

        path = rendering_path(config.log_dir, "daily", "2025-01-05")
        assert path.name == "2025-01-05.daily.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["type"] == "daily"
        assert data["user_facts"] == ["我喜欢跑步"]

    def test_row_fields(self, config, store, rollup):
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)
        rollup.ensure("daily", "2025-01-05")

        rec = store.get("daily", "2025-01-05")
        assert rec.start_date == rec.end_date == "2025-01-05"
        assert rec.index_text == "跑步\n聊了跑步计划"
        assert rec.source_path.endswith("2025-01-05.jsonl")

    def test_embedded_after_store(self, config, store, rollup):
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)
        result = rollup.ensure("daily", "2025-01-05")

        assert store.has_embedding(result.summary_id, "mock-embed")

    def test_idempotent(self, config, store, rollup, mock_completion):
        """A second ensure does not call the model again."""
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)
        first = rollup.ensure("daily", "2025-01-05")

        second = rollup.ensure("daily", "2025-01-05")

        assert second.status == EXISTS
        assert second.summary_id == first.summary_id
        assert len(mock_completion.calls) == 1
        assert store.count() == 1

    def test_no_log_file(self, store, rollup, mock_completion):
        result = rollup.ensure("daily", "2025-01-05")

        assert result.status == NO_SOURCE
        assert not result.created
        assert mock_completion.calls == []
        assert store.count() == 0

    def test_blank_log_file(self, config, store, rollup):
        (config.log_dir / "2025-01-05.jsonl").write_text("\n\n", encoding="utf-8")
        assert rollup.ensure("daily", "2025-01-05").status == NO_SOURCE

    def test_force_regenerates(self, config, store, rollup, mock_completion):
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)
        rollup.ensure("daily", "2025-01-05")
        mock_completion.responses.append(json.dumps({"type": "daily", "topics": ["游泳"]}))

        result = rollup.ensure("daily", "2025-01-05", force=True)

        assert result.status == CREATED
        assert len(mock_completion.calls) == 2
        assert store.load_body("daily", "2025-01-05").topics == ["游泳"]
        assert store.count_embeddings() == 1
        path = rendering_path(config.log_dir, "daily", "2025-01-05")
        assert json.loads(path.read_text(encoding="utf-8"))["topics"] == ["游泳"]

    def test_force_without_existing(self, config, rollup):
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)
        assert rollup.ensure("daily", "2025-01-05", force=True).status == CREATED

    def test_force_discards_even_when_source_gone(self, config, store, rollup):
        path = write_day_log(config.log_dir, "2025-01-05", FACT_DAY)
        rollup.ensure("daily", "2025-01-05")
        path.unlink()

        result = rollup.ensure("daily", "2025-01-05", force=True)

        assert result.status == NO_SOURCE
        assert not store.exists("daily", "2025-01-05")
        assert not rendering_path(config.log_dir, "daily", "2025-01-05").exists()

    def test_headers_pinned_to_period(self, config, store, rollup, mock_completion):
        mock_completion.responses.append('{"type": "daily", "date": "1999-01-01", "topics": ["a"]}')
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)

        rollup.ensure("daily", "2025-01-05")

        assert store.load_body("daily", "2025-01-05").date == "2025-01-05"

    def test_fenced_output_accepted(self, config, store, rollup, mock_completion):
        mock_completion.responses.append('```json\n{"type": "daily", "topics": ["a"]}\n```')
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)

        assert rollup.ensure("daily", "2025-01-05").created
        assert store.load_body("daily", "2025-01-05").topics == ["a"]

    def test_malformed_key(self, rollup):
        with pytest.raises(ValueError):
            rollup.ensure("daily", "2025/01/05")

    def test_prompt_override(self, config, rollup, mock_completion):
        (config.prompt_dir / "daily.txt").write_text(
            'CUSTOM {{DATE}} "type": "daily"\n{{TRANSCRIPT}}', encoding="utf-8",
        )
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)

        rollup.ensure("daily", "2025-01-05")

        assert mock_completion.prompts[0].startswith("CUSTOM 2025-01-05")


class TestFailures:
    """Nothing is persisted when a model call fails."""

    def test_completion_failure(self, config, store, rollup, mock_completion):
        mock_completion.responses.append(TransportError("connection refused"))
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)

        with pytest.raises(TransportError):
            rollup.ensure("daily", "2025-01-05")

        assert store.count() == 0
        assert not rendering_path(config.log_dir, "daily", "2025-01-05").exists()

    def test_invalid_output(self, config, store, rollup, mock_completion):
        mock_completion.responses.append("I could not summarize this.")
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)

        with pytest.raises(ValidationError):
            rollup.ensure("daily", "2025-01-05")

        assert store.count() == 0

    def test_retry_after_failure(self, config, store, rollup, mock_completion):
        mock_completion.responses.append("not json")
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)
        with pytest.raises(ValidationError):
            rollup.ensure("daily", "2025-01-05")

        assert rollup.ensure("daily", "2025-01-05").created

    def test_store_failure_removes_rendering(self, config, store, rollup, monkeypatch):
        def broken_upsert(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(store, "upsert", broken_upsert)
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)

        with pytest.raises(sqlite3.OperationalError):
            rollup.ensure("daily", "2025-01-05")

        assert not rendering_path(config.log_dir, "daily", "2025-01-05").exists()

    def test_embedding_failure_keeps_summary(self, config, store, rollup,
                                             mock_embedding_provider):
        """The summary stays; reindex fills in the vector later."""
        mock_embedding_provider.fail = True
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)

        result = rollup.ensure("daily", "2025-01-05")

        assert result.created
        assert store.exists("daily", "2025-01-05")
        assert store.count_embeddings() == 0

    def test_non_finite_embedding_keeps_summary(self, config, store, rollup,
                                                mock_embedding_provider):
        mock_embedding_provider.vectors["跑步\n聊了跑步计划"] = [float("inf")] + [0.0] * 15
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)

        result = rollup.ensure("daily", "2025-01-05")

        assert result.created
        assert store.exists("daily", "2025-01-05")
        assert store.count_embeddings() == 0

    def test_empty_index_text_not_embedded(self, config, store, rollup, mock_completion,
                                           mock_embedding_provider):
        mock_completion.responses.append('{"type": "daily", "open_questions": ["q"]}')
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)

        assert rollup.ensure("daily", "2025-01-05").created
        assert store.get("daily", "2025-01-05").index_text == ""
        assert mock_embedding_provider.calls == []


class TestChunking:
    """Large sources are summarized per chunk, then merged."""

    def test_map_reduce(self, config, store, rollup, mock_completion):
        config.max_chunk_bytes = 120
        turns = [("user", f"第{i}次跑步记录，配速六分钟") for i in range(8)]
        write_day_log(config.log_dir, "2025-01-05", turns + FACT_DAY)

        result = rollup.ensure("daily", "2025-01-05")

        assert result.chunks > 1
        assert len(mock_completion.calls) == result.chunks + 1
        assert mock_completion.prompts[0].count("【PART 1/") == 1
        merge = mock_completion.prompts[-1]
        assert f"--- PART {result.chunks}/{result.chunks} ---" in merge
        assert '"date": "2025-01-05"' in merge
        body = store.load_body("daily", "2025-01-05")
        assert body.user_facts == ["我喜欢跑步"]

    def test_single_chunk_has_no_part_label(self, config, rollup, mock_completion):
        write_day_log(config.log_dir, "2025-01-05", FACT_DAY)
        rollup.ensure("daily", "2025-01-05")
        assert "PART" not in mock_completion.prompts[0]

    def test_weekly_chunks(self, config, store, rollup, mock_completion):
        config.max_chunk_bytes = 150
        for key in ("2025-01-06", "2025-01-07", "2025-01-08", "2025-01-09"):
            put_daily(store, key, topic="长长的主题" * 3)

        result = rollup.ensure("weekly", "2025-W02")

        assert result.chunks > 1
        assert mock_completion.prompts[0].count("/* PART 1/") == 1
        assert len(mock_completion.calls) == result.chunks + 1


class TestWeekly:
    """Weekly summaries read only the week's daily summaries."""

    def test_scoped_to_iso_week(self, store, rollup, mock_completion):
        for key in ("2025-01-05", "2025-01-06", "2025-01-09", "2025-01-12", "2025-01-13"):
            put_daily(store, key, topic=f"topic-{key}")

        result = rollup.ensure("weekly", "2025-W02")

        assert result.created
        prompt = mock_completion.prompts[0]
        assert "topic-2025-01-06" in prompt
        assert "topic-2025-01-09" in prompt
        assert "topic-2025-01-12" in prompt
        assert "topic-2025-01-05" not in prompt
        assert "topic-2025-01-13" not in prompt

    def test_slim_payload_drops_facts(self, store, rollup, mock_completion):
        d = date(2025, 1, 6)
        store.upsert("daily", "2025-01-06", d, d,
                     DailyBody(date="2025-01-06", topics=["t"], user_facts=["我喜欢跑步"]), "t")

        rollup.ensure("weekly", "2025-W02")

        assert "我喜欢跑步" not in mock_completion.prompts[0]

    def test_headers(self, store, rollup):
        put_daily(store, "2025-01-06")
        rollup.ensure("weekly", "2025-W02")

        rec = store.get("weekly", "2025-W02")
        assert rec.body.week_key == "2025-W02"
        assert rec.body.week_start == "2025-01-06"
        assert rec.body.week_end == "2025-01-12"
        assert (rec.start_date, rec.end_date) == ("2025-01-06", "2025-01-12")
        assert rec.source_path == "daily:2025-01-06..2025-01-12"

    def test_no_dailies(self, store, rollup, mock_completion):
        put_daily(store, "2025-01-05")
        assert rollup.ensure("weekly", "2025-W02").status == NO_SOURCE
        assert mock_completion.calls == []

    def test_ensure_for_date(self, store, rollup):
        put_daily(store, "2025-01-08")
        result = rollup.ensure_for_date("weekly", date(2025, 1, 8))
        assert result.period_key == "2025-W02"
        assert result.created


class TestMonthly:
    """Monthly summaries read weekly summaries overlapping the month."""

    def test_includes_straddling_weeks(self, store, rollup, mock_completion):
        put_weekly(store, "2024-W52", "2024-12-23", "2024-12-29")
        put_weekly(store, "2025-W01", "2024-12-30", "2025-01-05")
        put_weekly(store, "2025-W05", "2025-01-27", "2025-02-02")
        put_weekly(store, "2025-W06", "2025-02-03", "2025-02-09")

        result = rollup.ensure("monthly", "2025-01")

        assert result.created
        prompt = mock_completion.prompts[0]
        assert "2024-12-30" in prompt
        assert "2025-01-27" in prompt
        assert "2024-12-23" not in prompt
        assert "2025-02-03" not in prompt

    def test_headers(self, store, rollup):
        put_weekly(store, "2025-W06", "2025-02-03", "2025-02-09")
        rollup.ensure("monthly", "2025-02")

        body = store.load_body("monthly", "2025-02")
        assert body.month == "2025-02"
        assert body.month_start == "2025-02-01"
        assert body.month_end == "2025-02-28"
        assert body.top_themes == ["运动习惯"]

    def test_no_weeklies(self, rollup):
        assert rollup.ensure("monthly", "2025-03").status == NO_SOURCE
