"""Tests for prompt templates."""

import pytest

from daybook.prompts import (
    DAILY_PROMPT,
    build_ask_prompt,
    build_merge_prompt,
    load_prompt,
    part_label,
    render_prompt,
)


class TestTemplates:
    def test_builtin(self, tmp_path):
        assert load_prompt("daily", tmp_path) == DAILY_PROMPT

    def test_override_file(self, tmp_path):
        (tmp_path / "weekly.txt").write_text("my weekly {{WEEK_KEY}}", encoding="utf-8")
        assert load_prompt("weekly", tmp_path) == "my weekly {{WEEK_KEY}}"

    def test_unknown(self):
        with pytest.raises(ValueError):
            load_prompt("yearly")

    def test_render(self):
        out = render_prompt("{{A}} and {{B}} and {{C}}", A="1", B="2")
        assert out == "1 and 2 and {{C}}"

    def test_render_does_not_reexpand(self):
        """Values containing placeholders are inserted literally."""
        out = render_prompt("{{TRANSCRIPT}} / {{DATE}}", DATE="d", TRANSCRIPT="{{DATE}}")
        assert out == "{{DATE}} / d"
        out = render_prompt("{{TRANSCRIPT}} / {{DATE}}", TRANSCRIPT="{{DATE}}", DATE="d")
        assert out == "{{DATE}} / d"

    def test_part_label(self):
        assert part_label(0, 3) == "PART 1/3"


class TestMergePrompt:
    def test_sections_and_headers(self):
        prompt = build_merge_prompt(
            "weekly",
            {"week_key": "2025-W02", "week_start": "2025-01-06", "week_end": "2025-01-12"},
            ['{"themes": ["a"]}', '{"themes": ["b"]}'],
        )
        assert '"type": "weekly"' in prompt
        assert '"week_start": "2025-01-06"' in prompt
        assert '"themes": []' in prompt
        assert "--- PART 1/2 ---\n{\"themes\": [\"a\"]}" in prompt
        assert "--- PART 2/2 ---" in prompt

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            build_merge_prompt("yearly", {}, ["{}"])


class TestAskPrompt:
    def test_fills_memory_and_question(self):
        prompt = build_ask_prompt("记忆内容", "我喜欢什么？")
        assert "记忆内容" in prompt
        assert "我喜欢什么？" in prompt
        assert "{{" not in prompt

    def test_memory_text_with_placeholder_kept_literal(self):
        prompt = build_ask_prompt("有人写了 {{QUESTION}} 这个词", "我喜欢什么？")
        assert "有人写了 {{QUESTION}} 这个词" in prompt
        assert prompt.count("我喜欢什么？") == 1
