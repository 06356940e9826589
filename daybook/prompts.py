"""
Prompt templates.

Rollup templates use {{VAR}} placeholders. A file named <name>.txt in the
configured prompt directory overrides the built-in template of that name.
"""

import logging
import re
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


# ---------------------------------------------------------------------------
# Rollup templates
# ---------------------------------------------------------------------------

DAILY_PROMPT = """You are a conversation log summarizer.
You are NOT an assistant, NOT an analyst, and NOT a memory writer.

CRITICAL RULES (must follow strictly):
- Do NOT guess, infer, or generate any facts about the user.
- Do NOT state the user's name, identity, background, or preferences.
- Do NOT repeat assistant self-introductions or model descriptions.
- Do NOT create memory candidates or long-term facts.
- If something cannot be confirmed from explicit user statements, ignore it.

Your job is ONLY to:
1. Describe what happened in today's conversations (behavior-level).
2. Identify recurring topics or patterns.
3. Note unresolved questions or friction.

OUTPUT FORMAT (JSON only, no markdown, no extra fields):

{
  "type": "daily",
  "date": "{{DATE}}",
  "topics": [],
  "patterns": [],
  "open_questions": [],
  "highlights": [],
  "lowlights": []
}

RAW CONVERSATION LOG (JSONL):
{{TRANSCRIPT}}
"""

WEEKLY_PROMPT = """You are a strict summarizer.
You must output JSON only.

CRITICAL RULES:
- Do NOT infer or generate user identity or personal facts.
- Do NOT create memory candidates.
- Do NOT restate assistant or system information.
- Weekly summary is for trends and progress only.

GOAL:
Summarize patterns and progress from the past week based on daily summaries.

OUTPUT FORMAT (JSON only):

{
  "type": "weekly",
  "week_key": "{{WEEK_KEY}}",
  "week_start": "{{WEEK_START}}",
  "week_end": "{{WEEK_END}}",
  "themes": [],
  "progress": [],
  "recurring_blockers": [],
  "notable_decisions": [],
  "next_week_focus": []
}

DAILY_SUMMARIES_JSON_ARRAY:
{{DAILY_JSON_ARRAY}}
"""

MONTHLY_PROMPT = """You are a strict summarizer.
You must output JSON only.

CRITICAL RULES:
- Do NOT infer or generate user identity or personal facts.
- Do NOT create memory candidates.
- Do NOT restate assistant or system information.
- Monthly summary is for long-term trajectory only.

GOAL:
Summarize overall direction and themes for the month.

OUTPUT FORMAT (JSON only):

{
  "type": "monthly",
  "month": "{{MONTH}}",
  "month_start": "{{MONTH_START}}",
  "month_end": "{{MONTH_END}}",
  "trajectory": [],
  "top_themes": [],
  "wins": [],
  "losses": [],
  "systems_improvements": [],
  "next_month_bets": []
}

WEEKLY_SUMMARIES_JSON_ARRAY:
{{WEEKLY_JSON_ARRAY}}
"""

PROMPTS = {
    "daily": DAILY_PROMPT,
    "weekly": WEEKLY_PROMPT,
    "monthly": MONTHLY_PROMPT,
}

# Output skeletons shown to the reducer, per level
_MERGE_FORMATS = {
    "daily": ("date", "topics", "patterns", "open_questions", "highlights", "lowlights"),
    "weekly": ("week_key", "week_start", "week_end", "themes", "progress",
               "recurring_blockers", "notable_decisions", "next_week_focus"),
    "monthly": ("month", "month_start", "month_end", "trajectory", "top_themes", "wins",
                "losses", "systems_improvements", "next_month_bets"),
}


def load_prompt(name: str, prompt_dir: Optional[Path] = None) -> str:
    """Return the template for name, preferring <prompt_dir>/<name>.txt."""
    if prompt_dir is not None:
        override = Path(prompt_dir) / f"{name}.txt"
        if override.is_file():
            logger.debug("Using prompt override %s", override)
            return override.read_text(encoding="utf-8")
    try:
        return PROMPTS[name]
    except KeyError:
        raise ValueError(f"Unknown prompt: {name!r}. Choose from: {list(PROMPTS.keys())}")


def render_prompt(template: str, **variables: str) -> str:
    """Substitute {{NAME}} placeholders in one pass; unknown placeholders are left alone."""
    def fill(m: re.Match) -> str:
        return variables.get(m.group(1), m.group(0))

    return _PLACEHOLDER_RE.sub(fill, template)


def part_label(index: int, total: int) -> str:
    """Label prefixed to chunk index+1 of total."""
    return f"PART {index + 1}/{total}"


def build_merge_prompt(summary_type: str, headers: dict[str, str], partials: list[str]) -> str:
    """
    Reducer prompt: merge partial summaries of one period into one.

    headers fills the scalar fields of the output skeleton (date, week_start...).
    """
    try:
        fields = _MERGE_FORMATS[summary_type]
    except KeyError:
        raise ValueError(f"Unknown summary type: {summary_type!r}")

    lines = [
        f"You are a strict {summary_type} summary reducer.",
        f"Merge multiple partial {summary_type} summaries into ONE final {summary_type} summary.",
        "",
        "CRITICAL RULES:",
        "- Output JSON only.",
        "- Do NOT add new facts.",
        "- Do NOT infer user identity.",
        "- Deduplicate and merge semantically.",
        "",
        "OUTPUT FORMAT (JSON only):",
        "{",
        f'  "type": "{summary_type}",',
    ]
    for i, name in enumerate(fields):
        comma = "," if i < len(fields) - 1 else ""
        if name in headers:
            lines.append(f'  "{name}": "{headers[name]}"{comma}')
        else:
            lines.append(f'  "{name}": []{comma}')
    lines.append("}")
    lines.append("")
    lines.append(f"PARTIAL {summary_type.upper()} SUMMARIES:")

    total = len(partials)
    for i, partial in enumerate(partials):
        lines.append("")
        lines.append(f"--- {part_label(i, total)} ---")
        lines.append(partial.strip())
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Ask / chat
# ---------------------------------------------------------------------------

ASK_PROMPT = """你是“基于用户自身长期记忆”的智能助理，而不是百科或搜索引擎。

【重要原则】
- 你只能基于“用户自己的历史记录”来回答
- 如果历史记录不足以支撑结论，请明确说明
- 不要假装知道用户未记录的事实
- 不要覆盖或否定用户过去的认知，只能在其基础上补充或整理

【用户的历史记录】
{{MEMORY}}

【用户当前的问题】
{{QUESTION}}

【你的任务】
基于上述“用户自己的历史记录”，用清晰、简洁、自然语言回答问题。
如果记录中存在多个观点，请合并总结。
如果信息不足，请直接说明“不足以回答”。

请开始回答：
"""

CHAT_SYSTEM_PREAMBLE = "以下是用户的对话历史与已知事实，请严格基于这些信息回答。"


def build_ask_prompt(memory_context: str, question: str) -> str:
    return render_prompt(ASK_PROMPT, MEMORY=memory_context, QUESTION=question)
