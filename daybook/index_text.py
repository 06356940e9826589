"""
Text derived from summary bodies.

- index text: what gets embedded. Only an allow-list of fields is used so
  dates and bookkeeping keys don't dilute the vector.
- human text: what a search hit shows.
"""

from typing import Any

from .types import SummaryBody

INDEX_FIELDS = (
    "tags",
    "themes",
    "topics",
    "projects",
    "decisions",
    "patterns",
    "highlights",
    "lowlights",
    "memory_candidates",
    "next_week_focus",
    "next_month_bets",
)


def _as_dict(body: SummaryBody | dict[str, Any]) -> dict[str, Any]:
    if isinstance(body, SummaryBody):
        return body.to_dict()
    return body


def _collect_strings(value: Any, out: list[str]) -> None:
    if isinstance(value, str):
        s = value.strip()
        if s:
            out.append(s)
    elif isinstance(value, list):
        for item in value:
            _collect_strings(item, out)
    elif isinstance(value, dict):
        for item in value.values():
            _collect_strings(item, out)


def extract_index_text(body: SummaryBody | dict[str, Any]) -> str:
    """
    Flatten the allow-listed fields into newline-joined strings.

    Returns "" when none of the fields carry text.
    """
    data = _as_dict(body)
    parts: list[str] = []
    for name in INDEX_FIELDS:
        if name in data:
            _collect_strings(data[name], parts)
    return "\n".join(parts)


def extract_human_text(body: SummaryBody | dict[str, Any], summary_type: str = "") -> str:
    """Bullet list of highlights (and legacy memory candidates) for display."""
    data = _as_dict(body)
    lines: list[str] = []

    highlights = data.get("highlights")
    if isinstance(highlights, list):
        for h in highlights:
            if isinstance(h, str) and h.strip():
                lines.append(f"- {h.strip()}")

    candidates = data.get("memory_candidates")
    if isinstance(candidates, list):
        for c in candidates:
            if isinstance(c, dict):
                content = c.get("content")
                if isinstance(content, str) and content.strip():
                    lines.append(f"- {content.strip()}")

    if not lines:
        return f"summary type: {summary_type or data.get('type', '')}"
    return "\n".join(lines)
