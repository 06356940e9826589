"""
Data types for daybook.

Summary bodies are tagged per level (daily / weekly / monthly). Model output
is parsed into one of these types immediately after each completion call, so
malformed documents never travel further than the call that produced them.
"""

import json
import re
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional

from .errors import ValidationError
from .periods import DAILY, MONTHLY, WEEKLY

ROLES = ("user", "assistant")


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


@dataclass(frozen=True)
class RawRecord:
    """One conversation turn as written to the day log."""
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Any) -> "RawRecord":
        if not isinstance(data, dict):
            raise ValueError("record must be a JSON object")
        return cls(role=str(data.get("role", "")), content=str(data.get("content", "")))


def _coerce_list(value: Any, name: str) -> list:
    """Normalize a list-valued body field."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return [value] if value.strip() else []
    raise ValidationError(f"field {name!r} must be a list, got {type(value).__name__}")


@dataclass
class SummaryBody:
    """
    Base for the per-level summary documents.

    Subclasses declare which keys are scalar headers, which are lists, and
    which subset the next level up needs (the slim view). Keys the model
    returns beyond those are kept in ``extras`` so nothing is lost on a
    round-trip through storage.
    """
    TYPE: ClassVar[str] = ""
    HEADER_FIELDS: ClassVar[tuple[str, ...]] = ()
    LIST_FIELDS: ClassVar[tuple[str, ...]] = ()
    SLIM_FIELDS: ClassVar[tuple[str, ...]] = ()
    ALIASES: ClassVar[dict[str, str]] = {}

    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "SummaryBody":
        if not isinstance(data, dict):
            raise ValidationError(f"{cls.TYPE} summary must be a JSON object")
        if not data:
            raise ValidationError(f"{cls.TYPE} summary is empty")

        tag = data.get("type")
        if tag not in (None, "", cls.TYPE):
            raise ValidationError(f"expected a {cls.TYPE} summary, got type={tag!r}")

        data = dict(data)
        for old, new in cls.ALIASES.items():
            if old in data and new not in data:
                data[new] = data.pop(old)

        kwargs: dict[str, Any] = {}
        for name in cls.HEADER_FIELDS:
            value = data.get(name)
            kwargs[name] = "" if value is None else str(value)
        for name in cls.LIST_FIELDS:
            kwargs[name] = _coerce_list(data.get(name), name)

        known = set(cls.HEADER_FIELDS) | set(cls.LIST_FIELDS) | {"type"}
        kwargs["extras"] = {k: v for k, v in data.items() if k not in known}
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.TYPE}
        for name in self.HEADER_FIELDS:
            out[name] = getattr(self, name)
        for name in self.LIST_FIELDS:
            out[name] = list(getattr(self, name))
        out.update(self.extras)
        return out

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    def slim(self) -> dict[str, Any]:
        """The fields the parent level aggregates over."""
        return {name: getattr(self, name) for name in self.SLIM_FIELDS}


@dataclass
class DailyBody(SummaryBody):
    TYPE: ClassVar[str] = DAILY
    HEADER_FIELDS: ClassVar[tuple[str, ...]] = ("date",)
    LIST_FIELDS: ClassVar[tuple[str, ...]] = (
        "topics", "patterns", "open_questions", "highlights", "lowlights", "user_facts",
    )
    SLIM_FIELDS: ClassVar[tuple[str, ...]] = (
        "date", "topics", "patterns", "open_questions", "highlights", "lowlights",
    )
    ALIASES: ClassVar[dict[str, str]] = {"user_facts_explicit": "user_facts"}

    date: str = ""
    topics: list = field(default_factory=list)
    patterns: list = field(default_factory=list)
    open_questions: list = field(default_factory=list)
    highlights: list = field(default_factory=list)
    lowlights: list = field(default_factory=list)
    user_facts: list = field(default_factory=list)


@dataclass
class WeeklyBody(SummaryBody):
    TYPE: ClassVar[str] = WEEKLY
    HEADER_FIELDS: ClassVar[tuple[str, ...]] = ("week_key", "week_start", "week_end")
    LIST_FIELDS: ClassVar[tuple[str, ...]] = (
        "themes", "progress", "recurring_blockers", "notable_decisions", "next_week_focus",
    )
    SLIM_FIELDS: ClassVar[tuple[str, ...]] = (
        "week_start", "week_end", "themes", "progress", "recurring_blockers",
        "notable_decisions", "next_week_focus",
    )

    week_key: str = ""
    week_start: str = ""
    week_end: str = ""
    themes: list = field(default_factory=list)
    progress: list = field(default_factory=list)
    recurring_blockers: list = field(default_factory=list)
    notable_decisions: list = field(default_factory=list)
    next_week_focus: list = field(default_factory=list)


@dataclass
class MonthlyBody(SummaryBody):
    TYPE: ClassVar[str] = MONTHLY
    HEADER_FIELDS: ClassVar[tuple[str, ...]] = ("month", "month_start", "month_end")
    LIST_FIELDS: ClassVar[tuple[str, ...]] = (
        "trajectory", "top_themes", "wins", "losses", "systems_improvements", "next_month_bets",
    )

    month: str = ""
    month_start: str = ""
    month_end: str = ""
    trajectory: list = field(default_factory=list)
    top_themes: list = field(default_factory=list)
    wins: list = field(default_factory=list)
    losses: list = field(default_factory=list)
    systems_improvements: list = field(default_factory=list)
    next_month_bets: list = field(default_factory=list)


BODY_TYPES: dict[str, type[SummaryBody]] = {
    DAILY: DailyBody,
    WEEKLY: WeeklyBody,
    MONTHLY: MonthlyBody,
}

# Models like to wrap JSON in a markdown fence despite instructions
_FENCE_RE = re.compile(r"^```(?:json|JSON)?\s*\n(.*?)\n?```$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Remove a single surrounding ```json fence, if present."""
    text = (text or "").strip()
    m = _FENCE_RE.match(text)
    if m:
        return m.group(1).strip()
    return text


def parse_body(summary_type: str, text: str) -> SummaryBody:
    """
    Parse model output (or a stored document) into the body type for a level.

    Raises:
        ValidationError: empty output, invalid JSON, or the wrong shape
    """
    body_cls = BODY_TYPES.get(summary_type)
    if body_cls is None:
        raise ValueError(f"Unknown summary type: {summary_type!r}")

    cleaned = strip_code_fence(text)
    if not cleaned:
        raise ValidationError(f"{summary_type} output is empty")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ValidationError(
            f"{summary_type} output is not valid JSON: {e}\nraw:\n{cleaned[:2000]}"
        ) from e
    return body_cls.from_dict(data)


@dataclass
class SummaryRecord:
    """A stored summary row."""
    id: int
    type: str
    period_key: str
    start_date: str
    end_date: str
    body: SummaryBody
    index_text: str
    source_path: str
    created_at: str


@dataclass
class SearchHit:
    """One ranked search result."""
    score: float
    type: str
    period_key: str
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
