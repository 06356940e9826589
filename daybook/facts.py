"""
Explicit user fact extraction.

A fact is a literal first-person self-statement by the user ("我...")
immediately acknowledged by the assistant in the second person ("你...")
repeating its core. Nothing else is recognised: questions, requests, and
paraphrased acknowledgements are ignored. False negatives are accepted;
false positives are limited to an assistant that echoes the user verbatim.
"""

from collections.abc import Iterable, Sequence

from .types import RawRecord

CORE_MAX_CHARS = 20

_QUESTION_ENDINGS = ("吗", "?", "？")
_REQUEST_MARKERS = ("帮我", "请你")
_CORE_STRIP = "。！! "

# Prefixes written by LogStore.remember / LogStore.forget
REMEMBER_PREFIX = "我确认一个事实："
FORGET_PREFIX = "我撤回之前的事实："


def normalize_text(text: str) -> str:
    """Trim, fold full-width commas, and drop sentence-final punctuation."""
    text = (text or "").strip()
    text = text.replace("，", ",")
    for ch in ("。", "！", "？"):
        text = text.replace(ch, "")
    return text


def _is_self_statement(raw: str, normalized: str) -> bool:
    if not normalized.startswith("我"):
        return False
    stripped = raw.strip()
    if stripped.endswith(_QUESTION_ENDINGS) or normalized.endswith(_QUESTION_ENDINGS):
        return False
    return not any(marker in normalized for marker in _REQUEST_MARKERS)


def statement_core(normalized: str) -> str:
    """The part of a self-statement the acknowledgement must repeat."""
    core = normalized[1:].strip(_CORE_STRIP)
    return core[:CORE_MAX_CHARS]


def is_user_fact(user: RawRecord, assistant: RawRecord) -> bool:
    """Whether a user turn and the assistant reply form an explicit fact pair."""
    if user.role != "user" or assistant.role != "assistant":
        return False

    u = normalize_text(user.content)
    if not _is_self_statement(user.content, u):
        return False

    core = statement_core(u)
    if not core:
        return False

    a = normalize_text(assistant.content)
    return "你" in a and core in a


def extract_user_facts(records: Sequence[RawRecord] | Iterable[RawRecord]) -> list[str]:
    """
    Scan adjacent turns and return the user text of every fact pair.

    Facts are returned in transcript order without duplicates.
    """
    records = list(records)
    facts: list[str] = []
    for user, assistant in zip(records, records[1:]):
        if is_user_fact(user, assistant):
            fact = user.content.strip()
            if fact not in facts:
                facts.append(fact)
    return facts
