"""
Byte-budgeted splitting of rollup sources.

Sources are split only at unit boundaries: one raw log line, or one item of a
JSON array. Each chunk stays within the budget except when a single unit is
larger than the budget on its own, in which case it becomes a chunk by
itself. Units are never split, reordered, or dropped.

Sizes are measured in UTF-8 bytes.
"""

import json
from collections.abc import Iterable, Sequence
from typing import Any


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def _pack(units: Iterable[str], budget: int, separator_bytes: int) -> list[list[str]]:
    """Greedy packing of units into groups whose joined size fits the budget."""
    if budget <= 0:
        raise ValueError(f"chunk budget must be positive, got {budget}")

    groups: list[list[str]] = []
    current: list[str] = []
    current_bytes = 0

    for unit in units:
        size = _byte_len(unit)
        if size > budget:
            # Oversized unit goes out alone
            if current:
                groups.append(current)
                current, current_bytes = [], 0
            groups.append([unit])
            continue

        added = size if not current else size + separator_bytes
        if current and current_bytes + added > budget:
            groups.append(current)
            current, current_bytes = [], 0
            added = size
        current.append(unit)
        current_bytes += added

    if current:
        groups.append(current)
    return groups


def split_lines_into_chunks(text: str, budget: int) -> list[str]:
    """
    Split newline-delimited text into chunks of whole lines.

    Blank lines are skipped. Each returned chunk keeps the trailing newline
    of every line it holds.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return []
    # "line\n" per unit; the newline is counted as part of the unit
    groups = _pack((line + "\n" for line in lines), budget, separator_bytes=0)
    return ["".join(group) for group in groups]


def dump_compact(value: Any) -> str:
    """Compact JSON used for chunk payloads."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def split_json_items_into_chunks(items: Sequence[Any], budget: int) -> list[str]:
    """
    Split a list of JSON values into JSON array chunks.

    Each returned chunk is a valid JSON array text. The budget applies to the
    serialized array including its brackets and commas.
    """
    if budget <= 0:
        raise ValueError(f"chunk budget must be positive, got {budget}")
    if not items:
        return []

    whole = dump_compact(list(items))
    if _byte_len(whole) <= budget:
        return [whole]

    # Two bytes for the surrounding brackets, one per comma
    encoded = [dump_compact(item) for item in items]
    groups = _pack(encoded, max(budget - 2, 1), separator_bytes=1)
    return ["[" + ",".join(group) + "]" for group in groups]
