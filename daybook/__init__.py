"""
Daybook

Long-term memory for a conversational agent. Conversation turns are logged
per day, distilled into daily, weekly, and monthly summaries, embedded, and
searched by cosine similarity.

Quick Start:
    from daybook import Memory

    with Memory() as mem:          # uses ~/.daybook
        mem.record("user", "我喜欢跑步")
        mem.record("assistant", "你喜欢跑步，很好的习惯。")
        mem.daily("2025-01-05")
        hits = mem.search("运动")

CLI Usage:
    daybook record user "我喜欢跑步"
    daybook daily --date 2025-01-05
    daybook search "运动" --json
    daybook ask "我平时做什么运动？" --refs

Default Home:
    ~/.daybook (override with DAYBOOK_HOME or --home)

Environment Variables:
    DAYBOOK_HOME      - Override default home directory
    DAYBOOK_VERBOSE   - Debug logging to stderr
    OLLAMA_HOST       - Ollama server for the "ollama" providers
    OPENAI_API_KEY    - Bearer token for "openai-compatible" providers

Configuration is persisted in daybook.toml within the home directory.
"""

from .api import Memory
from .config import MemoryConfig, load_or_create_config
from .errors import DaybookError, SummaryNotFoundError, TransportError, ValidationError
from .types import DailyBody, MonthlyBody, RawRecord, SearchHit, WeeklyBody

__version__ = "0.1.0"
__all__ = [
    "Memory",
    "MemoryConfig",
    "load_or_create_config",
    "DaybookError",
    "ValidationError",
    "TransportError",
    "SummaryNotFoundError",
    "RawRecord",
    "SearchHit",
    "DailyBody",
    "WeeklyBody",
    "MonthlyBody",
]
