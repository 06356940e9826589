"""
Shared test fixtures.

Provides mock completion and embedding providers so tests never reach a
model service, plus config / store / memory fixtures rooted in tmp_path.
"""

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest

from daybook.api import Memory
from daybook.config import MemoryConfig
from daybook.embedding_index import EmbeddingIndex
from daybook.errors import TransportError
from daybook.rollup import RollupEngine
from daybook.summary_store import SummaryStore


# -----------------------------------------------------------------------------
# Mock Providers
# -----------------------------------------------------------------------------

class MockEmbeddingProvider:
    """
    Deterministic embeddings derived from the md5 of the text.

    ``vectors`` pins the vector returned for specific texts. Set ``fail``
    to make every call raise TransportError.
    """

    def __init__(self, dimension: int = 16, model: str = "mock-embed"):
        self._dimension = dimension
        self._model = model
        self.vectors: dict[str, list[float]] = {}
        self.fail = False
        self.calls: list[str] = []

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def embed(self, text: str, *, timeout: Optional[float] = None) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise TransportError("embedding service down")
        if text in self.vectors:
            return list(self.vectors[text])
        digest = hashlib.md5(text.encode("utf-8")).digest()
        return [(digest[i % len(digest)] + 1) / 256.0 for i in range(self._dimension)]


def default_summary(prompt: str) -> str:
    """A minimal valid summary for whichever level the prompt asks for."""
    if '"type": "daily"' in prompt:
        return json.dumps({
            "type": "daily",
            "topics": ["跑步"],
            "highlights": ["聊了跑步计划"],
        }, ensure_ascii=False)
    if '"type": "weekly"' in prompt:
        return json.dumps({
            "type": "weekly",
            "themes": ["坚持跑步"],
            "progress": ["每天都有记录"],
        }, ensure_ascii=False)
    if '"type": "monthly"' in prompt:
        return json.dumps({
            "type": "monthly",
            "top_themes": ["运动习惯"],
            "wins": ["保持了节奏"],
        }, ensure_ascii=False)
    return "这是基于你记录的回答。"


class MockCompletionProvider:
    """
    Scripted completion provider.

    Replies come from ``responses`` in order while any remain, then from
    ``responder`` (a callable taking the last message's content). Every
    message list is recorded in ``calls``.
    """

    def __init__(self, responses: Optional[list] = None, responder=None):
        self.responses = list(responses or [])
        self.responder = responder or default_summary
        self.calls: list[list[dict[str, str]]] = []

    @property
    def model_name(self) -> str:
        return "mock-llm"

    @property
    def prompts(self) -> list[str]:
        return [messages[-1]["content"] for messages in self.calls]

    def complete(self, messages, *, timeout: Optional[float] = None) -> str:
        self.calls.append(messages)
        if self.responses:
            reply = self.responses.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return reply
        return self.responder(messages[-1]["content"])


class FixedClock:
    """Settable clock for the day log."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def at(day: str, hour: int = 12) -> datetime:
    """Aware UTC datetime on a YYYY-MM-DD day."""
    return datetime.fromisoformat(day).replace(hour=hour, tzinfo=timezone.utc)


def write_day_log(log_dir: Path, day: str, records: list[tuple[str, str]]) -> Path:
    """Write a raw day file of (role, content) turns."""
    path = Path(log_dir) / f"{day}.jsonl"
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        for role, content in records:
            f.write(json.dumps({"role": role, "content": content}, ensure_ascii=False) + "\n")
    return path


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def mock_embedding_provider():
    return MockEmbeddingProvider()


@pytest.fixture
def mock_completion():
    return MockCompletionProvider()


@pytest.fixture
def config(tmp_path):
    """Config rooted in a temporary home, counting days in UTC."""
    cfg = MemoryConfig(home=tmp_path / "home", timezone="UTC")
    cfg.ensure_dirs()
    return cfg


@pytest.fixture
def store(config):
    s = SummaryStore(config.db_path)
    yield s
    s.close()


@pytest.fixture
def index(store, mock_embedding_provider):
    return EmbeddingIndex(store, mock_embedding_provider)


@pytest.fixture
def rollup(config, store, index, mock_completion):
    return RollupEngine(config, store, index, mock_completion)


@pytest.fixture
def clock():
    return FixedClock(at("2025-01-05"))


@pytest.fixture
def memory(config, mock_completion, mock_embedding_provider, clock):
    """Memory wired to mock providers and a fixed clock."""
    mem = Memory(
        config=config,
        completion=mock_completion,
        embedding=mock_embedding_provider,
        clock=clock,
        ops_log=False,
    )
    yield mem
    mem.close()
