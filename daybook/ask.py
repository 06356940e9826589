"""
Retrieval-augmented answers and chat context.

Ask answers a question from the user's own summaries only. Chat wraps a
normal conversation turn with three context blocks: today's daily summary,
related past summaries, and today's recent user lines.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Optional

from .errors import DaybookError
from .log_store import LogStore
from .periods import DAILY, daily_key
from .prompts import CHAT_SYSTEM_PREAMBLE, build_ask_prompt
from .providers.base import CompletionProvider
from .search import SearchEngine
from .summary_store import SummaryStore
from .types import RawRecord, SearchHit

if TYPE_CHECKING:
    from .speech import SpeechQueue

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "我没有在你的历史记录中找到相关内容，因此无法基于记忆回答这个问题。"
ANSWER_SEPARATOR = "\n\n——\n"
MAX_REFS = 10
RECENT_USER_LINES = 20


def first_line(text: str) -> str:
    text = text.strip()
    line = text.split("\n", 1)[0]
    return line.removeprefix("- ")


def _bullet(text: str) -> str:
    return text if text.startswith("- ") else f"- {text}"


def format_top_reference(hit: SearchHit) -> str:
    return f"参考：你在 {hit.period_key} 的 {hit.type} 记录（{first_line(hit.text)}）。"


def format_ref_line(idx: int, hit: SearchHit) -> str:
    return f"{idx}. [{hit.score:.2f}] {hit.period_key} {hit.type} · {first_line(hit.text)}"


def build_memory_context(hits: list[SearchHit]) -> str:
    parts = ["以下是我在你过去记录中找到的相关内容：\n\n"]
    for h in hits:
        parts.append(f"- [{h.period_key} {h.type} | score {h.score:.2f}]\n{h.text}\n\n")
    return "".join(parts)


class Ask:
    """Answers questions from stored summaries."""

    def __init__(
        self,
        search: SearchEngine,
        completion: CompletionProvider,
        top_k: int = 5,
        timeout: Optional[float] = None,
        speech: Optional["SpeechQueue"] = None,
    ):
        self._search = search
        self._completion = completion
        self._top_k = top_k
        self._timeout = timeout
        self._speech = speech

    def ask(self, question: str, show_refs: bool = False) -> str:
        """
        Answer a question from memory.

        The result is the answer, a separator, and the best reference; with
        show_refs, an appendix of up to MAX_REFS references follows.

        Raises:
            ValueError: empty question
            TransportError / ValidationError: search or completion failed
        """
        question = (question or "").strip()
        if not question:
            raise ValueError("question is empty")

        limit = max(self._top_k, MAX_REFS) if show_refs else self._top_k
        hits = self._search.search(question, top_k=limit)
        if not hits:
            return NOT_FOUND_MESSAGE

        prompt = build_ask_prompt(build_memory_context(hits[:self._top_k]), question)
        answer = self._completion.complete(
            [{"role": "user", "content": prompt}], timeout=self._timeout,
        )

        out = [answer, ANSWER_SEPARATOR, format_top_reference(hits[0])]
        if show_refs:
            out.append(f"\n\n附录 · 相关记录（最多 {MAX_REFS} 条）：\n")
            for i, hit in enumerate(hits[:MAX_REFS], 1):
                out.append(format_ref_line(i, hit) + "\n")

        if self._speech is not None:
            self._speech.submit(answer)
        return "".join(out)


@dataclass
class ContextBlock:
    """One block of chat context."""
    source: str  # daily_summary | search_hit | recent_raw
    content: str


class Chat:
    """One conversation turn with memory context."""

    def __init__(
        self,
        log: LogStore,
        store: SummaryStore,
        search: SearchEngine,
        completion: CompletionProvider,
        top_k: int = 5,
        timeout: Optional[float] = None,
    ):
        self._log = log
        self._store = store
        self._search = search
        self._completion = completion
        self._top_k = top_k
        self._timeout = timeout

    def build_context(self, d: date, question: str) -> list[ContextBlock]:
        """Context blocks for a question asked on day d."""
        key = daily_key(d)
        blocks: list[ContextBlock] = []

        daily = self._store.load_body(DAILY, key)
        if daily is not None:
            blocks.append(ContextBlock("daily_summary", "这是今天的对话摘要：\n" + daily.to_json()))

        try:
            hits = self._search.search(question, top_k=self._top_k)
        except DaybookError as e:
            logger.warning("Chat context search failed: %s", e)
            hits = []
        lines = [_bullet(h.text.strip()) for h in hits
                 if not (h.type == DAILY and h.period_key == key)]
        if lines:
            blocks.append(ContextBlock(
                "search_hit", "这是你过去相关的问题和记录：\n" + "\n".join(lines),
            ))

        recent = self._log.recent_user_lines(d, RECENT_USER_LINES)
        if recent:
            blocks.append(ContextBlock(
                "recent_raw",
                "以下是最近的原始对话记录：\n" + "\n".join(f"用户：{line}" for line in recent),
            ))
        return blocks

    def system_prompt(self, d: date, question: str) -> str:
        blocks = self.build_context(d, question)
        return "\n\n".join([CHAT_SYSTEM_PREAMBLE] + [b.content for b in blocks])

    def send(self, message: str) -> str:
        """
        Log the user turn, answer it with context, log the answer.

        Raises:
            ValueError: empty message
            TransportError / ValidationError: completion failed
        """
        message = (message or "").strip()
        if not message:
            raise ValueError("message is empty")

        today = self._log.today()
        self._log.append(RawRecord("user", message))
        # Recent lines include this turn
        system = self.system_prompt(today, message)
        answer = self._completion.complete(
            [
                {"role": "system", "content": system},
                {"role": "user", "content": message},
            ],
            timeout=self._timeout,
        )
        self._log.append(RawRecord("assistant", answer))
        return answer
