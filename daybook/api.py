"""
Core API for daybook.

Memory wires every component from one MemoryConfig value:

- record() / remember() / forget(): append to the day log
- daily() / weekly() / monthly(): build summaries
- search() / ask() / chat(): retrieve from summaries
- reindex() / archive(): maintenance
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

from .archive import ArchiveManager, ArchiveResult
from .ask import Ask, Chat
from .config import MemoryConfig, ProviderConfig, load_or_create_config
from .embedding_index import EmbeddingIndex
from .log_store import LogStore
from .periods import DAILY, MONTHLY, WEEKLY, daily_key, month_key, week_key
from .providers.base import CompletionProvider, EmbeddingProvider, get_registry
from .reindex import ReindexResult, ReindexTool
from .rollup import RollupEngine, RollupResult
from .search import SearchEngine
from .speech import Renderer, SpeechQueue, system_renderer
from .summary_store import SummaryStore
from .types import RawRecord, SearchHit

logger = logging.getLogger(__name__)


def _provider_params(provider: ProviderConfig, timeout: float) -> dict:
    params = dict(provider.params)
    params.setdefault("timeout", timeout)
    return params


class Memory:
    """
    Long-term conversational memory.

    Example:
        with Memory() as mem:
            mem.record("user", "我喜欢跑步")
            hits = mem.search("运动")
    """

    def __init__(
        self,
        home: Optional[str | Path] = None,
        *,
        config: Optional[MemoryConfig] = None,
        completion: Optional[CompletionProvider] = None,
        embedding: Optional[EmbeddingProvider] = None,
        clock: Optional[Callable[[], datetime]] = None,
        speech_renderer: Optional[Renderer] = None,
        ops_log: bool = True,
    ) -> None:
        """
        Args:
            home: Daybook home directory (DAYBOOK_HOME or ~/.daybook if None)
            config: Pre-loaded config (skips reading daybook.toml)
            completion: Injected completion provider (skips the registry)
            embedding: Injected embedding provider (skips the registry)
            clock: Current-time source for the day log
            speech_renderer: Renderer for spoken answers (system command if None)
            ops_log: Attach the rotating operations log under home
        """
        self._config = config if config is not None else load_or_create_config(home)
        self._config.ensure_dirs()

        self._ops_log_handler = None
        if ops_log:
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(self._config.home)

        registry = get_registry()
        cfg = self._config
        self._completion = completion or registry.create_completion(
            cfg.completion.name, _provider_params(cfg.completion, cfg.http_timeout),
        )
        self._embedding = embedding or registry.create_embedding(
            cfg.embedding.name, _provider_params(cfg.embedding, cfg.http_timeout),
        )

        self._store = SummaryStore(cfg.db_path)
        self._index = EmbeddingIndex(self._store, self._embedding, timeout=cfg.http_timeout)
        self._search = SearchEngine(
            self._store, self._index,
            top_k=cfg.search_top_k,
            min_score=cfg.search_min_score,
            timeout=cfg.search_timeout,
        )
        self._rollup = RollupEngine(cfg, self._store, self._index, self._completion)
        self._archive = ArchiveManager(cfg, self._store)
        self._log = LogStore(cfg, rollup=self._rollup, archive=self._archive, clock=clock)
        self._reindex = ReindexTool(self._store, self._index)

        self._speech: Optional[SpeechQueue] = None
        if cfg.speech_enabled:
            renderer = speech_renderer or system_renderer()
            if renderer is None:
                logger.warning("Speech enabled but no speech command found (say / espeak)")
            else:
                self._speech = SpeechQueue(renderer, maxsize=cfg.speech_queue_size)

        self._ask = Ask(
            self._search, self._completion,
            top_k=cfg.search_top_k, timeout=cfg.search_timeout, speech=self._speech,
        )
        self._chat = Chat(
            self._log, self._store, self._search, self._completion,
            top_k=cfg.search_top_k, timeout=cfg.search_timeout,
        )

    @property
    def config(self) -> MemoryConfig:
        return self._config

    @property
    def store(self) -> SummaryStore:
        return self._store

    @property
    def log(self) -> LogStore:
        return self._log

    @property
    def speech(self) -> Optional[SpeechQueue]:
        return self._speech

    def today(self) -> date:
        return self._log.today()

    # -------------------------------------------------------------------------
    # Day log
    # -------------------------------------------------------------------------

    def record(self, role: str, content: str) -> Path:
        """Append one turn to today's log."""
        return self._log.append(RawRecord(role, content))

    def remember(self, fact: str) -> None:
        self._log.remember(fact)

    def forget(self, fact: str) -> None:
        self._log.forget(fact)

    # -------------------------------------------------------------------------
    # Rollups
    # -------------------------------------------------------------------------

    def ensure(self, summary_type: str, period_key: str, force: bool = False) -> RollupResult:
        return self._rollup.ensure(summary_type, period_key, force=force)

    def daily(self, key: Optional[str] = None, force: bool = False) -> RollupResult:
        """Daily summary for key (YYYY-MM-DD); yesterday if None."""
        key = key or daily_key(self.today() - timedelta(days=1))
        return self._rollup.ensure(DAILY, key, force=force)

    def weekly(self, key: Optional[str] = None, force: bool = False) -> RollupResult:
        """Weekly summary for key (YYYY-Www); last ISO week if None."""
        key = key or week_key(self.today() - timedelta(days=7))
        return self._rollup.ensure(WEEKLY, key, force=force)

    def monthly(self, key: Optional[str] = None, force: bool = False) -> RollupResult:
        """Monthly summary for key (YYYY-MM); last month if None."""
        if key is None:
            first = self.today().replace(day=1)
            key = month_key(first - timedelta(days=1))
        return self._rollup.ensure(MONTHLY, key, force=force)

    # -------------------------------------------------------------------------
    # Retrieval
    # -------------------------------------------------------------------------

    def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> list[SearchHit]:
        return self._search.search(query, top_k=top_k, min_score=min_score)

    def ask(self, question: str, show_refs: bool = False) -> str:
        return self._ask.ask(question, show_refs=show_refs)

    def chat(self, message: str) -> str:
        return self._chat.send(message)

    def chat_context(self, question: str, d: Optional[date] = None) -> str:
        """System prompt chat would send for question on day d (today if None)."""
        return self._chat.system_prompt(d or self.today(), question)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def reindex(self, scope: str = "all") -> ReindexResult:
        return self._reindex.reindex(scope)

    def archive(self, now: Optional[datetime] = None) -> ArchiveResult:
        return self._archive.sweep(now)

    def read_archive(self, month: str) -> list[RawRecord]:
        return self._archive.read_bundle(month)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database and detach the operations log."""
        self._store.close()
        if self._ops_log_handler is not None:
            logging.getLogger("daybook").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
