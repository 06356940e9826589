"""
Configuration management for daybook.

The configuration is stored as a TOML file in the daybook home directory.
It specifies directory layout, retention and search parameters, and which
completion and embedding services to use.

A single MemoryConfig value is passed to every component; nothing reads
configuration from module-level state.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import tomli_w


CONFIG_FILENAME = "daybook.toml"
CONFIG_VERSION = 1

DEFAULT_KEEP_RAW_DAYS = 45
DEFAULT_MAX_CHUNK_BYTES = 25 * 1024 * 1024  # 25MB
DEFAULT_HTTP_TIMEOUT = 60.0
DEFAULT_SEARCH_TIMEOUT = 120.0
DEFAULT_SEARCH_TOP_K = 5
DEFAULT_SEARCH_MIN_SCORE = 0.0
DEFAULT_SPEECH_QUEUE_SIZE = 16


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


def _default_completion() -> ProviderConfig:
    return ProviderConfig("openai-compatible", {
        "url": "http://localhost:8080/v1/chat/completions",
        "model": "qwen2.5-7b-instruct",
    })


def _default_embedding() -> ProviderConfig:
    return ProviderConfig("openai-compatible", {
        "url": "http://localhost:11434/v1/embeddings",
        "model": "nomic-embed-text",
    })


@dataclass
class MemoryConfig:
    """Complete daybook configuration."""
    home: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # Layout (relative paths resolve against home)
    log_dir: Path = Path("logs")
    archive_dir: Path = Path("logs/archive")
    prompt_dir: Path = Path("prompts")
    db_path: Path = Path("memory/memory.sqlite")

    # IANA zone name; empty means the system local zone
    timezone: str = ""

    keep_raw_days: int = DEFAULT_KEEP_RAW_DAYS
    max_chunk_bytes: int = DEFAULT_MAX_CHUNK_BYTES
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    search_timeout: float = DEFAULT_SEARCH_TIMEOUT
    search_top_k: int = DEFAULT_SEARCH_TOP_K
    search_min_score: float = DEFAULT_SEARCH_MIN_SCORE

    speech_enabled: bool = False
    speech_queue_size: int = DEFAULT_SPEECH_QUEUE_SIZE

    completion: ProviderConfig = field(default_factory=_default_completion)
    embedding: ProviderConfig = field(default_factory=_default_embedding)

    def __post_init__(self):
        self.home = Path(self.home)
        self.log_dir = self._resolve(self.log_dir)
        self.archive_dir = self._resolve(self.archive_dir)
        self.prompt_dir = self._resolve(self.prompt_dir)
        self.db_path = self._resolve(self.db_path)

    def _resolve(self, p) -> Path:
        p = Path(p).expanduser()
        return p if p.is_absolute() else self.home / p

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.home / CONFIG_FILENAME

    @property
    def tz(self) -> tzinfo:
        """The zone in which calendar days are counted."""
        if self.timezone:
            return ZoneInfo(self.timezone)
        return datetime.now().astimezone().tzinfo

    @property
    def embedding_model(self) -> str:
        """Model id that stored vectors are keyed by."""
        return str(self.embedding.params.get("model", self.embedding.name))

    def now(self) -> datetime:
        """Current time in the configured zone."""
        return datetime.now(self.tz)

    def ensure_dirs(self) -> None:
        """Create every directory the layout names."""
        for d in (self.log_dir, self.archive_dir, self.prompt_dir, self.db_path.parent):
            d.mkdir(parents=True, exist_ok=True)

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_home() -> Path:
    """Daybook home: DAYBOOK_HOME, else ~/.daybook."""
    env = os.environ.get("DAYBOOK_HOME")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".daybook"


def load_config(home: Path) -> MemoryConfig:
    """
    Load configuration from a daybook home directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = Path(home) / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    def parse_provider(section: dict | None, default: ProviderConfig) -> ProviderConfig:
        if not section:
            return default
        return ProviderConfig(
            name=section.get("name", default.name),
            params={k: v for k, v in section.items() if k != "name"},
        )

    paths = data.get("paths", {})
    memory = data.get("memory", {})
    speech = data.get("speech", {})

    try:
        return MemoryConfig(
            home=Path(home),
            version=version,
            created=data.get("store", {}).get("created", ""),
            log_dir=Path(paths.get("log_dir", "logs")),
            archive_dir=Path(paths.get("archive_dir", "logs/archive")),
            prompt_dir=Path(paths.get("prompt_dir", "prompts")),
            db_path=Path(paths.get("db_path", "memory/memory.sqlite")),
            timezone=memory.get("timezone", ""),
            keep_raw_days=int(memory.get("keep_raw_days", DEFAULT_KEEP_RAW_DAYS)),
            max_chunk_bytes=int(memory.get("max_chunk_bytes", DEFAULT_MAX_CHUNK_BYTES)),
            http_timeout=float(memory.get("http_timeout", DEFAULT_HTTP_TIMEOUT)),
            search_timeout=float(memory.get("search_timeout", DEFAULT_SEARCH_TIMEOUT)),
            search_top_k=int(memory.get("search_top_k", DEFAULT_SEARCH_TOP_K)),
            search_min_score=float(memory.get("search_min_score", DEFAULT_SEARCH_MIN_SCORE)),
            speech_enabled=bool(speech.get("enabled", False)),
            speech_queue_size=int(speech.get("queue_size", DEFAULT_SPEECH_QUEUE_SIZE)),
            completion=parse_provider(data.get("completion"), _default_completion()),
            embedding=parse_provider(data.get("embedding"), _default_embedding()),
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid config {config_path}: {e}") from e


def _relative_to_home(p: Path, home: Path) -> str:
    try:
        return str(p.relative_to(home))
    except ValueError:
        return str(p)


def save_config(config: MemoryConfig) -> None:
    """
    Save configuration to the daybook home.

    Creates the directory if it doesn't exist.
    """
    config.home.mkdir(parents=True, exist_ok=True)

    def provider_to_dict(p: ProviderConfig) -> dict:
        d = {"name": p.name}
        d.update(p.params)
        return d

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "paths": {
            "log_dir": _relative_to_home(config.log_dir, config.home),
            "archive_dir": _relative_to_home(config.archive_dir, config.home),
            "prompt_dir": _relative_to_home(config.prompt_dir, config.home),
            "db_path": _relative_to_home(config.db_path, config.home),
        },
        "memory": {
            "timezone": config.timezone,
            "keep_raw_days": config.keep_raw_days,
            "max_chunk_bytes": config.max_chunk_bytes,
            "http_timeout": config.http_timeout,
            "search_timeout": config.search_timeout,
            "search_top_k": config.search_top_k,
            "search_min_score": config.search_min_score,
        },
        "speech": {
            "enabled": config.speech_enabled,
            "queue_size": config.speech_queue_size,
        },
        "completion": provider_to_dict(config.completion),
        "embedding": provider_to_dict(config.embedding),
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(home: Path | None = None) -> MemoryConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    home = Path(home) if home is not None else get_default_home()
    if (home / CONFIG_FILENAME).exists():
        return load_config(home)
    config = MemoryConfig(home=home)
    save_config(config)
    return config
