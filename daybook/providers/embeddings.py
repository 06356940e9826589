"""
Embedding providers.

- openai-compatible: POST {model, input} to a /v1/embeddings URL.
- ollama: native /api/embeddings ({model, prompt}).
"""

import os
from typing import Optional

from .base import extract_embedding, get_registry, post_json
from .ollama_utils import ollama_base_url, ollama_ensure_model

DEFAULT_TIMEOUT = 60.0


class OpenAICompatibleEmbedding:
    """Embeddings over the OpenAI /v1/embeddings wire format."""

    def __init__(
        self,
        url: str = "http://localhost:11434/v1/embeddings",
        model: str = "nomic-embed-text",
        dimension: int | None = None,
        api_key: str | None = None,
        api_key_env: str = "OPENAI_API_KEY",
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.url = url
        self.model = model
        self._dimension = int(dimension) if dimension else None
        self.api_key = api_key or os.environ.get(api_key_env) or None
        self.timeout = float(timeout)

    @property
    def model_name(self) -> str:
        return self.model

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def embed(self, text: str, *, timeout: Optional[float] = None) -> list[float]:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        data = post_json(
            self.url, {"model": self.model, "input": text},
            timeout=timeout if timeout is not None else self.timeout,
            what=f"embedding (model={self.model})",
            headers=headers,
        )
        return extract_embedding(data)


class OllamaEmbedding:
    """
    Embedding provider using Ollama's local API.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str | None = None,
        dimension: int | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        auto_pull: bool = False,
    ):
        self.model = model
        self.base_url = ollama_base_url(base_url)
        self._dimension = int(dimension) if dimension else None
        self.timeout = float(timeout)
        self._auto_pull = auto_pull
        self._checked = False

    @property
    def model_name(self) -> str:
        return self.model

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def embed(self, text: str, *, timeout: Optional[float] = None) -> list[float]:
        if self._auto_pull and not self._checked:
            ollama_ensure_model(self.base_url, self.model)
            self._checked = True
        data = post_json(
            f"{self.base_url}/api/embeddings",
            {"model": self.model, "prompt": text},
            timeout=timeout if timeout is not None else self.timeout,
            what=f"Ollama embedding (model={self.model})",
        )
        return extract_embedding(data)


# Register providers
_registry = get_registry()
_registry.register_embedding("openai-compatible", OpenAICompatibleEmbedding)
_registry.register_embedding("ollama", OllamaEmbedding)
