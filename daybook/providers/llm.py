"""
Completion providers.

- openai-compatible: POST {model, messages} to a /v1/chat/completions URL
  (llama.cpp server, vLLM, OpenAI).
- ollama: native /api/chat with stream disabled.
"""

import os
from typing import Optional

from .base import extract_completion_text, get_registry, post_json
from .ollama_utils import ollama_base_url, ollama_ensure_model

DEFAULT_TIMEOUT = 60.0


class OpenAICompatibleCompletion:
    """Completion over the OpenAI chat-completions wire format."""

    def __init__(
        self,
        url: str = "http://localhost:8080/v1/chat/completions",
        model: str = "qwen2.5-7b-instruct",
        api_key: str | None = None,
        api_key_env: str = "OPENAI_API_KEY",
        timeout: float = DEFAULT_TIMEOUT,
        temperature: float | None = None,
    ):
        self.url = url
        self.model = model
        self.api_key = api_key or os.environ.get(api_key_env) or None
        self.timeout = float(timeout)
        self.temperature = temperature

    @property
    def model_name(self) -> str:
        return self.model

    def complete(self, messages: list[dict[str, str]], *, timeout: Optional[float] = None) -> str:
        payload = {"model": self.model, "messages": messages}
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        data = post_json(
            self.url, payload,
            timeout=timeout if timeout is not None else self.timeout,
            what=f"completion (model={self.model})",
            headers=headers,
        )
        return extract_completion_text(data)


class OllamaCompletion:
    """
    Completion provider using Ollama's local API.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    """

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        auto_pull: bool = False,
    ):
        self.model = model
        self.base_url = ollama_base_url(base_url)
        self.timeout = float(timeout)
        self._auto_pull = auto_pull
        self._checked = False

    @property
    def model_name(self) -> str:
        return self.model

    def complete(self, messages: list[dict[str, str]], *, timeout: Optional[float] = None) -> str:
        if self._auto_pull and not self._checked:
            ollama_ensure_model(self.base_url, self.model)
            self._checked = True
        data = post_json(
            f"{self.base_url}/api/chat",
            {"model": self.model, "messages": messages, "stream": False},
            timeout=timeout if timeout is not None else self.timeout,
            what=f"Ollama completion (model={self.model})",
        )
        return extract_completion_text(data)


# Register providers
_registry = get_registry()
_registry.register_completion("openai-compatible", OpenAICompatibleCompletion)
_registry.register_completion("ollama", OllamaCompletion)
