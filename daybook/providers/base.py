"""
Base provider protocols.

These define the interfaces that concrete providers must implement.
Using Protocol for structural subtyping - no explicit inheritance required.

Both services are reached over plain HTTP + JSON. The helpers at the bottom
of this module do the POST and classify failures:

- connection errors, timeouts, non-2xx status, an "error" field in the
  response body -> TransportError
- a response that parses but lacks the expected payload -> ValidationError
"""

import logging
from typing import Any, Optional, Protocol, runtime_checkable

import requests

from ..errors import TransportError, ValidationError

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10.0


# -----------------------------------------------------------------------------
# Completion
# -----------------------------------------------------------------------------

@runtime_checkable
class CompletionProvider(Protocol):
    """
    Sends a chat-style message list to a language model and returns its text.

    Example implementation:
        class EchoCompletion:
            model_name = "echo"

            def complete(self, messages, *, timeout=None):
                return messages[-1]["content"]
    """

    @property
    def model_name(self) -> str:
        """Model identifier sent with each request."""
        ...

    def complete(self, messages: list[dict[str, str]], *, timeout: Optional[float] = None) -> str:
        """
        Run one non-streaming completion.

        Args:
            messages: [{"role": ..., "content": ...}, ...]
            timeout: Read timeout in seconds; provider default if None

        Returns:
            The completion text, stripped

        Raises:
            TransportError: service unreachable, timed out, or failed
            ValidationError: response carried no text
        """
        ...


# -----------------------------------------------------------------------------
# Embedding
# -----------------------------------------------------------------------------

@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Generates vector embeddings from text.

    The same model must be used for indexing and querying; stored vectors
    are keyed by ``model_name``.
    """

    @property
    def model_name(self) -> str:
        """Model identifier vectors are stored under."""
        ...

    @property
    def dimension(self) -> Optional[int]:
        """Declared vector length, or None when the service decides."""
        ...

    def embed(self, text: str, *, timeout: Optional[float] = None) -> list[float]:
        """
        Generate an embedding vector for the given text.

        Raises:
            TransportError: service unreachable, timed out, or failed
            ValidationError: response carried no vector
        """
        ...


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating providers.

    Providers are registered by name and instantiated from configuration, so
    the TOML config can select a provider without code changes.

    Example:
        registry = ProviderRegistry()
        registry.register_embedding("ollama", OllamaEmbedding)
        provider = registry.create_embedding("ollama", {"model": "nomic-embed-text"})
    """

    def __init__(self):
        self._completion_providers: dict[str, type] = {}
        self._embedding_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily load provider modules so their registrations run."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        from . import embeddings, llm  # noqa: F401

    def register_completion(self, name: str, provider_class: type) -> None:
        """Register a completion provider class."""
        self._completion_providers[name] = provider_class

    def register_embedding(self, name: str, provider_class: type) -> None:
        """Register an embedding provider class."""
        self._embedding_providers[name] = provider_class

    @staticmethod
    def _create_provider(kind: str, name: str, providers: dict, params: dict | None):
        """Shared factory logic for all provider types."""
        if name not in providers:
            available = ", ".join(sorted(providers.keys())) or "none"
            raise ValueError(
                f"Unknown {kind} provider: '{name}'. "
                f"Available providers: {available}."
            )
        try:
            return providers[name](**(params or {}))
        except TypeError as e:
            raise ValueError(f"Invalid parameters for {kind} provider '{name}': {e}") from e

    def create_completion(self, name: str, params: dict | None = None) -> CompletionProvider:
        """Create a completion provider instance."""
        self._ensure_providers_loaded()
        return self._create_provider("completion", name, self._completion_providers, params)

    def create_embedding(self, name: str, params: dict | None = None) -> EmbeddingProvider:
        """Create an embedding provider instance."""
        self._ensure_providers_loaded()
        return self._create_provider("embedding", name, self._embedding_providers, params)

    def list_completion_providers(self) -> list[str]:
        self._ensure_providers_loaded()
        return sorted(self._completion_providers)

    def list_embedding_providers(self) -> list[str]:
        self._ensure_providers_loaded()
        return sorted(self._embedding_providers)


_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry


# -----------------------------------------------------------------------------
# HTTP helpers
# -----------------------------------------------------------------------------

def post_json(
    url: str,
    payload: dict[str, Any],
    *,
    timeout: float,
    what: str,
    headers: dict[str, str] | None = None,
) -> Any:
    """
    POST a JSON payload and return the decoded JSON response.

    Args:
        url: Endpoint
        payload: Request body
        timeout: Read timeout in seconds
        what: Short label for error messages ("completion", "embedding")
        headers: Extra request headers

    Raises:
        TransportError: on connection failure, timeout, non-2xx, an error
            field in the body, or a non-JSON body
    """
    try:
        response = requests.post(
            url,
            json=payload,
            headers=headers,
            timeout=(CONNECT_TIMEOUT, timeout),  # (connect, read)
        )
    except requests.Timeout as e:
        raise TransportError(f"{what} request to {url} timed out after {timeout:g}s") from e
    except requests.RequestException as e:
        raise TransportError(f"{what} request to {url} failed: {e}") from e

    if not response.ok:
        detail = response.text[:200] if response.text else ""
        raise TransportError(
            f"{what} failed: HTTP {response.status_code} from {url}. {detail}".rstrip()
        )

    try:
        data = response.json()
    except ValueError as e:
        raise TransportError(f"{what} response from {url} is not JSON: {e}") from e

    if isinstance(data, dict) and data.get("error"):
        error = data["error"]
        if isinstance(error, dict):
            error = error.get("message") or error
        raise TransportError(f"{what} service error from {url}: {error}")

    logger.debug("%s request to %s ok", what, url)
    return data


def extract_completion_text(data: Any) -> str:
    """
    Pull the completion text out of a response body.

    Accepts choices[0].message.content, choices[0].text, message.content,
    response, or content.

    Raises:
        ValidationError: none of those carry text
    """
    if isinstance(data, dict):
        choices = data.get("choices")
        if isinstance(choices, list) and choices:
            first = choices[0] if isinstance(choices[0], dict) else {}
            message = first.get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                return message["content"].strip()
            if isinstance(first.get("text"), str):
                return first["text"].strip()

        message = data.get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return message["content"].strip()

        for key in ("response", "content"):
            if isinstance(data.get(key), str):
                return data[key].strip()

    raise ValidationError("completion response has no text (no choices)")


def extract_embedding(data: Any) -> list[float]:
    """
    Pull the vector out of a response body.

    Accepts data[0].embedding, embedding, or embeddings[0].

    Raises:
        ValidationError: missing, empty, or non-numeric vector
    """
    vector = None
    if isinstance(data, dict):
        items = data.get("data")
        if isinstance(items, list) and items and isinstance(items[0], dict):
            vector = items[0].get("embedding")
        if vector is None:
            vector = data.get("embedding")
        if vector is None:
            embeddings = data.get("embeddings")
            if isinstance(embeddings, list) and embeddings:
                vector = embeddings[0]

    if not isinstance(vector, list) or not vector:
        raise ValidationError("empty embedding")
    try:
        return [float(x) for x in vector]
    except (TypeError, ValueError) as e:
        raise ValidationError(f"embedding contains non-numeric values: {e}") from e
