"""
Completion and embedding service clients.

Providers are looked up by name through the registry:

    from daybook.providers import get_registry
    llm = get_registry().create_completion("openai-compatible", {"model": "qwen2.5-7b-instruct"})
"""

from .base import (
    CompletionProvider,
    EmbeddingProvider,
    ProviderRegistry,
    get_registry,
)

__all__ = [
    "CompletionProvider",
    "EmbeddingProvider",
    "ProviderRegistry",
    "get_registry",
]
