"""
Embedding vectors for stored summaries.

Vectors are stored as little-endian float32 with no padding, alongside their
dimension and L2 norm. The norm is computed from the float32-rounded values,
so the stored norm always matches the stored vector.
"""

import logging
import math
import struct
from typing import Optional, Sequence

from .errors import SummaryNotFoundError, ValidationError
from .providers.base import EmbeddingProvider
from .summary_store import SummaryStore

logger = logging.getLogger(__name__)

FLOAT32_BYTES = 4


def encode_vector(vector: Sequence[float]) -> bytes:
    """Pack floats as little-endian float32."""
    try:
        return struct.pack(f"<{len(vector)}f", *vector)
    except (struct.error, OverflowError) as e:
        raise ValidationError(f"vector not representable as float32: {e}") from e


def decode_vector(blob: bytes, dim: int) -> list[float]:
    """
    Unpack the first dim float32 values of a blob.

    Raises:
        ValidationError: blob shorter than dim * 4 bytes, or dim not positive
    """
    if dim <= 0:
        raise ValidationError(f"invalid vector dimension {dim}")
    need = dim * FLOAT32_BYTES
    if len(blob) < need:
        raise ValidationError(f"vector blob is {len(blob)} bytes, expected {need} for dim={dim}")
    return list(struct.unpack_from(f"<{dim}f", blob))


def to_float32(vector: Sequence[float]) -> list[float]:
    """Round values through float32, as they would be after storage."""
    return decode_vector(encode_vector(vector), len(vector))


def l2_norm(vector: Sequence[float]) -> float:
    return math.sqrt(sum(x * x for x in vector))


class EmbeddingIndex:
    """Computes and persists one vector per (summary, model)."""

    def __init__(
        self,
        store: SummaryStore,
        provider: EmbeddingProvider,
        timeout: Optional[float] = None,
    ):
        self._store = store
        self._provider = provider
        self._timeout = timeout

    @property
    def model(self) -> str:
        return self._provider.model_name

    def embed(self, text: str, timeout: Optional[float] = None) -> list[float]:
        """
        Embed text and return its float32-rounded vector.

        Raises:
            ValidationError: empty vector, a length other than the
                provider's declared dimension, or a non-finite value
            TransportError: service failure
        """
        vector = self._provider.embed(text, timeout=timeout if timeout is not None else self._timeout)
        if not vector:
            raise ValidationError("empty embedding")
        declared = self._provider.dimension
        if declared and len(vector) != declared:
            raise ValidationError(
                f"embedding has {len(vector)} dimensions, model {self.model} declares {declared}"
            )
        vector = to_float32(vector)
        if not all(math.isfinite(x) for x in vector):
            raise ValidationError(f"embedding from model {self.model} has non-finite values")
        return vector

    def ensure(self, text: str, summary_type: str, period_key: str) -> bool:
        """
        Make sure the summary has a vector for the configured model.

        Returns:
            True if a vector was created, False if one already existed

        Raises:
            ValidationError: empty text or a bad vector
            SummaryNotFoundError: no such summary
            TransportError: service failure
        """
        if not text or not text.strip():
            raise ValidationError(f"no index text for {summary_type} {period_key}")

        sid = self._store.summary_id(summary_type, period_key)
        if sid is None:
            raise SummaryNotFoundError(summary_type, period_key)

        model = self.model
        if self._store.has_embedding(sid, model):
            return False

        vector = self.embed(text)
        created = self._store.insert_embedding(
            sid, model, len(vector), encode_vector(vector), l2_norm(vector),
        )
        if created:
            logger.info("Embedded %s %s (model=%s, dim=%d)", summary_type, period_key, model, len(vector))
        return created
