"""Embedding abstractions, remote client and failure-tolerant batch driver."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from hashlib import blake2b
from math import sqrt
from typing import Any

import httpx

from rag_engine.config import EmbeddingConfig
from rag_engine.errors import ProviderError, SchemaError, ServiceError
from rag_engine.types import Chunk

logger = logging.getLogger(__name__)


class Embedder(ABC):
    """Embedder interface used by ingest and retrieval components."""

    dimension: int

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one text."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts; any failure propagates."""
        return [self.embed_query(text) for text in texts]


class HashingEmbedder(Embedder):
    """Deterministic sparse-like embedding without external model calls.

    Used for local tests and as the offline fallback when no embedding service
    is configured.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_query(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class HttpEmbedder(Embedder):
    """Client for an OpenAI-compatible `/embeddings` endpoint."""

    def __init__(self, config: EmbeddingConfig, client: httpx.Client | None = None) -> None:
        self.config = config
        self.dimension = config.dimension
        self._client = client or httpx.Client(timeout=config.timeout_seconds)

    def embed_query(self, text: str) -> list[float]:
        if not self.config.api_key:
            raise ServiceError("embedding API key is not configured", status=401)

        try:
            response = self._client.post(
                self.config.url,
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json",
                },
                json={"model": self.config.model, "input": text},
            )
        except httpx.HTTPError as exc:
            raise ServiceError(f"embedding request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ServiceError(
                f"embedding service returned {response.status_code}",
                status=response.status_code,
                body=response.text,
            )

        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise SchemaError("embedding response is not JSON") from exc
        return _extract_vector(payload)

    def close(self) -> None:
        self._client.close()


def _extract_vector(payload: Any) -> list[float]:
    try:
        vector = payload["data"][0]["embedding"]
    except (KeyError, IndexError, TypeError) as exc:
        raise SchemaError("embedding response has no data[0].embedding field") from exc
    if not isinstance(vector, list) or not vector:
        raise SchemaError("embedding field is not a non-empty list")
    try:
        return [float(value) for value in vector]
    except (TypeError, ValueError) as exc:
        raise SchemaError("embedding field contains non-numeric values") from exc


@dataclass(slots=True)
class BatchEmbeddingResult:
    vectors: list[list[float]]
    error_count: int = 0
    failed_indices: list[int] = field(default_factory=list)


def embed_chunks(
    embedder: Embedder,
    chunks: Sequence[Chunk],
    *,
    pause_every: int = 10,
    pause_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchEmbeddingResult:
    """Embed chunks in order, substituting zero vectors for failed calls.

    The result always holds exactly one vector per input chunk. After every
    `pause_every` calls the driver sleeps for `pause_seconds`.
    """

    result = BatchEmbeddingResult(vectors=[])
    for position, chunk in enumerate(chunks):
        try:
            vector = embedder.embed_query(chunk.text)
            if len(vector) != embedder.dimension:
                raise SchemaError(
                    f"expected dimension {embedder.dimension}, got {len(vector)}"
                )
        except (ProviderError, SchemaError) as exc:
            logger.warning("Embedding failed for chunk %d/%d: %s", position + 1, len(chunks), exc)
            vector = [0.0] * embedder.dimension
            result.error_count += 1
            result.failed_indices.append(position)
        result.vectors.append(vector)

        calls = position + 1
        if calls % pause_every == 0 and calls < len(chunks):
            logger.info("Embedded %d of %d chunks", calls, len(chunks))
            if pause_seconds > 0:
                sleep(pause_seconds)
    return result
