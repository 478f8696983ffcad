"""Single-process vector index with cosine ranking and JSON persistence."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict
from math import sqrt
from pathlib import Path
from typing import Any

from rag_engine.errors import IndexEmptyError, IndexMissingError
from rag_engine.types import Chunk, EmbeddingRecord, ScoredChunk

logger = logging.getLogger(__name__)


class InMemoryVectorStore:
    """Stores vectors in insertion order and answers nearest-neighbor queries.

    Reads do not lock; `insert` serializes writers so a concurrent index build
    never interleaves a partially registered record. All vectors in one store
    share the dimension of the first inserted vector.
    """

    def __init__(self) -> None:
        self._records: dict[str, EmbeddingRecord] = {}
        self._by_position: dict[tuple[str, int], str] = {}
        self._dimension: int | None = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def insert(self, vector: list[float], chunk: Chunk, document_ref: str) -> str:
        """Insert a vector for `chunk`; re-inserting the same chunk replaces it."""
        record_id = f"{document_ref}-chunk-{chunk.sequence_index:04d}"
        with self._lock:
            if self._dimension is None:
                self._dimension = len(vector)
            elif len(vector) != self._dimension:
                raise ValueError(
                    f"vector dimension {len(vector)} does not match index dimension {self._dimension}"
                )
            self._records[record_id] = EmbeddingRecord(
                record_id=record_id,
                vector=list(vector),
                chunk=chunk,
                document_ref=document_ref,
            )
            self._by_position[(document_ref, chunk.sequence_index)] = record_id
        return record_id

    def get(self, record_id: str) -> EmbeddingRecord:
        record = self._records.get(record_id)
        if record is None:
            raise KeyError(f"Record not found: {record_id}")
        return record

    def query(
        self,
        vector: list[float],
        k: int,
        min_score: float | None = None,
    ) -> list[ScoredChunk]:
        """Return up to `k` records ranked by cosine similarity.

        Ties keep insertion order. Raises `IndexEmptyError` when nothing has been
        inserted yet.
        """

        if not self._records:
            raise IndexEmptyError("the vector index is empty")

        scored = []
        for record in list(self._records.values()):
            score = cosine_similarity(vector, record.vector)
            if min_score is not None and score < min_score:
                continue
            scored.append(
                ScoredChunk(
                    record_id=record.record_id,
                    chunk=record.chunk,
                    document_ref=record.document_ref,
                    score=score,
                )
            )
        ranked = sorted(scored, key=lambda item: item.score, reverse=True)
        return ranked[:k]

    def neighbors(self, record_id: str) -> tuple[Chunk | None, Chunk | None]:
        """Previous and next chunk of the same document, if present."""
        record = self.get(record_id)
        index = record.chunk.sequence_index
        previous_id = self._by_position.get((record.document_ref, index - 1))
        next_id = self._by_position.get((record.document_ref, index + 1))
        previous = self._records[previous_id].chunk if previous_id else None
        following = self._records[next_id].chunk if next_id else None
        return previous, following

    def save(self, path: str | Path) -> None:
        payload: dict[str, Any] = {
            "dimension": self._dimension,
            "records": [
                {
                    "record_id": record.record_id,
                    "document_ref": record.document_ref,
                    "vector": record.vector,
                    "chunk": asdict(record.chunk),
                }
                for record in self._records.values()
            ],
        }
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(payload), encoding="utf-8")
        logger.info("Saved %d records to %s", len(self._records), target)

    @classmethod
    def load(cls, path: str | Path) -> "InMemoryVectorStore":
        source = Path(path)
        if not source.exists():
            raise IndexMissingError(f"no index found at {source}")
        payload = json.loads(source.read_text(encoding="utf-8"))
        store = cls()
        for item in payload.get("records", []):
            store.insert(item["vector"], Chunk(**item["chunk"]), item["document_ref"])
        logger.info("Loaded %d records from %s", len(store), source)
        return store


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity; 0.0 for empty, mismatched or zero-magnitude vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
