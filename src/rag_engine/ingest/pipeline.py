"""End-to-end ingest pipeline: parse -> normalize -> chunk -> embed -> insert."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from rag_engine.config import EmbeddingConfig
from rag_engine.ingest.chunker import SentenceChunker, normalize_text
from rag_engine.ingest.embedder import Embedder, embed_chunks
from rag_engine.ingest.parser import ParserRegistry
from rag_engine.retrieval.vector_store import InMemoryVectorStore
from rag_engine.types import ParsedDocument

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexingReport:
    doc_id: str
    total_chunks: int
    embedded: int
    errors: int
    average_chunk_length: int
    record_ids: list[str]


class IngestPipeline:
    """Coordinates parser/chunker/embedder/vector store stages.

    Indexing runs offline, so the embedder's failures are absorbed: a chunk whose
    embedding fails is still inserted with a zero vector and counted as an error.
    """

    def __init__(
        self,
        parser_registry: ParserRegistry,
        chunker: SentenceChunker,
        embedder: Embedder,
        vector_store: InMemoryVectorStore,
        embedding_config: EmbeddingConfig | None = None,
    ) -> None:
        self._parser_registry = parser_registry
        self._chunker = chunker
        self._embedder = embedder
        self._vector_store = vector_store
        self._embedding_config = embedding_config or EmbeddingConfig()

    def ingest_path(self, path: str | Path, *, doc_id: str | None = None) -> IndexingReport:
        """Ingest a single source file."""
        return self.ingest_document(self._parser_registry.parse_path(path, doc_id=doc_id))

    def ingest_document(self, document: ParsedDocument) -> IndexingReport:
        text = normalize_text(document.text)
        chunks = self._chunker.chunk(text)
        logger.info(
            "Split %s into %d chunks (size=%d, overlap=%d)",
            document.doc_id,
            len(chunks),
            self._chunker.config.size,
            self._chunker.config.overlap,
        )

        batch = embed_chunks(
            self._embedder,
            chunks,
            pause_every=self._embedding_config.pause_every,
            pause_seconds=self._embedding_config.pause_seconds,
        )
        record_ids = [
            self._vector_store.insert(vector, chunk, document.doc_id)
            for chunk, vector in zip(chunks, batch.vectors, strict=True)
        ]

        report = IndexingReport(
            doc_id=document.doc_id,
            total_chunks=len(chunks),
            embedded=len(chunks) - batch.error_count,
            errors=batch.error_count,
            average_chunk_length=round(sum(len(c.text) for c in chunks) / len(chunks)) if chunks else 0,
            record_ids=record_ids,
        )
        logger.info(
            "Indexed %s: %d chunks, %d errors, avg length %d",
            report.doc_id,
            report.total_chunks,
            report.errors,
            report.average_chunk_length,
        )
        return report

    def ingest_many(self, paths: list[str | Path]) -> list[IndexingReport]:
        return [self.ingest_path(path) for path in paths]
