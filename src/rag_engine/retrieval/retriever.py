"""Semantic retriever with threshold relaxation and neighbor context."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from rag_engine.config import RetrievalConfig
from rag_engine.errors import ProviderError, SchemaError
from rag_engine.ingest.embedder import Embedder
from rag_engine.retrieval.expansion import QueryExpander
from rag_engine.retrieval.vector_store import InMemoryVectorStore
from rag_engine.types import ScoredChunk

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RetrievalResult:
    query: str
    hits: list[ScoredChunk]
    threshold: float
    relaxed: bool = False
    variants: list[str] = field(default_factory=list)


class SemanticRetriever:
    """Ranks index hits for a text query.

    Flow:
    1. Embed the query and search at `min_score`. If nothing passes and the
       threshold is above `floor_score`, search once more at the floor.
    2. If an expander is configured, repeat step 1 for each variant. Hits are
       merged by record id keeping the best score; hits from the original query
       are multiplied by `original_query_boost` first.
    3. Keep the top `k` and attach the previous/next chunk of each hit.
    """

    def __init__(
        self,
        vector_store: InMemoryVectorStore,
        embedder: Embedder,
        config: RetrievalConfig | None = None,
        expander: QueryExpander | None = None,
    ) -> None:
        self.vector_store = vector_store
        self.embedder = embedder
        self.config = config or RetrievalConfig()
        self.expander = expander

    def retrieve(
        self,
        query: str,
        *,
        top_k: int | None = None,
        min_score: float | None = None,
    ) -> RetrievalResult:
        k = min(top_k or self.config.final_k, self.config.max_k)
        threshold = self.config.min_score if min_score is None else min_score

        hits, relaxed = self.search_vector(self.embedder.embed_query(query), k, threshold)
        variants = self.expander.expand(query) if self.expander is not None else []
        if not variants:
            return RetrievalResult(
                query=query,
                hits=self._with_context(hits),
                threshold=threshold,
                relaxed=relaxed,
            )

        merged: dict[str, ScoredChunk] = {}
        self._merge(merged, hits, query, self.config.original_query_boost)
        for variant in variants:
            try:
                vector = self.embedder.embed_query(variant)
            except (ProviderError, SchemaError) as exc:
                logger.warning("Skipping query variant %r: %s", variant, exc)
                continue
            variant_hits, variant_relaxed = self.search_vector(vector, k, threshold)
            relaxed = relaxed or variant_relaxed
            self._merge(merged, variant_hits, variant, 1.0)

        ranked = sorted(merged.values(), key=lambda item: item.score, reverse=True)
        return RetrievalResult(
            query=query,
            hits=self._with_context(ranked[:k]),
            threshold=threshold,
            relaxed=relaxed,
            variants=variants,
        )

    def search_vector(
        self, vector: list[float], k: int, min_score: float
    ) -> tuple[list[ScoredChunk], bool]:
        """Query the index, relaxing to `floor_score` at most once."""
        hits = self.vector_store.query(vector, k, min_score=min_score)
        if hits or min_score <= self.config.floor_score:
            return hits, False

        logger.info(
            "No results at threshold %.3f, retrying at floor %.3f",
            min_score,
            self.config.floor_score,
        )
        return self.vector_store.query(vector, k, min_score=self.config.floor_score), True

    @staticmethod
    def _merge(
        merged: dict[str, ScoredChunk], hits: list[ScoredChunk], query: str, boost: float
    ) -> None:
        for hit in hits:
            adjusted = hit.score * boost
            current = merged.get(hit.record_id)
            if current is None or adjusted > current.score:
                merged[hit.record_id] = ScoredChunk(
                    record_id=hit.record_id,
                    chunk=hit.chunk,
                    document_ref=hit.document_ref,
                    score=adjusted,
                    query=query,
                )

    def _with_context(self, hits: list[ScoredChunk]) -> list[ScoredChunk]:
        if not self.config.include_neighbors:
            return hits
        for hit in hits:
            hit.previous, hit.next = self.vector_store.neighbors(hit.record_id)
        return hits
