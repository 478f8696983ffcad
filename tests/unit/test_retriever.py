from math import isclose

from rag_engine.config import RetrievalConfig
from rag_engine.ingest.embedder import Embedder
from rag_engine.retrieval.expansion import SynonymExpander
from rag_engine.retrieval.retriever import SemanticRetriever
from rag_engine.retrieval.vector_store import InMemoryVectorStore
from rag_engine.types import Chunk

VOCABULARY = ["fox", "dog", "finance", "budget", "car", "automobile", "forest"]


class KeywordEmbedder(Embedder):
    """Counts vocabulary words; unknown words contribute nothing."""

    dimension = len(VOCABULARY)

    def embed_query(self, text: str) -> list[float]:
        words = text.lower().replace(".", " ").split()
        return [float(words.count(term)) for term in VOCABULARY]


class CountingStore(InMemoryVectorStore):
    def __init__(self) -> None:
        super().__init__()
        self.thresholds: list[float | None] = []

    def query(self, vector, k, min_score=None):
        self.thresholds.append(min_score)
        return super().query(vector, k, min_score=min_score)


def _add(store: InMemoryVectorStore, doc: str, *texts: str) -> None:
    embedder = KeywordEmbedder()
    for index, text in enumerate(texts):
        chunk = Chunk(text=text, start_offset=0, end_offset=len(text), sequence_index=index)
        store.insert(embedder.embed_query(text), chunk, doc)


def test_matching_topic_ranks_first() -> None:
    store = InMemoryVectorStore()
    _add(store, "animals", "The quick brown fox jumps over the lazy dog.")
    _add(store, "money", "Quarterly finance review and budget planning.")
    retriever = SemanticRetriever(store, KeywordEmbedder())

    result = retriever.retrieve("fox")

    assert result.hits[0].document_ref == "animals"
    assert all(hit.document_ref != "money" for hit in result.hits)
    assert result.relaxed is False


def test_relaxation_matches_query_at_floor() -> None:
    store = InMemoryVectorStore()
    _add(store, "animals", "fox dog dog dog dog dog dog dog dog dog")
    config = RetrievalConfig(min_score=0.5, floor_score=0.05, include_neighbors=False)
    retriever = SemanticRetriever(store, KeywordEmbedder(), config)

    result = retriever.retrieve("fox")
    expected = store.query(KeywordEmbedder().embed_query("fox"), 3, min_score=0.05)

    assert result.relaxed is True
    assert [hit.record_id for hit in result.hits] == [hit.record_id for hit in expected]
    assert result.hits


def test_relaxation_retries_at_most_once() -> None:
    store = CountingStore()
    _add(store, "animals", "fox and dog")
    config = RetrievalConfig(min_score=0.3, floor_score=0.05)

    result = SemanticRetriever(store, KeywordEmbedder(), config).retrieve("quarterly planning")

    assert result.hits == []
    assert store.thresholds == [0.3, 0.05]


def test_no_relaxation_when_threshold_at_floor() -> None:
    store = CountingStore()
    _add(store, "animals", "fox and dog")
    config = RetrievalConfig(min_score=0.05, floor_score=0.05)

    result = SemanticRetriever(store, KeywordEmbedder(), config).retrieve("budget")

    assert result.hits == []
    assert result.relaxed is False
    assert store.thresholds == [0.05]


def test_top_k_is_capped_by_max_k() -> None:
    store = InMemoryVectorStore()
    _add(store, "animals", *[f"fox story {i}" for i in range(6)])
    config = RetrievalConfig(max_k=2)

    result = SemanticRetriever(store, KeywordEmbedder(), config).retrieve("fox", top_k=5)

    assert len(result.hits) == 2


def test_hits_carry_neighbor_context() -> None:
    store = InMemoryVectorStore()
    _add(store, "story", "The forest was quiet.", "A fox appeared.", "Then it rained.")

    hit = SemanticRetriever(store, KeywordEmbedder()).retrieve("fox").hits[0]

    assert hit.chunk.text == "A fox appeared."
    assert hit.previous is not None and hit.previous.text == "The forest was quiet."
    assert hit.next is not None and hit.next.text == "Then it rained."
    assert hit.text_with_context() == (
        "The forest was quiet.\n\n--- --- ---\n\nA fox appeared.\n\n--- --- ---\n\nThen it rained."
    )


def test_expansion_merges_variants_and_boosts_original() -> None:
    store = InMemoryVectorStore()
    _add(store, "garage", "car")
    _add(store, "brochure", "automobile")
    expander = SynonymExpander({"car": ["automobile"]})
    retriever = SemanticRetriever(store, KeywordEmbedder(), expander=expander)

    result = retriever.retrieve("car")

    assert result.variants == ["automobile"]
    assert [hit.document_ref for hit in result.hits] == ["garage", "brochure"]
    assert isclose(result.hits[0].score, 1.1)
    assert isclose(result.hits[1].score, 1.0)
    assert result.hits[0].query == "car"
    assert result.hits[1].query == "automobile"


def test_synonym_expander_dedupes_and_skips_query() -> None:
    expander = SynonymExpander({"Car": ["automobile", "vehicle"], "fast": ["quick", "vehicle"]})

    assert expander.expand("Fast car") == ["quick", "vehicle", "automobile"]
    assert SynonymExpander({"car": ["car"]}).expand("car") == []
    assert expander.expand("bicycle") == []
