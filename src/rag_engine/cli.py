"""Command line entrypoint: build an index, query it, or serve it over MCP."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rag_engine.config import ChunkingConfig, EngineSettings, RetrievalConfig
from rag_engine.errors import IndexEmptyError, IndexMissingError, ProviderError
from rag_engine.ingest.chunker import SentenceChunker
from rag_engine.ingest.embedder import Embedder, HashingEmbedder, HttpEmbedder
from rag_engine.ingest.parser import ParserRegistry
from rag_engine.ingest.pipeline import IngestPipeline
from rag_engine.retrieval.retriever import SemanticRetriever
from rag_engine.retrieval.vector_store import InMemoryVectorStore

logger = logging.getLogger("rag_engine.cli")


def _embedder(settings: EngineSettings, offline: bool) -> Embedder:
    if offline or not settings.embedding.api_key:
        return HashingEmbedder()
    return HttpEmbedder(settings.embedding)


def _cmd_index(args: argparse.Namespace, settings: EngineSettings) -> int:
    index_path = Path(args.index)
    if index_path.exists() and not args.fresh:
        store = InMemoryVectorStore.load(index_path)
        logger.warning("Appending to existing index with %d records", len(store))
    else:
        store = InMemoryVectorStore()

    pipeline = IngestPipeline(
        ParserRegistry(),
        SentenceChunker(ChunkingConfig(size=args.size, overlap=args.overlap)),
        _embedder(settings, args.offline),
        store,
        settings.embedding,
    )
    reports = pipeline.ingest_many(args.paths)
    store.save(index_path)
    for report in reports:
        print(
            f"{report.doc_id}: {report.total_chunks} chunks, {report.embedded} embedded, "
            f"{report.errors} errors, avg {report.average_chunk_length} chars"
        )
    return 0


def _cmd_search(args: argparse.Namespace, settings: EngineSettings) -> int:
    try:
        store = InMemoryVectorStore.load(args.index)
        retriever = SemanticRetriever(
            store, _embedder(settings, args.offline), RetrievalConfig(min_score=args.min_score)
        )
        result = retriever.retrieve(args.query, top_k=args.top_k)
    except (IndexMissingError, IndexEmptyError) as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except ProviderError as exc:
        print(f"embedding failed: {exc}", file=sys.stderr)
        return 2

    if not result.hits:
        print("No relevant results found.")
        return 0
    for rank, hit in enumerate(result.hits, start=1):
        print("=" * 80)
        print(f"#{rank} {hit.record_id} score={hit.score:.4f}")
        print(hit.text_with_context())
    if result.relaxed:
        print(f"(threshold relaxed to {retriever.config.floor_score})")
    return 0


def _cmd_serve_mcp(args: argparse.Namespace, settings: EngineSettings) -> int:
    from rag_engine.servers.rag_server import create_rag_server

    server = create_rag_server(args.index, _embedder(settings, args.offline))
    server.run(transport="stdio")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rag-engine", description=__doc__)
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--offline", action="store_true", help="use the hashing embedder")
    sub = parser.add_subparsers(dest="command", required=True)

    index = sub.add_parser("index", help="chunk, embed and index documents")
    index.add_argument("paths", nargs="+")
    index.add_argument("--index", required=True, help="index JSON file")
    index.add_argument("--size", type=int, default=ChunkingConfig().size)
    index.add_argument("--overlap", type=int, default=ChunkingConfig().overlap)
    index.add_argument("--fresh", action="store_true", help="discard an existing index")
    index.set_defaults(handler=_cmd_index)

    search = sub.add_parser("search", help="query an index")
    search.add_argument("query")
    search.add_argument("--index", required=True)
    search.add_argument("--top-k", type=int, default=3)
    search.add_argument("--min-score", type=float, default=RetrievalConfig().min_score)
    search.set_defaults(handler=_cmd_search)

    serve = sub.add_parser("serve-mcp", help="serve search_documents over MCP stdio")
    serve.add_argument("--index", required=True)
    serve.set_defaults(handler=_cmd_serve_mcp)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    # MCP stdio uses stdout for protocol frames, so logs always go to stderr.
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    return int(args.handler(args, EngineSettings.from_env()))


if __name__ == "__main__":
    sys.exit(main())
