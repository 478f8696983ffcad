from fastmcp import FastMCP

from rag_engine.cli import main
from rag_engine.ingest.embedder import HashingEmbedder
from rag_engine.retrieval.vector_store import InMemoryVectorStore
from rag_engine.servers.rag_server import create_rag_server


def test_index_then_search(tmp_path, capsys) -> None:
    doc = tmp_path / "policy.txt"
    doc.write_text("Employees must encrypt customer data at rest. Badges are checked daily.", encoding="utf-8")
    index = tmp_path / "index.json"

    assert main(["--offline", "index", str(doc), "--index", str(index)]) == 0
    assert len(InMemoryVectorStore.load(index)) == 1
    assert "policy: 1 chunks, 1 embedded, 0 errors" in capsys.readouterr().out

    assert main(["--offline", "search", "encrypt customer data", "--index", str(index)]) == 0
    out = capsys.readouterr().out
    assert "#1 policy-chunk-0000" in out
    assert "Employees must encrypt customer data at rest." in out


def test_search_without_index_fails(tmp_path, capsys) -> None:
    assert main(["--offline", "search", "anything", "--index", str(tmp_path / "missing.json")]) == 1
    assert "no index found" in capsys.readouterr().err


def test_mcp_server_starts_without_index(tmp_path) -> None:
    server = create_rag_server(tmp_path / "missing.json", HashingEmbedder())

    assert isinstance(server, FastMCP)
    assert server.name == "rag-search-server"
