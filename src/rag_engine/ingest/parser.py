"""Parsing interfaces and concrete parsers for heterogeneous inputs."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from rag_engine.types import ParsedDocument


class Parser(ABC):
    """Base parser interface used by the ingest pipeline."""

    extensions: tuple[str, ...] = ()

    @abstractmethod
    def parse(self, path: Path, *, doc_id: str | None = None) -> ParsedDocument:
        """Parse a file into text + metadata."""


class TextParser(Parser):
    """Parser for plain text and markdown documents."""

    extensions = (".txt", ".log", ".md", ".markdown")

    def parse(self, path: Path, *, doc_id: str | None = None) -> ParsedDocument:
        text = path.read_text(encoding="utf-8")
        fmt = "markdown" if path.suffix.lower() in {".md", ".markdown"} else "text"
        return ParsedDocument(
            doc_id=doc_id or path.stem,
            text=text,
            metadata={"source": str(path), "format": fmt},
        )


class JsonParser(Parser):
    """Parser for JSON documents; Telegram chat exports become one line per message."""

    extensions = (".json",)

    def parse(self, path: Path, *, doc_id: str | None = None) -> ParsedDocument:
        payload: Any = json.loads(path.read_text(encoding="utf-8"))
        if _is_telegram_export(payload):
            lines = telegram_export_lines(payload)
            return ParsedDocument(
                doc_id=doc_id or path.stem,
                text="\n".join(lines),
                metadata={
                    "source": str(path),
                    "format": "telegram",
                    "chat": payload.get("name"),
                    "messages": len(lines) - 1,
                },
            )
        if isinstance(payload, dict):
            text = json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2)
        elif isinstance(payload, list):
            text = json.dumps(payload, ensure_ascii=False, indent=2)
        else:
            text = str(payload)
        return ParsedDocument(
            doc_id=doc_id or path.stem,
            text=text,
            metadata={"source": str(path), "format": "json"},
        )


def _is_telegram_export(payload: Any) -> bool:
    return isinstance(payload, dict) and isinstance(payload.get("messages"), list)


def _message_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return " ".join(
            item if isinstance(item, str) else str(item.get("text", "")) if isinstance(item, dict) else ""
            for item in value
        ).strip()
    if isinstance(value, dict):
        return str(value.get("text", ""))
    return ""


def telegram_export_lines(payload: dict[str, Any]) -> list[str]:
    """Render a Telegram export as `DATE\\tFROM\\tTEXT` lines with a header."""
    lines = ["DATE\tFROM\tTEXT"]
    for message in payload.get("messages", []):
        if message.get("type") != "message" or not message.get("from"):
            continue
        text = _message_text(message.get("text"))
        if not text.strip():
            continue
        clean_text = " ".join(text.replace("\t", " ").split())
        sender = str(message["from"]).replace("\t", " ").strip()
        lines.append(f"{message.get('date', '')}\t{sender}\t{clean_text}")
    return lines


class ParserRegistry:
    """Maps file extension to parser implementation."""

    def __init__(self, parsers: list[Parser] | None = None) -> None:
        self._parsers: dict[str, Parser] = {}
        for parser in parsers or [TextParser(), JsonParser()]:
            self.register(parser)

    def register(self, parser: Parser) -> None:
        for extension in parser.extensions:
            self._parsers[extension.lower()] = parser

    def parse_path(self, path: str | Path, *, doc_id: str | None = None) -> ParsedDocument:
        file_path = Path(path)
        parser = self._parsers.get(file_path.suffix.lower())
        if parser is None:
            raise ValueError(f"No parser registered for extension: {file_path.suffix}")
        return parser.parse(file_path, doc_id=doc_id)
