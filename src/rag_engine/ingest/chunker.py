"""Text normalization and sentence-bounded chunking with word overlap."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from rag_engine.config import ChunkingConfig
from rag_engine.types import Chunk

_LINE_ENDINGS = re.compile(r"\r\n?")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_WHITESPACE_RUN = re.compile(r"\s{2,}")
_SENTENCE = re.compile(r"\S.*?(?:[.!?](?=\s)|$)", flags=re.DOTALL)


def normalize_text(text: str) -> str:
    """Normalize line endings and collapse redundant whitespace."""
    text = _LINE_ENDINGS.sub("\n", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    text = _WHITESPACE_RUN.sub(" ", text)
    return text.strip()


@dataclass(slots=True)
class _Sentence:
    text: str
    start: int
    end: int


@dataclass(slots=True)
class _Buffer:
    parts: list[str] = field(default_factory=list)
    start: int = 0
    end: int = 0

    @property
    def text(self) -> str:
        return " ".join(self.parts)

    @property
    def length(self) -> int:
        if not self.parts:
            return 0
        return sum(len(part) for part in self.parts) + len(self.parts) - 1


class SentenceChunker:
    """Packs sentences into chunks of at most `size` characters.

    Sentences are accumulated greedily. When the next sentence would push the
    buffer past `size`, the buffer is closed and the next one is seeded with the
    trailing words of the closed chunk (about `overlap` characters) so context
    carries across the boundary. A sentence longer than `size` is never cut; it
    becomes its own chunk.

    Offsets point into the text passed to `chunk`. Because overlap text is
    reused, a chunk's `start_offset` is an approximation of where its overlap
    prefix begins.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(self, text: str, size: int | None = None, overlap: int | None = None) -> list[Chunk]:
        size = self.config.size if size is None else size
        overlap = self.config.overlap if overlap is None else overlap
        if size <= 0:
            raise ValueError("size must be positive")
        if overlap < 0 or overlap >= size:
            raise ValueError("overlap must be in [0, size)")

        stripped = text.strip()
        if not stripped:
            return []
        if len(text) <= size:
            return [Chunk(text=stripped, start_offset=0, end_offset=len(text), sequence_index=0)]

        chunks: list[Chunk] = []
        buffer = _Buffer()
        for sentence in self._split_sentences(text):
            projected = buffer.length + (1 if buffer.parts else 0) + len(sentence.text)
            if buffer.parts and projected > size:
                closed = buffer.text
                chunks.append(self._close(buffer, len(chunks)))
                budget = min(overlap, size - len(sentence.text) - 1)
                seed = self._tail_words(closed, budget)
                buffer = _Buffer(
                    parts=[seed, sentence.text] if seed else [sentence.text],
                    start=max(0, sentence.start - len(seed) - 1) if seed else sentence.start,
                    end=sentence.end,
                )
                continue
            if not buffer.parts:
                buffer.start = sentence.start
            buffer.parts.append(sentence.text)
            buffer.end = sentence.end

        if buffer.parts:
            chunks.append(self._close(buffer, len(chunks)))
        return chunks

    @staticmethod
    def _close(buffer: _Buffer, index: int) -> Chunk:
        return Chunk(
            text=buffer.text.strip(),
            start_offset=buffer.start,
            end_offset=buffer.end,
            sequence_index=index,
        )

    @staticmethod
    def _split_sentences(text: str) -> list[_Sentence]:
        sentences: list[_Sentence] = []
        for match in _SENTENCE.finditer(text):
            raw = match.group(0)
            cleaned = raw.strip()
            if not cleaned:
                continue
            start = match.start() + (len(raw) - len(raw.lstrip()))
            sentences.append(_Sentence(text=cleaned, start=start, end=start + len(cleaned)))
        return sentences

    @staticmethod
    def _tail_words(text: str, budget: int) -> str:
        """Return the longest run of trailing words fitting in `budget` characters."""
        if budget <= 0:
            return ""
        picked: list[str] = []
        used = 0
        for word in reversed(text.split()):
            extra = len(word) + (1 if picked else 0)
            if used + extra > budget:
                break
            picked.append(word)
            used += extra
        return " ".join(reversed(picked))
