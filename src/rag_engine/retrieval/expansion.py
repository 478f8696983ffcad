"""Pluggable query expansion strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence


class QueryExpander(ABC):
    """Derives extra query strings from the user's query."""

    @abstractmethod
    def expand(self, query: str) -> list[str]:
        """Return additional variants, excluding the query itself."""


class SynonymExpander(QueryExpander):
    """Adds synonyms for tokens found in a fixed lowercase lookup table."""

    def __init__(self, table: Mapping[str, Sequence[str]]) -> None:
        self._table = {key.lower(): list(values) for key, values in table.items()}

    def expand(self, query: str) -> list[str]:
        normalized = query.strip().lower()
        variants: list[str] = []
        for token in normalized.split():
            for synonym in self._table.get(token, []):
                if synonym != normalized and synonym not in variants:
                    variants.append(synonym)
        return variants
