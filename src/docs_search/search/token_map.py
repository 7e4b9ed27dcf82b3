"""Inverted index from search term to document positions.

The map is derived from a loaded artifact and never persisted. Construction
runs in fixed-size chunks with a cooperative yield between chunks so the
event loop is never held for longer than one chunk's worth of tokenizing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
import logging
from typing import Any

from docs_search.domain.model import coerce_document
from docs_search.errors import InvalidDocumentError
from docs_search.observability.tracing import create_span
from docs_search.search.analyzers import tokenize


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 100


class TokenMap:
    """Term -> ordered document positions (positions in the source sequence)."""

    def __init__(self) -> None:
        self._postings: dict[str, list[int]] = {}
        self.documents_indexed = 0
        self.documents_skipped = 0

    def __len__(self) -> int:
        return len(self._postings)

    def __contains__(self, term: object) -> bool:
        return term in self._postings

    @property
    def is_empty(self) -> bool:
        return not self._postings

    def add(self, term: str, position: int) -> None:
        self._postings.setdefault(term, []).append(position)

    def postings(self, term: str) -> list[int]:
        """Positions containing ``term`` (empty list when unknown)."""
        return list(self._postings.get(term, ()))

    def candidates(self, terms: Iterable[str]) -> list[int]:
        """Union of postings for ``terms`` in ascending position order."""
        found: set[int] = set()
        for term in terms:
            found.update(self._postings.get(term, ()))
        return sorted(found)

    def terms(self) -> list[str]:
        return sorted(self._postings)

    def clear(self) -> None:
        self._postings.clear()
        self.documents_indexed = 0
        self.documents_skipped = 0

    def as_dict(self) -> dict[str, list[int]]:
        return {term: list(positions) for term, positions in self._postings.items()}


class TokenMapBuilder:
    """Chunked, in-order token map construction.

    A builder owns a cursor into the document sequence; every chunk advances
    it exactly once, so an interrupted build never reprocesses a chunk.
    """

    def __init__(self, documents: Sequence[Any], *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.documents = documents
        self.chunk_size = chunk_size
        self.token_map = TokenMap()
        self._next_index = 0

    @property
    def done(self) -> bool:
        return self._next_index >= len(self.documents)

    def process_chunk(self) -> int:
        """Index the next chunk synchronously; returns the number of entries consumed."""
        start = self._next_index
        end = min(start + self.chunk_size, len(self.documents))
        self._next_index = end

        for position in range(start, end):
            try:
                document = coerce_document(self.documents[position], position)
            except InvalidDocumentError as exc:
                logger.warning("Skipping document while building token map: %s", exc)
                self.token_map.documents_skipped += 1
                continue

            for term in tokenize(f"{document.title} {document.content}"):
                self.token_map.add(term, position)
            self.token_map.documents_indexed += 1

        return end - start

    async def build(self) -> TokenMap:
        """Process all remaining chunks, yielding to the event loop between them."""
        while not self.done:
            self.process_chunk()
            if not self.done:
                await asyncio.sleep(0)
        return self.token_map


async def build_token_map(documents: Any, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> TokenMap:
    """Build a fresh :class:`TokenMap` for ``documents``.

    Construction failures never propagate: a non-sequence input or an
    unexpected error yields an empty map, which callers treat as degraded
    service (queries then use the fallback scorer).
    """
    if not isinstance(documents, Sequence) or isinstance(documents, (str, bytes)):
        logger.error("No documents to build token map (got %s)", type(documents).__name__)
        return TokenMap()

    with create_span("search.token_map.build", attributes={"documents": len(documents)}):
        builder = TokenMapBuilder(documents, chunk_size=chunk_size)
        try:
            token_map = await builder.build()
        except Exception:
            logger.error("Error building token map", exc_info=True)
            return TokenMap()

    logger.info(
        "Built token map with %d unique tokens from %d documents",
        len(token_map),
        token_map.documents_indexed,
    )
    return token_map
