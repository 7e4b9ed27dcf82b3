"""Two-pass relevance scoring over an index snapshot.

Pass 1 scores every candidate page by combining fuzzy alignment (with an
edit-distance fallback for likely typos) and exact token containment against
title and content. Pages at or below the threshold are dropped. Pass 2 then
looks only at the surviving pages' headings and attaches the matching ones in
heading order. Pass 1 finishes for every candidate before pass 2 starts.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
import logging
import math

from docs_search.config import ScoringWeights
from docs_search.domain.model import Anchor, Document
from docs_search.domain.search import SearchMatch
from docs_search.errors import IndexNotLoadedError
from docs_search.search.analyzers import tokenize
from docs_search.search.fuzzy import fuzzy_score, typo_score
from docs_search.search.token_map import TokenMap


logger = logging.getLogger(__name__)

DEFAULT_LARGE_CORPUS_THRESHOLD = 10000


@dataclass
class _PageCandidate:
    position: int
    document: Document
    page_score: float = 0.0
    matching_anchors: list[Anchor] = field(default_factory=list)

    def to_match(self) -> SearchMatch:
        return SearchMatch(
            document=self.document,
            page_score=self.page_score,
            matching_anchors=tuple(self.matching_anchors),
        )


class QueryEngine:
    """Stateless scorer; the caller supplies the document snapshot per query."""

    def __init__(
        self,
        weights: ScoringWeights | None = None,
        *,
        large_corpus_threshold: int = DEFAULT_LARGE_CORPUS_THRESHOLD,
    ) -> None:
        self.weights = weights or ScoringWeights()
        self.large_corpus_threshold = large_corpus_threshold

    def search(
        self,
        query: str,
        limit: int,
        documents: Sequence[Document] | None,
        token_map: TokenMap | None = None,
    ) -> list[SearchMatch]:
        """Rank ``documents`` against ``query``.

        Args:
            query: Raw user query; blank queries return no results.
            limit: Maximum number of matches returned.
            documents: The loaded document snapshot.
            token_map: Optional inverted index over ``documents``; consulted
                to narrow candidates on very large corpora.

        Raises:
            IndexNotLoadedError: when no snapshot has been loaded.
        """
        if documents is None:
            raise IndexNotLoadedError("Search index has not been loaded")

        raw_query = query.strip()
        if not raw_query or limit <= 0:
            return []

        terms = tokenize(raw_query)
        use_fuzzy = len(raw_query) >= self.weights.min_fuzzy_query_length

        candidates = [
            _PageCandidate(position=position, document=documents[position])
            for position in self._candidate_positions(terms, documents, token_map)
        ]

        # Pass 1: page scores for every candidate
        for candidate in candidates:
            candidate.page_score = self.score_page(raw_query, terms, candidate.document, use_fuzzy=use_fuzzy)

        survivors = [candidate for candidate in candidates if candidate.page_score > self.weights.page_threshold]

        # Pass 2: anchors of surviving pages only
        for candidate in survivors:
            candidate.matching_anchors = self.match_anchors(
                raw_query, terms, candidate.document.anchors, use_fuzzy=use_fuzzy
            )

        survivors.sort(key=lambda candidate: candidate.page_score, reverse=True)
        return [candidate.to_match() for candidate in survivors[:limit]]

    def score_page(self, query: str, terms: set[str], document: Document, *, use_fuzzy: bool) -> float:
        """Additive pass 1 score of a single document."""
        weights = self.weights
        title = document.title
        content = document.content
        score = 0.0

        if use_fuzzy:
            score += self._fuzzy_or_typo(query, title, weights.title_fuzzy, weights.title_typo)
            score += self._fuzzy_or_typo(query, content, weights.content_fuzzy, weights.content_typo)

        title_lower = title.lower()
        content_lower = content.lower()
        for term in terms:
            if term in title_lower:
                score += weights.exact_title if title_lower == term else weights.title_substring
            if term in content_lower:
                score += weights.content_substring

        return score

    def match_anchors(
        self,
        query: str,
        terms: set[str],
        anchors: Sequence[Anchor],
        *,
        use_fuzzy: bool,
    ) -> list[Anchor]:
        """Anchors matching the query, in their original heading order."""
        matching: list[Anchor] = []
        for anchor in anchors:
            anchor_lower = anchor.text.lower()
            if use_fuzzy:
                score = fuzzy_score(query, anchor.text, acceptance=self.weights.fuzzy_acceptance)
                if score is not None and score >= self.weights.anchor_fuzzy_threshold:
                    matching.append(anchor)
                    continue
            if any(term in anchor_lower for term in terms):
                matching.append(anchor)
        return matching

    def _fuzzy_or_typo(self, query: str, target: str, fuzzy_weight: float, typo_weight: float) -> float:
        score = fuzzy_score(query, target, acceptance=self.weights.fuzzy_acceptance)
        if score is not None:
            return score * fuzzy_weight
        return typo_score(query, target, typo_weight)

    def _candidate_positions(
        self,
        terms: set[str],
        documents: Sequence[Document],
        token_map: TokenMap | None,
    ) -> list[int]:
        if token_map is not None and not token_map.is_empty and len(documents) > self.large_corpus_threshold:
            positions = [position for position in token_map.candidates(terms) if position < len(documents)]
            logger.debug("Narrowed %d documents to %d token-map candidates", len(documents), len(positions))
            return positions
        return list(range(len(documents)))


def fallback_search(
    query: str,
    documents: Sequence[Document],
    limit: int,
    weights: ScoringWeights | None = None,
) -> list[SearchMatch]:
    """Case-insensitive whole-query substring scoring.

    Used while no token map exists or after the worker path failed. It never
    attaches anchors and does no fuzzy matching.
    """
    lower_query = query.strip().lower()
    if not lower_query or limit <= 0:
        return []

    weights = weights or ScoringWeights()
    scored: list[tuple[float, float, float, int, Document]] = []
    for position, document in enumerate(documents):
        title_lower = document.title.lower()
        title_match = title_lower.find(lower_query)
        content_match = document.content.lower().find(lower_query)
        page_score = 0.0

        if title_match != -1:
            page_score += weights.exact_title if title_lower == lower_query else weights.title_substring
        if content_match != -1:
            page_score += weights.content_substring

        if page_score > 0:
            scored.append(
                (
                    page_score,
                    title_match if title_match != -1 else math.inf,
                    content_match if content_match != -1 else math.inf,
                    position,
                    document,
                )
            )

    scored.sort(key=lambda item: (-item[0], item[1], item[2], item[3]))
    return [SearchMatch(document=item[4], page_score=item[0]) for item in scored[:limit]]
