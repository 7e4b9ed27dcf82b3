"""Value objects for queries and ranked results.

Following the same conventions as the artifact model:
- Value Objects are immutable (frozen=True)
- No infrastructure dependencies
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from docs_search.domain.model import Anchor, Document


class ExecutionStrategy(str, Enum):
    """Where a query was (or will be) executed."""

    INLINE = "inline"
    WORKER = "worker"
    FALLBACK = "fallback"


class SearchMatch(BaseModel):
    """A page that cleared the relevance threshold, with its matching headings.

    ``matching_anchors`` keeps the document's heading order; anchors are never
    ranked on their own.
    """

    model_config = ConfigDict(frozen=True)

    document: Document
    page_score: float
    matching_anchors: tuple[Anchor, ...] = ()


class SearchSession(BaseModel):
    """One query invocation, tagged so late results can be discarded."""

    model_config = ConfigDict(frozen=True)

    correlation_id: int
    raw_query: str
    terms: frozenset[str] = Field(default_factory=frozenset)


class SearchResponse(BaseModel):
    """Results of a session plus how they were produced."""

    model_config = ConfigDict(frozen=True)

    correlation_id: int
    query: str
    results: tuple[SearchMatch, ...] = ()
    strategy: ExecutionStrategy = ExecutionStrategy.INLINE
    error: str | None = None
