"""Domain layer - immutable value objects with no infrastructure dependencies.

This layer contains:
- The index artifact model (Document, Anchor)
- Query/result value objects (SearchSession, SearchMatch, SearchResponse)
"""

from docs_search.domain.model import Anchor, Document, coerce_document, extract_document_array, parse_documents
from docs_search.domain.search import ExecutionStrategy, SearchMatch, SearchResponse, SearchSession


__all__ = [
    "Anchor",
    "Document",
    "ExecutionStrategy",
    "SearchMatch",
    "SearchResponse",
    "SearchSession",
    "coerce_document",
    "extract_document_array",
    "parse_documents",
]
