"""
Fuzzy documentation search package.

This package provides the build-time and query-time halves of the search stack:
- analyzers: Tokenizer and filters (lowercase, minimum length)
- fuzzy: Subsequence alignment scoring and bounded edit distance
- indexer: Document artifact generation from rendered pages
- markdown_pages: Markdown source reader with include expansion
- token_map: Chunked inverted index construction
- query_engine: Two-pass page and anchor scoring
- loader: Candidate-based artifact loading with buffered decode
- worker / strategy: Background execution and per-query strategy selection
- snippet: Previews, highlighting and link resolution
"""
