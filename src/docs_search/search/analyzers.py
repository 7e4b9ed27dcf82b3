"""Tokenizer for search terms.

Mirrors the composable tokenizer/filter design used elsewhere in the search
stack, reduced to what the fuzzy engine needs: word extraction on
``[a-zA-Z0-9_-]`` runs, case folding, and a minimum length filter. The result
of :func:`tokenize` is a set; order and multiplicity are irrelevant to the
scoring model.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
import re


WORD_PATTERN = re.compile(r"\b[a-zA-Z0-9_-]+\b")
MIN_TOKEN_LENGTH = 3


class RegexTokenizer:
    """Regex-based tokenizer that yields raw word matches."""

    def __init__(self, pattern: re.Pattern[str] = WORD_PATTERN) -> None:
        self.pattern = pattern

    def __call__(self, text: str) -> Iterator[str]:
        for match in self.pattern.finditer(text):
            yield match.group(0)


class LowercaseFilter:
    """Filter that lowercases token text."""

    def __call__(self, tokens: Iterable[str]) -> Iterator[str]:
        for token in tokens:
            yield token.lower()


class MinLengthFilter:
    """Drops tokens shorter than ``min_length`` characters."""

    def __init__(self, min_length: int = MIN_TOKEN_LENGTH) -> None:
        self.min_length = min_length

    def __call__(self, tokens: Iterable[str]) -> Iterator[str]:
        for token in tokens:
            if len(token) >= self.min_length:
                yield token


class TermAnalyzer:
    """Tokenizer + filters producing the unique term set of a text."""

    def __init__(self, min_length: int = MIN_TOKEN_LENGTH) -> None:
        self.tokenizer = RegexTokenizer()
        self.filters = [LowercaseFilter(), MinLengthFilter(min_length)]

    def __call__(self, text: str) -> set[str]:
        if not text:
            return set()
        stream: Iterable[str] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        return set(stream)


_DEFAULT_ANALYZER = TermAnalyzer()


def tokenize(text: str) -> set[str]:
    """Split ``text`` into lower-case search terms of at least three characters.

    Examples:
        >>> sorted(tokenize("Getting Started: install the CLI"))
        ['cli', 'getting', 'install', 'started', 'the']
        >>> tokenize("   ")
        set()
    """
    return _DEFAULT_ANALYZER(text)
