"""HTML to plain-text conversion for indexable content."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup


_WHITESPACE = re.compile(r"\s+")
_SKIPPED_TAGS = ("script", "style", "template")


def html_to_plaintext(markup: str) -> str:
    """Strip markup, drop script/style bodies and collapse whitespace."""
    if not markup:
        return ""
    if "<" not in markup and "&" not in markup:
        return _WHITESPACE.sub(" ", markup).strip()

    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(_SKIPPED_TAGS):
        tag.decompose()
    text = soup.get_text(separator=" ")
    return _WHITESPACE.sub(" ", text).strip()
