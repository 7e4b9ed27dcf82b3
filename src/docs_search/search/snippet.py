"""Result previews and term highlighting for the presentation layer.

Text is always HTML-escaped before any ``<mark>`` markup is inserted, so the
inserted markup is never escaped a second time and document text can never
inject markup of its own.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
import html
import re

from docs_search.domain.search import SearchMatch
from docs_search.search.analyzers import tokenize


PREVIEW_CONTEXT = 50
ELLIPSIS = "..."
# Character references produced by html.escape; highlights must not split them
_ENTITY_PATTERN = re.compile(r"&(?:#x?[0-9a-fA-F]+|[a-zA-Z]+);")


def escape_html(text: str) -> str:
    """Escape text for safe inclusion in HTML."""
    return html.escape(text, quote=True)


def _is_inside_protected_region(start: int, end: int, protected_regions: list[tuple[int, int]]) -> bool:
    return any(start < region_end and end > region_start for region_start, region_end in protected_regions)


def highlight_terms(escaped_text: str, terms: Iterable[str]) -> str:
    """Wrap every occurrence of ``terms`` in ``<mark>`` tags.

    ``escaped_text`` must already be HTML-escaped. Longer terms win over
    shorter overlapping ones; matching is case-insensitive and keeps the
    original casing of the text.
    """
    ordered_terms = sorted({term for term in terms if term}, key=len, reverse=True)
    if not escaped_text or not ordered_terms:
        return escaped_text

    protected_regions = [(match.start(), match.end()) for match in _ENTITY_PATTERN.finditer(escaped_text)]

    selected: list[tuple[int, int]] = []
    for term in ordered_terms:
        pattern = re.compile(re.escape(escape_html(term)), re.IGNORECASE)
        for match in pattern.finditer(escaped_text):
            start, end = match.start(), match.end()
            if _is_inside_protected_region(start, end, protected_regions):
                continue
            if any(start < chosen_end and end > chosen_start for chosen_start, chosen_end in selected):
                continue
            selected.append((start, end))

    if not selected:
        return escaped_text

    # Apply from the end so earlier offsets stay valid
    result = escaped_text
    for start, end in sorted(selected, reverse=True):
        result = f"{result[:start]}<mark>{result[start:end]}</mark>{result[end:]}"
    return result


def build_preview(content: str, query: str, max_length: int = 150) -> str:
    """Escaped, highlighted excerpt of ``content`` around the best query term.

    The best term is the longest query token present in the content. Without
    any match the escaped first ``max_length`` characters are returned.
    """
    terms = tokenize(query)
    lower_content = content.lower()

    best_index = -1
    best_term = ""
    for term in sorted(terms):
        index = lower_content.find(term)
        if index != -1 and len(term) > len(best_term):
            best_index = index
            best_term = term

    if best_index == -1:
        return escape_html(content[:max_length]) + ELLIPSIS

    start = max(0, best_index - PREVIEW_CONTEXT)
    end = min(len(content), best_index + len(best_term) + PREVIEW_CONTEXT)
    preview = escape_html(content[start:end])
    preview = highlight_terms(preview, terms)

    if start > 0:
        preview = ELLIPSIS + preview
    if end < len(content):
        preview += ELLIPSIS
    return preview


def highlight_title(title: str, query: str) -> str:
    """Escaped title with query tokens highlighted."""
    return highlight_terms(escape_html(title), tokenize(query))


def resolve_path(path: str, root_path: str = "") -> str:
    """Resolve a document path against the site root.

    Absolute paths and bare fragments are returned unchanged.
    """
    if path.startswith(("/", "#")):
        return path
    return f"{root_path}{path}"


def anchor_href(path: str, anchor_id: str, root_path: str = "") -> str:
    """Link to a heading inside a document."""
    return f"{resolve_path(path, root_path)}#{anchor_id}"


def render_result_links(
    results: Sequence[SearchMatch],
    query: str,
    root_path: str = "",
) -> list[dict[str, object]]:
    """Presentation-neutral view of ranked matches: page link plus nested anchor links."""
    rendered: list[dict[str, object]] = []
    for match in results:
        document = match.document
        href = resolve_path(document.path, root_path)
        rendered.append(
            {
                "href": href,
                "title": highlight_title(document.title, query),
                "preview": build_preview(document.content, query),
                "score": match.page_score,
                "anchors": [
                    {
                        "href": anchor_href(document.path, anchor.id, root_path),
                        "text": highlight_title(anchor.text, query),
                    }
                    for anchor in match.matching_anchors
                ],
            }
        )
    return rendered
