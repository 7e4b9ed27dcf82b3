"""Build-time index builder producing the search artifact.

The renderer hands over pages that are already plain text (title, body and
heading list). This module turns them into the ordered document array,
assigns dense ids, folds included sub-pages into their parent and writes the
artifact as JSON.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
import html
import logging
from pathlib import Path, PurePosixPath
from typing import Any

import orjson
from pydantic import ValidationError

from docs_search.config import Settings
from docs_search.domain.model import Anchor, Document
from docs_search.search.analyzers import tokenize
from docs_search.utils.html_text import html_to_plaintext


logger = logging.getLogger(__name__)

DEFAULT_MAX_HEADING_LEVEL = 3
OPTIONS_PAGE = "options.html"


@dataclass(frozen=True)
class Heading:
    """A rendered heading with its generated fragment id."""

    text: str
    level: int
    id: str


@dataclass(frozen=True)
class RenderedPage:
    """One page as produced by the renderer.

    ``includes`` holds pages pulled in through include directives; they only
    contribute headings to this page.
    """

    source_path: str
    content: str
    path: str
    title: str | None = None
    headings: tuple[Heading, ...] = ()
    includes: tuple[RenderedPage, ...] = ()

    @property
    def resolved_title(self) -> str:
        if self.title:
            return self.title
        return PurePosixPath(self.source_path).stem


@dataclass(frozen=True)
class IndexBuildResult:
    """Outcome of an indexing run."""

    documents: tuple[Document, ...]
    pages_indexed: int
    options_indexed: int
    pages_skipped: int
    artifact_path: Path | None = None
    skipped_sources: tuple[str, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return len(self.documents)


class IndexBuilder:
    """Turns rendered pages (and optional module options) into artifact documents."""

    def __init__(self, *, max_heading_level: int = DEFAULT_MAX_HEADING_LEVEL, enabled: bool = True) -> None:
        if not 1 <= max_heading_level <= 6:
            raise ValueError(f"max_heading_level must be between 1 and 6, got {max_heading_level}")
        self.max_heading_level = max_heading_level
        self.enabled = enabled

    @classmethod
    def from_settings(cls, settings: Settings) -> IndexBuilder:
        return cls(max_heading_level=settings.max_heading_level, enabled=settings.enable)

    def build(
        self,
        pages: Sequence[RenderedPage],
        *,
        included_sources: Iterable[str] = (),
        options: Mapping[str, Any] | None = None,
    ) -> IndexBuildResult:
        """Build the ordered document list.

        Args:
            pages: Rendered pages in canonical order.
            included_sources: Source paths that are pulled into other pages by
                include directives; such pages never become documents.
            options: Optional module options object (name -> option data).
        """
        if not self.enabled:
            logger.info("Search is disabled; skipping index generation")
            return IndexBuildResult(documents=(), pages_indexed=0, options_indexed=0, pages_skipped=0)

        excluded = {_normalize_source(source) for source in included_sources}
        for page in pages:
            excluded.update(_normalize_source(child) for child in _included_sources(page))

        documents: list[Document] = []
        skipped: list[str] = []
        for page in pages:
            if _normalize_source(page.source_path) in excluded:
                logger.debug("Skipping included page %s", page.source_path)
                skipped.append(page.source_path)
                continue
            documents.append(self._page_to_document(page, doc_id=len(documents)))
        pages_indexed = len(documents)

        options_indexed = 0
        for name, option in (options or {}).items():
            documents.append(self._option_to_document(name, option, doc_id=len(documents)))
            options_indexed += 1

        logger.info(
            "Search index generated: %d markdown documents, %d options indexed (%d total)",
            pages_indexed,
            options_indexed,
            len(documents),
        )
        return IndexBuildResult(
            documents=tuple(documents),
            pages_indexed=pages_indexed,
            options_indexed=options_indexed,
            pages_skipped=len(skipped),
            skipped_sources=tuple(skipped),
        )

    def collect_anchors(self, page: RenderedPage) -> list[Anchor]:
        """Anchors of ``page`` and its includes, filtered by heading level, in order."""
        anchors: list[Anchor] = []
        seen: set[str] = set()
        for heading in _iter_headings(page):
            if heading.level > self.max_heading_level or heading.id in seen:
                continue
            try:
                anchor = Anchor(id=heading.id, text=heading.text, level=heading.level)
            except ValidationError as exc:
                logger.warning("Skipping heading %r on %s: %s", heading.text, page.source_path, exc.errors()[0]["msg"])
                continue
            seen.add(heading.id)
            anchors.append(anchor)
        return anchors

    def _page_to_document(self, page: RenderedPage, *, doc_id: int) -> Document:
        return Document(
            id=doc_id,
            title=page.resolved_title,
            content=page.content,
            path=page.path,
            anchors=tuple(self.collect_anchors(page)),
        )

    def _option_to_document(self, name: str, option: Any, *, doc_id: int) -> Document:
        description = option.get("description", "") if isinstance(option, Mapping) else ""
        if not isinstance(description, str):
            description = ""
        return Document(
            id=doc_id,
            title=f"Option: {html.escape(name, quote=False)}",
            content=html_to_plaintext(description),
            path=f"{OPTIONS_PAGE}#option-{name.replace('.', '-')}",
        )


def write_artifact(
    documents: Sequence[Document],
    output_path: Path,
    *,
    envelope: bool = False,
    settings: Settings | None = None,
    include_tokens: bool = False,
) -> Path:
    """Serialize ``documents`` to ``output_path``.

    The default form is the bare document array. ``envelope=True`` wraps it
    together with the configured boosts; ``include_tokens=True`` adds the
    precomputed ``tokens``/``title_tokens`` forward index to each entry.
    """
    for position, document in enumerate(documents):
        if document.id != position:
            raise ValueError(f"Document id {document.id} does not match its position {position}")

    entries = [_artifact_entry(document, include_tokens=include_tokens) for document in documents]
    payload: Any = entries
    if envelope:
        settings = settings or Settings()
        payload = {
            "documents": entries,
            "boost_title": settings.get_title_boost(),
            "boost_content": settings.get_content_boost(),
            "boost_anchor": settings.get_anchor_boost(),
        }

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(orjson.dumps(payload))
    logger.info("Wrote search artifact with %d documents to %s", len(documents), output_path)
    return output_path


def _artifact_entry(document: Document, *, include_tokens: bool) -> dict[str, Any]:
    entry = document.to_artifact()
    if include_tokens:
        entry["tokens"] = sorted(tokenize(document.content))
        entry["title_tokens"] = sorted(tokenize(document.title))
    return entry


def _iter_headings(page: RenderedPage) -> Iterable[Heading]:
    yield from page.headings
    for child in page.includes:
        yield from _iter_headings(child)


def _included_sources(page: RenderedPage) -> Iterable[str]:
    for child in page.includes:
        yield child.source_path
        yield from _included_sources(child)


def _normalize_source(source: str) -> str:
    return PurePosixPath(source.replace("\\", "/")).as_posix()
