"""Minimal Markdown source reader feeding the index builder.

Full Markdown rendering belongs to the site generator; this reader only does
what indexing needs when working straight from a source tree: YAML front
matter titles, ATX headings with ``{#id}`` or slugified ids, ``{=include=}``
blocks, and a markup-stripped plain-text body. Included files are expanded
into their parent and reported back so the builder never indexes them as
standalone pages.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
import logging
from pathlib import Path
import re

from docs_search.search.indexer import Heading, RenderedPage
from docs_search.utils.front_matter import parse_front_matter
from docs_search.utils.html_text import html_to_plaintext


logger = logging.getLogger(__name__)

_HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_EXPLICIT_ID_PATTERN = re.compile(r"\s*\{#([A-Za-z0-9_.:-]+)\}\s*$")
_INCLUDE_OPEN = re.compile(r"^(`{3,}|~{3,})\s*\{=include=\}\s*$")
_LINK_PATTERN = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_INLINE_MARKUP = re.compile(r"\*+|`+|~~|(?<![A-Za-z0-9])_+|_+(?![A-Za-z0-9])")
_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_SLUG_SPACES = re.compile(r"[\s-]+")

_SKIP_DIRS = {".git", ".hg", ".svn", "node_modules", "__pycache__"}


@dataclass(frozen=True)
class MarkdownCollection:
    """Pages discovered under a source root plus the files pulled in by includes."""

    pages: tuple[RenderedPage, ...]
    included_sources: frozenset[str]


def slugify(text: str) -> str:
    """Fragment id for a heading without an explicit ``{#id}``.

    Examples:
        >>> slugify("Installation Guide")
        'installation-guide'
        >>> slugify("What's new in 2.0?")
        'whats-new-in-20'
    """
    lowered = _SLUG_STRIP.sub("", text.lower())
    return _SLUG_SPACES.sub("-", lowered).strip("-") or "section"


def strip_markup(text: str) -> str:
    """Reduce inline Markdown/HTML to plain text."""
    text = _LINK_PATTERN.sub(r"\1", text)
    text = _INLINE_MARKUP.sub("", text)
    return html_to_plaintext(text)


class MarkdownPageReader:
    """Reads ``*.md`` files below ``root`` into :class:`RenderedPage` objects."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def collect(self) -> MarkdownCollection:
        files = sorted(self._discover())
        included: set[str] = set()
        pages: list[RenderedPage] = []
        for markdown_path in files:
            page, page_includes = self.read_page(markdown_path)
            pages.append(page)
            included.update(page_includes)
        logger.info("Collected %d markdown pages (%d included files)", len(pages), len(included))
        return MarkdownCollection(pages=tuple(pages), included_sources=frozenset(included))

    def read_page(self, markdown_path: Path) -> tuple[RenderedPage, set[str]]:
        """Read one page, expanding includes. Returns the page and included sources."""
        metadata, body = parse_front_matter(markdown_path.read_text(encoding="utf-8"))
        included: set[str] = set()
        headings: list[Heading] = []
        text_lines: list[str] = []
        self._expand(markdown_path, body, headings, text_lines, included, stack=(markdown_path.resolve(),))
        headings = _dedupe_ids(headings)

        title = metadata.get("title") if isinstance(metadata.get("title"), str) else None
        if title is None:
            title = next((heading.text for heading in headings if heading.level == 1), None)

        relative = self._relative(markdown_path)
        page = RenderedPage(
            source_path=relative,
            title=title,
            content=" ".join(line for line in text_lines if line),
            path=str(Path(relative).with_suffix(".html").as_posix()),
            headings=tuple(headings),
        )
        return page, included

    def _expand(
        self,
        source: Path,
        body: str,
        headings: list[Heading],
        text_lines: list[str],
        included: set[str],
        *,
        stack: tuple[Path, ...],
    ) -> None:
        lines = body.splitlines()
        index = 0
        in_code = False
        while index < len(lines):
            line = lines[index]
            include_match = _INCLUDE_OPEN.match(line.strip())
            if include_match and not in_code:
                fence = include_match.group(1)
                index += 1
                while index < len(lines) and not lines[index].strip().startswith(fence):
                    target = lines[index].strip()
                    if target:
                        self._include(source, target, headings, text_lines, included, stack=stack)
                    index += 1
                index += 1
                continue

            if line.lstrip().startswith(("```", "~~~")):
                in_code = not in_code
            elif not in_code and (heading := self._parse_heading(line)) is not None:
                headings.append(heading)
                text_lines.append(heading.text)
            else:
                text_lines.append(strip_markup(line))
            index += 1

    def _include(
        self,
        source: Path,
        target: str,
        headings: list[Heading],
        text_lines: list[str],
        included: set[str],
        *,
        stack: tuple[Path, ...],
    ) -> None:
        include_path = (source.parent / target).resolve()
        if include_path in stack:
            logger.warning("Include cycle detected at %s (from %s)", target, source)
            return
        if not include_path.is_file():
            logger.warning("Included file not found: %s (from %s)", target, source)
            return
        included.add(self._relative(include_path))
        _, body = parse_front_matter(include_path.read_text(encoding="utf-8"))
        self._expand(include_path, body, headings, text_lines, included, stack=(*stack, include_path))

    @staticmethod
    def _parse_heading(line: str) -> Heading | None:
        match = _HEADING_PATTERN.match(line)
        if not match:
            return None
        raw_text = match.group(2)
        explicit = _EXPLICIT_ID_PATTERN.search(raw_text)
        if explicit:
            raw_text = raw_text[: explicit.start()]
        text = strip_markup(raw_text)
        if not text:
            return None
        anchor_id = explicit.group(1) if explicit else slugify(text)
        return Heading(text=text, level=len(match.group(1)), id=anchor_id)

    def _discover(self) -> Iterable[Path]:
        for path in self.root.rglob("*.md"):
            if any(part in _SKIP_DIRS for part in path.relative_to(self.root).parts):
                continue
            yield path

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.root.resolve()).as_posix()
        except ValueError:
            return path.as_posix()


def _dedupe_ids(headings: list[Heading]) -> list[Heading]:
    counts: dict[str, int] = {}
    unique: list[Heading] = []
    for heading in headings:
        seen = counts.get(heading.id, 0)
        counts[heading.id] = seen + 1
        unique.append(heading if seen == 0 else replace(heading, id=f"{heading.id}-{seen}"))
    return unique
