"""Command line entry point: build an artifact, query it, or tokenize text.

Examples:
    docs-search build --markdown-dir docs/ --output site/assets/search-data.json
    docs-search query --site-dir site/ "instal"
    docs-search tokenize "Getting Started with Installation"
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Mapping, Sequence
import logging
from pathlib import Path
import sys
from typing import Any

import orjson

from docs_search.config import Settings
from docs_search.errors import SearchError
from docs_search.observability.logging import configure_logging
from docs_search.observability.tracing import init_tracing
from docs_search.search.analyzers import tokenize
from docs_search.search.indexer import Heading, IndexBuilder, RenderedPage, write_artifact
from docs_search.search.loader import ArtifactLoader
from docs_search.search.markdown_pages import MarkdownPageReader
from docs_search.search.snippet import render_result_links
from docs_search.search_engine import SearchEngine


logger = logging.getLogger(__name__)


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docs-search",
        description="Build and query fuzzy documentation search artifacts",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override DOCS_SEARCH_LOG_LEVEL",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Generate the search artifact")
    source = build.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--pages",
        type=Path,
        help="JSON file with rendered pages (title, content, path, headings, includes)",
    )
    source.add_argument(
        "--markdown-dir",
        type=Path,
        help="Directory of Markdown sources to read directly",
    )
    build.add_argument(
        "--options",
        type=Path,
        help="JSON object of module options to index after the pages",
    )
    build.add_argument(
        "--output",
        type=Path,
        required=True,
        help="Artifact file to write",
    )
    build.add_argument(
        "--max-heading-level",
        type=int,
        default=None,
        help="Deepest heading level indexed as an anchor (default: DOCS_SEARCH_MAX_HEADING_LEVEL)",
    )
    build.add_argument(
        "--envelope",
        action="store_true",
        help="Wrap documents in an object carrying the configured boosts",
    )
    build.add_argument(
        "--include-tokens",
        action="store_true",
        help="Store precomputed tokens with every document",
    )

    query = subparsers.add_parser("query", help="Run a query against an artifact")
    location = query.add_mutually_exclusive_group()
    location.add_argument(
        "--site-dir",
        type=Path,
        help="Site directory holding the artifact (default: current directory)",
    )
    location.add_argument(
        "--url",
        help="Base URL of a published site",
    )
    query.add_argument("text", help="Query text")
    query.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of results (default: DOCS_SEARCH_DEFAULT_LIMIT)",
    )

    tokens = subparsers.add_parser("tokenize", help="Show the search tokens of some text")
    tokens.add_argument("text", help="Text to tokenize")
    return parser


def _heading_from_mapping(entry: Mapping[str, Any]) -> Heading:
    return Heading(text=str(entry["text"]), level=int(entry["level"]), id=str(entry["id"]))


def _page_from_mapping(entry: Mapping[str, Any]) -> RenderedPage:
    return RenderedPage(
        source_path=str(entry["source_path"]),
        content=str(entry.get("content", "")),
        path=str(entry["path"]),
        title=entry.get("title"),
        headings=tuple(_heading_from_mapping(heading) for heading in entry.get("headings", ())),
        includes=tuple(_page_from_mapping(child) for child in entry.get("includes", ())),
    )


def _read_json(path: Path) -> Any:
    return orjson.loads(path.read_bytes())


def _run_build(args: argparse.Namespace, settings: Settings) -> int:
    if args.max_heading_level is not None:
        settings = settings.model_copy(update={"max_heading_level": args.max_heading_level})
    try:
        builder = IndexBuilder.from_settings(settings)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1
    if not builder.enabled:
        logger.info("Search is disabled; no artifact written")
        return 0

    included: frozenset[str] = frozenset()
    try:
        if args.markdown_dir is not None:
            collection = MarkdownPageReader(args.markdown_dir).collect()
            pages: Sequence[RenderedPage] = collection.pages
            included = collection.included_sources
        else:
            pages = [_page_from_mapping(entry) for entry in _read_json(args.pages)]
        options = _read_json(args.options) if args.options is not None else None
    except (OSError, orjson.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        logger.error("Could not read build inputs: %s", exc)
        return 1

    if options is not None and not isinstance(options, dict):
        logger.error("Options file must contain a JSON object")
        return 1

    try:
        result = builder.build(pages, included_sources=included, options=options)
        write_artifact(
            result.documents,
            args.output,
            envelope=args.envelope,
            settings=settings,
            include_tokens=args.include_tokens,
        )
    except (OSError, ValueError) as exc:
        logger.error("Could not build search artifact: %s", exc)
        return 1
    return 0


async def _run_query(args: argparse.Namespace, settings: Settings) -> int:
    loader = ArtifactLoader(settings, site_dir=args.site_dir, base_url=args.url)
    async with SearchEngine(settings, loader=loader) as engine:
        try:
            await engine.load()
        except SearchError as exc:
            logger.error("Search unavailable: %s", exc)
            return 1
        response = await engine.search(args.text, args.limit)

    output = {
        "query": response.query,
        "strategy": response.strategy.value,
        "results": render_result_links(response.results, response.query, settings.root_path),
    }
    sys.stdout.write(orjson.dumps(output, option=orjson.OPT_INDENT_2).decode("utf-8") + "\n")
    return 0


def _run_tokenize(args: argparse.Namespace) -> int:
    sys.stdout.write(orjson.dumps(sorted(tokenize(args.text))).decode("utf-8") + "\n")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)
    settings = Settings()
    configure_logging(args.log_level or settings.log_level, settings.log_json, stream=sys.stderr)
    init_tracing("docs-search")

    if args.command == "build":
        return _run_build(args, settings)
    if args.command == "query":
        return asyncio.run(_run_query(args, settings))
    return _run_tokenize(args)


if __name__ == "__main__":
    sys.exit(main())
