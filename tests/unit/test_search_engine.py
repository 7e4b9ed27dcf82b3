"""Unit tests for the SearchEngine facade."""

from __future__ import annotations

from pathlib import Path
import threading

import httpx
import orjson
from prometheus_client import REGISTRY
import pytest

from docs_search.config import Settings
from docs_search.domain.search import ExecutionStrategy
from docs_search.search.indexer import IndexBuilder, write_artifact
from docs_search.search.loader import ArtifactLoader, LoadState
from docs_search.search.markdown_pages import MarkdownPageReader
from docs_search.search.strategy import WorkerState
from docs_search.search.worker import SearchWorker, WorkerRequest, WorkerResponse
from docs_search.search_engine import SEARCH_UNAVAILABLE, SearchEngine


def _artifact(install_documents) -> bytes:
    return orjson.dumps([document.to_artifact() for document in install_documents])


def _loader(settings: Settings, handler) -> ArtifactLoader:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://docs.example.org")
    return ArtifactLoader(settings, client=client)


def _latency_count(strategy: str) -> float:
    return REGISTRY.get_sample_value("docs_search_latency_seconds_count", {"strategy": strategy}) or 0.0


@pytest.mark.unit
class TestSearchEngineQueries:
    """Tests for SearchEngine.search()."""

    @pytest.mark.asyncio
    async def test_inline_search(self, install_documents):
        inline_before = _latency_count("inline")
        async with SearchEngine(Settings()) as engine:
            await engine.install_documents(install_documents)
            response = await engine.search("instal", 10)

        assert response.strategy is ExecutionStrategy.INLINE
        assert _latency_count("inline") == inline_before + 1
        assert response.error is None
        assert [match.document.title for match in response.results] == [
            "Installation Requirements",
            "Getting Started",
        ]

    @pytest.mark.asyncio
    async def test_result_cap(self):
        entries = [{"title": f"Install step {index}", "content": "install"} for index in range(6)]
        async with SearchEngine(Settings()) as engine:
            await engine.install_documents(entries)
            response = await engine.search("install", 3)
        assert len(response.results) == 3

    @pytest.mark.asyncio
    async def test_default_limit(self):
        entries = [{"title": f"Install step {index}", "content": "install"} for index in range(6)]
        async with SearchEngine(Settings(default_limit=2)) as engine:
            await engine.install_documents(entries)
            response = await engine.search("install")
        assert len(response.results) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   "])
    async def test_blank_query_does_not_load(self, query):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        settings = Settings()
        async with SearchEngine(settings, loader=_loader(settings, handler)) as engine:
            response = await engine.search(query, 10)
            assert engine.state is LoadState.NOT_LOADED

        assert response.results == ()
        assert response.error is None

    @pytest.mark.asyncio
    async def test_correlation_ids_increase(self, install_documents):
        async with SearchEngine(Settings()) as engine:
            await engine.install_documents(install_documents)
            first = await engine.search("instal", 10)
            second = await engine.search("getting", 10)

            assert second.correlation_id > first.correlation_id
            assert not engine.is_current(first)
            assert engine.is_current(second)

    @pytest.mark.asyncio
    async def test_fallback_while_token_map_is_empty(self):
        entries = [{"title": "ab", "content": "cd"}, {"title": "xy", "content": "ab"}]
        async with SearchEngine(Settings()) as engine:
            snapshot = await engine.install_documents(entries)
            response = await engine.search("ab", 10)

        assert snapshot.token_map.is_empty
        assert response.strategy is ExecutionStrategy.FALLBACK
        assert [(match.document.title, match.page_score) for match in response.results] == [("ab", 20.0), ("xy", 2.0)]


@pytest.mark.unit
class TestSearchEngineLoading:
    """Tests for artifact loading through the engine."""

    @pytest.mark.asyncio
    async def test_loads_on_first_query(self, install_documents):
        payload = _artifact(install_documents)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=payload)

        settings = Settings()
        async with SearchEngine(settings, loader=_loader(settings, handler)) as engine:
            response = await engine.search("instal", 10)
            assert engine.state is LoadState.LOADED
            assert engine.snapshot.document_count == 2

        assert len(response.results) == 2

    @pytest.mark.asyncio
    async def test_unavailable_then_retry(self, install_documents):
        payload = _artifact(install_documents)
        available = {"value": False}

        def handler(request: httpx.Request) -> httpx.Response:
            if not available["value"]:
                return httpx.Response(404)
            return httpx.Response(200, content=payload)

        settings = Settings()
        async with SearchEngine(settings, loader=_loader(settings, handler)) as engine:
            failed = await engine.search("instal", 10)
            assert engine.state is LoadState.LOAD_FAILED

            available["value"] = True
            recovered = await engine.search("instal", 10)

        assert failed.error == SEARCH_UNAVAILABLE
        assert failed.results == ()
        assert recovered.error is None
        assert len(recovered.results) == 2

    @pytest.mark.asyncio
    async def test_malformed_artifact_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b'"just a string"')

        settings = Settings()
        async with SearchEngine(settings, loader=_loader(settings, handler)) as engine:
            response = await engine.search("anything", 10)
        assert response.error == SEARCH_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_unreadable_primary_file_uses_root_fallback(self, tmp_path: Path, install_documents):
        (tmp_path / "docs" / "assets" / "search-data.json").mkdir(parents=True)
        artifact = tmp_path / "assets" / "search-data.json"
        artifact.parent.mkdir(parents=True)
        artifact.write_bytes(_artifact(install_documents))

        settings = Settings(root_path="docs/")
        loader = ArtifactLoader(settings, site_dir=tmp_path)
        async with SearchEngine(settings, loader=loader, use_worker=False) as engine:
            response = await engine.search("instal", 10)

        assert response.error is None
        assert len(response.results) == 2
        assert engine.snapshot.source == str(artifact)

    @pytest.mark.asyncio
    async def test_reload_swaps_snapshot(self, install_documents):
        payloads = [
            _artifact(install_documents),
            orjson.dumps([{"id": 0, "title": "Changelog", "content": "release notes", "path": "changelog.html"}]),
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=payloads[0])

        settings = Settings()
        async with SearchEngine(settings, loader=_loader(settings, handler)) as engine:
            old = await engine.load()
            payloads.pop(0)
            new = await engine.reload()

            assert engine.snapshot is new
            assert old.document_count == 2
            assert old.token_map.postings("installation") == [1]
            assert new.document_count == 1
            assert "installation" not in new.token_map

    @pytest.mark.asyncio
    async def test_load_is_cached(self, install_documents):
        calls = {"count": 0}
        payload = _artifact(install_documents)

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            return httpx.Response(200, content=payload)

        settings = Settings()
        async with SearchEngine(settings, loader=_loader(settings, handler)) as engine:
            first = await engine.load()
            second = await engine.load()

        assert first is second
        assert calls["count"] == 1


@pytest.mark.unit
class TestSearchEngineWorker:
    """Tests for worker execution and its failure handling."""

    @pytest.mark.asyncio
    async def test_large_corpus_uses_worker(self, install_documents):
        async with SearchEngine(Settings(worker_threshold=1)) as engine:
            await engine.install_documents(install_documents)
            response = await engine.search("instal", 10)
            assert engine.selector.worker_state is WorkerState.ACTIVE

        assert response.strategy is ExecutionStrategy.WORKER
        assert [match.document.id for match in response.results] == [1, 0]

    @pytest.mark.asyncio
    async def test_worker_timeout_falls_back_and_disables(self, install_documents):
        release = threading.Event()
        started = []

        def _stuck_handler(request: WorkerRequest) -> WorkerResponse:
            release.wait(5.0)
            return WorkerResponse(message_id=request.message_id, type="results", data=[])

        def _factory() -> SearchWorker:
            started.append(True)
            return SearchWorker(_stuck_handler)

        settings = Settings(worker_threshold=1, worker_timeout_seconds=0.05)
        worker_before, fallback_before = _latency_count("worker"), _latency_count("fallback")
        engine = SearchEngine(settings, worker_factory=_factory)
        try:
            await engine.install_documents(install_documents)
            timed_out = await engine.search("instal", 10)
            follow_up = await engine.search("instal", 10)
        finally:
            release.set()
            await engine.aclose()

        assert timed_out.strategy is ExecutionStrategy.FALLBACK
        assert timed_out.error is None
        assert engine.selector.worker_state is WorkerState.DISABLED
        assert follow_up.strategy is ExecutionStrategy.INLINE
        assert len(follow_up.results) == 2
        assert len(started) == 1
        assert _latency_count("worker") == worker_before + 1
        assert _latency_count("fallback") == fallback_before + 1

    @pytest.mark.asyncio
    async def test_worker_error_falls_back(self, install_documents):
        def _broken_handler(request: WorkerRequest) -> WorkerResponse:
            return WorkerResponse(message_id=request.message_id, type="error", error="out of memory")

        settings = Settings(worker_threshold=1)
        async with SearchEngine(settings, worker_factory=lambda: SearchWorker(_broken_handler)) as engine:
            await engine.install_documents(install_documents)
            response = await engine.search("Installation", 10)
            assert engine.selector.worker_state is WorkerState.DISABLED

        assert response.strategy is ExecutionStrategy.FALLBACK
        assert [match.document.id for match in response.results] == [1]

    @pytest.mark.asyncio
    async def test_worker_disabled_by_configuration(self, install_documents):
        async with SearchEngine(Settings(worker_threshold=1), use_worker=False) as engine:
            await engine.install_documents(install_documents)
            response = await engine.search("instal", 10)
        assert response.strategy is ExecutionStrategy.INLINE

    @pytest.mark.asyncio
    async def test_tokenize_without_worker(self):
        async with SearchEngine(Settings(), use_worker=False) as engine:
            assert await engine.tokenize("Getting Started") == ["getting", "started"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_included_page_never_returned(tmp_path: Path):
    docs = tmp_path / "docs"
    (docs / "parts").mkdir(parents=True)
    (docs / "manual.md").write_text("# Manual\n\n```{=include=}\nparts/install.md\n```\n", encoding="utf-8")
    (docs / "parts" / "install.md").write_text("# Installing Nix {#sec-installing}\n\nSteps.\n", encoding="utf-8")

    collection = MarkdownPageReader(docs).collect()
    result = IndexBuilder().build(collection.pages, included_sources=collection.included_sources)
    site = tmp_path / "site"
    write_artifact(result.documents, site / "assets" / "search-data.json")

    settings = Settings()
    async with SearchEngine(settings, loader=ArtifactLoader(settings, site_dir=site)) as engine:
        response = await engine.search("installing", 10)

    assert [match.document.path for match in response.results] == ["manual.html"]
    assert [anchor.id for anchor in response.results[0].matching_anchors] == ["sec-installing"]
