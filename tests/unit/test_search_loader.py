"""Unit tests for artifact loading."""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import orjson
import pytest

from docs_search.config import Settings
from docs_search.errors import ArtifactMalformedError, ArtifactNotFoundError
from docs_search.search.loader import ArtifactLoader, LoadMode, LoadState


ARTIFACT = [
    {"id": 0, "title": "Getting Started", "content": "install guide", "path": "start.html", "anchors": []},
    {"id": 1, "title": "Reference", "content": "options", "path": "reference.html", "anchors": []},
]


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://docs.example.org")


@pytest.mark.unit
class TestHttpLoading:
    """Tests for loading over HTTP."""

    @pytest.mark.asyncio
    async def test_primary_candidate(self):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url.path)
            return httpx.Response(200, content=orjson.dumps(ARTIFACT))

        loader = ArtifactLoader(Settings(root_path="manual/"), client=_client(handler))
        artifact = await loader.load()

        assert requested == ["/manual/assets/search-data.json"]
        assert len(artifact.entries) == 2
        assert artifact.mode is LoadMode.EAGER
        assert loader.state is LoadState.LOADED

    @pytest.mark.asyncio
    async def test_falls_back_to_root_candidate(self):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url.path)
            if request.url.path.startswith("/manual/"):
                return httpx.Response(404)
            return httpx.Response(200, content=orjson.dumps(ARTIFACT))

        loader = ArtifactLoader(Settings(root_path="manual/"), client=_client(handler))
        artifact = await loader.load()

        assert requested == ["/manual/assets/search-data.json", "/assets/search-data.json"]
        assert artifact.source == "https://docs.example.org/assets/search-data.json"

    @pytest.mark.asyncio
    async def test_no_candidate_responds(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        loader = ArtifactLoader(Settings(root_path="manual/"), client=_client(handler))

        with pytest.raises(ArtifactNotFoundError) as exc_info:
            await loader.load()

        assert len(exc_info.value.reasons) == 2
        assert loader.state is LoadState.LOAD_FAILED
        assert loader.last_error is exc_info.value

    @pytest.mark.asyncio
    async def test_transport_errors_count_as_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        loader = ArtifactLoader(Settings(), client=_client(handler))
        with pytest.raises(ArtifactNotFoundError):
            await loader.load()

    @pytest.mark.asyncio
    async def test_failure_is_retryable(self):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] == 1:
                return httpx.Response(500)
            return httpx.Response(200, content=orjson.dumps(ARTIFACT))

        loader = ArtifactLoader(Settings(), client=_client(handler))
        with pytest.raises(ArtifactNotFoundError):
            await loader.load()
        assert loader.state is LoadState.LOAD_FAILED

        artifact = await loader.load()
        assert loader.state is LoadState.LOADED
        assert loader.last_error is None
        assert len(artifact.entries) == 2

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b'{"not": "an array"}')

        loader = ArtifactLoader(Settings(), client=_client(handler))
        with pytest.raises(ArtifactMalformedError):
            await loader.load()
        assert loader.state is LoadState.LOAD_FAILED

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"[{")

        loader = ArtifactLoader(Settings(), client=_client(handler))
        with pytest.raises(ArtifactMalformedError):
            await loader.load()

    @pytest.mark.asyncio
    async def test_large_payload_streams_and_yields(self, monkeypatch):
        payload = orjson.dumps(ARTIFACT * 50)
        yields = []
        original_sleep = asyncio.sleep

        async def _tracking_sleep(delay, *args, **kwargs):
            yields.append(delay)
            await original_sleep(delay, *args, **kwargs)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=payload)

        monkeypatch.setattr("docs_search.search.loader.asyncio.sleep", _tracking_sleep)
        settings = Settings(streaming_threshold_bytes=256, streaming_yield_bytes=128)
        loader = ArtifactLoader(settings, client=_client(handler))

        artifact = await loader.load()

        assert artifact.mode is LoadMode.STREAMING
        assert artifact.size_bytes == len(payload)
        assert len(artifact.entries) == 100
        assert yields

    @pytest.mark.asyncio
    async def test_envelope_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=orjson.dumps({"documents": ARTIFACT, "boost_title": 100}))

        loader = ArtifactLoader(Settings(), client=_client(handler))
        artifact = await loader.load()
        assert [entry["title"] for entry in artifact.entries] == ["Getting Started", "Reference"]


@pytest.mark.unit
class TestFileLoading:
    """Tests for loading from a site directory."""

    def _write(self, site: Path, relative: str, payload: bytes) -> None:
        path = site / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)

    @pytest.mark.asyncio
    async def test_eager_file(self, tmp_path: Path):
        self._write(tmp_path, "assets/search-data.json", orjson.dumps(ARTIFACT))
        loader = ArtifactLoader(Settings(), site_dir=tmp_path)

        artifact = await loader.load()

        assert artifact.mode is LoadMode.EAGER
        assert artifact.source == str(tmp_path / "assets" / "search-data.json")

    @pytest.mark.asyncio
    async def test_root_fallback_file(self, tmp_path: Path):
        self._write(tmp_path, "assets/search-data.json", orjson.dumps(ARTIFACT))
        loader = ArtifactLoader(Settings(root_path="manual/"), site_dir=tmp_path)

        artifact = await loader.load()

        assert artifact.source == str(tmp_path / "assets" / "search-data.json")

    @pytest.mark.asyncio
    async def test_streaming_file_with_multibyte_text(self, tmp_path: Path):
        entries = [{"id": 0, "title": "Überblick", "content": "Grüße " * 2000, "path": "de.html"}]
        self._write(tmp_path, "assets/search-data.json", orjson.dumps(entries))
        settings = Settings(streaming_threshold_bytes=1024, streaming_yield_bytes=512)

        artifact = await ArtifactLoader(settings, site_dir=tmp_path).load()

        assert artifact.mode is LoadMode.STREAMING
        assert artifact.entries[0]["title"] == "Überblick"

    @pytest.mark.asyncio
    async def test_invalid_utf8(self, tmp_path: Path):
        self._write(tmp_path, "assets/search-data.json", b"[" + b"\xff" * 2048 + b"]")
        settings = Settings(streaming_threshold_bytes=1024, streaming_yield_bytes=512)

        with pytest.raises(ArtifactMalformedError):
            await ArtifactLoader(settings, site_dir=tmp_path).load()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("threshold", [1024 * 1024, 1])
    async def test_unreadable_candidate_is_skipped(self, tmp_path: Path, threshold: int):
        (tmp_path / "manual" / "assets" / "search-data.json").mkdir(parents=True)
        self._write(tmp_path, "assets/search-data.json", orjson.dumps(ARTIFACT))
        settings = Settings(root_path="manual/", streaming_threshold_bytes=threshold, streaming_yield_bytes=1)

        artifact = await ArtifactLoader(settings, site_dir=tmp_path).load()

        assert artifact.source == str(tmp_path / "assets" / "search-data.json")

    @pytest.mark.asyncio
    async def test_unreadable_only_candidate_fails_retryably(self, tmp_path: Path):
        (tmp_path / "assets" / "search-data.json").mkdir(parents=True)
        loader = ArtifactLoader(Settings(), site_dir=tmp_path)

        with pytest.raises(ArtifactNotFoundError):
            await loader.load()
        assert loader.state is LoadState.LOAD_FAILED

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path):
        loader = ArtifactLoader(Settings(), site_dir=tmp_path)
        with pytest.raises(ArtifactNotFoundError):
            await loader.load()
