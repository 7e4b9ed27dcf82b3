"""Artifact loading from a site directory or over HTTP.

Candidates are tried in order and the first one that answers is used. Small
payloads are parsed in one step. Payloads at or above the streaming threshold
are read in chunks, decoded incrementally and accumulated into one text
buffer, handing control back to the event loop every ``streaming_yield_bytes``
of text; the buffer is parsed once when the stream ends.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
import codecs
from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
from typing import Any

import httpx
import orjson

from docs_search.config import Settings
from docs_search.domain.model import extract_document_array
from docs_search.errors import ArtifactLoadError, ArtifactMalformedError, ArtifactNotFoundError
from docs_search.observability.metrics import ARTIFACT_LOADS
from docs_search.observability.tracing import create_span


logger = logging.getLogger(__name__)

FILE_READ_CHUNK_BYTES = 64 * 1024


class LoadState(str, Enum):
    """Lifecycle of the loaded artifact. ``LOAD_FAILED`` is retryable."""

    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"


class LoadMode(str, Enum):
    EAGER = "eager"
    STREAMING = "streaming"


@dataclass(frozen=True)
class LoadedArtifact:
    """Raw document array plus where and how it was read."""

    entries: Sequence[Any]
    source: str
    mode: LoadMode
    size_bytes: int


class ArtifactLoader:
    """Loads the index artifact from the first responding candidate location.

    With ``base_url`` (or an explicit ``client``) candidates are fetched over
    HTTP; otherwise they are resolved as files under ``site_dir``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        site_dir: Path | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        candidates: Sequence[str] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.site_dir = site_dir
        self.base_url = base_url
        self.candidates = list(candidates) if candidates is not None else self.settings.get_artifact_candidates()
        self._client = client
        self._owns_client = client is None
        self.state = LoadState.NOT_LOADED
        self.last_error: ArtifactLoadError | None = None

    @property
    def uses_http(self) -> bool:
        return self._client is not None or self.base_url is not None

    async def load(self) -> LoadedArtifact:
        """Load the artifact, moving through ``LOADING`` to ``LOADED`` or ``LOAD_FAILED``.

        Raises:
            ArtifactNotFoundError: when no candidate responded.
            ArtifactMalformedError: when the payload is not a document array.
        """
        if self.state is LoadState.LOAD_FAILED:
            logger.info("Retrying artifact load after previous failure: %s", self.last_error)
        self.state = LoadState.LOADING
        self.last_error = None

        with create_span("search.artifact.load", attributes={"candidates": len(self.candidates)}):
            try:
                artifact = await self._load_first_available()
            except ArtifactLoadError as exc:
                self.state = LoadState.LOAD_FAILED
                self.last_error = exc
                ARTIFACT_LOADS.labels(status="error", mode="none").inc()
                logger.error("Failed to load search data: %s", exc)
                raise

        self.state = LoadState.LOADED
        ARTIFACT_LOADS.labels(status="success", mode=artifact.mode.value).inc()
        logger.info(
            "Loaded search data from %s (%d documents, %d bytes, %s)",
            artifact.source,
            len(artifact.entries),
            artifact.size_bytes,
            artifact.mode.value,
        )
        return artifact

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _load_first_available(self) -> LoadedArtifact:
        reasons: list[str] = []
        for candidate in self.candidates:
            try:
                if self.uses_http:
                    return await self._load_http(candidate)
                return await self._load_file(candidate)
            except _CandidateUnavailable as exc:
                logger.debug("Search data not available at %s: %s", candidate, exc)
                reasons.append(f"{candidate}: {exc}")
        raise ArtifactNotFoundError(self.candidates, reasons)

    async def _load_http(self, candidate: str) -> LoadedArtifact:
        client = self._get_client()
        try:
            async with client.stream("GET", candidate) as response:
                if response.status_code >= 400:
                    raise _CandidateUnavailable(f"HTTP {response.status_code}")
                size = _content_length(response)
                source = str(response.url)
                if size is not None and size < self.settings.streaming_threshold_bytes:
                    body = await response.aread()
                    return self._finish(_parse(body, source), source, LoadMode.EAGER, len(body))
                text, consumed = await self._accumulate(response.aiter_bytes(), source)
        except httpx.HTTPError as exc:
            raise _CandidateUnavailable(str(exc) or type(exc).__name__) from exc
        return self._finish(_parse(text, source), source, LoadMode.STREAMING, consumed)

    async def _load_file(self, candidate: str) -> LoadedArtifact:
        path = self._resolve_file(candidate)
        try:
            size = path.stat().st_size
        except OSError as exc:
            raise _CandidateUnavailable(exc.strerror or str(exc)) from exc
        source = str(path)
        try:
            if size < self.settings.streaming_threshold_bytes:
                body = path.read_bytes()
                return self._finish(_parse(body, source), source, LoadMode.EAGER, len(body))
            text, consumed = await self._accumulate(_iter_file(path), source)
        except OSError as exc:
            raise _CandidateUnavailable(exc.strerror or str(exc)) from exc
        return self._finish(_parse(text, source), source, LoadMode.STREAMING, consumed)

    async def _accumulate(self, chunks: AsyncIterator[bytes], source: str) -> tuple[str, int]:
        decoder = codecs.getincrementaldecoder("utf-8")()
        parts: list[str] = []
        consumed = 0
        since_yield = 0
        try:
            async for chunk in chunks:
                consumed += len(chunk)
                text = decoder.decode(chunk)
                parts.append(text)
                since_yield += len(text)
                if since_yield >= self.settings.streaming_yield_bytes:
                    since_yield = 0
                    await asyncio.sleep(0)
            parts.append(decoder.decode(b"", final=True))
        except UnicodeDecodeError as exc:
            raise ArtifactMalformedError(f"Search data at {source} is not valid UTF-8: {exc}") from exc
        return "".join(parts), consumed

    def _finish(self, payload: Any, source: str, mode: LoadMode, size: int) -> LoadedArtifact:
        entries = extract_document_array(payload)
        return LoadedArtifact(entries=entries, source=source, mode=mode, size_bytes=size)

    def _resolve_file(self, candidate: str) -> Path:
        base = self.site_dir or Path.cwd()
        return base / candidate.lstrip("/")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            timeout = httpx.Timeout(self.settings.http_timeout, connect=min(10.0, self.settings.http_timeout))
            self._client = httpx.AsyncClient(base_url=self.base_url or "", timeout=timeout, follow_redirects=True)
        return self._client


class _CandidateUnavailable(Exception):
    """A single candidate location did not answer; the next one is tried."""


def _content_length(response: httpx.Response) -> int | None:
    raw = response.headers.get("content-length")
    if raw is None or "content-encoding" in response.headers:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


async def _iter_file(path: Path) -> AsyncIterator[bytes]:
    with path.open("rb") as handle:
        while chunk := handle.read(FILE_READ_CHUNK_BYTES):
            yield chunk


def _parse(data: bytes | str, source: str) -> Any:
    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as exc:
        raise ArtifactMalformedError(f"Search data at {source} is not valid JSON: {exc}") from exc
