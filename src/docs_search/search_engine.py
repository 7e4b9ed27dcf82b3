"""Search engine facade owning the loaded index snapshot.

The engine is an explicitly constructed value: it owns the artifact loader,
the current :class:`IndexSnapshot` (documents plus token map), the execution
strategy selector and its optional worker. A reload builds a complete new
snapshot and swaps the reference in one assignment, so queries already
running keep scoring against the snapshot they started with.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
import itertools
import logging
from typing import Any

from docs_search.config import Settings
from docs_search.domain.model import Document, parse_documents
from docs_search.domain.search import ExecutionStrategy, SearchMatch, SearchResponse, SearchSession
from docs_search.errors import ArtifactLoadError, WorkerError, WorkerTimeoutError
from docs_search.observability.context import bind_correlation_id
from docs_search.observability.metrics import INDEX_DOC_COUNT, SEARCH_LATENCY, SEARCH_REQUESTS, track_latency
from docs_search.observability.tracing import create_span
from docs_search.search.analyzers import tokenize
from docs_search.search.loader import ArtifactLoader, LoadState
from docs_search.search.query_engine import QueryEngine, fallback_search
from docs_search.search.strategy import ExecutionStrategySelector, WorkerFactory
from docs_search.search.token_map import TokenMap, build_token_map
from docs_search.search.worker import SearchMessageHandler, SearchWorker


logger = logging.getLogger(__name__)

SEARCH_UNAVAILABLE = "search unavailable"


@dataclass(frozen=True)
class IndexSnapshot:
    """Immutable pairing of a document sequence and the token map built from it."""

    documents: tuple[Document, ...]
    token_map: TokenMap
    source: str | None = None

    @property
    def document_count(self) -> int:
        return len(self.documents)


class SearchEngine:
    """Loads the artifact on demand and answers queries against it."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        loader: ArtifactLoader | None = None,
        worker_factory: WorkerFactory | None = None,
        use_worker: bool = True,
    ) -> None:
        self.settings = settings or Settings()
        self.loader = loader or ArtifactLoader(self.settings)
        self.query_engine = QueryEngine(
            self.settings.scoring,
            large_corpus_threshold=self.settings.large_corpus_threshold,
        )
        if worker_factory is None and use_worker:
            worker_factory = self._default_worker
        self.selector = ExecutionStrategySelector(
            worker_threshold=self.settings.worker_threshold,
            worker_factory=worker_factory,
        )
        self._snapshot: IndexSnapshot | None = None
        self._load_lock = asyncio.Lock()
        self._correlation_ids = itertools.count(1)
        self._latest_correlation_id = 0

    @property
    def snapshot(self) -> IndexSnapshot | None:
        return self._snapshot

    @property
    def state(self) -> LoadState:
        if self._snapshot is not None:
            return LoadState.LOADED
        return self.loader.state

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    async def load(self) -> IndexSnapshot:
        """Load the artifact unless a snapshot is already installed.

        Raises:
            ArtifactLoadError: when loading failed; the next call retries.
        """
        async with self._load_lock:
            if self._snapshot is not None:
                return self._snapshot
            return await self._load_locked()

    async def reload(self) -> IndexSnapshot:
        """Load the artifact again and swap it in; the old snapshot stays valid for running queries."""
        async with self._load_lock:
            return await self._load_locked()

    async def install_documents(self, entries: Sequence[Any], *, source: str | None = None) -> IndexSnapshot:
        """Install an already parsed document array as the current snapshot."""
        documents = tuple(parse_documents(list(entries)))
        snapshot = await self._build_snapshot(documents, source)
        self._swap(snapshot)
        return snapshot

    async def search(self, query: str, limit: int | None = None) -> SearchResponse:
        """Run one query session.

        Never raises for load or worker problems: an unavailable artifact
        yields an empty response with ``error`` set, and worker failures fall
        back to in-process scoring.
        """
        session = self._open_session(query)
        limit = self.settings.default_limit if limit is None else limit
        raw_query = session.raw_query
        if not raw_query or limit <= 0:
            return SearchResponse(correlation_id=session.correlation_id, query=raw_query)

        snapshot = self._snapshot
        if snapshot is None:
            try:
                snapshot = await self.load()
            except ArtifactLoadError as exc:
                logger.warning("Search unavailable: %s", exc)
                SEARCH_REQUESTS.labels(strategy=ExecutionStrategy.FALLBACK.value, status="unavailable").inc()
                return SearchResponse(
                    correlation_id=session.correlation_id,
                    query=raw_query,
                    strategy=ExecutionStrategy.FALLBACK,
                    error=SEARCH_UNAVAILABLE,
                )

        strategy = self.selector.select(snapshot.document_count, token_map_ready=not snapshot.token_map.is_empty)
        with create_span(
            "search.query",
            attributes={"query.length": len(raw_query), "documents": snapshot.document_count},
        ) as span:
            results, strategy = await self._execute(strategy, session, limit, snapshot)
            span.set_attribute("strategy", strategy.value)
            span.set_attribute("results", len(results))

        SEARCH_REQUESTS.labels(strategy=strategy.value, status="success").inc()
        logger.debug("Query %r returned %d results via %s", raw_query, len(results), strategy.value)
        return SearchResponse(
            correlation_id=session.correlation_id,
            query=raw_query,
            results=tuple(results),
            strategy=strategy,
        )

    def is_current(self, response: SearchResponse) -> bool:
        """Whether ``response`` belongs to the most recently started session."""
        return response.correlation_id == self._latest_correlation_id

    async def tokenize(self, text: str) -> list[str]:
        """Tokenize on the worker when one is running, otherwise in-process."""
        worker = self.selector.worker
        if worker is not None and worker.is_running:
            try:
                return await worker.tokenize(text, timeout=self.settings.worker_timeout_seconds)
            except (WorkerTimeoutError, WorkerError) as exc:
                logger.warning("Worker tokenize failed: %s", exc)
                self.selector.disable(_failure_reason(exc))
        return sorted(tokenize(text))

    async def aclose(self) -> None:
        self.selector.close()
        await self.loader.aclose()

    async def __aenter__(self) -> SearchEngine:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _open_session(self, query: str) -> SearchSession:
        correlation_id = next(self._correlation_ids)
        self._latest_correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        raw_query = query.strip()
        return SearchSession(correlation_id=correlation_id, raw_query=raw_query, terms=frozenset(tokenize(raw_query)))

    async def _execute(
        self,
        strategy: ExecutionStrategy,
        session: SearchSession,
        limit: int,
        snapshot: IndexSnapshot,
    ) -> tuple[list[SearchMatch], ExecutionStrategy]:
        if strategy is ExecutionStrategy.WORKER:
            worker = self.selector.acquire_worker()
            if worker is None:
                strategy = ExecutionStrategy.INLINE
            else:
                try:
                    # Timeouts land in the worker series as well
                    with track_latency(SEARCH_LATENCY, strategy=ExecutionStrategy.WORKER.value):
                        results = await worker.search(
                            session.raw_query,
                            limit,
                            snapshot.documents,
                            timeout=self.settings.worker_timeout_seconds,
                            message_id=str(session.correlation_id),
                        )
                    return results, ExecutionStrategy.WORKER
                except (WorkerTimeoutError, WorkerError) as exc:
                    logger.warning("Search worker failed, using fallback search: %s", exc)
                    self.selector.disable(_failure_reason(exc))
                    strategy = ExecutionStrategy.FALLBACK

        with track_latency(SEARCH_LATENCY, strategy=strategy.value):
            if strategy is ExecutionStrategy.FALLBACK:
                results = fallback_search(session.raw_query, snapshot.documents, limit, self.settings.scoring)
            else:
                results = self.query_engine.search(session.raw_query, limit, snapshot.documents, snapshot.token_map)
        return results, strategy

    async def _load_locked(self) -> IndexSnapshot:
        artifact = await self.loader.load()
        documents = tuple(parse_documents(list(artifact.entries)))
        snapshot = await self._build_snapshot(documents, artifact.source)
        self._swap(snapshot)
        return snapshot

    async def _build_snapshot(self, documents: tuple[Document, ...], source: str | None) -> IndexSnapshot:
        token_map = await build_token_map(documents, chunk_size=self.settings.token_map_chunk_size)
        return IndexSnapshot(documents=documents, token_map=token_map, source=source)

    def _swap(self, snapshot: IndexSnapshot) -> None:
        self._snapshot = snapshot
        INDEX_DOC_COUNT.set(snapshot.document_count)
        logger.info("Search index ready: %d documents, %d tokens", snapshot.document_count, len(snapshot.token_map))

    def _default_worker(self) -> SearchWorker:
        handler = SearchMessageHandler(
            self.settings.scoring,
            large_corpus_threshold=self.settings.large_corpus_threshold,
        )
        return SearchWorker(handler)


def _failure_reason(exc: Exception) -> str:
    return "timeout" if isinstance(exc, WorkerTimeoutError) else "error"
