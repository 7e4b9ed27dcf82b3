"""Background search worker speaking a small message protocol.

Requests and replies are plain messages correlated by ``messageId``::

    {"messageId": "7", "type": "search", "data": {"query": ..., "limit": ..., "documents": [...]}}
    {"messageId": "7", "type": "results", "data": [...]}

The worker runs on one daemon thread and handles one request at a time.
Replies are delivered back onto the requesting event loop; a reply whose
``messageId`` no longer has a waiting caller (timed out or superseded) is
discarded.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
import itertools
import logging
import queue
import threading
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from docs_search.config import ScoringWeights
from docs_search.domain.model import Document, coerce_document
from docs_search.domain.search import SearchMatch
from docs_search.errors import InvalidDocumentError, WorkerError, WorkerTimeoutError
from docs_search.search.analyzers import tokenize
from docs_search.search.query_engine import QueryEngine


logger = logging.getLogger(__name__)


class WorkerRequest(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message_id: str = Field(alias="messageId")
    type: Literal["search", "tokenize"]
    data: dict[str, Any] = Field(default_factory=dict)


class WorkerResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message_id: str = Field(alias="messageId")
    type: Literal["results", "tokens", "error"]
    data: Any = None
    error: str | None = None


MessageHandler = Callable[[WorkerRequest], WorkerResponse]


class SearchMessageHandler:
    """Answers protocol messages with a private :class:`QueryEngine`."""

    def __init__(self, weights: ScoringWeights | None = None, *, large_corpus_threshold: int = 10000) -> None:
        self.engine = QueryEngine(weights, large_corpus_threshold=large_corpus_threshold)

    def __call__(self, request: WorkerRequest) -> WorkerResponse:
        try:
            if request.type == "search":
                return self._search(request)
            return self._tokenize(request)
        except Exception as exc:
            logger.error("Worker failed to handle %s request %s", request.type, request.message_id, exc_info=True)
            return WorkerResponse(message_id=request.message_id, type="error", error=str(exc))

    def _search(self, request: WorkerRequest) -> WorkerResponse:
        data = request.data
        documents = _coerce_documents(data.get("documents") or ())
        matches = self.engine.search(str(data.get("query", "")), int(data.get("limit", 10)), documents)
        return WorkerResponse(
            message_id=request.message_id,
            type="results",
            data=[match.model_dump(mode="json") for match in matches],
        )

    def _tokenize(self, request: WorkerRequest) -> WorkerResponse:
        tokens = sorted(tokenize(str(request.data.get("text", ""))))
        return WorkerResponse(message_id=request.message_id, type="tokens", data=tokens)


class SearchWorker:
    """One background thread executing protocol requests off the event loop."""

    def __init__(self, handler: MessageHandler | None = None, *, name: str = "docs-search-worker") -> None:
        self.handler = handler or SearchMessageHandler()
        self.name = name
        self._inbox: queue.SimpleQueue[tuple[WorkerRequest, asyncio.AbstractEventLoop] | None] = queue.SimpleQueue()
        self._pending: dict[str, asyncio.Future[WorkerResponse]] = {}
        self._thread: threading.Thread | None = None
        self._ids = itertools.count(1)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> SearchWorker:
        if self.is_running:
            return self
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Search worker %s started", self.name)
        return self

    def stop(self, timeout: float | None = 1.0) -> None:
        """Ask the thread to exit after its current request.

        With ``timeout=None`` the thread is only signalled, never joined, so the
        call is safe from a running event loop.
        """
        if self._thread is None:
            return
        self._inbox.put(None)
        if timeout is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Search worker %s still busy after %.1fs; abandoning it", self.name, timeout)
        self._thread = None
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()

    def next_message_id(self) -> str:
        return str(next(self._ids))

    async def request(self, message: WorkerRequest, *, timeout: float) -> WorkerResponse:
        """Send ``message`` and wait for the reply carrying the same ``messageId``.

        Raises:
            WorkerTimeoutError: no reply within ``timeout`` seconds.
            WorkerError: the worker is not running or replied with an error.
        """
        if not self.is_running:
            raise WorkerError(f"Search worker {self.name} is not running")

        loop = asyncio.get_running_loop()
        future: asyncio.Future[WorkerResponse] = loop.create_future()
        self._pending[message.message_id] = future
        self._inbox.put((message, loop))
        try:
            response = await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError as exc:
            raise WorkerTimeoutError(f"Search worker timeout after {timeout:g}s ({message.message_id})") from exc
        finally:
            self._pending.pop(message.message_id, None)

        if response.type == "error":
            raise WorkerError(response.error or "Search worker reported an error")
        return response

    async def search(
        self,
        query: str,
        limit: int,
        documents: Sequence[Document],
        *,
        timeout: float,
        message_id: str | None = None,
    ) -> list[SearchMatch]:
        message = WorkerRequest(
            message_id=message_id or self.next_message_id(),
            type="search",
            data={"query": query, "limit": limit, "documents": documents},
        )
        response = await self.request(message, timeout=timeout)
        if response.type != "results":
            raise WorkerError(f"Unexpected worker reply type {response.type!r} to a search request")
        return [SearchMatch.model_validate(item) for item in response.data or ()]

    async def tokenize(self, text: str, *, timeout: float) -> list[str]:
        message = WorkerRequest(message_id=self.next_message_id(), type="tokenize", data={"text": text})
        response = await self.request(message, timeout=timeout)
        return list(response.data or ())

    def _run(self) -> None:
        while True:
            item = self._inbox.get()
            if item is None:
                break
            message, loop = item
            try:
                response = self.handler(message)
            except Exception as exc:
                logger.error("Search worker handler crashed on %s", message.message_id, exc_info=True)
                response = WorkerResponse(message_id=message.message_id, type="error", error=str(exc))
            try:
                loop.call_soon_threadsafe(self._deliver, response)
            except RuntimeError:
                # Requesting loop already closed
                logger.debug("Dropping worker reply %s for a closed event loop", message.message_id)
        logger.debug("Search worker %s stopped", self.name)

    def _deliver(self, response: WorkerResponse) -> None:
        future = self._pending.get(response.message_id)
        if future is None or future.done():
            logger.debug("Discarding stale worker reply %s", response.message_id)
            return
        future.set_result(response)


def _coerce_documents(entries: Sequence[Any]) -> list[Document]:
    documents: list[Document] = []
    for index, entry in enumerate(entries):
        try:
            documents.append(coerce_document(entry, index))
        except InvalidDocumentError as exc:
            logger.warning("Worker skipping document: %s", exc)
    return documents
