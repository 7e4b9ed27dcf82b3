"""Per-query choice between inline, worker and fallback execution."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
import logging

from docs_search.domain.search import ExecutionStrategy
from docs_search.observability.metrics import WORKER_FAILURES
from docs_search.search.worker import SearchWorker


logger = logging.getLogger(__name__)

DEFAULT_WORKER_THRESHOLD = 1000

WorkerFactory = Callable[[], SearchWorker]


class WorkerState(str, Enum):
    """Lifecycle of the optional background worker.

    ``DISABLED`` is terminal: after the first failure the worker is never
    tried again for the lifetime of the selector.
    """

    UNATTEMPTED = "unattempted"
    ACTIVE = "active"
    DISABLED = "disabled"


class ExecutionStrategySelector:
    """Decides, for every query, where it runs.

    - ``FALLBACK`` while no token map is available.
    - ``WORKER`` for corpora larger than ``worker_threshold`` documents when a
      worker can be (or already has been) started.
    - ``INLINE`` otherwise.
    """

    def __init__(
        self,
        *,
        worker_threshold: int = DEFAULT_WORKER_THRESHOLD,
        worker_factory: WorkerFactory | None = None,
    ) -> None:
        self.worker_threshold = worker_threshold
        self.worker_factory = worker_factory
        self.worker: SearchWorker | None = None
        self.worker_state = WorkerState.UNATTEMPTED if worker_factory is not None else WorkerState.DISABLED

    @property
    def worker_available(self) -> bool:
        return self.worker_state is not WorkerState.DISABLED

    def select(self, document_count: int, *, token_map_ready: bool) -> ExecutionStrategy:
        if not token_map_ready:
            return ExecutionStrategy.FALLBACK
        if document_count > self.worker_threshold and self.worker_available:
            return ExecutionStrategy.WORKER
        return ExecutionStrategy.INLINE

    def acquire_worker(self) -> SearchWorker | None:
        """Return a running worker, starting it on first use."""
        if self.worker_state is WorkerState.ACTIVE and self.worker is not None:
            return self.worker
        if self.worker_state is WorkerState.DISABLED or self.worker_factory is None:
            return None

        try:
            self.worker = self.worker_factory().start()
        except (RuntimeError, OSError) as exc:
            logger.warning("Search worker could not be started, running searches inline: %s", exc)
            self.disable("startup")
            return None

        self.worker_state = WorkerState.ACTIVE
        return self.worker

    def disable(self, reason: str) -> None:
        """Permanently stop using the worker."""
        if self.worker_state is not WorkerState.DISABLED:
            logger.warning("Disabling search worker (%s); later queries run inline", reason)
            WORKER_FAILURES.labels(reason=reason).inc()
        self.worker_state = WorkerState.DISABLED
        self._stop_worker()

    def close(self) -> None:
        self._stop_worker()

    def _stop_worker(self) -> None:
        worker, self.worker = self.worker, None
        if worker is not None:
            worker.stop(timeout=None)
