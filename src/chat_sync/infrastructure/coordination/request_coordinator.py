"""Per-key request de-duplication with a priority queue over distinct keys."""
from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, TypeVar

from chat_sync.application.exceptions import RequestCancelledError
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.domain.value_objects.enums import RequestPriority

logger = logging.getLogger(__name__)

T = TypeVar("T")

RequestFactory = Callable[[], Awaitable[T]]


@dataclass(slots=True)
class PendingRequest:
    key: str
    future: asyncio.Future[Any]
    priority: RequestPriority
    created_at: datetime
    factory: RequestFactory[Any]
    started: bool = False
    task: asyncio.Task[None] | None = field(default=None, repr=False)


class RequestCoordinator:
    """At most one in-flight request per key.

    Identical keys always share the pending request. Distinct keys run
    concurrently up to ``max_concurrency``; beyond that they wait in a queue
    ordered by priority, then by arrival. The coordinator never retries.
    """

    def __init__(self, *, max_concurrency: int = 4, clock: Clock | None = None) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._max_concurrency = max_concurrency
        self._clock = clock or SystemClock()
        self._pending: dict[str, PendingRequest] = {}
        self._queue: list[tuple[int, int, str]] = []
        self._seq = itertools.count()
        self._running = 0

    @property
    def in_flight(self) -> int:
        return self._running

    @property
    def queued(self) -> int:
        return len(self._queue)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def pending(self, key: str) -> PendingRequest | None:
        return self._pending.get(key)

    def schedule_request(
        self,
        key: str,
        factory: RequestFactory[T],
        priority: RequestPriority = RequestPriority.MEDIUM,
    ) -> Awaitable[T]:
        """Run ``factory`` for ``key`` unless a request for it is already pending.

        The returned awaitable shields the shared request, so a cancelled
        caller does not cancel it for the others.
        """
        request = self._pending.get(key)
        if request is None:
            loop = asyncio.get_running_loop()
            request = PendingRequest(
                key=key,
                future=loop.create_future(),
                priority=priority,
                created_at=self._clock.now(),
                factory=factory,
            )
            self._pending[key] = request
            heapq.heappush(self._queue, (int(priority), next(self._seq), key))
            self._pump()
        else:
            logger.debug("Joining pending request %s", key)
        return asyncio.shield(request.future)

    def cancel_queued(self) -> int:
        """Reject requests that have not started yet. Started ones finish."""
        cancelled = 0
        while self._queue:
            _, _, key = heapq.heappop(self._queue)
            request = self._pending.get(key)
            if request is None or request.started:
                continue
            del self._pending[key]
            if not request.future.done():
                request.future.set_exception(RequestCancelledError(key))
                # Mark retrieved so an unawaited cancellation is not reported.
                request.future.exception()
            cancelled += 1
        if cancelled:
            logger.info("Cancelled %d queued requests", cancelled)
        return cancelled

    def _pump(self) -> None:
        while self._queue and self._running < self._max_concurrency:
            _, _, key = heapq.heappop(self._queue)
            request = self._pending.get(key)
            if request is None or request.started:
                continue
            request.started = True
            self._running += 1
            request.task = asyncio.create_task(
                self._execute(request), name=f"coordinated-request-{key}",
            )

    async def _execute(self, request: PendingRequest) -> None:
        try:
            result = await request.factory()
        except Exception as exc:
            self._settle(request)
            if not request.future.done():
                request.future.set_exception(exc)
        except asyncio.CancelledError:
            self._settle(request)
            if not request.future.done():
                request.future.cancel()
            raise
        else:
            self._settle(request)
            if not request.future.done():
                request.future.set_result(result)

    def _settle(self, request: PendingRequest) -> None:
        # Free the key before awaiters resume so they can schedule it again.
        if self._pending.get(request.key) is request:
            del self._pending[request.key]
        self._running -= 1
        self._pump()
