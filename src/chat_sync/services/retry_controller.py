"""Bounded exponential backoff for initial loads, with a manual retry."""
from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import Awaitable, Callable, Generic, TypeVar

from chat_sync.application.exceptions import (
    ModerationError,
    RequestCancelledError,
    RetryExhaustedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class RetryState(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    WAITING = "waiting"
    FAILED = "failed"
    SUCCEEDED = "succeeded"


def is_retryable(exc: BaseException) -> bool:
    return not isinstance(exc, (ValidationError, ModerationError, RequestCancelledError))


def backoff_delay(base: float, attempt: int) -> float:
    """Delay after failed attempt number ``attempt`` (1-based)."""
    return base * (2 ** (attempt - 1))


class RetryController(Generic[T]):
    """Runs ``operation`` up to ``max_attempts`` times.

    After failed attempt ``n`` the next one is scheduled ``base * 2**(n-1)``
    seconds later. Once attempts are exhausted ``RetryExhaustedError`` is
    raised; its ``retry`` (or :meth:`retry`) starts a fresh cycle.

    A manual retry never overlaps another load: while an attempt runs it is
    joined, while an automatic retry is scheduled its timer is cancelled and
    the cycle restarts at once with a fresh attempt budget.
    """

    def __init__(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        name: str = "operation",
        base_delay: float = 1.0,
        max_attempts: int = 3,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._operation = operation
        self.name = name
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self._sleep = sleep
        self.state = RetryState.IDLE
        self.attempts = 0
        self.last_error: BaseException | None = None
        self._runner: asyncio.Task[T] | None = None
        self._timer: asyncio.Future[None] | None = None
        self._restart = False

    @property
    def waiting(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    async def run(self) -> T:
        """Start a cycle, or join the one in progress."""
        if not self.running:
            self._start()
        return await self._join()

    async def retry(self) -> T:
        if self.running:
            if self.waiting:
                assert self._timer is not None
                self._restart = True
                self._timer.cancel()
                logger.info("Manual retry of %s: cancelled pending automatic retry", self.name)
            return await self._join()
        self._start()
        return await self._join()

    def cancel(self) -> None:
        """Abandon a scheduled automatic retry. A running attempt is left alone."""
        if self.waiting:
            assert self._timer is not None
            self._restart = False
            self._timer.cancel()
            logger.debug("Cancelled pending automatic retry of %s", self.name)

    async def _join(self) -> T:
        assert self._runner is not None
        return await asyncio.shield(self._runner)

    def _start(self) -> None:
        self.attempts = 0
        self.last_error = None
        self._runner = asyncio.create_task(self._run_cycle(), name=f"retry-{self.name}")
        self._runner.add_done_callback(_consume_outcome)

    async def _run_cycle(self) -> T:
        while True:
            self.attempts += 1
            self.state = RetryState.LOADING
            try:
                result = await self._operation()
            except Exception as exc:
                self.last_error = exc
                if not is_retryable(exc):
                    self.state = RetryState.FAILED
                    raise
                if self.attempts >= self.max_attempts:
                    self.state = RetryState.FAILED
                    logger.error(
                        "%s failed after %d attempts: %s", self.name, self.attempts, exc,
                    )
                    raise RetryExhaustedError(
                        f"{self.name} failed after {self.attempts} attempts",
                        attempts=self.attempts,
                        last_error=exc,
                        retry=self.retry,
                    ) from exc
                delay = backoff_delay(self.base_delay, self.attempts)
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.2fs",
                    self.name, self.attempts, self.max_attempts, exc, delay,
                )
                await self._wait(delay)
            else:
                self.state = RetryState.SUCCEEDED
                return result

    async def _wait(self, delay: float) -> None:
        self.state = RetryState.WAITING
        self._timer = asyncio.ensure_future(self._sleep(delay))
        try:
            await self._timer
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            if not self._restart:
                self.state = RetryState.IDLE
                raise RequestCancelledError(self.name) from None
            self._restart = False
            self.attempts = 0
        finally:
            self._timer = None


def _consume_outcome(task: asyncio.Task[object]) -> None:
    # Nobody may be awaiting a finished cycle; mark its outcome as retrieved.
    if not task.cancelled():
        task.exception()
