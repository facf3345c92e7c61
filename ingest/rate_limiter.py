"""
Per-provider call budget.

At most ``max_calls`` executions start inside any rolling ``window`` seconds.
Excess work is queued (never rejected) and drained FIFO, one task in flight
at a time. A task's exception goes back to its own caller only.
"""
import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

from common.logger import get_logger
from common.models import RateLimiterStatus

logger = get_logger("rate_limiter")

Task = Callable[[], Awaitable[Any]]


class RateLimiter:
    def __init__(
        self,
        provider: str,
        max_calls: int,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_calls < 1:
            raise ValueError("max_calls must be >= 1")
        self.provider = provider
        self.max_calls = max_calls
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._calls: Deque[float] = deque()
        self._queue: Deque[Tuple[Task, asyncio.Future]] = deque()
        self._worker: Optional[asyncio.Task] = None

    async def execute(self, fn: Task) -> Any:
        """Queue ``fn`` and return its result once it has run."""
        future = asyncio.get_running_loop().create_future()
        self._queue.append((fn, future))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())
        return await future

    async def _drain(self) -> None:
        while self._queue:
            fn, future = self._queue.popleft()
            if future.cancelled():
                continue
            await self._wait_for_slot()
            self._calls.append(self._clock())
            try:
                result = await fn()
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
                continue
            if not future.done():
                future.set_result(result)

    def _prune(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.window:
            self._calls.popleft()

    async def _wait_for_slot(self) -> None:
        while True:
            now = self._clock()
            self._prune(now)
            if len(self._calls) < self.max_calls:
                return
            wait = self.window - (now - self._calls[0])
            logger.info(f"[{self.provider}] budget of {self.max_calls}/window reached, "
                        f"waiting {wait:.1f}s ({len(self._queue)} queued)")
            await self._sleep(max(wait, 0.0))

    def status(self) -> RateLimiterStatus:
        self._prune(self._clock())
        in_window = len(self._calls)
        return RateLimiterStatus(
            provider=self.provider,
            calls_in_window=in_window,
            max_calls=self.max_calls,
            queue_length=len(self._queue),
            utilization_percent=round(in_window / self.max_calls * 100, 1),
            window_start=self._calls[0] if self._calls else None,
        )
