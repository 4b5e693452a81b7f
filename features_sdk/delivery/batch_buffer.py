"""
Batching buffer with bounded retries for outbound analytics events.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Literal, Optional, Set, TypeVar, TYPE_CHECKING

from shared.errors import InvalidArgument
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

T = TypeVar("T")

FlushHandler = Callable[[List[T]], Awaitable[None]]
FailurePolicy = Literal["retry", "discard"]


@dataclass
class RetryItem(Generic[T]):
    item: T
    tries_left: int


class BatchBuffer(Generic[T]):
    """Accumulates items and hands them to ``flush_handler`` in batches.

    The primary buffer is swapped out before the handler runs, so items
    added during an in-flight flush land in a fresh batch. Handler calls
    from one instance are serialized.
    """

    def __init__(
        self,
        flush_handler: FlushHandler,
        *,
        max_size: int = 100,
        interval_ms: float = 10_000,
        retry_interval_ms: float = 60_000,
        max_retries: int = 3,
        failure_policy: FailurePolicy = "retry",
        metrics: Optional["MetricsCollector"] = None,
    ):
        if not callable(flush_handler):
            raise InvalidArgument("flush_handler must be callable")
        if max_size <= 0:
            raise InvalidArgument("max_size must be greater than 0")
        if interval_ms <= 0:
            raise InvalidArgument("interval_ms must be greater than 0")
        if retry_interval_ms <= 0:
            raise InvalidArgument("retry_interval_ms must be greater than 0")
        if max_retries <= 0:
            raise InvalidArgument("max_retries must be greater than 0")
        if failure_policy not in ("retry", "discard"):
            raise InvalidArgument(f"unknown failure_policy: {failure_policy}")

        self.flush_handler = flush_handler
        self.max_size = max_size
        self.interval_ms = interval_ms
        self.retry_interval_ms = retry_interval_ms
        self.max_retries = max_retries
        self.failure_policy = failure_policy
        self.metrics = metrics
        self.logger = get_logger("features_sdk.batch_buffer")

        self._buffer: List[T] = []
        self._retry_buffer: List[RetryItem[T]] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._retry_timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._handler_lock = asyncio.Lock()
        self._closed = False

    @property
    def pending(self) -> List[T]:
        return list(self._buffer)

    @property
    def retry_pending(self) -> List[RetryItem[T]]:
        return list(self._retry_buffer)

    async def add(self, item: T) -> None:
        """Buffer ``item``; flushes immediately once ``max_size`` is reached."""
        if self._closed:
            self.logger.debug("Buffer closed, dropping item")
            return

        self._buffer.append(item)

        if len(self._buffer) >= self.max_size:
            await self._flush_buffer()
        elif self._timer is None:
            self._timer = self._schedule(self.interval_ms, self._flush_buffer)

    async def flush(self) -> None:
        """Flush the primary buffer, then the retry buffer."""
        await self._flush_buffer()
        await self._flush_retry_buffer()

    async def close(self) -> None:
        """Final flush, then cancel every timer and timer-spawned task. Idempotent."""
        if self._closed:
            return
        await self.flush()
        self._closed = True
        self._cancel_timer()
        self._cancel_retry_timer()
        for task in list(self._tasks):
            if task is not asyncio.current_task():
                task.cancel()
        self._tasks.clear()
        self.logger.debug("Batch buffer closed", dropped=len(self._retry_buffer))

    def _schedule(self, delay_ms: float, flush: Callable[[], Awaitable[None]]) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000, self._spawn, flush)

    def _spawn(self, flush: Callable[[], Awaitable[None]]) -> None:
        task = asyncio.ensure_future(flush())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _cancel_retry_timer(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    async def _call_handler(self, items: List[T]) -> None:
        async with self._handler_lock:
            await self.flush_handler(items)

    async def _flush_buffer(self) -> None:
        self._cancel_timer()

        if not self._buffer:
            self.logger.debug("Buffer is empty, nothing to flush")
            return

        batch, self._buffer = self._buffer, []

        try:
            await self._call_handler(batch)
            self.logger.info("Flushed buffered items", count=len(batch))
            self._record_flush("primary", "success")
        except Exception as exc:
            self._record_flush("primary", "failure")

            if self.failure_policy == "discard":
                self.logger.error("Flush of buffered items failed, discarding", count=len(batch), error=str(exc))
                self._record_dropped("discarded", len(batch))
                return

            self.logger.error(
                "Flush of buffered items failed, placing into retry buffer",
                count=len(batch),
                error=str(exc)
            )
            self._retry_buffer.extend(RetryItem(item, self.max_retries) for item in batch)
            if self._retry_timer is None and not self._closed:
                self._retry_timer = self._schedule(self.retry_interval_ms, self._flush_retry_buffer)

    async def _flush_retry_buffer(self) -> None:
        self._cancel_retry_timer()

        if not self._retry_buffer:
            self.logger.debug("Retry buffer is empty, nothing to flush")
            return

        entries, self._retry_buffer = self._retry_buffer, []

        try:
            await self._call_handler([entry.item for entry in entries])
            self.logger.info("Flushed previously failed items", count=len(entries))
            self._record_flush("retry", "success")
            return
        except Exception as exc:
            self._record_flush("retry", "failure")
            self.logger.error("Flushing of previously failed items failed", count=len(entries), error=str(exc))

        survivors = [
            RetryItem(entry.item, entry.tries_left - 1)
            for entry in entries
            if entry.tries_left - 1 > 0
        ]
        self._record_dropped("retries_exhausted", len(entries) - len(survivors))
        self._retry_buffer = survivors + self._retry_buffer

        if self._retry_buffer and self._retry_timer is None and not self._closed:
            self.logger.info("Items remain in the retry buffer, will retry later", count=len(self._retry_buffer))
            self._retry_timer = self._schedule(self.retry_interval_ms, self._flush_retry_buffer)

    def _record_flush(self, queue: str, outcome: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("batch_flush_total", queue=queue, outcome=outcome)

    def _record_dropped(self, reason: str, count: int) -> None:
        if self.metrics and count:
            self.metrics.increment_counter("batch_dropped_items_total", amount=count, reason=reason)
