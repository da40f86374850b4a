"""Bounded relay queues connecting the stages of a response pipeline.

Each stage runs as its own task and hands events to the next stage through
an ``asyncio.Queue`` of fixed size. A producer that cannot hand over an
event within ``put_timeout`` aborts the pipeline with ``RelayTimeout``
instead of blocking forever. Closing the consumer side cancels the producer
task, which in turn closes whatever it was reading from.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterable, AsyncIterator, Generic, Optional, TypeVar

from ..core.exceptions import RelayTimeout

logger = logging.getLogger("catgate")

T = TypeVar("T")

DEFAULT_QUEUE_SIZE = 10
DEFAULT_PUT_TIMEOUT = 5.0

_END = object()


class StreamRelay(Generic[T]):
    """Pump ``source`` into a bounded queue from a background task.

    Ordering is preserved: one producer, one queue, one consumer.
    """

    def __init__(
        self,
        source: AsyncIterable[T],
        *,
        maxsize: int = DEFAULT_QUEUE_SIZE,
        put_timeout: float = DEFAULT_PUT_TIMEOUT,
        name: str = "relay",
        upstream: Optional[AsyncIterator[Any]] = None,
    ) -> None:
        self.name = name
        self.put_timeout = put_timeout
        self._source = source
        # Iterator the source stage reads from; closed along with the source
        self._upstream = upstream
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None
        self._finished = False
        self._error: Optional[BaseException] = None

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._pump(), name=f"catgate-{self.name}")

    async def _pump(self) -> None:
        try:
            async for item in self._source:
                try:
                    await asyncio.wait_for(self._queue.put(item), timeout=self.put_timeout)
                except asyncio.TimeoutError:
                    raise RelayTimeout(
                        f"{self.name}: event not drained within {self.put_timeout}s",
                        self.put_timeout,
                    ) from None
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"Relay '{self.name}' aborted: {exc.__class__.__name__}: {exc}")
            self._error = exc
        finally:
            for stream in (self._source, self._upstream):
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
            self._finished = True
            try:
                self._queue.put_nowait(_END)
            except asyncio.QueueFull:
                pass

    async def events(self) -> AsyncIterator[T]:
        """Yield relayed items in order, then re-raise any producer error."""
        self.start()
        try:
            while True:
                if self._finished and self._queue.empty():
                    break
                item = await self._queue.get()
                if item is _END:
                    break
                yield item
            if self._error is not None:
                raise self._error
        finally:
            await self.aclose()

    async def join(self) -> None:
        """Wait for the producer to finish; raises its error if it failed."""
        self.start()
        assert self._task is not None
        await self._task
        if self._error is not None:
            raise self._error

    async def aclose(self) -> None:
        """Cancel the producer if it is still running."""
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            # Only swallow the cancellation we caused
            if current is not None and current.cancelling():
                raise


def relay_pipeline(
    source: AsyncIterable[Any],
    *stages: Any,
    maxsize: int = DEFAULT_QUEUE_SIZE,
    put_timeout: float = DEFAULT_PUT_TIMEOUT,
) -> AsyncIterator[Any]:
    """Chain ``source`` through ``stages`` with a bounded relay between each.

    Each stage is a callable taking an async iterable and returning an async
    iterator (for example ``translator.translate``).
    """
    relay = StreamRelay(source, maxsize=maxsize, put_timeout=put_timeout, name="source")
    current = relay.events()
    for index, stage in enumerate(stages):
        name = getattr(stage, "__qualname__", None) or f"stage-{index}"
        relay = StreamRelay(
            stage(current), maxsize=maxsize, put_timeout=put_timeout, name=name, upstream=current
        )
        current = relay.events()
    return current
