"""Tests for the bounded relay queues between pipeline stages."""

import asyncio
import time

import pytest

from conftest import aiter_items, collect
from catgate.core.exceptions import MalformedUpstreamEvent, RelayTimeout
from catgate.stream import StreamRelay, relay_pipeline


async def _double(source):
    async for item in source:
        yield item * 2


class TestStreamRelay:
    @pytest.mark.asyncio
    async def test_preserves_order(self):
        items = list(range(50))
        relay = StreamRelay(aiter_items(items), maxsize=3)
        assert await collect(relay.events()) == items

    @pytest.mark.asyncio
    async def test_pipeline_chains_stages(self):
        stream = relay_pipeline(aiter_items([1, 2, 3]), _double, _double, maxsize=2)
        assert await collect(stream) == [4, 8, 12]

    @pytest.mark.asyncio
    async def test_producer_error_reaches_consumer_after_items(self):
        async def failing():
            yield 1
            yield 2
            raise MalformedUpstreamEvent("bad event", raw="x")

        relay = StreamRelay(failing())
        received = []
        with pytest.raises(MalformedUpstreamEvent):
            async for item in relay.events():
                received.append(item)
        assert received == [1, 2]

    @pytest.mark.asyncio
    async def test_backpressure_times_out(self):
        """A consumer that never drains aborts the producer within the timeout."""
        async def endless():
            i = 0
            while True:
                yield i
                i += 1

        relay = StreamRelay(endless(), maxsize=2, put_timeout=0.1)
        start = time.monotonic()
        with pytest.raises(RelayTimeout) as excinfo:
            await asyncio.wait_for(relay.join(), timeout=2)
        elapsed = time.monotonic() - start

        assert elapsed < 0.1 + 0.5
        assert excinfo.value.timeout == 0.1

    @pytest.mark.asyncio
    async def test_timeout_is_reported_to_late_consumer(self):
        relay = StreamRelay(aiter_items(range(10)), maxsize=1, put_timeout=0.05)
        relay.start()
        await asyncio.sleep(0.2)

        received = []
        with pytest.raises(RelayTimeout):
            async for item in relay.events():
                received.append(item)
        assert received == [0]

    @pytest.mark.asyncio
    async def test_closing_consumer_cancels_and_closes_source(self):
        closed = asyncio.Event()

        async def source():
            try:
                i = 0
                while True:
                    yield i
                    i += 1
                    await asyncio.sleep(0)
            finally:
                closed.set()

        stream = relay_pipeline(source(), _double, maxsize=2)
        assert await stream.__anext__() == 0
        await stream.aclose()

        await asyncio.wait_for(closed.wait(), timeout=1)
