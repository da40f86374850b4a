"""Per-request orchestration between the resolver, the backend and the stream pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Mapping, Optional, Sequence

import httpx

from ..conversation import ConversationResolver, Role, Turn
from ..stream import (
    CumulativeStreamTranslator,
    GenericStreamEvent,
    StreamAggregate,
    aggregate_events,
    relay_pipeline,
)
from ..stream.relay import DEFAULT_PUT_TIMEOUT, DEFAULT_QUEUE_SIZE
from ..usage_metrics import UsageCounters
from .backend import LongCatBackend, build_chat_body
from .client import BackendStream, LongCatClient

logger = logging.getLogger("catgate")


@dataclass
class ChatExchange:
    """One backend round trip: the session used and the open response stream."""

    request_id: str
    session_id: str
    turns: list[Turn]
    new_session: bool
    stream: BackendStream
    translator: Optional[CumulativeStreamTranslator] = field(default=None, repr=False)

    async def aclose(self) -> None:
        await self.stream.aclose()


class Gateway:
    """Composes the resolver, backend client and stream translator per request.

    Holds the only state shared across requests: the conversation resolver
    and the request counters.
    """

    def __init__(
        self,
        backend: LongCatBackend,
        resolver: ConversationResolver,
        client: LongCatClient,
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        put_timeout: float = DEFAULT_PUT_TIMEOUT,
    ) -> None:
        self.backend = backend
        self.resolver = resolver
        self.client = client
        self.queue_size = queue_size
        self.put_timeout = put_timeout
        self.counters = UsageCounters()
        self.started_at = int(time.time())
        self._eviction_task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> "Gateway":
        backend = LongCatBackend.from_config(config)
        proxy_settings = config.get("proxy_settings") or {}
        relay_cfg = proxy_settings.get("relay") or {}
        conv_cfg = proxy_settings.get("conversations") or {}

        resolver = ConversationResolver(
            max_age=float(conv_cfg.get("retention_hours", 24)) * 3600,
            sweep_interval=float(conv_cfg.get("sweep_interval_seconds", 3600)),
            clock=clock,
        )
        return cls(
            backend,
            resolver,
            LongCatClient(backend, transport=transport),
            queue_size=int(relay_cfg.get("queue_size", DEFAULT_QUEUE_SIZE)),
            put_timeout=float(relay_cfg.get("put_timeout", DEFAULT_PUT_TIMEOUT)),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background eviction sweep."""
        if self._eviction_task is None or self._eviction_task.done():
            self._eviction_task = asyncio.create_task(
                self.resolver.run_eviction_loop(), name="catgate-eviction"
            )

    async def stop(self) -> None:
        task, self._eviction_task = self._eviction_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ------------------------------------------------------------------
    # Request flow
    # ------------------------------------------------------------------

    async def open_exchange(self, turns: Sequence[Turn], request_id: str = "-") -> ChatExchange:
        """Pick (or create) the backend session for ``turns`` and send the chat request.

        Raises:
            UpstreamError: If session creation or the chat request fails.
        """
        turns = list(turns)
        session_id, found = await self.resolver.lookup(turns)
        if found:
            logger.info(f"[{request_id}] Continuing backend session {session_id}")
            new_session = False
        else:
            session_id = await self.client.create_session()
            logger.info(f"[{request_id}] Started backend session {session_id}")
            new_session = True

        body = build_chat_body(turns, session_id, new_session=new_session)
        stream = await self.client.open_chat_stream(body)

        # The table only learns about turns the backend has accepted
        if new_session:
            await self.resolver.register(turns, session_id)
        else:
            await self.resolver.extend(session_id, turns)
        return ChatExchange(
            request_id=request_id,
            session_id=session_id,
            turns=turns,
            new_session=new_session,
            stream=stream,
        )

    def events(self, exchange: ChatExchange, *, stream: bool = True) -> AsyncIterator[GenericStreamEvent]:
        """Run the exchange's backend bytes through the translator.

        Backend reading and translation each run in their own task, joined by
        bounded relay queues.
        """
        translator = CumulativeStreamTranslator(stream=stream)
        exchange.translator = translator
        return relay_pipeline(
            exchange.stream.aiter_bytes(),
            translator.translate,
            maxsize=self.queue_size,
            put_timeout=self.put_timeout,
        )

    async def stream_exchange(self, exchange: ChatExchange, adapter: Any) -> AsyncIterator[bytes]:
        """Yield the adapter's frames and record the reply once the stream completes.

        Closing this generator early (client disconnect) cancels the relay
        tasks and closes the backend stream; nothing is recorded then.
        """
        events = self.events(exchange)
        frames = adapter.adapt_stream(events)
        try:
            async for frame in frames:
                yield frame
            if adapter.error is None:
                await self.complete_exchange(exchange, adapter.text)
        finally:
            await frames.aclose()
            await events.aclose()
            await exchange.aclose()

    async def collect_exchange(self, exchange: ChatExchange) -> StreamAggregate:
        """Aggregate a whole reply for a non-streaming response.

        Raises:
            ProxyError: If the pipeline fails; nothing is recorded then.
        """
        events = self.events(exchange, stream=False)
        try:
            aggregate = await aggregate_events(events)
        finally:
            await events.aclose()
            await exchange.aclose()
        await self.complete_exchange(exchange, aggregate.content)
        return aggregate

    async def complete_exchange(self, exchange: ChatExchange, reply_text: str) -> None:
        """Record the delivered reply so the next request finds this session."""
        reply = [Turn(Role.ASSISTANT, reply_text)]
        await self.resolver.extend(exchange.session_id, reply)
        await self.resolver.record_assistant_echo(exchange.session_id, reply)
        logger.debug(
            f"[{exchange.request_id}] Recorded {len(reply_text)} chars for session "
            f"{exchange.session_id}"
        )

    async def stats(self) -> dict[str, Any]:
        return {
            "conversations": await self.resolver.stats(),
            "requests": self.counters.snapshot(),
        }
