"""Tests for per-request orchestration in the Gateway."""

import asyncio

import pytest

from conftest import assistant, system, user
from catgate.core import Gateway
from catgate.core.exceptions import UpstreamError
from catgate.messages import GenericToMessagesStreamAdapter
from catgate.testing import build_gateway_config


class TestFromConfig:
    def test_reads_relay_and_retention_settings(self):
        config = build_gateway_config()
        config["proxy_settings"]["relay"] = {"queue_size": 3, "put_timeout": 1.5}
        config["proxy_settings"]["conversations"] = {
            "retention_hours": 2,
            "sweep_interval_seconds": 30,
        }
        gateway = Gateway.from_config(config)
        assert gateway.queue_size == 3
        assert gateway.put_timeout == 1.5
        assert gateway.resolver.max_age == 7200
        assert gateway.resolver.sweep_interval == 30

    def test_defaults_without_proxy_settings(self):
        config = build_gateway_config()
        del config["proxy_settings"]
        gateway = Gateway.from_config(config)
        assert gateway.queue_size == 10
        assert gateway.put_timeout == 5.0
        assert gateway.resolver.max_age == 24 * 3600


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop_eviction_task(self, harness):
        gateway = harness.gateway
        gateway.start()
        task = gateway._eviction_task
        assert task is not None and not task.done()

        await gateway.stop()
        assert task.cancelled()
        assert gateway._eviction_task is None

    @pytest.mark.asyncio
    async def test_stop_without_start(self, harness):
        await harness.gateway.stop()


class TestExchanges:
    @pytest.mark.asyncio
    async def test_new_session_registers_history(self, harness):
        harness.backend.enqueue_text("ok")
        exchange = await harness.gateway.open_exchange([system("s"), user("hi")], "t1")
        try:
            assert exchange.new_session
            assert exchange.session_id == "conv-1"
            entry = await harness.gateway.resolver.get_entry("conv-1")
            assert entry.turns == (system("s"), user("hi"))
        finally:
            await exchange.aclose()

    @pytest.mark.asyncio
    async def test_collect_records_reply(self, harness):
        harness.backend.enqueue_text("Hel", "lo")
        gateway = harness.gateway
        exchange = await gateway.open_exchange([user("hi")], "t2")

        aggregate = await gateway.collect_exchange(exchange)

        assert aggregate.content == "Hello"
        assert exchange.stream.closed
        entry = await gateway.resolver.get_entry("conv-1")
        assert entry.turns == (user("hi"), assistant("Hello"))
        assert entry.last_assistant_echo == (assistant("Hello"),)

    @pytest.mark.asyncio
    async def test_failed_session_registers_nothing(self, harness):
        harness.backend.fail_sessions()
        with pytest.raises(UpstreamError):
            await harness.gateway.open_exchange([user("hi")], "t3")
        assert (await harness.gateway.resolver.stats())["total_conversations"] == 0

    @pytest.mark.asyncio
    async def test_closing_stream_early_records_nothing(self, harness):
        """A client that goes away mid-stream leaves only the request history."""
        harness.backend.enqueue_text("a", "b", "c", "d")
        gateway = harness.gateway
        exchange = await gateway.open_exchange([user("hi")], "t4")
        adapter = GenericToMessagesStreamAdapter("msg_test", "longcat")

        frames = gateway.stream_exchange(exchange, adapter)
        first = await frames.__anext__()
        assert b"message_start" in first
        await frames.aclose()
        await asyncio.sleep(0)

        assert exchange.stream.closed
        entry = await gateway.resolver.get_entry("conv-1")
        assert entry.turns == (user("hi"),)
        assert entry.last_assistant_echo == ()

    @pytest.mark.asyncio
    async def test_failed_chat_request_registers_nothing(self, harness):
        harness.backend.enqueue_error(500, "boom")
        with pytest.raises(UpstreamError):
            await harness.gateway.open_exchange([system("s"), user("hi")], "t5")
        assert harness.backend.sessions == ["conv-1"]
        assert await harness.gateway.resolver.get_entry("conv-1") is None

    @pytest.mark.asyncio
    async def test_failed_follow_up_keeps_stored_turns(self, harness):
        harness.backend.enqueue_text("Hello")
        harness.backend.enqueue_error(503, "busy")
        gateway = harness.gateway
        await gateway.collect_exchange(await gateway.open_exchange([user("hi")], "t6"))

        with pytest.raises(UpstreamError):
            await gateway.open_exchange([user("hi"), assistant("Hello"), user("next")], "t7")

        entry = await gateway.resolver.get_entry("conv-1")
        assert entry.turns == (user("hi"), assistant("Hello"))
