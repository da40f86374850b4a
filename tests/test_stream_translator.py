"""Tests for the cumulative -> delta stream translator."""

import json

import pytest

from conftest import aiter_items, collect
from catgate.core.exceptions import MalformedUpstreamEvent
from catgate.stream import (
    ContentDelta,
    CumulativeStreamTranslator,
    Finish,
    RoleAnnounce,
    UsageUpdate,
    coalesce,
)
from catgate.testing import build_longcat_event, build_longcat_stream_events, encode_sse


def _texts(events):
    return [e.text for e in events if isinstance(e, ContentDelta)]


class TestDeltaReconstruction:
    """Tests for turning cumulative text into deltas."""

    @pytest.mark.asyncio
    async def test_cumulative_to_deltas(self):
        """'He', 'Hello', 'Hello!' becomes 'He', 'llo', '!'."""
        translator = CumulativeStreamTranslator()
        body = encode_sse(build_longcat_stream_events(["He", "llo", "!"]))

        events = await collect(translator.translate(aiter_items([body])))

        assert _texts(events) == ["He", "llo", "!"]
        assert "".join(_texts(events)) == "Hello!"
        assert translator.accumulated_text == "Hello!"
        assert isinstance(events[-1], Finish)
        assert events[-1].reason == "stop"

    def test_explicit_delta_used_verbatim(self):
        translator = CumulativeStreamTranslator()
        events = translator.feed_event(
            build_longcat_event("ignored cumulative", delta_content="abc")
        )
        assert _texts(events) == ["abc"]

    def test_repeated_cumulative_text_emits_nothing(self):
        translator = CumulativeStreamTranslator()
        translator.feed_event(build_longcat_event("Hello"))
        assert _texts(translator.feed_event(build_longcat_event("Hello"))) == []

    def test_diverged_text_is_emitted_in_full(self):
        translator = CumulativeStreamTranslator()
        translator.feed_event(build_longcat_event("Hello world"))
        events = translator.feed_event(build_longcat_event("Goodbye"))
        assert _texts(events) == ["Goodbye"]
        # Subsequent growth is measured against the backend's latest text
        assert _texts(translator.feed_event(build_longcat_event("Goodbye!"))) == ["!"]

    def test_empty_content_emits_nothing(self):
        translator = CumulativeStreamTranslator()
        assert _texts(translator.feed_event(build_longcat_event(""))) == []


class TestTermination:
    def test_last_one_sets_stop(self):
        translator = CumulativeStreamTranslator()
        events = translator.feed_event(build_longcat_event("x", last_one=True))
        assert events[-1] == Finish("stop")
        assert translator.completed

    def test_finished_status_sets_stop(self):
        translator = CumulativeStreamTranslator()
        events = translator.feed_event(build_longcat_event("x", status="FINISHED"))
        assert events[-1] == Finish("stop")

    def test_explicit_reason_wins(self):
        translator = CumulativeStreamTranslator()
        events = translator.feed_event(
            build_longcat_event("x", status="FINISHED", last_one=True, finish_reason="length")
        )
        assert events[-1] == Finish("length")

    def test_reason_is_sticky(self):
        translator = CumulativeStreamTranslator()
        translator.feed_event(build_longcat_event("x", finish_reason="content_filter"))
        events = translator.feed_event(build_longcat_event("xy", last_one=True))
        assert events[-1] == Finish("content_filter")

    @pytest.mark.asyncio
    async def test_stops_reading_after_completion(self):
        translator = CumulativeStreamTranslator()
        first = encode_sse([build_longcat_event("done", last_one=True)])
        after = encode_sse([build_longcat_event("done and more")])

        events = await collect(translator.translate(aiter_items([first, after])))

        assert _texts(events) == ["done"]
        assert sum(isinstance(e, Finish) for e in events) == 1

    @pytest.mark.asyncio
    async def test_done_marker_completes(self):
        translator = CumulativeStreamTranslator()
        body = encode_sse([build_longcat_event("hi"), "[DONE]", build_longcat_event("hi there")])

        events = await collect(translator.translate(aiter_items([body])))

        assert _texts(events) == ["hi"]
        assert events[-1] == Finish("stop")

    @pytest.mark.asyncio
    async def test_empty_stream_still_finishes(self):
        translator = CumulativeStreamTranslator()
        events = await collect(translator.translate(aiter_items([])))
        assert events == [Finish("stop")]

    @pytest.mark.asyncio
    async def test_stream_without_completion_flag_finishes_at_eof(self):
        translator = CumulativeStreamTranslator()
        body = encode_sse([build_longcat_event("partial")])
        events = await collect(translator.translate(aiter_items([body])))
        assert _texts(events) == ["partial"]
        assert events[-1] == Finish("stop")


class TestMetadata:
    def test_role_announced_once_while_processing(self):
        translator = CumulativeStreamTranslator()
        first = translator.feed_event(build_longcat_event("a", role="assistant"))
        second = translator.feed_event(build_longcat_event("ab", role="assistant"))
        assert first[0] == RoleAnnounce()
        assert RoleAnnounce() not in second

    def test_usage_is_reported(self):
        translator = CumulativeStreamTranslator()
        usage = {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}
        events = translator.feed_event(build_longcat_event("x", last_one=True, usage=usage))
        assert UsageUpdate(3, 2, 5) in events
        assert translator.usage == UsageUpdate(3, 2, 5)

    def test_usage_without_has_tokens_is_ignored(self):
        translator = CumulativeStreamTranslator()
        event = build_longcat_event("x")
        event["tokenInfo"] = {"promptTokens": 9, "hasTokens": False}
        assert not any(isinstance(e, UsageUpdate) for e in translator.feed_event(event))

    def test_model_is_sticky(self):
        translator = CumulativeStreamTranslator()
        translator.feed_event(build_longcat_event("a", model="LongCat-Flash"))
        translator.feed_event(build_longcat_event("ab", model="other"))
        assert translator.model == "LongCat-Flash"


class TestFraming:
    @pytest.mark.asyncio
    async def test_events_split_across_chunks(self):
        """Multi-byte characters and lines split between chunks are reassembled."""
        translator = CumulativeStreamTranslator()
        body = encode_sse(build_longcat_stream_events(["你", "好"]))
        chunks = [body[i:i + 7] for i in range(0, len(body), 7)]

        events = await collect(translator.translate(aiter_items(chunks)))

        assert "".join(_texts(events)) == "你好"

    @pytest.mark.asyncio
    async def test_malformed_payload_is_fatal(self):
        translator = CumulativeStreamTranslator()
        body = encode_sse([build_longcat_event("ok")]) + b"data: {broken\n\n"

        with pytest.raises(MalformedUpstreamEvent) as excinfo:
            await collect(translator.translate(aiter_items([body])))
        assert excinfo.value.raw == "{broken"

    def test_non_object_payload_is_fatal(self):
        translator = CumulativeStreamTranslator()
        with pytest.raises(MalformedUpstreamEvent):
            translator.feed_bytes(b"data: [1, 2]\n\n")

    def test_non_data_lines_are_ignored(self):
        translator = CumulativeStreamTranslator()
        raw = b": keepalive\nevent: message\ndata: " + json.dumps(build_longcat_event("hi")).encode() + b"\n\n"
        assert _texts(translator.feed_bytes(raw)) == ["hi"]


class TestNonStreaming:
    @pytest.mark.asyncio
    async def test_coalesced_into_single_delta(self):
        translator = CumulativeStreamTranslator(stream=False)
        usage = {"prompt_tokens": 1, "completion_tokens": 3, "total_tokens": 4}
        body = encode_sse(build_longcat_stream_events(["a", "b", "c"], usage=usage))

        events = await collect(translator.translate(aiter_items([body])))

        assert events == [RoleAnnounce(), ContentDelta("abc"), UsageUpdate(1, 3, 4), Finish("stop")]

    def test_coalesce_keeps_last_finish_and_usage(self):
        events = [
            ContentDelta("a"),
            UsageUpdate(1, 1, 2),
            ContentDelta("b"),
            UsageUpdate(1, 2, 3),
            Finish("length"),
        ]
        assert coalesce(events) == [ContentDelta("ab"), UsageUpdate(1, 2, 3), Finish("length")]
