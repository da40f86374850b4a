"""Testing utilities for in-process gateway simulations."""

from .assertions import (
    assert_anthropic_message_valid,
    assert_anthropic_sse_valid,
    assert_openai_chat_valid,
    parse_sse_events,
)
from .builders import (
    build_anthropic_request,
    build_gateway_config,
    build_longcat_event,
    build_longcat_stream_events,
    build_openai_request,
    encode_sse,
)
from .fake_longcat import ChatReply, FakeLongCat
from .harness import GatewayHarness

__all__ = [
    # Core simulation classes
    "ChatReply",
    "FakeLongCat",
    "GatewayHarness",
    # Builders
    "build_anthropic_request",
    "build_gateway_config",
    "build_longcat_event",
    "build_longcat_stream_events",
    "build_openai_request",
    "encode_sse",
    # Assertions
    "assert_anthropic_message_valid",
    "assert_anthropic_sse_valid",
    "assert_openai_chat_valid",
    "parse_sse_events",
]
