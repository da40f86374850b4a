"""Anthropic Messages API support.

Parses Anthropic-format requests into turns and renders generic stream
events back as Anthropic Messages responses (streaming and non-streaming).
"""

from .stream_adapter import GenericToMessagesStreamAdapter
from .translator import build_message_response, messages_request_to_turns

__all__ = [
    "GenericToMessagesStreamAdapter",
    "build_message_response",
    "messages_request_to_turns",
]
