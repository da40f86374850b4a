"""OpenAI Chat Completions support."""

from .stream_adapter import GenericToChatStreamAdapter
from .translator import build_chat_completion, chat_request_to_turns

__all__ = [
    "GenericToChatStreamAdapter",
    "build_chat_completion",
    "chat_request_to_turns",
]
