"""API module for the gateway."""

from .routes import chat_completions, conversation_stats, list_models, messages_endpoint

__all__ = [
    "chat_completions",
    "conversation_stats",
    "list_models",
    "messages_endpoint",
]
