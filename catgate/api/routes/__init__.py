"""API routes for the gateway."""

from .admin import conversation_stats
from .chat import chat_completions
from .messages import messages_endpoint
from .models import list_models

__all__ = [
    "chat_completions",
    "conversation_stats",
    "list_models",
    "messages_endpoint",
]
