"""Conversation identity: turns, fingerprints and the session resolver."""

from .fingerprint import Role, Turn, digest_turn, fingerprint, resolve_content
from .resolver import ConversationEntry, ConversationResolver, LookupResult

__all__ = [
    "ConversationEntry",
    "ConversationResolver",
    "LookupResult",
    "Role",
    "Turn",
    "digest_turn",
    "fingerprint",
    "resolve_content",
]
