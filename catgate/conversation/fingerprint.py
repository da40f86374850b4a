"""Canonical chat turns and deterministic fingerprints over turn sequences.

A turn is digested as ``sha256(role + ":" + content)``; a sequence is
fingerprinted as ``sha256("-".join(digests))``. Identical role/content in
the same order always produce the same fingerprint, and any change in
role, content, order or count produces a different one.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Sequence


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One role-tagged message in a chat history."""

    role: Role
    content: str

    @classmethod
    def of(cls, role: str, content: Any) -> "Turn":
        """Build a turn from wire values, resolving block content to text.

        Raises:
            ValueError: If the role is not system/user/assistant.
        """
        return cls(Role(role), resolve_content(content))

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


def resolve_content(content: Any) -> str:
    """Collapse a wire content field into a single string.

    Content is either plain text or an ordered list of blocks. Text blocks
    (and bare strings inside the list) are concatenated in order; other
    block types carry no text and are skipped.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type", "text") == "text":
                text = block.get("text")
                if isinstance(text, str):
                    parts.append(text)
        return "".join(parts)
    return str(content)


def digest_turn(turn: Turn) -> str:
    payload = f"{turn.role.value}:{turn.content}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def fingerprint(turns: Sequence[Turn]) -> Optional[str]:
    """Fingerprint an ordered turn sequence.

    Returns None for an empty sequence, which never matches anything.
    """
    if not turns:
        return None
    composite = "-".join(digest_turn(turn) for turn in turns)
    return hashlib.sha256(composite.encode("utf-8")).hexdigest()


def has_prefix(turns: Sequence[Turn], prefix: Sequence[Turn]) -> bool:
    """True when ``turns`` starts with ``prefix`` position by position."""
    if len(turns) < len(prefix):
        return False
    return all(a == b for a, b in zip(turns, prefix))


def new_turns(existing: Iterable[Turn], incoming: Iterable[Turn]) -> list[Turn]:
    """Return the incoming turns that do not already appear in ``existing``."""
    seen = set(existing)
    return [turn for turn in incoming if turn not in seen]
