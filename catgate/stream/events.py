"""Protocol-neutral events produced by the translator and consumed by adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class RoleAnnounce:
    role: str = "assistant"


@dataclass(frozen=True)
class ContentDelta:
    text: str


@dataclass(frozen=True)
class Finish:
    reason: str


@dataclass(frozen=True)
class UsageUpdate:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


GenericStreamEvent = Union[RoleAnnounce, ContentDelta, Finish, UsageUpdate]
