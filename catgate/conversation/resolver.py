"""Conversation identity resolver.

Maps the full turn history a client resends on every request to the backend
session that already holds that conversation, so no client-side session
token is needed. A miss is a normal outcome: the caller creates a new
backend session and registers it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from .fingerprint import Turn, digest_turn, fingerprint, has_prefix, new_turns
from .locks import ReadWriteLock

logger = logging.getLogger("catgate")

DEFAULT_MAX_AGE_SECONDS = 24 * 60 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 60 * 60


@dataclass
class ConversationEntry:
    """A backend session and the turns it is known to contain."""

    session_id: str
    turns: tuple[Turn, ...]
    key: str
    last_assistant_echo: tuple[Turn, ...] = ()
    last_accessed: float = 0.0
    created_at: float = 0.0


@dataclass
class LookupResult:
    session_id: Optional[str]
    found: bool
    reason: str = field(default="miss", compare=False)

    def __iter__(self):
        # Allows ``session_id, found = await resolver.lookup(turns)``
        yield self.session_id
        yield self.found


class ConversationResolver:
    """Owns the fingerprint -> session table and its secondary indexes.

    All reads go through the shared side of a reader/writer lock; inserts,
    extensions, echo updates and eviction take the exclusive side.

    Args:
        max_age: Seconds an entry may stay untouched before eviction.
        sweep_interval: Seconds between background eviction sweeps.
        clock: Returns the current time in seconds; injectable for tests.
    """

    def __init__(
        self,
        *,
        max_age: float = DEFAULT_MAX_AGE_SECONDS,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_age = max_age
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._lock = ReadWriteLock()

        # fingerprint -> entry (primary table)
        self._entries: dict[str, ConversationEntry] = {}
        # session id -> entry
        self._sessions: dict[str, ConversationEntry] = {}
        # turn digest -> entries whose turns contain that turn
        self._turn_index: dict[str, list[ConversationEntry]] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def lookup(self, turns: Sequence[Turn]) -> LookupResult:
        """Find the backend session continuing ``turns``.

        A history registered verbatim always matches. Otherwise histories
        shorter than two turns are brand-new conversations and never match.
        """
        if not turns:
            return LookupResult(None, False, "new")

        async with self._lock.read():
            result = self._lookup_locked(list(turns))

        if result.found:
            logger.debug(f"Resolver: {result.reason} match -> session {result.session_id}")
        else:
            logger.debug(f"Resolver: no session for {len(turns)} turns ({result.reason})")
        return result

    def _lookup_locked(self, turns: list[Turn]) -> LookupResult:
        entry = self._entries.get(fingerprint(turns) or "")
        if entry is not None:
            self._touch(entry)
            return LookupResult(entry.session_id, True, "exact")
        if len(turns) < 2:
            return LookupResult(None, False, "new")

        # The client resends its history plus one new exchange: the echo of
        # our last reply and its new message.
        prefix, tail = turns[:-2], turns[-2:]
        candidates = self._prefix_candidates(prefix)
        if not candidates:
            return LookupResult(None, False, "miss")
        if len(candidates) == 1:
            self._touch(candidates[0])
            return LookupResult(candidates[0].session_id, True, "prefix")

        echo = tail[0]
        survivors = [
            entry for entry in candidates
            if entry.last_assistant_echo and entry.last_assistant_echo[0] == echo
        ]
        if not survivors:
            logger.debug(
                f"Resolver: {len(candidates)} sessions share the prefix and none "
                f"recorded the echoed reply"
            )
            return LookupResult(None, False, "ambiguous")

        best = max(survivors, key=lambda entry: entry.last_accessed)
        self._touch(best)
        return LookupResult(best.session_id, True, "echo")

    def _prefix_candidates(self, prefix: list[Turn]) -> list[ConversationEntry]:
        # An empty prefix would match every entry; treat it as no evidence.
        if not prefix:
            return []
        bucket = self._turn_index.get(digest_turn(prefix[0]), [])
        seen: set[int] = set()
        matches: list[ConversationEntry] = []
        for entry in bucket:
            if id(entry) in seen:
                continue
            seen.add(id(entry))
            if has_prefix(entry.turns, prefix):
                matches.append(entry)
        return matches

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def register(self, turns: Sequence[Turn], session_id: str) -> None:
        """Insert a new entry for ``session_id`` keyed by the turns' fingerprint."""
        key = fingerprint(turns)
        if key is None:
            logger.warning(f"Resolver: refusing to register empty history for {session_id}")
            return

        async with self._lock.write():
            now = self._clock()
            previous = self._sessions.get(session_id)
            if previous is not None:
                self._drop(previous)
            clash = self._entries.get(key)
            if clash is not None:
                logger.debug(
                    f"Resolver: session {session_id} replaces {clash.session_id} "
                    f"for an identical history"
                )
                self._drop(clash)

            entry = ConversationEntry(
                session_id=session_id,
                turns=tuple(turns),
                key=key,
                last_accessed=now,
                created_at=now,
            )
            self._entries[key] = entry
            self._sessions[session_id] = entry
            self._index_turns(entry, entry.turns)

        logger.debug(f"Resolver: registered session {session_id} with {len(turns)} turns")

    async def extend(self, session_id: str, turns: Sequence[Turn]) -> None:
        """Append the turns not already stored for ``session_id`` and re-key it."""
        async with self._lock.write():
            entry = self._sessions.get(session_id)
            if entry is None:
                logger.debug(f"Resolver: extend for unknown session {session_id}")
                return

            entry.last_accessed = self._clock()
            fresh = new_turns(entry.turns, turns)
            if not fresh:
                return

            if self._entries.get(entry.key) is entry:
                del self._entries[entry.key]
            entry.turns = entry.turns + tuple(fresh)
            entry.key = fingerprint(entry.turns) or ""

            clash = self._entries.get(entry.key)
            if clash is not None and clash is not entry:
                self._drop(clash)
            self._entries[entry.key] = entry
            self._index_turns(entry, fresh)

        logger.debug(f"Resolver: session {session_id} extended by {len(fresh)} turns")

    async def record_assistant_echo(self, session_id: str, turns: Sequence[Turn]) -> None:
        """Remember the last reply so branched sessions can be told apart."""
        async with self._lock.write():
            entry = self._sessions.get(session_id)
            if entry is None:
                return
            entry.last_assistant_echo = tuple(turns)
            entry.last_accessed = self._clock()

    async def evict_expired(self) -> int:
        """Drop entries untouched for longer than ``max_age``.

        Returns:
            Number of entries removed.
        """
        async with self._lock.write():
            now = self._clock()
            expired = [
                entry for entry in self._sessions.values()
                if now - entry.last_accessed > self.max_age
            ]
            for entry in expired:
                self._drop(entry)
        if expired:
            logger.info(f"Resolver: evicted {len(expired)} expired conversations")
        return len(expired)

    async def run_eviction_loop(self) -> None:
        """Sweep expired entries forever; cancel the task to stop it."""
        logger.debug(f"Resolver: eviction sweep every {self.sweep_interval}s")
        while True:
            await asyncio.sleep(self.sweep_interval)
            await self.evict_expired()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def stats(self) -> dict[str, Any]:
        async with self._lock.read():
            return {
                "total_conversations": len(self._entries),
                "indexed_messages": len(self._turn_index),
                "max_age_hours": self.max_age / 3600,
            }

    async def get_entry(self, session_id: str) -> Optional[ConversationEntry]:
        async with self._lock.read():
            return self._sessions.get(session_id)

    def indexed_sessions(self) -> set[str]:
        """Session ids referenced anywhere in the turn index."""
        return {
            entry.session_id
            for bucket in self._turn_index.values()
            for entry in bucket
        }

    # ------------------------------------------------------------------
    # Helpers (caller holds the write lock, or the read lock for _touch)
    # ------------------------------------------------------------------

    def _touch(self, entry: ConversationEntry) -> None:
        entry.last_accessed = self._clock()

    def _index_turns(self, entry: ConversationEntry, turns: Sequence[Turn]) -> None:
        for turn in turns:
            self._turn_index.setdefault(digest_turn(turn), []).append(entry)

    def _drop(self, entry: ConversationEntry) -> None:
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]
        if self._sessions.get(entry.session_id) is entry:
            del self._sessions[entry.session_id]
        for digest in {digest_turn(turn) for turn in entry.turns}:
            bucket = self._turn_index.get(digest)
            if bucket is None:
                continue
            remaining = [other for other in bucket if other is not entry]
            if remaining:
                self._turn_index[digest] = remaining
            else:
                del self._turn_index[digest]
