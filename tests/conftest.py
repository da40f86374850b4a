"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, AsyncIterator, Iterable

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from catgate.conversation import Role, Turn
from catgate.testing import FakeLongCat, GatewayHarness


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def user(content: str) -> Turn:
    return Turn(Role.USER, content)


def assistant(content: str) -> Turn:
    return Turn(Role.ASSISTANT, content)


def system(content: str) -> Turn:
    return Turn(Role.SYSTEM, content)


async def aiter_items(items: Iterable[Any]) -> AsyncIterator[Any]:
    """Helper to create an async iterator from a list."""
    for item in items:
        yield item


async def collect(stream: AsyncIterator[Any]) -> list[Any]:
    return [item async for item in stream]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def fake_longcat() -> FakeLongCat:
    return FakeLongCat()


@pytest.fixture
def harness(fake_longcat: FakeLongCat, clock: ManualClock) -> GatewayHarness:
    """Gateway app wired to a fake backend and a manual clock.

    Usage:
        async def test_chat(harness):
            harness.backend.enqueue_text("Hi")
            async with harness.make_async_client() as client:
                ...
    """
    return GatewayHarness(backend=fake_longcat, clock=clock)
