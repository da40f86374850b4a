"""Admin endpoints for inspecting gateway state."""

from typing import Any

from fastapi import Request


async def conversation_stats(request: Request) -> dict[str, Any]:
    """GET /admin/conversations - resolver statistics and request counters."""
    return await request.app.state.gateway.stats()
