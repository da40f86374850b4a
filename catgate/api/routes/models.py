"""Models listing endpoint - OpenAI compatible."""

import logging

from fastapi import Request

logger = logging.getLogger("catgate")


async def list_models(request: Request) -> dict:
    """List the backend model in OpenAI API format.

    GET /v1/models
    """
    logger.info("Received models list request")
    gateway = request.app.state.gateway
    return {
        "object": "list",
        "data": [
            {
                "id": gateway.backend.model,
                "object": "model",
                "created": gateway.started_at,
                "owned_by": "longcat",
            }
        ],
    }
