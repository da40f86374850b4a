"""Main FastAPI application for the catgate gateway."""

import logging
import os
import socket
import time
from typing import Any, Callable, Mapping, Optional

import httpx
import uvicorn
from fastapi import FastAPI

from .api.routes import chat_completions, conversation_stats, list_models, messages_endpoint
from .config_loader import load_config
from .core import Gateway
from .logging import setup_logging

logger = logging.getLogger("catgate")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8082


def resolve_server_address(config: Mapping[str, Any]) -> tuple[str, int]:
    """Resolve host/port; CATGATE_HOST / CATGATE_PORT take priority over the config file."""
    proxy_settings = config.get("proxy_settings") or {}
    server_cfg = proxy_settings.get("server") or {}

    host = os.getenv("CATGATE_HOST") or str(server_cfg.get("host", DEFAULT_HOST))

    port_raw = os.getenv("CATGATE_PORT")
    if port_raw is None:
        port_raw = server_cfg.get("port", DEFAULT_PORT)
    try:
        port = int(port_raw)
    except (TypeError, ValueError):
        logger.warning(f"Invalid port {port_raw!r}, using {DEFAULT_PORT}")
        port = DEFAULT_PORT
    return host, port


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Factory function to create the FastAPI application.

    Args:
        config: Parsed configuration; loaded from disk when omitted.
        transport: Optional httpx transport for backend calls.
        clock: Time source for conversation bookkeeping.
    """
    if config is None:
        config = load_config()

    gateway = Gateway.from_config(config, transport=transport, clock=clock)

    app = FastAPI(title="catgate")
    app.state.gateway = gateway

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        logger.info("catgate starting up...")
        logger.info(f"Backend: {gateway.backend.api_url} (model {gateway.backend.model})")
        gateway.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Handle application shutdown."""
        await gateway.stop()
        logger.info("catgate stopped")

    app.post("/v1/chat/completions")(chat_completions)
    app.post("/v1/messages")(messages_endpoint)
    app.get("/v1/models")(list_models)
    app.get("/admin/conversations")(conversation_stats)
    return app


def run(config_path: Optional[str] = None) -> None:
    """Load configuration and serve the gateway with uvicorn."""
    config = load_config(config_path)
    proxy_settings = config.get("proxy_settings") or {}
    logging_cfg = proxy_settings.get("logging") or {}
    setup_logging(logging_cfg.get("level"))

    app = create_app(config)
    app.state.gateway.backend.validate()

    host, port = resolve_server_address(config)
    logger.info("Configured bind address %s:%s", host, port)
    if host == "0.0.0.0":
        logger.info("Reachable on local network at http://%s:%s", socket.gethostname(), port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run()
