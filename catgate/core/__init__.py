"""Core module initialization."""

from .backend import (
    CookieConfig,
    LongCatBackend,
    build_chat_body,
    build_outbound_headers,
    format_httpx_error,
    parse_raw_cookies,
)
from .client import BackendStream, LongCatClient
from .exceptions import (
    ConfigurationError,
    InvalidRequestError,
    MalformedUpstreamEvent,
    ProxyError,
    RelayTimeout,
    UpstreamError,
)
from .gateway import ChatExchange, Gateway

__all__ = [
    "BackendStream",
    "ChatExchange",
    "ConfigurationError",
    "CookieConfig",
    "Gateway",
    "InvalidRequestError",
    "LongCatBackend",
    "LongCatClient",
    "MalformedUpstreamEvent",
    "ProxyError",
    "RelayTimeout",
    "UpstreamError",
    "build_chat_body",
    "build_outbound_headers",
    "format_httpx_error",
    "parse_raw_cookies",
]
