"""catgate - OpenAI and Anthropic compatible gateway for the LongCat web chat.

Accepts Chat Completions and Messages API requests, maps each resent chat
history onto the matching backend conversation, and re-renders the
backend's cumulative event stream in the caller's wire format.

Example:
    >>> from catgate.main import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="127.0.0.1", port=8082)
"""

from .config_loader import load_config
from .core import Gateway, LongCatBackend, LongCatClient, ProxyError
from .logging import logger, setup_logging
from .main import create_app, run

__all__ = [
    "Gateway",
    "LongCatBackend",
    "LongCatClient",
    "ProxyError",
    "create_app",
    "load_config",
    "logger",
    "run",
    "setup_logging",
]
