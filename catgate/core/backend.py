"""Backend configuration and request building for the LongCat web API."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

import httpx

from ..config_loader import is_unresolved_placeholder
from ..conversation.fingerprint import Role, Turn
from .exceptions import ConfigurationError

logger = logging.getLogger("catgate")

DEFAULT_API_URL = "https://longcat.chat/api/v1/chat-completion"
DEFAULT_SESSION_URL = "https://longcat.chat/api/v1/session-create"
DEFAULT_TIMEOUT = 30
DEFAULT_MODEL = "LongCat-Flash"

# Browser cookie name -> config key
COOKIE_NAMES = {
    "_lxsdk_cuid": "lxsdk_cuid",
    "passport_token_key": "passport_token",
    "_lxsdk_s": "lxsdk_s",
}

BROWSER_HEADERS = {
    "accept": "text/event-stream,application/json",
    "accept-language": "en,zh-Hans-CN;q=0.9,zh-CN;q=0.8,zh;q=0.7,en-GB;q=0.6,en-US;q=0.5",
    "content-type": "application/json",
    "m-appkey": "fe_com.sankuai.friday.fe.longcat",
    "origin": "https://longcat.chat",
    "referer": "https://longcat.chat/t",
    "sec-fetch-dest": "empty",
    "sec-fetch-mode": "cors",
    "sec-fetch-site": "same-origin",
    "user-agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36 Edg/133.0.0.0"
    ),
    "x-client-language": "en",
    "x-requested-with": "XMLHttpRequest",
}


@dataclass
class CookieConfig:
    """Session cookies copied from a logged-in browser."""

    lxsdk_cuid: str = ""
    passport_token: str = ""
    lxsdk_s: str = ""

    def as_dict(self) -> dict[str, str]:
        return {
            "_lxsdk_cuid": self.lxsdk_cuid,
            "passport_token_key": self.passport_token,
            "_lxsdk_s": self.lxsdk_s,
        }

    def header_value(self) -> str:
        """Render the cookies as a ``Cookie`` header, skipping unset ones."""
        return "; ".join(f"{name}={value}" for name, value in self.as_dict().items() if value)


@dataclass
class LongCatBackend:
    """Represents the single upstream chat backend."""

    api_url: str = DEFAULT_API_URL
    session_url: str = DEFAULT_SESSION_URL
    timeout: float = DEFAULT_TIMEOUT
    model: str = DEFAULT_MODEL
    cookies: CookieConfig = field(default_factory=CookieConfig)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "LongCatBackend":
        """Build the backend from the ``backend`` section of the config."""
        section = config.get("backend") or {}
        cookies_cfg = section.get("cookies") or {}

        raw = _clean(cookies_cfg.get("raw"))
        cookies = parse_raw_cookies(raw) if raw else CookieConfig()
        for key in ("lxsdk_cuid", "passport_token", "lxsdk_s"):
            value = _clean(cookies_cfg.get(key))
            if value:
                setattr(cookies, key, value)

        try:
            timeout = float(section.get("timeout", DEFAULT_TIMEOUT))
        except (TypeError, ValueError):
            logger.warning(f"Invalid backend timeout {section.get('timeout')!r}, using {DEFAULT_TIMEOUT}s")
            timeout = DEFAULT_TIMEOUT

        backend = cls(
            api_url=str(section.get("api_url") or DEFAULT_API_URL),
            session_url=str(section.get("session_url") or DEFAULT_SESSION_URL),
            timeout=timeout,
            model=str(section.get("model") or DEFAULT_MODEL),
            cookies=cookies,
        )
        for name in ("lxsdk_cuid", "lxsdk_s"):
            if not getattr(cookies, name):
                logger.warning(f"Cookie '{name}' is not set")
        return backend

    def validate(self) -> None:
        """Raise ConfigurationError when the backend cannot authenticate."""
        if not self.cookies.passport_token:
            raise ConfigurationError(
                "backend.cookies.passport_token is required (COOKIE_PASSPORT_TOKEN)"
            )


def _clean(value: Any) -> str:
    if value is None or is_unresolved_placeholder(value):
        return ""
    return str(value).strip()


def parse_raw_cookies(raw_cookies: str) -> CookieConfig:
    """Parse a browser ``Cookie`` header into the three cookies we need.

    Unknown cookies and malformed fragments are ignored.
    """
    cookies = CookieConfig()
    for part in raw_cookies.split(";"):
        part = part.strip()
        if not part or "=" not in part:
            continue
        key, value = part.split("=", 1)
        attr = COOKIE_NAMES.get(key.strip())
        if attr:
            setattr(cookies, attr, value.strip())
    return cookies


def build_outbound_headers(cookies: Optional[CookieConfig] = None) -> dict[str, str]:
    """Build headers for outbound requests to the backend."""
    headers = dict(BROWSER_HEADERS)
    headers["m-traceid"] = str(time.time_ns())
    if cookies is not None:
        cookie = cookies.header_value()
        if cookie:
            headers["cookie"] = cookie
    return headers


def build_chat_body(
    turns: Sequence[Turn],
    session_id: str,
    *,
    new_session: bool = False,
) -> dict[str, Any]:
    """Build the chat-completion body for the backend.

    The backend keeps history server-side, so only the newest turn's text is
    sent. On a freshly created session, a leading system turn is folded into
    the content since the backend has no separate system field.
    """
    content = turns[-1].content if turns else ""
    if new_session:
        system = "\n".join(t.content for t in turns if t.role is Role.SYSTEM and t.content)
        if system and turns[-1].role is not Role.SYSTEM:
            content = f"System: {system}\n\nUser: {content}"
    return {
        "content": content,
        "conversationId": session_id,
        "reasonEnabled": 0,
        "searchEnabled": 0,
        "regenerate": 0,
    }


def format_httpx_error(exc: Any, backend: LongCatBackend, url: Optional[str] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    try:
        request = exc.request
    except (AttributeError, RuntimeError):
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        parts.append(f"timeout={backend.timeout}s")

    return "; ".join(parts)
