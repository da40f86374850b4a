"""HTTP client for the LongCat web backend."""

import json
import logging
from typing import Any, AsyncIterator, Mapping, Optional

import httpx

from .backend import LongCatBackend, build_outbound_headers, format_httpx_error
from .exceptions import UpstreamError

logger = logging.getLogger("catgate")

# Error bodies are echoed into log lines and client errors; keep them short
MAX_ERROR_BODY = 500


class BackendStream:
    """An open streaming response from the chat endpoint.

    Owns both the response and its client; ``aclose`` releases them and is
    safe to call more than once.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        response: httpx.Response,
        backend: LongCatBackend,
    ) -> None:
        self._client = client
        self._response = response
        self._backend = backend
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def closed(self) -> bool:
        return self._closed

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Yield raw body chunks; the stream is closed when iteration ends."""
        try:
            async for chunk in self._response.aiter_bytes():
                if chunk:
                    yield chunk
        except httpx.HTTPError as exc:
            detail = format_httpx_error(exc, self._backend, self._backend.api_url)
            logger.error(f"Backend stream failed: {detail}")
            raise UpstreamError(f"backend stream failed: {detail}") from exc
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug("Closing backend stream")
        await self._response.aclose()
        await self._client.aclose()


class LongCatClient:
    """Sends session and chat requests to the backend.

    Args:
        backend: Endpoint and cookie configuration.
        transport: Optional httpx transport, e.g. ``httpx.ASGITransport``
            wrapping a fake backend in tests.
    """

    def __init__(
        self,
        backend: LongCatBackend,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.backend = backend
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        return build_outbound_headers(self.backend.cookies)

    async def create_session(self) -> str:
        """Create a backend conversation and return its id.

        Raises:
            UpstreamError: On transport failure, an error status, an
                unparseable body or a non-zero ``code`` in the reply.
        """
        url = self.backend.session_url
        body = {"model": "", "agentId": ""}
        logger.debug(f"Creating backend session via {url}")
        try:
            async with httpx.AsyncClient(
                timeout=self.backend.timeout, transport=self.transport, follow_redirects=True
            ) as client:
                resp = await client.post(url, headers=self._headers(), json=body)
        except httpx.HTTPError as exc:
            detail = format_httpx_error(exc, self.backend, url)
            logger.error(f"Session creation request failed: {detail}")
            raise UpstreamError(f"failed to create session: {detail}") from exc

        if resp.status_code >= 400:
            snippet = resp.text[:MAX_ERROR_BODY]
            logger.warning(f"Session creation returned status {resp.status_code}: {snippet}")
            raise UpstreamError(
                f"session creation returned status {resp.status_code}: {snippet}",
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
        except json.JSONDecodeError as exc:
            raise UpstreamError(f"failed to decode session response: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise UpstreamError("failed to decode session response: not a JSON object")

        code = payload.get("code")
        if code not in (0, None):
            message = payload.get("message") or f"code {code}"
            raise UpstreamError(f"session creation failed: {message}")

        data = payload.get("data") or {}
        session_id = data.get("conversationId") if isinstance(data, Mapping) else None
        if not isinstance(session_id, str) or not session_id:
            raise UpstreamError("session creation failed: no conversationId in response")

        logger.info(f"Created backend session {session_id}")
        return session_id

    async def open_chat_stream(self, body: Mapping[str, Any]) -> BackendStream:
        """Send a chat request and return the open streaming response.

        Raises:
            UpstreamError: If the request fails or the backend answers with an
                error status. Nothing has been streamed at that point.
        """
        url = self.backend.api_url
        stream_timeout = httpx.Timeout(
            connect=self.backend.timeout,
            read=self.backend.timeout,
            write=self.backend.timeout,
            pool=self.backend.timeout,
        )
        client = httpx.AsyncClient(
            timeout=stream_timeout, transport=self.transport, follow_redirects=True
        )
        try:
            request = client.build_request("POST", url, headers=self._headers(), json=dict(body))
            logger.debug(f"Sending streaming request to {url} for session {body.get('conversationId')}")
            resp = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            detail = format_httpx_error(exc, self.backend, url)
            logger.error(f"Failed to send streaming request to {url}: {detail}")
            raise UpstreamError(f"backend request failed: {detail}") from exc
        except BaseException:
            await client.aclose()
            raise

        stream = BackendStream(client, resp, self.backend)
        if resp.status_code >= 400:
            try:
                data = await resp.aread()
            finally:
                await stream.aclose()
            snippet = data.decode("utf-8", errors="replace")[:MAX_ERROR_BODY]
            logger.warning(f"Streaming request to {url} returned error status {resp.status_code}")
            raise UpstreamError(
                f"backend returned status {resp.status_code}: {snippet}",
                status_code=resp.status_code,
            )
        return stream
