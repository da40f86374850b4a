"""Tests for the exceptions module."""

from catgate.core.exceptions import (
    ConfigurationError,
    InvalidRequestError,
    MalformedUpstreamEvent,
    ProxyError,
    RelayTimeout,
    UpstreamError,
)


class TestProxyErrors:
    def test_all_are_proxy_errors(self):
        for exc in (
            ConfigurationError("c"),
            InvalidRequestError("i"),
            UpstreamError("u"),
            MalformedUpstreamEvent("m"),
            RelayTimeout("r", 5),
        ):
            assert isinstance(exc, ProxyError)
            assert str(exc) == exc.message

    def test_extra_fields(self):
        assert InvalidRequestError("bad", code="invalid_role", param="messages").param == "messages"
        assert InvalidRequestError("bad").code == "invalid_request"
        assert UpstreamError("down", status_code=503).status_code == 503
        assert MalformedUpstreamEvent("bad", raw="{x").raw == "{x"
        assert RelayTimeout("slow", 5.0).timeout == 5.0
