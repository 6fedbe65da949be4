"""Tests for the email transports."""

from unittest.mock import AsyncMock, patch

import aiosmtplib
import httpx
import pytest

from goalverse.config import Settings
from goalverse.email.transport import (
    ConsoleProvider,
    ResendProvider,
    SMTPProvider,
    create_transport,
)


def smtp_provider() -> SMTPProvider:
    return SMTPProvider(
        host="smtp.test",
        port=587,
        username="coach",
        password="secret",
        from_address="coach@goalverse.app",
        from_name="GOALVERSE",
    )


class TestCreateTransport:
    def test_smtp(self):
        assert isinstance(create_transport(Settings(email_provider="smtp")), SMTPProvider)

    def test_resend(self):
        assert isinstance(create_transport(Settings(email_provider="resend")), ResendProvider)

    def test_console(self):
        assert isinstance(create_transport(Settings(email_provider="CONSOLE")), ConsoleProvider)

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unsupported email provider"):
            create_transport(Settings(email_provider="pigeon"))


class TestSMTPProvider:
    def test_build_message(self):
        msg = smtp_provider().build_message("jane@example.com", "Hello", "<p>Hi</p>", "Hi")
        assert msg["From"] == "GOALVERSE <coach@goalverse.app>"
        assert msg["To"] == "jane@example.com"
        assert [part.get_content_type() for part in msg.get_payload()] == ["text/plain", "text/html"]

    @pytest.mark.asyncio
    async def test_send_success(self):
        with patch("aiosmtplib.send", new=AsyncMock(return_value=({}, "OK"))) as send:
            assert await smtp_provider().send("jane@example.com", "Hello", "<p>Hi</p>", "Hi") is True
        assert send.await_args.kwargs["hostname"] == "smtp.test"
        assert send.await_args.kwargs["start_tls"] is True

    @pytest.mark.asyncio
    async def test_send_failure_returns_false(self):
        error = aiosmtplib.SMTPConnectError("refused")
        with patch("aiosmtplib.send", new=AsyncMock(side_effect=error)):
            assert await smtp_provider().send("jane@example.com", "Hello", "<p>Hi</p>", "Hi") is False


class TestResendProvider:
    @pytest.mark.asyncio
    async def test_send_success(self):
        response = httpx.Response(200, json={"id": "em_1"}, request=httpx.Request("POST", ResendProvider.API_URL))
        provider = ResendProvider("re_key", "coach@goalverse.app", "GOALVERSE")
        with patch.object(httpx.AsyncClient, "post", new=AsyncMock(return_value=response)) as post:
            assert await provider.send("jane@example.com", "Hello", "<p>Hi</p>", "Hi") is True
        body = post.await_args.kwargs["json"]
        assert body["to"] == ["jane@example.com"]
        assert post.await_args.kwargs["headers"]["Authorization"] == "Bearer re_key"

    @pytest.mark.asyncio
    async def test_http_error_returns_false(self):
        response = httpx.Response(422, json={}, request=httpx.Request("POST", ResendProvider.API_URL))
        provider = ResendProvider("re_key", "coach@goalverse.app", "GOALVERSE")
        with patch.object(httpx.AsyncClient, "post", new=AsyncMock(return_value=response)):
            assert await provider.send("jane@example.com", "Hello", "<p>Hi</p>", "Hi") is False

    @pytest.mark.asyncio
    async def test_network_error_returns_false(self):
        provider = ResendProvider("re_key", "coach@goalverse.app", "GOALVERSE")
        with patch.object(httpx.AsyncClient, "post", new=AsyncMock(side_effect=httpx.ConnectError("down"))):
            assert await provider.send("jane@example.com", "Hello", "<p>Hi</p>", "Hi") is False


class TestConsoleProvider:
    @pytest.mark.asyncio
    async def test_keeps_outbox(self):
        provider = ConsoleProvider()
        assert await provider.send("jane@example.com", "Hello", "<p>Hi</p>", "Hi") is True
        assert provider.outbox[0].subject == "Hello"
