"""
Unit tests for the token authority client.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_registry.app.users.models import TokenType
from service_registry.app.users.token_client import TOKEN_SIGN_COMMAND, TokenClient
from shared.errors import UpstreamFailureError

SIGN_URL = "http://localhost:8010/rpc"


def sign_response(status_code=200, body=None, content=None):
    if content is None:
        content = json.dumps(body if body is not None else {})
    return httpx.Response(
        status_code=status_code,
        content=content,
        request=httpx.Request("POST", SIGN_URL)
    )


class TestTokenClient:
    """Test cases for TokenClient."""

    @pytest.fixture
    def token_client(self):
        """Create TokenClient instance."""
        return TokenClient("http://localhost:8010/", timeout=0.5)

    @pytest.fixture
    def signed(self):
        return {"user": {"sub": 1, "username": "u1"}, "token": "header.payload.signature"}

    @pytest.mark.asyncio
    async def test_sign_success(self, token_client, signed):
        with patch('httpx.AsyncClient') as mock_client:
            post = AsyncMock(return_value=sign_response(body=signed))
            mock_client.return_value.__aenter__.return_value.post = post

            result = await token_client.sign(1, "u1", TokenType.ACCESS)

            assert result.user.sub == 1
            assert result.user.username == "u1"
            assert result.token == "header.payload.signature"
            post.assert_awaited_once_with(
                SIGN_URL,
                json={
                    "cmd": TOKEN_SIGN_COMMAND,
                    "data": {"userId": 1, "username": "u1", "type": "access"},
                }
            )

    @pytest.mark.asyncio
    async def test_sign_refresh_type(self, token_client, signed):
        with patch('httpx.AsyncClient') as mock_client:
            post = AsyncMock(return_value=sign_response(body=signed))
            mock_client.return_value.__aenter__.return_value.post = post

            await token_client.sign(1, "u1", TokenType.REFRESH)

            assert post.await_args.kwargs["json"]["data"]["type"] == "refresh"

    @pytest.mark.asyncio
    async def test_sign_error_status(self, token_client):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                return_value=sign_response(status_code=500, body={"detail": "boom"})
            )

            with pytest.raises(UpstreamFailureError) as exc_info:
                await token_client.sign(1, "u1", TokenType.ACCESS)

            assert exc_info.value.status_code == 502
            assert exc_info.value.details["status_code"] == 500

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [
        "not json",
        json.dumps({"user": {"sub": 1, "username": "u1"}}),
        json.dumps({"user": {"sub": 1, "username": "u1"}, "token": ""}),
    ])
    async def test_sign_malformed_response(self, token_client, content):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                return_value=sign_response(content=content)
            )

            with pytest.raises(UpstreamFailureError, match="malformed"):
                await token_client.sign(1, "u1", TokenType.ACCESS)

    @pytest.mark.asyncio
    async def test_sign_http_error(self, token_client):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                side_effect=httpx.ConnectError("Connection failed")
            )

            with pytest.raises(UpstreamFailureError, match="unavailable"):
                await token_client.sign(1, "u1", TokenType.ACCESS)

    @pytest.mark.asyncio
    async def test_sign_transport_timeout(self, token_client):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                side_effect=httpx.ReadTimeout("read timed out")
            )

            with pytest.raises(UpstreamFailureError, match="timed out"):
                await token_client.sign(1, "u1", TokenType.ACCESS)

    @pytest.mark.asyncio
    async def test_sign_deadline_exceeded(self):
        """A hanging authority is cut off by the client deadline."""
        token_client = TokenClient("http://localhost:8010", timeout=0.05)

        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(side_effect=hang)

            with pytest.raises(UpstreamFailureError, match="timed out"):
                await token_client.sign(1, "u1", TokenType.ACCESS)

    @pytest.mark.asyncio
    async def test_sign_against_mock_authority(self):
        """Round trip through the in-process mock authority."""
        from mocks.token_authority.server import MockTokenAuthority

        authority = MockTokenAuthority(secret="test-secret-with-enough-bytes-1234")
        token_client = TokenClient(
            "http://authority",
            transport=httpx.ASGITransport(app=authority.app)
        )

        result = await token_client.sign(7, "u7", TokenType.REFRESH)

        claims = authority.decode(result.token)
        assert result.user.sub == 7
        assert claims["sub"] == "7"
        assert claims["type"] == "refresh"
