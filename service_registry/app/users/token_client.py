"""
Token authority client for the Registry Service.
"""

import asyncio
from typing import Optional

import httpx
from pydantic import ValidationError

from shared.logging import get_logger
from shared.errors import UpstreamFailureError

from .models import SignedToken, TokenType

TOKEN_SIGN_COMMAND = "auth.token.sign"


class TokenClient:
    """Client for the external authority that signs access/refresh tokens.

    Each call is a single attempt; retry policy belongs to the transport.
    """

    def __init__(self, auth_service_url: str, timeout: float = 5.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.auth_service_url = auth_service_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.logger = get_logger("registry.token_client")

    async def sign(self, user_id: int, username: str, token_type: TokenType) -> SignedToken:
        """Request one signed token. Any failure is an UpstreamFailureError."""
        try:
            return await asyncio.wait_for(
                self._sign(user_id, username, token_type),
                timeout=self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            self.logger.error("Token authority timed out", token_type=token_type.value, user_id=user_id)
            raise UpstreamFailureError(
                "token authority",
                "Unable to sign JWT token: timed out",
                details={"type": token_type.value}
            )
        except httpx.HTTPError as e:
            self.logger.error("Token authority HTTP error", token_type=token_type.value, error=str(e))
            raise UpstreamFailureError(
                "token authority",
                "Unable to sign JWT token: authority unavailable",
                details={"type": token_type.value, "http_error": str(e)}
            )

    async def _sign(self, user_id: int, username: str, token_type: TokenType) -> SignedToken:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                f"{self.auth_service_url}/rpc",
                json={
                    "cmd": TOKEN_SIGN_COMMAND,
                    "data": {
                        "userId": user_id,
                        "username": username,
                        "type": token_type.value,
                    },
                }
            )

        if not response.is_success:
            self.logger.error(
                "Token authority rejected request",
                token_type=token_type.value,
                status_code=response.status_code
            )
            raise UpstreamFailureError(
                "token authority",
                f"Unable to sign JWT token: status {response.status_code}",
                details={"type": token_type.value, "status_code": response.status_code}
            )

        try:
            return SignedToken.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            self.logger.error("Malformed token authority response", token_type=token_type.value, error=str(e))
            raise UpstreamFailureError(
                "token authority",
                "Unable to sign JWT token: malformed response",
                details={"type": token_type.value}
            )
