"""
Mock token authority answering ``auth.token.sign`` commands.

Development only: it signs HS256 JWTs for whatever identity the registry
sends, without any credential check of its own.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

# Add shared directory to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.logging import get_logger

DEFAULT_SECRET = "mock-token-authority-secret-not-for-production"

TOKEN_LIFETIMES = {
    "access": timedelta(hours=1),
    "refresh": timedelta(days=30),
}


class SignRequest(BaseModel):
    cmd: str
    data: Dict[str, Any] = Field(default_factory=dict)


class MockTokenAuthority:
    """Mock token authority implementation."""

    def __init__(self, secret: Optional[str] = None, port: int = 8010):
        self.port = port
        self.secret = secret or os.getenv("REGISTRY_MOCK_TOKEN_SECRET", DEFAULT_SECRET)
        self.issuer = f"http://localhost:{port}"
        self.logger = get_logger("mock.token_authority")
        self.app = FastAPI(title="Mock Token Authority", version="1.0.0")
        self._setup_routes()

    def _setup_routes(self):
        """Set up mock authority routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "mock-token-authority",
                "message": "Mock token authority for the Device Registry",
                "version": "1.0.0",
                "issuer": self.issuer
            }

        @self.app.post("/rpc")
        async def rpc(request: SignRequest):
            """Command endpoint; only auth.token.sign is understood."""
            if request.cmd != "auth.token.sign":
                raise HTTPException(status_code=400, detail=f"Unknown command: {request.cmd}")

            user_id = request.data.get("userId")
            username = request.data.get("username")
            token_type = request.data.get("type")
            if user_id is None or not username or token_type not in TOKEN_LIFETIMES:
                raise HTTPException(status_code=400, detail="userId, username and type are required")

            self.logger.info("Token signed", user_id=user_id, token_type=token_type)
            return {
                "user": {"sub": user_id, "username": username},
                "token": self.sign(user_id, username, token_type),
            }

    def sign(self, user_id: int, username: str, token_type: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "iss": self.issuer,
            "sub": str(user_id),
            "username": username,
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + TOKEN_LIFETIMES[token_type]).timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm="HS256")

    def decode(self, token: str) -> Dict[str, Any]:
        return jwt.decode(token, self.secret, algorithms=["HS256"], issuer=self.issuer)


def create_app():
    """Create mock token authority application."""
    server = MockTokenAuthority()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8010)
