"""
Adaptive password hashing.

Both operations run in a worker thread; at the configured cost bcrypt
blocks for tens of milliseconds per call.
"""

import asyncio

from passlib.context import CryptContext


class PasswordHasher:
    """bcrypt wrapper; verification uses passlib's constant-time compare."""

    def __init__(self, rounds: int = 10):
        self.context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    async def hash(self, password: str) -> str:
        return await asyncio.to_thread(self.context.hash, password)

    async def verify(self, password: str, password_hash: str) -> bool:
        """False for a mismatch or for a stored value that is not a bcrypt hash."""
        if not password_hash:
            return False
        try:
            return await asyncio.to_thread(self.context.verify, password, password_hash)
        except (ValueError, TypeError):
            return False
