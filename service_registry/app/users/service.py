"""
Authentication service: sign-in, registration and broker credential checks.
"""

import asyncio
from typing import Optional, Union

from shared.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    RecordNotFoundError,
    UnauthorizedError,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..persistence.base import Storage
from .hashing import PasswordHasher
from .models import (
    USERNAME_MAX_LENGTH,
    MqttAuthDecision,
    MqttAuthResult,
    TokenDetail,
    TokenPair,
    TokenType,
    User,
    UserDetail,
)
from .token_client import TokenClient


class UsersService:
    """Orchestrates credential checks against storage and the token authority."""

    def __init__(self, storage: Storage, hasher: PasswordHasher, token_client: TokenClient,
                 metrics: Optional[MetricsCollector] = None):
        self.storage = storage
        self.hasher = hasher
        self.token_client = token_client
        self.metrics = metrics
        self.logger = get_logger("registry.users")

    async def sign_in(self, username: Optional[str], password: Optional[str]) -> TokenDetail:
        """Verify credentials and return a freshly signed access/refresh pair.

        Raises:
            InvalidInputError: username or password empty or missing
            NotFoundError: no user with this username
            UnauthorizedError: password does not match
            UpstreamFailureError: either token call failed
        """
        if not username or not password:
            raise InvalidInputError("Undefined username or password")
        if not isinstance(username, str) or not isinstance(password, str):
            raise InvalidInputError("Username and password must be strings")

        user = await self.find_user_by_username(username)
        if user is None:
            raise NotFoundError("User doesn't exist")

        if not await self.hasher.verify(password, user.password_hash):
            self.logger.info("Sign-in rejected", user_id=user.id)
            raise UnauthorizedError("Incorrect password")

        # Both must succeed before anything is returned; the first failure
        # cancels the other call.
        tasks = [
            asyncio.create_task(self.token_client.sign(user.id, user.username, token_type))
            for token_type in (TokenType.ACCESS, TokenType.REFRESH)
        ]
        try:
            access, refresh = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._count("token_sign_total", outcome="failure")
            raise
        self._count("token_sign_total", outcome="success")

        self.logger.info("User signed in", user_id=user.id)
        return TokenDetail(
            user=access.user,
            token=TokenPair(access_token=access.token, refresh_token=refresh.token),
        )

    async def register(self, username: Optional[str], password: Optional[str]) -> UserDetail:
        if username is None or password is None:
            raise InvalidInputError("Undefined username or password")
        if not isinstance(username, str) or not isinstance(password, str):
            raise InvalidInputError("Username and password must be strings")
        if len(username) > USERNAME_MAX_LENGTH:
            raise InvalidInputError(f"Username must be at most {USERNAME_MAX_LENGTH} characters")

        if await self.find_user_by_username(username) is not None:
            raise ConflictError("Username already exists")

        user = await self.storage.create_user(User(
            username=username,
            password_hash=await self.hasher.hash(password),
        ))
        self.logger.info("User registered", user_id=user.id)
        return UserDetail.from_user(user)

    async def unregister(self, user_id: Optional[int], password: Optional[str]) -> UserDetail:
        """Delete a user after re-checking the password; cascades to devices."""
        if user_id is None or password is None:
            raise InvalidInputError("Undefined user id or password")
        _require_user_id(user_id)
        if not isinstance(password, str):
            raise InvalidInputError("Password must be a string")

        user = await self.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User does not exist")

        if not await self.hasher.verify(password, user.password_hash):
            raise UnauthorizedError("Incorrect password")

        await self.storage.delete_user(user.id)
        self.logger.info("User unregistered", user_id=user.id)
        return UserDetail.from_user(user, user_id)

    async def get_user_details(self, id_or_username: Union[int, str]) -> UserDetail:
        """Look a user up by numeric id or by username."""
        # bool is an int subclass but never a valid id
        if isinstance(id_or_username, bool):
            raise InvalidInputError("User id must be a number or a username")
        if isinstance(id_or_username, int):
            user = await self.find_user_by_id(id_or_username)
        elif isinstance(id_or_username, str):
            user = await self.find_user_by_username(id_or_username)
        else:
            raise InvalidInputError("User id must be a number or a username")

        if user is None:
            raise NotFoundError("User does not exist")
        return UserDetail.from_user(user)

    async def mqtt_auth(self, username: Optional[str], password: Optional[str]) -> MqttAuthResult:
        """Boolean gate for the broker's authorization hook. Never raises."""
        decision = MqttAuthDecision.DENY
        if isinstance(username, str) and isinstance(password, str) and username and password:
            try:
                user = await self.find_user_by_username(username)
                if user is not None:
                    # Broker-specific hash wins; fall back to the primary one
                    password_hash = user.mqtt_password_hash or user.password_hash
                    if await self.hasher.verify(password, password_hash):
                        decision = MqttAuthDecision.ALLOW
            except Exception as e:
                # A storage outage denies access instead of failing the hook
                self.logger.error("Broker authorization lookup failed", error=str(e))

        self._count("mqtt_auth_total", result=decision.value)
        self.logger.debug("Broker authorization", decision=decision.value)
        return MqttAuthResult(result=decision)

    async def update_mqtt_password(self, user_id: Optional[int], password: Optional[str]) -> UserDetail:
        if user_id is None or password is None:
            raise InvalidInputError("Undefined user id or password")
        _require_user_id(user_id)
        if not isinstance(password, str):
            raise InvalidInputError("Password must be a string")

        user = await self.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User does not exist")

        user.mqtt_password_hash = await self.hasher.hash(password)
        user = await self.storage.update_user(user)
        self.logger.info("Broker password updated", user_id=user.id)
        return UserDetail.from_user(user)

    async def find_user_by_username(self, username: str) -> Optional[User]:
        try:
            return await self.storage.get_user_by_username(username)
        except RecordNotFoundError:
            return None

    async def find_user_by_id(self, user_id: int) -> Optional[User]:
        try:
            return await self.storage.get_user_by_id(user_id)
        except RecordNotFoundError:
            return None

    def _count(self, metric_name: str, **labels):
        if self.metrics is not None:
            self.metrics.increment_counter(metric_name, **labels)


def _require_user_id(user_id) -> None:
    # bool is an int subclass but never a valid id
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise InvalidInputError("User id must be a number")
