"""
User data models for the Registry Service.
"""

from typing import Optional
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

USERNAME_MAX_LENGTH = 15


class WireModel(BaseModel):
    """Base for payloads exchanged with callers (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


@dataclass
class User:
    """Stored identity record."""
    username: str
    password_hash: str
    id: Optional[int] = None
    mqtt_password_hash: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class UserDetail(WireModel):
    """Public identity of a user. Never carries a hash."""
    id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: str

    @classmethod
    def from_user(cls, user: User, user_id: Optional[int] = None) -> "UserDetail":
        return cls(
            id=user.id if user.id is not None else user_id,
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
        )


class TokenSubject(BaseModel):
    """Identity echoed by the token authority."""
    sub: int
    username: str


class TokenPair(WireModel):
    access_token: str
    refresh_token: str


class TokenDetail(WireModel):
    """Result of a successful sign-in."""
    user: TokenSubject
    token: TokenPair


class SignedToken(BaseModel):
    """Response body of one ``auth.token.sign`` call."""
    user: TokenSubject
    token: str = Field(..., min_length=1)


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class MqttAuthDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class MqttAuthRequest(BaseModel):
    """Body posted by the broker's HTTP authorization hook.

    Fields are optional: a missing credential is a deny, not a 4xx.
    """
    username: Optional[str] = None
    password: Optional[str] = None


class MqttAuthResult(BaseModel):
    result: MqttAuthDecision
