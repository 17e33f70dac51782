from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field

from identity_access.domain.entities.iam import Principal


class RegisterRequest(BaseModel):
    telegramId: str = Field(min_length=1)
    name: str = Field(min_length=1)
    username: str | None = None


class LoginRequest(BaseModel):
    telegramId: str = Field(min_length=1)


class VerifyRequest(BaseModel):
    telegramId: str = Field(min_length=1)
    code: str = Field(pattern=r"^\d{6}$")


class RefreshRequest(BaseModel):
    refreshToken: str = Field(min_length=1)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class PendingLogin:
    external_id: str
    expires_at: datetime


@dataclass(frozen=True)
class SessionGrant:
    tokens: TokenPair
    principal: Principal
