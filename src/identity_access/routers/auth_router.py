from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from identity_access.auth.dependencies import get_principal
from identity_access.domain.entities.auth import (
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    VerifyRequest,
)
from identity_access.domain.entities.iam import Principal
from identity_access.services.session_service import SessionService
from identity_access.utils.response import success
from identity_access.configs.logging_config import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _sessions(request: Request) -> SessionService:
    return request.app.state.session_service


@router.post("/register", status_code=201)
async def register(request: Request, body: RegisterRequest) -> dict:
    principal = await _sessions(request).register(body.telegramId, body.name, body.username)
    return success({"user": principal.public()}, message="user registered")


@router.post("/login")
async def login(request: Request, body: LoginRequest) -> dict:
    pending = await _sessions(request).login(body.telegramId)
    return success(
        {"telegramId": pending.external_id, "expiresAt": pending.expires_at.isoformat()},
        message="Verification code sent to your Telegram account",
    )


@router.post("/verify-2fa")
async def verify_2fa(request: Request, body: VerifyRequest) -> dict:
    grant = await _sessions(request).verify(body.telegramId, body.code)
    return success(
        {
            "token": grant.tokens.access_token,
            "refreshToken": grant.tokens.refresh_token,
            "user": grant.principal.public(),
        }
    )


@router.post("/refresh-token")
async def refresh_token(request: Request, body: RefreshRequest) -> dict:
    tokens = await _sessions(request).refresh(body.refreshToken)
    return success({"token": tokens.access_token, "refreshToken": tokens.refresh_token})


@router.post("/logout")
async def logout(request: Request, principal: Principal = Depends(get_principal)) -> dict:
    await _sessions(request).logout(principal)
    return success(message="Logged out successfully")
