from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from identity_access.auth.dependencies import get_principal, require_access
from identity_access.domain.entities.iam import Principal, PrincipalUpdateRequest
from identity_access.services.user_service import UserService
from identity_access.utils.response import success

router = APIRouter(prefix="/api/users", tags=["users"])


def _users(request: Request) -> UserService:
    return request.app.state.user_service


@router.get("/me")
async def current_user(request: Request, principal: Principal = Depends(get_principal)) -> dict:
    principal, roles = await _users(request).get_profile(principal.id)
    return success({"user": principal.public(), "roles": [r.public() for r in roles]})


@router.get("")
async def list_users(
    request: Request, _: Principal = Depends(require_access("admin", "manager"))
) -> dict:
    users = await _users(request).list_principals()
    return success({"users": [u.public() for u in users]})


@router.get("/{id}")
async def get_user(
    id: str,
    request: Request,
    _: Principal = Depends(require_access("admin", "manager", allow_self=True)),
) -> dict:
    principal, roles = await _users(request).get_profile(id)
    return success({"user": principal.public(), "roles": [r.public() for r in roles]})


@router.put("/{id}")
async def update_user(
    id: str,
    body: PrincipalUpdateRequest,
    request: Request,
    _: Principal = Depends(require_access("admin", allow_self=True)),
) -> dict:
    principal = await _users(request).update_principal(
        id, name=body.name, handle=body.handle, is_active=body.isActive
    )
    return success({"user": principal.public()})


@router.delete("/{id}")
async def deactivate_user(
    id: str, request: Request, _: Principal = Depends(require_access("admin"))
) -> dict:
    await _users(request).deactivate_principal(id)
    return success(message="User deactivated successfully")
