from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from identity_access.auth.dependencies import require_access
from identity_access.domain.entities.iam import (
    PermissionAssignRequest,
    PermissionCreateRequest,
    RoleAssignRequest,
    RoleCreateRequest,
    RoleUpdateRequest,
)
from identity_access.services.iam_service import IamService
from identity_access.utils.response import success

# Administration is admin-only; permission grants on "iam" let other roles in.
router = APIRouter(
    prefix="/api/iam",
    tags=["iam"],
    dependencies=[Depends(require_access("admin", resource="iam"))],
)


def _iam(request: Request) -> IamService:
    return request.app.state.iam_service


@router.get("/roles")
async def list_roles(request: Request) -> dict:
    roles = await _iam(request).list_roles()
    return success({"roles": [r.public() for r in roles]})


@router.post("/roles", status_code=201)
async def create_role(request: Request, body: RoleCreateRequest) -> dict:
    role = await _iam(request).create_role(body.name, body.description)
    return success({"role": role.public()})


@router.get("/roles/{role_id}")
async def get_role(role_id: str, request: Request) -> dict:
    role, permissions = await _iam(request).get_role(role_id)
    return success({"role": role.public(), "permissions": [p.public() for p in permissions]})


@router.put("/roles/{role_id}")
async def update_role(role_id: str, request: Request, body: RoleUpdateRequest) -> dict:
    role = await _iam(request).update_role(role_id, name=body.name, description=body.description)
    return success({"role": role.public()})


@router.delete("/roles/{role_id}")
async def delete_role(role_id: str, request: Request) -> dict:
    await _iam(request).delete_role(role_id)
    return success(message="Role deleted successfully")


@router.get("/permissions")
async def list_permissions(request: Request) -> dict:
    permissions = await _iam(request).list_permissions()
    return success({"permissions": [p.public() for p in permissions]})


@router.post("/permissions", status_code=201)
async def create_permission(request: Request, body: PermissionCreateRequest) -> dict:
    permission = await _iam(request).create_permission(
        body.name, body.resource, body.action, body.description
    )
    return success({"permission": permission.public()})


@router.get("/permissions/{permission_id}")
async def get_permission(permission_id: str, request: Request) -> dict:
    permission = await _iam(request).get_permission(permission_id)
    return success({"permission": permission.public()})


@router.delete("/permissions/{permission_id}")
async def delete_permission(permission_id: str, request: Request) -> dict:
    await _iam(request).delete_permission(permission_id)
    return success(message="Permission deleted successfully")


@router.post("/roles/{role_id}/permissions")
async def assign_permissions(role_id: str, request: Request, body: PermissionAssignRequest) -> dict:
    permissions = await _iam(request).assign_permissions_to_role(role_id, body.permissionIds)
    return success({"permissions": [p.public() for p in permissions]})


@router.delete("/roles/{role_id}/permissions/{permission_id}")
async def remove_permission(role_id: str, permission_id: str, request: Request) -> dict:
    await _iam(request).remove_permission_from_role(role_id, permission_id)
    return success(message="Permission removed from role")


@router.post("/users/{user_id}/roles")
async def assign_roles(user_id: str, request: Request, body: RoleAssignRequest) -> dict:
    roles = await _iam(request).assign_roles_to_principal(user_id, body.roleIds)
    return success({"roles": [r.public() for r in roles]})


@router.delete("/users/{user_id}/roles/{role_id}")
async def remove_role(user_id: str, role_id: str, request: Request) -> dict:
    await _iam(request).remove_role_from_principal(user_id, role_id)
    return success(message="Role removed from user")
