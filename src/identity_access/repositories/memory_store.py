from __future__ import annotations

import asyncio
from typing import Any, Iterable

from identity_access.configs.logging_config import get_logger
from identity_access.domain.entities.iam import Permission, Principal, Role
from identity_access.errors import ConflictError, NotFoundError
from identity_access.repositories.credential_store import CredentialStore
from identity_access.utils.time_utils import utc_now

log = get_logger(__name__)


class InMemoryCredentialStore(CredentialStore):
    """
    Process-local store used for tests and local development.

    Every mutation runs under one asyncio lock so check-then-write sequences
    (uniqueness, deletion guards) cannot interleave.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._principals: dict[str, Principal] = {}
        self._roles: dict[str, Role] = {}
        self._permissions: dict[str, Permission] = {}
        self._principal_roles: set[tuple[str, str]] = set()
        self._role_permissions: set[tuple[str, str]] = set()

    # ----------------------------
    # Principals
    # ----------------------------

    async def create_principal(self, principal: Principal) -> Principal:
        async with self._lock:
            if any(p.external_id == principal.external_id for p in self._principals.values()):
                raise ConflictError("principal with this external id already exists")
            self._principals[principal.id] = principal
            log.info("store.memory.principal.created id=%s", principal.id)
            return principal.model_copy()

    async def find_principal_by_id(self, principal_id: str) -> Principal | None:
        p = self._principals.get(principal_id)
        return p.model_copy() if p else None

    async def find_principal_by_external_id(self, external_id: str) -> Principal | None:
        for p in self._principals.values():
            if p.external_id == external_id:
                return p.model_copy()
        return None

    async def list_principals(self) -> list[Principal]:
        return [p.model_copy() for p in self._principals.values()]

    async def update_principal(self, principal_id: str, updates: dict[str, Any]) -> Principal:
        async with self._lock:
            current = self._principals.get(principal_id)
            if current is None:
                raise NotFoundError("principal not found")
            updated = current.model_copy(update={**updates, "updated_at": utc_now()})
            self._principals[principal_id] = updated
            return updated.model_copy()

    # ----------------------------
    # Roles
    # ----------------------------

    async def create_role(self, role: Role) -> Role:
        async with self._lock:
            if any(r.name == role.name for r in self._roles.values()):
                raise ConflictError("role with this name already exists")
            self._roles[role.id] = role
            return role.model_copy()

    async def find_role_by_id(self, role_id: str) -> Role | None:
        r = self._roles.get(role_id)
        return r.model_copy() if r else None

    async def find_role_by_name(self, name: str) -> Role | None:
        for r in self._roles.values():
            if r.name == name:
                return r.model_copy()
        return None

    async def list_roles(self) -> list[Role]:
        return [r.model_copy() for r in self._roles.values()]

    async def update_role(self, role_id: str, updates: dict[str, Any]) -> Role:
        async with self._lock:
            current = self._roles.get(role_id)
            if current is None:
                raise NotFoundError("role not found")
            new_name = updates.get("name")
            if new_name and new_name != current.name:
                if any(r.name == new_name for r in self._roles.values()):
                    raise ConflictError("role with this name already exists")
            updated = current.model_copy(update={**updates, "updated_at": utc_now()})
            self._roles[role_id] = updated
            return updated.model_copy()

    async def delete_role(self, role_id: str) -> None:
        async with self._lock:
            if role_id not in self._roles:
                raise NotFoundError("role not found")
            if any(rid == role_id for _, rid in self._principal_roles):
                raise ConflictError("cannot delete role that is still assigned to users")
            self._role_permissions = {
                (rid, pid) for rid, pid in self._role_permissions if rid != role_id
            }
            del self._roles[role_id]

    # ----------------------------
    # Permissions
    # ----------------------------

    async def create_permission(self, permission: Permission) -> Permission:
        async with self._lock:
            if any(p.name == permission.name for p in self._permissions.values()):
                raise ConflictError("permission with this name already exists")
            self._permissions[permission.id] = permission
            return permission.model_copy()

    async def find_permission_by_id(self, permission_id: str) -> Permission | None:
        p = self._permissions.get(permission_id)
        return p.model_copy() if p else None

    async def find_permission_by_name(self, name: str) -> Permission | None:
        for p in self._permissions.values():
            if p.name == name:
                return p.model_copy()
        return None

    async def list_permissions(self) -> list[Permission]:
        return [p.model_copy() for p in self._permissions.values()]

    async def delete_permission(self, permission_id: str) -> None:
        async with self._lock:
            if permission_id not in self._permissions:
                raise NotFoundError("permission not found")
            if any(pid == permission_id for _, pid in self._role_permissions):
                raise ConflictError("cannot delete permission that is still assigned to roles")
            del self._permissions[permission_id]

    # ----------------------------
    # Assignments
    # ----------------------------

    async def assign_role(self, principal_id: str, role_id: str) -> bool:
        async with self._lock:
            if principal_id not in self._principals:
                raise NotFoundError("principal not found")
            if role_id not in self._roles:
                raise NotFoundError("role not found")
            key = (principal_id, role_id)
            if key in self._principal_roles:
                return False
            self._principal_roles.add(key)
            return True

    async def remove_role(self, principal_id: str, role_id: str) -> None:
        async with self._lock:
            key = (principal_id, role_id)
            if key not in self._principal_roles:
                raise NotFoundError("user does not have this role")
            self._principal_roles.discard(key)

    async def assign_permission(self, role_id: str, permission_id: str) -> bool:
        async with self._lock:
            if role_id not in self._roles:
                raise NotFoundError("role not found")
            if permission_id not in self._permissions:
                raise NotFoundError("permission not found")
            key = (role_id, permission_id)
            if key in self._role_permissions:
                return False
            self._role_permissions.add(key)
            return True

    async def remove_permission(self, role_id: str, permission_id: str) -> None:
        async with self._lock:
            key = (role_id, permission_id)
            if key not in self._role_permissions:
                raise NotFoundError("role does not have this permission")
            self._role_permissions.discard(key)

    async def list_roles_for_principal(self, principal_id: str) -> list[Role]:
        return [
            self._roles[rid].model_copy()
            for pid, rid in sorted(self._principal_roles)
            if pid == principal_id and rid in self._roles
        ]

    async def list_permissions_for_roles(self, role_ids: Iterable[str]) -> list[Permission]:
        wanted = set(role_ids)
        seen: set[str] = set()
        out: list[Permission] = []
        for rid, pid in sorted(self._role_permissions):
            if rid in wanted and pid not in seen and pid in self._permissions:
                seen.add(pid)
                out.append(self._permissions[pid].model_copy())
        return out

    async def count_principals_with_role(self, role_id: str) -> int:
        return sum(1 for _, rid in self._principal_roles if rid == role_id)

    async def count_roles_with_permission(self, permission_id: str) -> int:
        return sum(1 for _, pid in self._role_permissions if pid == permission_id)

    def association_count(self) -> tuple[int, int]:
        return len(self._principal_roles), len(self._role_permissions)
