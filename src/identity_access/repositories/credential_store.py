from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable

from identity_access.domain.entities.iam import Permission, Principal, Role


class CredentialStore(ABC):
    """
    Repository over principals, roles, permissions and their assignments.

    Contract shared by every backend:
    - lookups return ``None`` when nothing matches; mutations of a missing
      record raise ``NotFoundError``
    - unique names / external ids raise ``ConflictError`` on duplicates
    - ``assign_*`` is idempotent and raises ``NotFoundError`` on a missing side
    - ``delete_role`` / ``delete_permission`` raise ``ConflictError`` while the
      record is still referenced by an assignment
    """

    # ----------------------------
    # Principals
    # ----------------------------

    @abstractmethod
    async def create_principal(self, principal: Principal) -> Principal: ...

    @abstractmethod
    async def find_principal_by_id(self, principal_id: str) -> Principal | None: ...

    @abstractmethod
    async def find_principal_by_external_id(self, external_id: str) -> Principal | None: ...

    @abstractmethod
    async def list_principals(self) -> list[Principal]: ...

    @abstractmethod
    async def update_principal(self, principal_id: str, updates: dict[str, Any]) -> Principal: ...

    # ----------------------------
    # Roles
    # ----------------------------

    @abstractmethod
    async def create_role(self, role: Role) -> Role: ...

    @abstractmethod
    async def find_role_by_id(self, role_id: str) -> Role | None: ...

    @abstractmethod
    async def find_role_by_name(self, name: str) -> Role | None: ...

    @abstractmethod
    async def list_roles(self) -> list[Role]: ...

    @abstractmethod
    async def update_role(self, role_id: str, updates: dict[str, Any]) -> Role: ...

    @abstractmethod
    async def delete_role(self, role_id: str) -> None: ...

    # ----------------------------
    # Permissions
    # ----------------------------

    @abstractmethod
    async def create_permission(self, permission: Permission) -> Permission: ...

    @abstractmethod
    async def find_permission_by_id(self, permission_id: str) -> Permission | None: ...

    @abstractmethod
    async def find_permission_by_name(self, name: str) -> Permission | None: ...

    @abstractmethod
    async def list_permissions(self) -> list[Permission]: ...

    @abstractmethod
    async def delete_permission(self, permission_id: str) -> None: ...

    # ----------------------------
    # Assignments
    # ----------------------------

    @abstractmethod
    async def assign_role(self, principal_id: str, role_id: str) -> bool:
        """Returns True when a new association was created."""

    @abstractmethod
    async def remove_role(self, principal_id: str, role_id: str) -> None: ...

    @abstractmethod
    async def assign_permission(self, role_id: str, permission_id: str) -> bool:
        """Returns True when a new association was created."""

    @abstractmethod
    async def remove_permission(self, role_id: str, permission_id: str) -> None: ...

    @abstractmethod
    async def list_roles_for_principal(self, principal_id: str) -> list[Role]: ...

    @abstractmethod
    async def list_permissions_for_roles(self, role_ids: Iterable[str]) -> list[Permission]: ...

    @abstractmethod
    async def count_principals_with_role(self, role_id: str) -> int: ...

    @abstractmethod
    async def count_roles_with_permission(self, permission_id: str) -> int: ...

    async def list_permissions_for_role(self, role_id: str) -> list[Permission]:
        return await self.list_permissions_for_roles([role_id])
