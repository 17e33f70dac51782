from __future__ import annotations

from identity_access.configs.logging_config import get_logger
from identity_access.domain.entities.iam import Permission, Role
from identity_access.errors import ConflictError, NotFoundError
from identity_access.events import definitions as ev
from identity_access.events.publisher import EventPublisher
from identity_access.repositories.credential_store import CredentialStore

log = get_logger(__name__)


class IamService:
    """Administration of roles, permissions and their assignments."""

    def __init__(self, store: CredentialStore, events: EventPublisher):
        self._store = store
        self._events = events

    # ----------------------------
    # Roles
    # ----------------------------

    async def list_roles(self) -> list[Role]:
        return await self._store.list_roles()

    async def _role(self, role_id: str) -> Role:
        role = await self._store.find_role_by_id(role_id)
        if role is None:
            raise NotFoundError("role not found")
        return role

    async def get_role(self, role_id: str) -> tuple[Role, list[Permission]]:
        role = await self._role(role_id)
        return role, await self._store.list_permissions_for_role(role_id)

    async def create_role(self, name: str, description: str | None = None) -> Role:
        if await self._store.find_role_by_name(name):
            raise ConflictError("role with this name already exists")
        role = await self._store.create_role(Role(name=name, description=description))
        await self._events.publish(ev.ROLE_CREATED, ev.build_event(id=role.id, name=role.name))
        log.info("iam.role.created role_id=%s name=%s", role.id, role.name)
        return role

    async def update_role(
        self, role_id: str, *, name: str | None = None, description: str | None = None
    ) -> Role:
        role = await self._role(role_id)
        updates: dict[str, str] = {}
        if name and name != role.name:
            if await self._store.find_role_by_name(name):
                raise ConflictError("role with this name already exists")
            updates["name"] = name
        if description is not None:
            updates["description"] = description
        if updates:
            role = await self._store.update_role(role_id, updates)
        await self._events.publish(ev.ROLE_UPDATED, ev.build_event(id=role.id, name=role.name))
        log.info("iam.role.updated role_id=%s keys=%s", role.id, sorted(updates))
        return role

    async def delete_role(self, role_id: str) -> None:
        role = await self._role(role_id)
        if await self._store.count_principals_with_role(role_id):
            log.info("iam.role.delete_blocked role_id=%s", role_id)
            raise ConflictError("cannot delete role that is still assigned to users")
        await self._store.delete_role(role_id)
        await self._events.publish(ev.ROLE_DELETED, ev.build_event(id=role.id, name=role.name))
        log.info("iam.role.deleted role_id=%s", role_id)

    # ----------------------------
    # Permissions
    # ----------------------------

    async def list_permissions(self) -> list[Permission]:
        return await self._store.list_permissions()

    async def get_permission(self, permission_id: str) -> Permission:
        permission = await self._store.find_permission_by_id(permission_id)
        if permission is None:
            raise NotFoundError("permission not found")
        return permission

    async def create_permission(
        self, name: str, resource: str, action: str, description: str | None = None
    ) -> Permission:
        if await self._store.find_permission_by_name(name):
            raise ConflictError("permission with this name already exists")
        permission = await self._store.create_permission(
            Permission(name=name, resource=resource, action=action, description=description)
        )
        await self._events.publish(
            ev.PERMISSION_CREATED,
            ev.build_event(
                id=permission.id,
                name=permission.name,
                resource=permission.resource,
                action=permission.action,
            ),
        )
        log.info(
            "iam.permission.created permission_id=%s resource=%s action=%s",
            permission.id,
            resource,
            action,
        )
        return permission

    async def delete_permission(self, permission_id: str) -> None:
        permission = await self.get_permission(permission_id)
        if await self._store.count_roles_with_permission(permission_id):
            log.info("iam.permission.delete_blocked permission_id=%s", permission_id)
            raise ConflictError("cannot delete permission that is still assigned to roles")
        await self._store.delete_permission(permission_id)
        await self._events.publish(
            ev.PERMISSION_DELETED, ev.build_event(id=permission.id, name=permission.name)
        )
        log.info("iam.permission.deleted permission_id=%s", permission_id)

    # ----------------------------
    # Assignments
    # ----------------------------

    async def assign_permissions_to_role(
        self, role_id: str, permission_ids: list[str]
    ) -> list[Permission]:
        await self._role(role_id)
        unique_ids = list(dict.fromkeys(permission_ids))
        for pid in unique_ids:
            if await self._store.find_permission_by_id(pid) is None:
                raise NotFoundError("one or more permissions not found")

        created = 0
        for pid in unique_ids:
            if await self._store.assign_permission(role_id, pid):
                created += 1

        await self._events.publish(
            ev.ROLE_PERMISSIONS_UPDATED,
            ev.build_event(roleId=role_id, permissionIds=unique_ids),
        )
        log.info(
            "iam.role.permissions.assigned role_id=%s requested=%s created=%s",
            role_id,
            len(unique_ids),
            created,
        )
        return await self._store.list_permissions_for_role(role_id)

    async def remove_permission_from_role(self, role_id: str, permission_id: str) -> None:
        await self._store.remove_permission(role_id, permission_id)
        await self._events.publish(
            ev.ROLE_PERMISSION_REMOVED,
            ev.build_event(roleId=role_id, permissionId=permission_id),
        )
        log.info("iam.role.permission.removed role_id=%s permission_id=%s", role_id, permission_id)

    async def assign_roles_to_principal(self, principal_id: str, role_ids: list[str]) -> list[Role]:
        if await self._store.find_principal_by_id(principal_id) is None:
            raise NotFoundError("user not found")
        unique_ids = list(dict.fromkeys(role_ids))
        for rid in unique_ids:
            if await self._store.find_role_by_id(rid) is None:
                raise NotFoundError("one or more roles not found")

        for rid in unique_ids:
            await self._store.assign_role(principal_id, rid)

        await self._events.publish(
            ev.USER_ROLES_UPDATED,
            ev.build_event(userId=principal_id, roleIds=unique_ids),
        )
        log.info("iam.user.roles.assigned user_id=%s roles=%s", principal_id, len(unique_ids))
        return await self._store.list_roles_for_principal(principal_id)

    async def remove_role_from_principal(self, principal_id: str, role_id: str) -> None:
        await self._store.remove_role(principal_id, role_id)
        await self._events.publish(
            ev.USER_ROLE_REMOVED,
            ev.build_event(userId=principal_id, roleId=role_id),
        )
        log.info("iam.user.role.removed user_id=%s role_id=%s", principal_id, role_id)
