from __future__ import annotations

from typing import Any, Iterable

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from identity_access.configs.logging_config import get_logger
from identity_access.domain.entities.iam import Permission, Principal, Role
from identity_access.errors import ConflictError, NotFoundError
from identity_access.repositories.credential_store import CredentialStore
from identity_access.utils.time_utils import utc_now

log = get_logger(__name__)


class MongoCredentialStore(CredentialStore):
    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._principals = db["principals"]
        self._roles = db["roles"]
        self._permissions = db["permissions"]
        self._principal_roles = db["principal_roles"]
        self._role_permissions = db["role_permissions"]

    async def ensure_indexes(self) -> None:
        log.info("repo.credentials.ensure_indexes start")
        await self._principals.create_index([("external_id", 1)], unique=True)
        await self._roles.create_index([("name", 1)], unique=True)
        await self._permissions.create_index([("name", 1)], unique=True)
        await self._permissions.create_index([("resource", 1), ("action", 1)])
        await self._principal_roles.create_index(
            [("principal_id", 1), ("role_id", 1)], unique=True
        )
        await self._principal_roles.create_index([("role_id", 1)])
        await self._role_permissions.create_index(
            [("role_id", 1), ("permission_id", 1)], unique=True
        )
        await self._role_permissions.create_index([("permission_id", 1)])
        log.info("repo.credentials.ensure_indexes done")

    # ----------------------------
    # Principals
    # ----------------------------

    async def create_principal(self, principal: Principal) -> Principal:
        log.info("repo.principal.insert external_id=%s", principal.external_id)
        try:
            await self._principals.insert_one(principal.to_doc())
        except DuplicateKeyError as e:
            raise ConflictError("principal with this external id already exists") from e
        return principal

    async def find_principal_by_id(self, principal_id: str) -> Principal | None:
        doc = await self._principals.find_one({"_id": principal_id})
        return Principal.from_doc(doc) if doc else None

    async def find_principal_by_external_id(self, external_id: str) -> Principal | None:
        doc = await self._principals.find_one({"external_id": external_id})
        return Principal.from_doc(doc) if doc else None

    async def list_principals(self) -> list[Principal]:
        cursor = self._principals.find({}).sort([("created_at", 1)])
        return [Principal.from_doc(d) async for d in cursor]

    async def update_principal(self, principal_id: str, updates: dict[str, Any]) -> Principal:
        log.info(
            "repo.principal.update id=%s keys=%s", principal_id, sorted(list(updates.keys()))
        )
        doc = await self._principals.find_one_and_update(
            {"_id": principal_id},
            {"$set": {**updates, "updated_at": utc_now()}},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise NotFoundError("principal not found")
        return Principal.from_doc(doc)

    # ----------------------------
    # Roles
    # ----------------------------

    async def create_role(self, role: Role) -> Role:
        try:
            await self._roles.insert_one(role.to_doc())
        except DuplicateKeyError as e:
            raise ConflictError("role with this name already exists") from e
        return role

    async def find_role_by_id(self, role_id: str) -> Role | None:
        doc = await self._roles.find_one({"_id": role_id})
        return Role.from_doc(doc) if doc else None

    async def find_role_by_name(self, name: str) -> Role | None:
        doc = await self._roles.find_one({"name": name})
        return Role.from_doc(doc) if doc else None

    async def list_roles(self) -> list[Role]:
        return [Role.from_doc(d) async for d in self._roles.find({}).sort([("name", 1)])]

    async def update_role(self, role_id: str, updates: dict[str, Any]) -> Role:
        try:
            doc = await self._roles.find_one_and_update(
                {"_id": role_id},
                {"$set": {**updates, "updated_at": utc_now()}},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise ConflictError("role with this name already exists") from e
        if not doc:
            raise NotFoundError("role not found")
        return Role.from_doc(doc)

    async def delete_role(self, role_id: str) -> None:
        if not await self._roles.find_one({"_id": role_id}, projection={"_id": 1}):
            raise NotFoundError("role not found")
        if await self.count_principals_with_role(role_id):
            raise ConflictError("cannot delete role that is still assigned to users")
        await self._roles.delete_one({"_id": role_id})
        # no multi-document transaction: links written after the guard ran are swept
        # here, and assign_* re-checks both ends after its upsert
        await self._role_permissions.delete_many({"role_id": role_id})
        await self._principal_roles.delete_many({"role_id": role_id})
        log.info("repo.role.deleted id=%s", role_id)

    # ----------------------------
    # Permissions
    # ----------------------------

    async def create_permission(self, permission: Permission) -> Permission:
        try:
            await self._permissions.insert_one(permission.to_doc())
        except DuplicateKeyError as e:
            raise ConflictError("permission with this name already exists") from e
        return permission

    async def find_permission_by_id(self, permission_id: str) -> Permission | None:
        doc = await self._permissions.find_one({"_id": permission_id})
        return Permission.from_doc(doc) if doc else None

    async def find_permission_by_name(self, name: str) -> Permission | None:
        doc = await self._permissions.find_one({"name": name})
        return Permission.from_doc(doc) if doc else None

    async def list_permissions(self) -> list[Permission]:
        cursor = self._permissions.find({}).sort([("resource", 1), ("action", 1)])
        return [Permission.from_doc(d) async for d in cursor]

    async def delete_permission(self, permission_id: str) -> None:
        if not await self._permissions.find_one({"_id": permission_id}, projection={"_id": 1}):
            raise NotFoundError("permission not found")
        if await self.count_roles_with_permission(permission_id):
            raise ConflictError("cannot delete permission that is still assigned to roles")
        await self._permissions.delete_one({"_id": permission_id})
        await self._role_permissions.delete_many({"permission_id": permission_id})
        log.info("repo.permission.deleted id=%s", permission_id)

    # ----------------------------
    # Assignments
    # ----------------------------

    async def assign_role(self, principal_id: str, role_id: str) -> bool:
        if not await self._principals.find_one({"_id": principal_id}, projection={"_id": 1}):
            raise NotFoundError("principal not found")
        if not await self._roles.find_one({"_id": role_id}, projection={"_id": 1}):
            raise NotFoundError("role not found")
        try:
            res = await self._principal_roles.update_one(
                {"principal_id": principal_id, "role_id": role_id},
                {"$setOnInsert": {"created_at": utc_now()}},
                upsert=True,
            )
        except DuplicateKeyError:
            # concurrent upsert of the same pair
            return False
        if not await self._roles.find_one({"_id": role_id}, projection={"_id": 1}):
            # role deleted while the link was written
            await self._principal_roles.delete_one(
                {"principal_id": principal_id, "role_id": role_id}
            )
            raise NotFoundError("role not found")
        return res.upserted_id is not None

    async def remove_role(self, principal_id: str, role_id: str) -> None:
        res = await self._principal_roles.delete_one(
            {"principal_id": principal_id, "role_id": role_id}
        )
        if res.deleted_count == 0:
            raise NotFoundError("user does not have this role")

    async def assign_permission(self, role_id: str, permission_id: str) -> bool:
        if not await self._roles.find_one({"_id": role_id}, projection={"_id": 1}):
            raise NotFoundError("role not found")
        if not await self._permissions.find_one({"_id": permission_id}, projection={"_id": 1}):
            raise NotFoundError("permission not found")
        try:
            res = await self._role_permissions.update_one(
                {"role_id": role_id, "permission_id": permission_id},
                {"$setOnInsert": {"created_at": utc_now()}},
                upsert=True,
            )
        except DuplicateKeyError:
            # concurrent upsert of the same pair
            return False
        role = await self._roles.find_one({"_id": role_id}, projection={"_id": 1})
        permission = await self._permissions.find_one({"_id": permission_id}, projection={"_id": 1})
        if not role or not permission:
            await self._role_permissions.delete_one(
                {"role_id": role_id, "permission_id": permission_id}
            )
            raise NotFoundError("role not found" if not role else "permission not found")
        return res.upserted_id is not None

    async def remove_permission(self, role_id: str, permission_id: str) -> None:
        res = await self._role_permissions.delete_one(
            {"role_id": role_id, "permission_id": permission_id}
        )
        if res.deleted_count == 0:
            raise NotFoundError("role does not have this permission")

    async def list_roles_for_principal(self, principal_id: str) -> list[Role]:
        role_ids = [
            d["role_id"]
            async for d in self._principal_roles.find(
                {"principal_id": principal_id}, projection={"role_id": 1}
            )
        ]
        if not role_ids:
            return []
        cursor = self._roles.find({"_id": {"$in": role_ids}})
        return [Role.from_doc(d) async for d in cursor]

    async def list_permissions_for_roles(self, role_ids: Iterable[str]) -> list[Permission]:
        ids = list(role_ids)
        if not ids:
            return []
        permission_ids = await self._role_permissions.distinct(
            "permission_id", {"role_id": {"$in": ids}}
        )
        if not permission_ids:
            return []
        cursor = self._permissions.find({"_id": {"$in": permission_ids}})
        return [Permission.from_doc(d) async for d in cursor]

    async def count_principals_with_role(self, role_id: str) -> int:
        return await self._principal_roles.count_documents({"role_id": role_id})

    async def count_roles_with_permission(self, permission_id: str) -> int:
        return await self._role_permissions.count_documents({"permission_id": permission_id})
