from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from identity_access.utils.time_utils import utc_now


def new_id() -> str:
    return str(uuid.uuid4())


class Entity(BaseModel):
    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_doc(cls, doc: dict[str, Any]):
        data = dict(doc)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls(**data)

    def to_doc(self) -> dict[str, Any]:
        data = self.model_dump()
        data["_id"] = data.pop("id")
        return data


class Principal(Entity):
    external_id: str
    name: str
    handle: str | None = None
    is_active: bool = True
    last_login_at: datetime | None = None

    def public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "externalId": self.external_id,
            "name": self.name,
            "handle": self.handle,
            "isActive": self.is_active,
            "lastLoginAt": self.last_login_at.isoformat() if self.last_login_at else None,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


class Role(Entity):
    name: str
    description: str | None = None

    def public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


class Permission(Entity):
    name: str
    resource: str
    action: str
    description: str | None = None

    def matches(self, resource: str, action: str) -> bool:
        return self.resource == resource and self.action == action

    def public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "resource": self.resource,
            "action": self.action,
            "description": self.description,
        }


# ----------------------------
# Request bodies
# ----------------------------


class RoleCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None


class RoleUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None


class PermissionCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    resource: str = Field(min_length=1)
    action: str = Field(pattern="^(read|create|update|delete)$")
    description: str | None = None


class PermissionAssignRequest(BaseModel):
    permissionIds: list[str] = Field(min_length=1)


class RoleAssignRequest(BaseModel):
    roleIds: list[str] = Field(min_length=1)


class PrincipalUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    handle: str | None = None
    isActive: bool | None = None
