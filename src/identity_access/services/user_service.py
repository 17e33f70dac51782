from __future__ import annotations

from typing import Any

from identity_access.configs.logging_config import get_logger
from identity_access.domain.entities.iam import Principal, Role
from identity_access.errors import NotFoundError
from identity_access.events import definitions as ev
from identity_access.events.publisher import EventPublisher
from identity_access.repositories.credential_store import CredentialStore

log = get_logger(__name__)


class UserService:
    def __init__(self, store: CredentialStore, events: EventPublisher):
        self._store = store
        self._events = events

    async def list_principals(self) -> list[Principal]:
        return await self._store.list_principals()

    async def get_principal(self, principal_id: str) -> Principal:
        principal = await self._store.find_principal_by_id(principal_id)
        if principal is None:
            raise NotFoundError("user not found")
        return principal

    async def get_profile(self, principal_id: str) -> tuple[Principal, list[Role]]:
        principal = await self.get_principal(principal_id)
        return principal, await self._store.list_roles_for_principal(principal_id)

    async def update_principal(
        self,
        principal_id: str,
        *,
        name: str | None = None,
        handle: str | None = None,
        is_active: bool | None = None,
    ) -> Principal:
        await self.get_principal(principal_id)
        updates: dict[str, Any] = {}
        if name is not None:
            updates["name"] = name
        if handle is not None:
            updates["handle"] = handle
        if is_active is not None:
            updates["is_active"] = is_active

        principal = await self._store.update_principal(principal_id, updates)
        await self._events.publish(
            ev.USER_UPDATED,
            ev.build_event(
                id=principal.id,
                telegramId=principal.external_id,
                name=principal.name,
                isActive=principal.is_active,
            ),
        )
        log.info("user.updated user_id=%s keys=%s", principal_id, sorted(updates))
        return principal

    async def deactivate_principal(self, principal_id: str) -> Principal:
        await self.get_principal(principal_id)
        principal = await self._store.update_principal(principal_id, {"is_active": False})
        await self._events.publish(
            ev.USER_DEACTIVATED,
            ev.build_event(id=principal.id, telegramId=principal.external_id),
        )
        log.info("user.deactivated user_id=%s", principal_id)
        return principal
