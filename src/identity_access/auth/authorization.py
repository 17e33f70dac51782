from __future__ import annotations

from typing import Iterable

from identity_access.auth.models import AccessDecision, Action, DecisionReason
from identity_access.configs.logging_config import get_logger
from identity_access.errors import ForbiddenError
from identity_access.repositories.credential_store import CredentialStore

log = get_logger(__name__)

METHOD_ACTIONS: dict[str, Action] = {
    "GET": Action.READ,
    "POST": Action.CREATE,
    "PUT": Action.UPDATE,
    "PATCH": Action.UPDATE,
    "DELETE": Action.DELETE,
}


def action_for_method(method: str | None) -> Action:
    """Unrecognised verbs (HEAD, OPTIONS, ...) are treated as reads."""
    return METHOD_ACTIONS.get((method or "").upper(), Action.READ)


def resource_from_path(collection_path: str | None) -> str:
    """``/api/users`` -> ``users``. Fallback for routes without a declared resource."""
    segments = [s for s in (collection_path or "").split("/") if s]
    return segments[-1] if segments else ""


class AuthorizationEngine:
    """
    Two-tier, additive access decision.

    Role membership is checked first as a coarse override; when no required
    role is held, the (resource, action) grants reachable through the
    principal's roles are consulted. There are no deny grants: a missing grant
    is the only way to be refused.
    """

    def __init__(self, store: CredentialStore):
        self._store = store

    async def authorize(
        self,
        principal_id: str,
        required_roles: Iterable[str] = (),
        *,
        resource_owner_id: str | None = None,
        resource: str | None = None,
        method: str | None = "GET",
    ) -> AccessDecision:
        if resource_owner_id is not None and resource_owner_id == principal_id:
            return AccessDecision(True, DecisionReason.SELF)

        required = set(required_roles)
        if not required:
            return AccessDecision(True, DecisionReason.UNRESTRICTED)

        roles = await self._store.list_roles_for_principal(principal_id)
        if any(r.name in required for r in roles):
            return AccessDecision(True, DecisionReason.ROLE)

        action = action_for_method(method)
        if resource and roles:
            permissions = await self._store.list_permissions_for_roles(r.id for r in roles)
            if any(p.matches(resource, action.value) for p in permissions):
                return AccessDecision(True, DecisionReason.PERMISSION, resource, action)

        log.info(
            "authz.denied principal_id=%s required=%s resource=%s action=%s",
            principal_id,
            sorted(required),
            resource,
            action.value,
        )
        return AccessDecision(False, DecisionReason.DENIED, resource, action)

    async def require(
        self,
        principal_id: str,
        required_roles: Iterable[str] = (),
        *,
        resource_owner_id: str | None = None,
        resource: str | None = None,
        method: str | None = "GET",
    ) -> AccessDecision:
        decision = await self.authorize(
            principal_id,
            required_roles,
            resource_owner_id=resource_owner_id,
            resource=resource,
            method=method,
        )
        if not decision.allowed:
            raise ForbiddenError("forbidden: insufficient permissions")
        return decision
