from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Depends, Header, Request

from identity_access.auth.authorization import AuthorizationEngine, resource_from_path
from identity_access.domain.entities.iam import Principal
from identity_access.errors import AuthError
from identity_access.configs.logging_config import get_logger
from identity_access.services.session_service import SessionService

log = get_logger(__name__)


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        log.info("auth.missing_bearer_token")
        raise AuthError("no authentication token provided")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        log.info("auth.invalid_authorization_header scheme=%s", scheme)
        raise AuthError("invalid authentication token format")
    return token


def _collection_path(request: Request) -> str:
    """Route template without path parameters: ``/api/users/{id}`` -> ``/api/users``."""
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    if template:
        return "/".join(s for s in template.split("/") if not s.startswith("{"))
    values = {str(v) for v in request.path_params.values()}
    return "/".join(s for s in request.url.path.split("/") if s not in values)


async def get_principal(
    request: Request,
    authorization: str | None = Header(default=None),
) -> Principal:
    """
    Resolve the authenticated principal from the bearer access token.

    The token must verify as an access token and its subject must be an
    active principal.
    """
    token = _bearer_token(authorization)
    sessions: SessionService = request.app.state.session_service
    principal = await sessions.authenticate(token)
    request.state.token = token
    return principal


def require_access(
    *roles: str,
    resource: str | None = None,
    allow_self: bool = False,
) -> Callable[..., Awaitable[Principal]]:
    """
    Dependency factory guarding a route.

    ``roles`` are the coarse override; ``resource`` names the permission
    resource (defaults to the last segment of the route's collection path);
    ``allow_self`` lets a principal through when the ``id`` path parameter is
    its own id.
    """

    async def dependency(
        request: Request,
        principal: Principal = Depends(get_principal),
    ) -> Principal:
        engine: AuthorizationEngine = request.app.state.authorization
        owner_id = request.path_params.get("id") if allow_self else None
        await engine.require(
            principal.id,
            roles,
            resource_owner_id=owner_id,
            resource=resource or resource_from_path(_collection_path(request)),
            method=request.method,
        )
        return principal

    return dependency
