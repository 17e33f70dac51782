from __future__ import annotations

from typing import Callable
from datetime import datetime

from identity_access.auth.jwt import TokenService
from identity_access.auth.verification import OneTimeCodeVerifier
from identity_access.configs.logging_config import get_logger
from identity_access.domain.entities.auth import PendingLogin, SessionGrant, TokenPair
from identity_access.domain.entities.iam import Principal
from identity_access.errors import AuthError, ConflictError, NotFoundError, NotificationError
from identity_access.events import definitions as ev
from identity_access.events.publisher import EventPublisher
from identity_access.repositories.credential_store import CredentialStore
from identity_access.utils.time_utils import utc_now
from identity_access.webclient.notifier import Notifier

log = get_logger(__name__)

WELCOME_MESSAGE = "Welcome, {name}! Your account has been created successfully."


class SessionService:
    """
    Registration and the two-step login.

    A login attempt moves ``Start -> CodeSent -> Verified -> TokensIssued``; an
    expired or mismatched code sends the caller back to ``login`` for a new one.
    Events are fire-and-forget: a failed publish never fails the operation.
    """

    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenService,
        verifier: OneTimeCodeVerifier,
        notifier: Notifier,
        events: EventPublisher,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._tokens = tokens
        self._verifier = verifier
        self._notifier = notifier
        self._events = events
        self._clock = clock

    async def register(self, external_id: str, name: str, handle: str | None = None) -> Principal:
        if await self._store.find_principal_by_external_id(external_id):
            log.info("session.register.conflict external_id=%s", external_id)
            raise ConflictError("user with this external id already exists")

        principal = await self._store.create_principal(
            Principal(external_id=external_id, name=name, handle=handle)
        )
        await self._events.publish(
            ev.USER_CREATED,
            ev.build_event(id=principal.id, telegramId=principal.external_id, name=principal.name),
        )
        log.info("session.register.ok external_id=%s user_id=%s", external_id, principal.id)

        try:
            await self._notifier.send(external_id, WELCOME_MESSAGE.format(name=name))
        except NotificationError as e:
            log.warning("session.register.welcome_failed external_id=%s error=%s", external_id, e)
        return principal

    async def _active_principal(self, external_id: str) -> Principal:
        principal = await self._store.find_principal_by_external_id(external_id)
        if principal is None or not principal.is_active:
            log.info("session.principal.unavailable external_id=%s", external_id)
            raise NotFoundError("user not found or inactive")
        return principal

    async def login(self, external_id: str) -> PendingLogin:
        principal = await self._active_principal(external_id)
        entry = await self._verifier.issue(external_id)
        await self._events.publish(
            ev.AUTH_LOGIN_ATTEMPT,
            ev.build_event(userId=principal.id, telegramId=external_id),
        )
        log.info("session.login.code_sent external_id=%s user_id=%s", external_id, principal.id)
        return PendingLogin(external_id=external_id, expires_at=entry.expires_at)

    async def verify(self, external_id: str, code: str) -> SessionGrant:
        await self._verifier.verify(external_id, code)

        principal = await self._active_principal(external_id)
        principal = await self._store.update_principal(
            principal.id, {"last_login_at": self._clock()}
        )
        tokens = self._tokens.issue_token_pair(principal.id)
        await self._events.publish(
            ev.AUTH_LOGIN_SUCCESS,
            ev.build_event(userId=principal.id, telegramId=external_id),
        )
        log.info("session.verify.ok external_id=%s user_id=%s", external_id, principal.id)
        return SessionGrant(tokens=tokens, principal=principal)

    async def refresh(self, refresh_token: str) -> TokenPair:
        principal_id = self._tokens.verify_refresh_token(refresh_token)
        principal = await self._store.find_principal_by_id(principal_id)
        if principal is None or not principal.is_active:
            log.info("session.refresh.principal_unavailable user_id=%s", principal_id)
            raise AuthError("user not found or inactive")

        tokens = self._tokens.issue_token_pair(principal.id)
        await self._events.publish(ev.AUTH_TOKEN_REFRESHED, ev.build_event(userId=principal.id))
        log.info("session.refresh.ok user_id=%s", principal.id)
        return tokens

    async def logout(self, principal: Principal) -> None:
        # Tokens are stateless; the client discards them. Nothing is revoked.
        await self._events.publish(
            ev.AUTH_LOGOUT,
            ev.build_event(userId=principal.id, telegramId=principal.external_id),
        )
        log.info("session.logout user_id=%s", principal.id)

    async def authenticate(self, access_token: str) -> Principal:
        principal_id = self._tokens.verify_access_token(access_token)
        principal = await self._store.find_principal_by_id(principal_id)
        if principal is None or not principal.is_active:
            log.info("session.authenticate.principal_unavailable user_id=%s", principal_id)
            raise AuthError("user not found or inactive")
        return principal
