from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from identity_access.auth.jwt import TokenService
from identity_access.auth.verification import OneTimeCodeVerifier
from identity_access.configs.settings import Settings
from identity_access.errors import NotificationError
from identity_access.events.publisher import EventPublisher
from identity_access.repositories.code_store import InMemoryVerificationCodeStore
from identity_access.repositories.memory_store import InMemoryCredentialStore
from identity_access.services.iam_service import IamService
from identity_access.services.session_service import SessionService
from identity_access.services.user_service import UserService
from identity_access.webclient.notifier import Notifier


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeNotifier(Notifier):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def send(self, external_id: str, text: str) -> None:
        if self.fail:
            raise NotificationError("bot unreachable")
        self.sent.append((external_id, text))

    def last_code(self) -> str:
        text = self.sent[-1][1]
        return text.split(": ", 1)[1][:6]


class RecordingPublisher(EventPublisher):
    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.published: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, routing_key: str, payload: dict[str, Any]) -> bool:
        self.published.append((routing_key, payload))
        return True

    def keys(self) -> list[str]:
        return [k for k, _ in self.published]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_secret="test-secret",
        otp_max_attempts=5,
        reconnect_delay_seconds=0.01,
        publish_timeout_seconds=0.05,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def events(settings: Settings) -> RecordingPublisher:
    return RecordingPublisher(settings)


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def code_store() -> InMemoryVerificationCodeStore:
    return InMemoryVerificationCodeStore()


@pytest.fixture
def tokens(settings: Settings, clock: FakeClock) -> TokenService:
    return TokenService(settings, clock=clock)


@pytest.fixture
def verifier(code_store, notifier, clock, settings) -> OneTimeCodeVerifier:
    return OneTimeCodeVerifier(
        code_store,
        notifier,
        ttl_seconds=settings.otp_ttl_seconds,
        max_attempts=settings.otp_max_attempts,
        clock=clock,
    )


@pytest.fixture
def sessions(store, tokens, verifier, notifier, events, clock) -> SessionService:
    return SessionService(store, tokens, verifier, notifier, events, clock=clock)


@pytest.fixture
def iam(store, events) -> IamService:
    return IamService(store, events)


@pytest.fixture
def users(store, events) -> UserService:
    return UserService(store, events)
