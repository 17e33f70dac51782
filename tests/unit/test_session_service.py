from __future__ import annotations

import pytest

from identity_access.errors import (
    AuthError,
    CodeMismatchError,
    ConflictError,
    DeliveryFailedError,
    NoCodeIssuedError,
    NotFoundError,
    TokenExpiredError,
    WrongTokenClassError,
)


async def _login(sessions, notifier, external_id: str = "tg-1"):
    await sessions.login(external_id)
    return await sessions.verify(external_id, notifier.last_code())


async def test_register_creates_principal_and_welcomes(sessions, notifier, events) -> None:
    principal = await sessions.register("tg-1", "Ann", "ann")

    assert principal.external_id == "tg-1"
    assert principal.is_active
    assert notifier.sent == [("tg-1", "Welcome, Ann! Your account has been created successfully.")]
    assert events.keys() == ["user.created"]
    assert events.published[0][1]["telegramId"] == "tg-1"


async def test_register_survives_welcome_failure(sessions, notifier, store) -> None:
    notifier.fail = True
    principal = await sessions.register("tg-1", "Ann")
    assert await store.find_principal_by_id(principal.id) is not None


async def test_register_rejects_duplicate(sessions) -> None:
    await sessions.register("tg-1", "Ann")
    with pytest.raises(ConflictError):
        await sessions.register("tg-1", "Ann again")


async def test_login_unknown_principal(sessions, notifier) -> None:
    with pytest.raises(NotFoundError):
        await sessions.login("tg-404")
    assert notifier.sent == []


async def test_login_inactive_principal(sessions, store) -> None:
    principal = await sessions.register("tg-1", "Ann")
    await store.update_principal(principal.id, {"is_active": False})
    with pytest.raises(NotFoundError):
        await sessions.login("tg-1")


async def test_two_step_login_issues_tokens(sessions, notifier, events, tokens, clock) -> None:
    principal = await sessions.register("tg-1", "Ann")

    pending = await sessions.login("tg-1")
    assert (pending.expires_at - clock()).total_seconds() == 600

    grant = await sessions.verify("tg-1", notifier.last_code())

    assert grant.principal.id == principal.id
    assert grant.principal.last_login_at == clock()
    assert tokens.verify_access_token(grant.tokens.access_token) == principal.id
    assert tokens.verify_refresh_token(grant.tokens.refresh_token) == principal.id
    assert events.keys() == ["user.created", "auth.login_attempt", "auth.login_success"]


async def test_wrong_code_then_right_code(sessions, notifier) -> None:
    await sessions.register("tg-1", "Ann")
    await sessions.login("tg-1")
    code = notifier.last_code()
    wrong = "000000" if code != "000000" else "111111"

    with pytest.raises(CodeMismatchError):
        await sessions.verify("tg-1", wrong)
    grant = await sessions.verify("tg-1", code)

    assert grant.tokens.access_token


async def test_code_cannot_be_replayed(sessions, notifier) -> None:
    await sessions.register("tg-1", "Ann")
    await _login(sessions, notifier)
    with pytest.raises(NoCodeIssuedError):
        await sessions.verify("tg-1", notifier.last_code())


async def test_login_delivery_failure(sessions, notifier, code_store) -> None:
    await sessions.register("tg-1", "Ann")
    notifier.fail = True
    with pytest.raises(DeliveryFailedError):
        await sessions.login("tg-1")
    assert await code_store.get("tg-1") is None


async def test_deactivated_between_login_and_verify(sessions, notifier, store) -> None:
    principal = await sessions.register("tg-1", "Ann")
    await sessions.login("tg-1")
    await store.update_principal(principal.id, {"is_active": False})
    with pytest.raises(NotFoundError):
        await sessions.verify("tg-1", notifier.last_code())


async def test_refresh_rotates_pair(sessions, notifier, events, tokens, clock) -> None:
    principal = await sessions.register("tg-1", "Ann")
    grant = await _login(sessions, notifier)
    clock.advance(seconds=5)

    pair = await sessions.refresh(grant.tokens.refresh_token)

    assert pair.refresh_token != grant.tokens.refresh_token
    assert tokens.verify_access_token(pair.access_token) == principal.id
    assert events.keys()[-1] == "auth.token_refreshed"


async def test_refresh_rejects_access_token(sessions, notifier) -> None:
    await sessions.register("tg-1", "Ann")
    grant = await _login(sessions, notifier)
    with pytest.raises(WrongTokenClassError):
        await sessions.refresh(grant.tokens.access_token)


async def test_refresh_for_inactive_principal(sessions, notifier, store) -> None:
    principal = await sessions.register("tg-1", "Ann")
    grant = await _login(sessions, notifier)
    await store.update_principal(principal.id, {"is_active": False})
    with pytest.raises(AuthError):
        await sessions.refresh(grant.tokens.refresh_token)


async def test_authenticate(sessions, notifier, clock, store) -> None:
    principal = await sessions.register("tg-1", "Ann")
    grant = await _login(sessions, notifier)

    assert (await sessions.authenticate(grant.tokens.access_token)).id == principal.id

    with pytest.raises(WrongTokenClassError):
        await sessions.authenticate(grant.tokens.refresh_token)

    await store.update_principal(principal.id, {"is_active": False})
    with pytest.raises(AuthError):
        await sessions.authenticate(grant.tokens.access_token)

    clock.advance(days=1)
    with pytest.raises(TokenExpiredError):
        await sessions.authenticate(grant.tokens.access_token)


async def test_logout_publishes_event(sessions, notifier, events) -> None:
    await sessions.register("tg-1", "Ann")
    grant = await _login(sessions, notifier)
    await sessions.logout(grant.principal)
    assert events.keys()[-1] == "auth.logout"
