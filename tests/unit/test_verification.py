from __future__ import annotations

import itertools

import pytest

from identity_access.auth.verification import OneTimeCodeVerifier, generate_code
from identity_access.errors import (
    CodeExpiredError,
    CodeMismatchError,
    DeliveryFailedError,
    NoCodeIssuedError,
)


def _verifier(code_store, notifier, clock, *codes: str, max_attempts: int = 5) -> OneTimeCodeVerifier:
    seq = itertools.cycle(codes or ("123456",))
    return OneTimeCodeVerifier(
        code_store,
        notifier,
        ttl_seconds=600,
        max_attempts=max_attempts,
        clock=clock,
        code_factory=lambda: next(seq),
    )


def test_generated_codes_are_six_digits() -> None:
    for _ in range(500):
        code = generate_code()
        assert len(code) == 6 and code.isdigit()
        assert 100000 <= int(code) <= 999999


async def test_issue_delivers_code_out_of_band(code_store, notifier, clock) -> None:
    verifier = _verifier(code_store, notifier, clock)
    entry = await verifier.issue("tg-1")
    assert entry.code == "123456"
    assert (entry.expires_at - clock()).total_seconds() == 600
    assert notifier.sent == [
        ("tg-1", "Your login verification code is: 123456\nThis code will expire in 10 minutes.")
    ]


async def test_verify_without_issue_fails(verifier) -> None:
    with pytest.raises(NoCodeIssuedError):
        await verifier.verify("tg-1", "123456")


async def test_wrong_code_does_not_consume_correct_one(code_store, notifier, clock) -> None:
    verifier = _verifier(code_store, notifier, clock)
    await verifier.issue("tg-1")
    with pytest.raises(CodeMismatchError):
        await verifier.verify("tg-1", "000000")
    await verifier.verify("tg-1", "123456")


async def test_code_is_single_use(code_store, notifier, clock) -> None:
    verifier = _verifier(code_store, notifier, clock)
    await verifier.issue("tg-1")
    await verifier.verify("tg-1", "123456")
    with pytest.raises(NoCodeIssuedError):
        await verifier.verify("tg-1", "123456")


async def test_expired_code_is_rejected_and_purged(code_store, notifier, clock) -> None:
    verifier = _verifier(code_store, notifier, clock)
    await verifier.issue("tg-1")
    clock.advance(minutes=10)
    with pytest.raises(CodeExpiredError):
        await verifier.verify("tg-1", "123456")
    assert await code_store.get("tg-1") is None
    with pytest.raises(NoCodeIssuedError):
        await verifier.verify("tg-1", "123456")


async def test_code_accepted_just_before_expiry(code_store, notifier, clock) -> None:
    verifier = _verifier(code_store, notifier, clock)
    await verifier.issue("tg-1")
    clock.advance(minutes=9, seconds=59)
    await verifier.verify("tg-1", "123456")


async def test_reissue_overwrites_previous_code(code_store, notifier, clock) -> None:
    verifier = _verifier(code_store, notifier, clock, "111111", "222222")
    await verifier.issue("tg-1")
    await verifier.issue("tg-1")
    with pytest.raises(CodeMismatchError):
        await verifier.verify("tg-1", "111111")
    await verifier.verify("tg-1", "222222")


async def test_codes_are_kept_per_principal(code_store, notifier, clock) -> None:
    verifier = _verifier(code_store, notifier, clock, "111111", "222222")
    await verifier.issue("tg-1")
    await verifier.issue("tg-2")
    await verifier.verify("tg-2", "222222")
    await verifier.verify("tg-1", "111111")


async def test_attempt_budget_purges_code(code_store, notifier, clock) -> None:
    verifier = _verifier(code_store, notifier, clock, max_attempts=3)
    await verifier.issue("tg-1")
    for _ in range(3):
        with pytest.raises(CodeMismatchError):
            await verifier.verify("tg-1", "000000")
    with pytest.raises(NoCodeIssuedError):
        await verifier.verify("tg-1", "123456")


async def test_zero_attempt_budget_means_unlimited(code_store, notifier, clock) -> None:
    verifier = _verifier(code_store, notifier, clock, max_attempts=0)
    await verifier.issue("tg-1")
    for _ in range(20):
        with pytest.raises(CodeMismatchError):
            await verifier.verify("tg-1", "000000")
    await verifier.verify("tg-1", "123456")


async def test_delivery_failure_discards_code(code_store, notifier, clock) -> None:
    verifier = _verifier(code_store, notifier, clock)
    notifier.fail = True
    with pytest.raises(DeliveryFailedError):
        await verifier.issue("tg-1")
    assert await code_store.get("tg-1") is None


async def test_delivery_failure_keeps_newer_code(code_store, notifier, clock) -> None:
    verifier = _verifier(code_store, notifier, clock, "111111", "222222")
    await verifier.issue("tg-1")
    # a stale discard must not remove a code issued after it
    assert await code_store.discard("tg-1", "999999") is False
    assert (await code_store.get("tg-1")).code == "111111"
