from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Callable

from identity_access.configs.logging_config import get_logger
from identity_access.errors import (
    CodeExpiredError,
    CodeMismatchError,
    DeliveryFailedError,
    NoCodeIssuedError,
    NotificationError,
)
from identity_access.repositories.code_store import (
    CheckOutcome,
    VerificationCode,
    VerificationCodeStore,
)
from identity_access.utils.time_utils import utc_now
from identity_access.webclient.notifier import Notifier

log = get_logger(__name__)

CODE_MESSAGE = "Your login verification code is: {code}\nThis code will expire in {minutes} minutes."


def generate_code() -> str:
    """Uniformly random 6-digit code (100000-999999)."""
    return str(100000 + secrets.randbelow(900000))


class OneTimeCodeVerifier:
    """
    Second login factor: a short-lived numeric code delivered out of band.

    Per external id the flow is ``NoCode -> CodeIssued -> Verified | Expired |
    Invalid``. Issuing replaces any live code. A wrong guess keeps the code
    alive but counts against ``max_attempts``; once the budget is spent the
    code is purged and a new login is required.
    """

    def __init__(
        self,
        store: VerificationCodeStore,
        notifier: Notifier,
        *,
        ttl_seconds: int = 600,
        max_attempts: int = 5,
        clock: Callable[[], datetime] = utc_now,
        code_factory: Callable[[], str] = generate_code,
    ):
        self._store = store
        self._notifier = notifier
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_attempts = max_attempts
        self._clock = clock
        self._code_factory = code_factory

    async def issue(self, external_id: str) -> VerificationCode:
        entry = VerificationCode(code=self._code_factory(), expires_at=self._clock() + self._ttl)
        await self._store.put(external_id, entry)

        minutes = max(1, int(self._ttl.total_seconds() // 60))
        try:
            await self._notifier.send(
                external_id, CODE_MESSAGE.format(code=entry.code, minutes=minutes)
            )
        except NotificationError as e:
            await self._store.discard(external_id, entry.code)
            log.error("otp.issue.delivery_failed external_id=%s error=%s", external_id, e)
            raise DeliveryFailedError() from e

        log.info(
            "otp.issue.sent external_id=%s expires_at=%s",
            external_id,
            entry.expires_at.isoformat(),
        )
        return entry

    async def verify(self, external_id: str, submitted: str) -> None:
        outcome = await self._store.check(
            external_id, submitted, self._clock(), self._max_attempts
        )
        if outcome is CheckOutcome.VERIFIED:
            log.info("otp.verify.ok external_id=%s", external_id)
            return
        log.info("otp.verify.rejected external_id=%s outcome=%s", external_id, outcome.value)
        if outcome is CheckOutcome.NO_CODE:
            raise NoCodeIssuedError()
        if outcome is CheckOutcome.EXPIRED:
            raise CodeExpiredError()
        raise CodeMismatchError()
