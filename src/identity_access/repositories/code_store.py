from __future__ import annotations

import asyncio
import hmac
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

import redis.asyncio as redis
from redis.exceptions import WatchError

from identity_access.configs.logging_config import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class VerificationCode:
    code: str
    expires_at: datetime
    attempts: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def matches(self, submitted: str) -> bool:
        return hmac.compare_digest(self.code.encode(), str(submitted).encode())

    def to_json(self) -> str:
        return json.dumps(
            {"code": self.code, "expires_at": self.expires_at.timestamp(), "attempts": self.attempts}
        )

    @classmethod
    def from_json(cls, raw: str) -> "VerificationCode":
        data = json.loads(raw)
        return cls(
            code=data["code"],
            expires_at=datetime.fromtimestamp(data["expires_at"], tz=timezone.utc),
            attempts=int(data.get("attempts", 0)),
        )


class CheckOutcome(str, Enum):
    VERIFIED = "verified"
    NO_CODE = "no_code"
    EXPIRED = "expired"
    MISMATCH = "mismatch"


class VerificationCodeStore(ABC):
    """
    Keyed store of live verification codes.

    Implementations perform each operation as one atomic read-modify-write per
    key. A ``put`` that lands while a ``check`` is in flight wins: the check
    must not consume or overwrite the newer code.
    """

    @abstractmethod
    async def put(self, key: str, entry: VerificationCode) -> None: ...

    @abstractmethod
    async def check(
        self, key: str, submitted: str, now: datetime, max_attempts: int = 0
    ) -> CheckOutcome:
        """
        Compare ``submitted`` against the live code and apply the transition:
        expired and verified codes are purged; a miss bumps ``attempts`` and
        purges once ``max_attempts`` (if non-zero) is reached.
        """

    @abstractmethod
    async def discard(self, key: str, expected_code: str) -> bool:
        """Remove the entry only if it still holds ``expected_code``."""

    @abstractmethod
    async def get(self, key: str) -> VerificationCode | None: ...


def _apply_check(
    entry: VerificationCode, submitted: str, now: datetime, max_attempts: int
) -> tuple[CheckOutcome, VerificationCode | None]:
    """Returns the outcome and the entry to keep (None purges)."""
    if entry.is_expired(now):
        return CheckOutcome.EXPIRED, None
    if entry.matches(submitted):
        return CheckOutcome.VERIFIED, None
    bumped = replace(entry, attempts=entry.attempts + 1)
    if max_attempts and bumped.attempts >= max_attempts:
        return CheckOutcome.MISMATCH, None
    return CheckOutcome.MISMATCH, bumped


class InMemoryVerificationCodeStore(VerificationCodeStore):
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._codes: dict[str, VerificationCode] = {}

    async def put(self, key: str, entry: VerificationCode) -> None:
        async with self._lock:
            self._codes[key] = entry

    async def check(
        self, key: str, submitted: str, now: datetime, max_attempts: int = 0
    ) -> CheckOutcome:
        async with self._lock:
            entry = self._codes.get(key)
            if entry is None:
                return CheckOutcome.NO_CODE
            outcome, keep = _apply_check(entry, submitted, now, max_attempts)
            if keep is None:
                del self._codes[key]
            else:
                self._codes[key] = keep
            return outcome

    async def discard(self, key: str, expected_code: str) -> bool:
        async with self._lock:
            entry = self._codes.get(key)
            if entry is None or entry.code != expected_code:
                return False
            del self._codes[key]
            return True

    async def get(self, key: str) -> VerificationCode | None:
        return self._codes.get(key)


class RedisVerificationCodeStore(VerificationCodeStore):
    """
    Redis-backed store for multi-instance deployments.

    Entries carry a key TTL matching their expiry so abandoned logins age out.
    ``check`` and ``discard`` run under WATCH/MULTI; losing the race to a
    concurrent ``put`` is reported as a mismatch.
    """

    def __init__(self, client: redis.Redis, *, prefix: str = "auth:otp:"):
        self._redis = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def put(self, key: str, entry: VerificationCode) -> None:
        ttl = max(1, int((entry.expires_at - datetime.now(timezone.utc)).total_seconds()))
        await self._redis.set(self._key(key), entry.to_json(), ex=ttl)

    async def check(
        self, key: str, submitted: str, now: datetime, max_attempts: int = 0
    ) -> CheckOutcome:
        rkey = self._key(key)
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(rkey)
                raw = await pipe.get(rkey)
                if raw is None:
                    return CheckOutcome.NO_CODE
                outcome, keep = _apply_check(
                    VerificationCode.from_json(raw), submitted, now, max_attempts
                )
                pipe.multi()
                if keep is None:
                    pipe.delete(rkey)
                else:
                    pipe.set(rkey, keep.to_json(), keepttl=True)
                await pipe.execute()
                return outcome
            except WatchError:
                log.info("otp.redis.check superseded key=%s", key)
                return CheckOutcome.MISMATCH

    async def discard(self, key: str, expected_code: str) -> bool:
        rkey = self._key(key)
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(rkey)
                raw = await pipe.get(rkey)
                if raw is None or VerificationCode.from_json(raw).code != expected_code:
                    return False
                pipe.multi()
                pipe.delete(rkey)
                await pipe.execute()
                return True
            except WatchError:
                return False

    async def get(self, key: str) -> VerificationCode | None:
        raw = await self._redis.get(self._key(key))
        return VerificationCode.from_json(raw) if raw else None
