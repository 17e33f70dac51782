from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any, Callable

from jose import JWTError, jwt

from identity_access.configs.settings import Settings
from identity_access.domain.entities.auth import TokenPair
from identity_access.errors import MalformedTokenError, TokenExpiredError, WrongTokenClassError
from identity_access.configs.logging_config import get_logger
from identity_access.utils.time_utils import utc_now

log = get_logger(__name__)

REFRESH_TOKEN_TYPE = "refresh"


class TokenService:
    """
    Issues and validates stateless access / refresh JWTs.

    Notes:
    - Both classes share one signing key; refresh tokens carry ``type=refresh``
      and access tokens carry no type claim.
    - Expiry is checked against the injected clock after the signature, so a
      correctly signed token past its ``exp`` is always reported as expired.
    - Nothing is stored server side: a superseded refresh token stays valid
      until it expires.
    """

    def __init__(self, settings: Settings, *, clock: Callable[[], datetime] = utc_now):
        self._settings = settings
        self._clock = clock
        self.access_ttl = timedelta(seconds=settings.jwt_access_ttl_seconds)
        self.refresh_ttl = timedelta(seconds=settings.jwt_refresh_ttl_seconds)

    def _encode(self, principal_id: str, ttl: timedelta, token_type: str | None = None) -> str:
        now = self._clock()
        claims: dict[str, Any] = {
            "sub": principal_id,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
            "jti": uuid.uuid4().hex,
        }
        if token_type:
            claims["type"] = token_type
        if self._settings.jwt_issuer:
            claims["iss"] = self._settings.jwt_issuer
        if self._settings.jwt_audience:
            claims["aud"] = self._settings.jwt_audience
        return jwt.encode(claims, self._settings.jwt_secret, algorithm=self._settings.jwt_alg)

    def issue_token_pair(self, principal_id: str) -> TokenPair:
        log.info("jwt.issue sub=%s", principal_id)
        return TokenPair(
            access_token=self._encode(principal_id, self.access_ttl),
            refresh_token=self._encode(principal_id, self.refresh_ttl, REFRESH_TOKEN_TYPE),
        )

    def decode(self, token: str) -> dict[str, Any]:
        """Verify signature, issuer, audience and expiry; class is not checked."""
        try:
            claims = jwt.decode(
                token,
                self._settings.jwt_secret,
                algorithms=[self._settings.jwt_alg],
                audience=self._settings.jwt_audience,
                issuer=self._settings.jwt_issuer,
                options={
                    "verify_aud": self._settings.jwt_audience is not None,
                    "verify_exp": False,
                },
            )
        except JWTError as e:
            log.info("jwt.decode failed error=%s", str(e))
            raise MalformedTokenError() from e

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or not claims.get("sub"):
            log.info("jwt.decode missing_claims has_exp=%s has_sub=%s", exp is not None, bool(claims.get("sub")))
            raise MalformedTokenError()
        if self._clock().timestamp() >= exp:
            log.info("jwt.decode expired sub=%s", claims.get("sub"))
            raise TokenExpiredError()
        return claims

    def verify_access_token(self, token: str) -> str:
        claims = self.decode(token)
        if claims.get("type") == REFRESH_TOKEN_TYPE:
            log.info("jwt.verify_access wrong_class sub=%s", claims["sub"])
            raise WrongTokenClassError()
        return str(claims["sub"])

    def verify_refresh_token(self, token: str) -> str:
        claims = self.decode(token)
        if claims.get("type") != REFRESH_TOKEN_TYPE:
            log.info("jwt.verify_refresh wrong_class sub=%s", claims["sub"])
            raise WrongTokenClassError("invalid refresh token")
        return str(claims["sub"])

    def refresh(self, refresh_token: str) -> TokenPair:
        return self.issue_token_pair(self.verify_refresh_token(refresh_token))
