"""Signed, time-boxed tracking tokens bound to a report's public id."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt

from brs.errors import TokenError
from brs.utils.logging import get_logger
from brs.utils.time import utc_now

ALGORITHM = "HS256"
TRACKING_LINK_TTL_DAYS = 90


logger = get_logger(__name__)


class TrackingTokenSigner:
    """Issue and verify HS256 tracking tokens.

    Expiry is checked against the caller's clock rather than the library's so
    that verification follows the same time source as issuance.
    """

    def __init__(
        self, secret: str, ttl: timedelta = timedelta(days=TRACKING_LINK_TTL_DAYS)
    ) -> None:
        self.secret = secret
        self.ttl = ttl

    def issue(
        self,
        public_id: str,
        now: Optional[datetime] = None,
        ttl: Optional[timedelta] = None,
    ) -> str:
        issued_at = now or utc_now()
        claims = {
            "public_id": public_id,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + (ttl or self.ttl)).timestamp()),
        }
        return jwt.encode(claims, self.secret, algorithm=ALGORITHM)

    def verify(self, token: str, now: Optional[datetime] = None) -> str:
        """Return the public id carried by a valid, unexpired token."""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            logger.info("tracking_token.invalid error=%s", exc)
            raise TokenError("Tracking token is invalid") from exc

        expires_at = payload.get("exp")
        if not isinstance(expires_at, int):
            raise TokenError("Invalid tracking token payload")
        if (now or utc_now()).timestamp() >= expires_at:
            logger.info("tracking_token.expired exp=%s", expires_at)
            raise TokenError("Tracking token has expired")

        public_id = payload.get("public_id")
        if not isinstance(public_id, str):
            raise TokenError("Invalid tracking token payload")
        return public_id

    def verify_for(
        self, token: Optional[str], public_id: str, now: Optional[datetime] = None
    ) -> None:
        """Raise unless ``token`` is present, valid, and issued for ``public_id``."""
        if not token:
            raise TokenError("Tracking token is required", code="missing_token")

        if self.verify(token, now) != public_id:
            raise TokenError("Tracking token does not match report id", code="token_mismatch")
