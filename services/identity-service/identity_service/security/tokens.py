"""Utilities for issuing and validating access and refresh JWTs."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, Final

import jwt

from ..domain.errors import InvalidTokenError

ACCESS: Final[str] = "access"
REFRESH: Final[str] = "refresh"
_ALGORITHM: Final[str] = "HS256"


@dataclass(slots=True, frozen=True)
class TokenPair:
    """The access/refresh token pair handed to a caller after a login-equivalent event."""

    access_token: str
    access_expires_in: int
    refresh_token: str
    refresh_expires_in: int
    token_type: str = "bearer"


class TokenService:
    """Mint and verify bearer tokens, each kind signed with its own secret."""

    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        access_ttl_seconds: int = 86400,
        refresh_ttl_seconds: int = 604800,
        issuer: str = "identity-service",
    ) -> None:
        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self._ttls = {ACCESS: access_ttl_seconds, REFRESH: refresh_ttl_seconds}
        self._issuer = issuer

    @classmethod
    def from_settings(cls, settings: Any) -> "TokenService":
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_ttl_seconds=settings.jwt_access_ttl_seconds,
            refresh_ttl_seconds=settings.jwt_refresh_ttl_seconds,
            issuer=settings.jwt_issuer,
        )

    def issue_access(self, account_id: str) -> str:
        return self._issue(account_id, ACCESS)

    def issue_refresh(self, account_id: str) -> str:
        return self._issue(account_id, REFRESH)

    def issue_pair(self, account_id: str) -> TokenPair:
        """Mint a fresh access/refresh pair bound to ``account_id``."""
        return TokenPair(
            access_token=self.issue_access(account_id),
            access_expires_in=self._ttls[ACCESS],
            refresh_token=self.issue_refresh(account_id),
            refresh_expires_in=self._ttls[REFRESH],
        )

    def verify_access(self, token: str) -> str:
        return self._verify(token, ACCESS)

    def verify_refresh(self, token: str) -> str:
        return self._verify(token, REFRESH)

    def _issue(self, subject: str, kind: str) -> str:
        """Create a signed JWT of the given kind.

        Parameters
        ----------
        subject:
            Account identifier to embed in the token `sub` claim.
        kind:
            Either ``"access"`` or ``"refresh"``; selects the secret and lifetime
            and is embedded as the `type` claim.

        Returns
        -------
        str
            The encoded JWT. A non-positive lifetime yields an already expired token.
        """

        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": subject,
            "type": kind,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + self._ttls[kind],
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=_ALGORITHM)

    def _verify(self, token: str, kind: str) -> str:
        """Decode ``token`` and return its subject.

        Raises
        ------
        InvalidTokenError
            For any failure: bad signature, expiry, wrong issuer, missing claims,
            or a `type` claim other than ``kind``. The cause is not exposed.
        """

        try:
            claims = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                options={"require": ["exp", "iat", "sub", "type"]},
            )
        except jwt.PyJWTError:
            raise InvalidTokenError() from None
        subject = claims.get("sub")
        if claims.get("type") != kind or not isinstance(subject, str) or not subject:
            raise InvalidTokenError()
        return subject
