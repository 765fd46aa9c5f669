"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .account import AccountView, StreamingSubscription
from ..security.tokens import TokenPair


@dataclass(slots=True)
class RegisterInput:
    """Inputs required to register a new account."""

    email: str
    username: str
    password: str
    profile: Mapping[str, Any] | None = None
    preferences: Mapping[str, Any] | None = None


@dataclass(slots=True)
class LoginInput:
    email: str
    password: str


@dataclass(slots=True)
class UpdateAccountInput:
    """Partial account update.

    ``profile`` and ``preferences`` hold only the keys being changed; they are
    merged field by field. ``streaming_subscriptions`` replaces the stored list
    when it is not ``None``.
    """

    profile: Mapping[str, Any] | None = None
    preferences: Mapping[str, Any] | None = None
    streaming_subscriptions: Sequence[StreamingSubscription | Mapping[str, Any]] | None = None


@dataclass(slots=True)
class AuthResult:
    """Outcome of a login-equivalent event: the caller's account and a fresh token pair."""

    account: AccountView
    tokens: TokenPair
