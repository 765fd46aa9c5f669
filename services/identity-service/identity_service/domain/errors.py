"""Error taxonomy raised by the identity lifecycle and its collaborators."""

from __future__ import annotations


class IdentityError(Exception):
    """Base class for classified identity failures."""

    default_message = "identity error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class ValidationError(IdentityError):
    default_message = "invalid input"


class DuplicateEmailError(IdentityError):
    default_message = "an account with this email already exists"


class DuplicateUsernameError(IdentityError):
    default_message = "username is already taken"


class InvalidCredentialsError(IdentityError):
    """Wrong email or wrong password; the two are deliberately indistinguishable."""

    default_message = "invalid email or password"


class InvalidTokenError(IdentityError):
    """Expired, malformed, forged, or wrong-kind token."""

    default_message = "invalid or expired token"


class AccountNotFoundError(IdentityError):
    default_message = "account not found"


class StorageError(IdentityError):
    """Backend unavailable, timed out, or rejected an operation."""

    default_message = "storage backend failure"
