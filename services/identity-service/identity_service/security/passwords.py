"""One-way password hashing backed by bcrypt."""

from __future__ import annotations

import bcrypt

from ..domain.errors import StorageError

DEFAULT_ROUNDS = 12
# bcrypt only consumes the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72


class CredentialManager:
    """Hash and verify account passwords.

    Every call to :meth:`hash` generates a new salt, so hashing the same
    plaintext twice yields different outputs that both verify.
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self._rounds = rounds
        self._decoy_hash: str | None = None

    @staticmethod
    def _encode(plaintext: str) -> bytes:
        return plaintext.encode("utf-8")[:_BCRYPT_MAX_BYTES]

    def hash(self, plaintext: str) -> str:
        try:
            hashed = bcrypt.hashpw(self._encode(plaintext), bcrypt.gensalt(rounds=self._rounds))
        except (ValueError, TypeError) as exc:
            raise StorageError("password hashing failed") from exc
        return hashed.decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Return ``True`` only when ``plaintext`` matches ``hashed``.

        A malformed stored hash counts as a mismatch.
        """
        try:
            return bcrypt.checkpw(self._encode(plaintext), hashed.encode("utf-8"))
        except ValueError:
            return False

    def verify_missing(self, plaintext: str) -> bool:
        """Spend a full verification for an account that does not exist; always ``False``.

        Keeps a login for an unknown email as slow as one with a wrong password.
        """
        if self._decoy_hash is None:
            self._decoy_hash = self.hash("decoy-password")
        self.verify(plaintext, self._decoy_hash)
        return False
