"""Persistence adapters for identity accounts.

Accounts are stored as one JSON document per account id. The orchestrator looks
up email and username before every insert; both backends additionally enforce
those keys as unique so a racing registration fails on ``create`` instead of
producing a duplicate.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Iterator, Protocol

import psycopg
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.account import Account, account_from_document, account_to_document
from .domain.errors import (
    AccountNotFoundError,
    DuplicateEmailError,
    DuplicateUsernameError,
    StorageError,
)

logger = logging.getLogger(__name__)

EMAIL_INDEX = "identity_accounts_email_key"
USERNAME_INDEX = "identity_accounts_username_key"

_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS identity_accounts (
        id TEXT PRIMARY KEY,
        document JSONB NOT NULL
    )
    """,
    f"CREATE UNIQUE INDEX IF NOT EXISTS {EMAIL_INDEX} ON identity_accounts ((document->>'email'))",
    f"CREATE UNIQUE INDEX IF NOT EXISTS {USERNAME_INDEX} ON identity_accounts ((document->>'username'))",
)


class IdentityStore(Protocol):
    """Keyed account collection the identity lifecycle depends on."""

    def find_by_email(self, email: str) -> Account | None: ...

    def find_by_username(self, username: str) -> Account | None: ...

    def find_by_id(self, account_id: str) -> Account | None: ...

    def create(self, account: Account) -> Account: ...

    def replace(self, account_id: str, account: Account) -> Account: ...

    def remove(self, account_id: str) -> None: ...


class PostgresIdentityStore:
    """Postgres-backed account documents stored in a JSONB column."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def ensure_schema(self) -> None:
        """Create the account table and its unique indexes when missing."""
        with self._translate_errors("ensure_schema"):
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    for statement in _SCHEMA_STATEMENTS:
                        cur.execute(statement)
                conn.commit()

    def find_by_email(self, email: str) -> Account | None:
        return self._find_one("document->>'email' = %s", email)

    def find_by_username(self, username: str) -> Account | None:
        return self._find_one("document->>'username' = %s", username)

    def find_by_id(self, account_id: str) -> Account | None:
        return self._find_one("id = %s", account_id)

    def create(self, account: Account) -> Account:
        """Insert a new account document; duplicates are rejected by the unique indexes."""
        with self._translate_errors("create"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        """
                        INSERT INTO identity_accounts (id, document)
                        VALUES (%s, %s)
                        RETURNING document
                        """,
                        (account.id, Json(account_to_document(account))),
                    )
                    row = cur.fetchone()
                conn.commit()
        if row is None:
            raise StorageError("create returned no document")
        return account_from_document(row[0])

    def replace(self, account_id: str, account: Account) -> Account:
        """Overwrite the document stored under ``account_id``."""
        with self._translate_errors("replace"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        """
                        UPDATE identity_accounts
                        SET document = %s
                        WHERE id = %s
                        RETURNING document
                        """,
                        (Json(account_to_document(account)), account_id),
                    )
                    row = cur.fetchone()
                conn.commit()
        if row is None:
            raise AccountNotFoundError()
        return account_from_document(row[0])

    def remove(self, account_id: str) -> None:
        with self._translate_errors("remove"):
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("DELETE FROM identity_accounts WHERE id = %s", (account_id,))
                conn.commit()

    def _find_one(self, predicate: str, value: str) -> Account | None:
        with self._translate_errors("lookup"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"SELECT document FROM identity_accounts WHERE {predicate} LIMIT 1",
                        (value,),
                    )
                    row = cur.fetchone()
        if not row:
            return None
        return account_from_document(row[0])

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        """Classify psycopg failures (including pool and statement timeouts)."""
        try:
            yield
        except psycopg.errors.UniqueViolation as exc:
            constraint = getattr(exc.diag, "constraint_name", None)
            if constraint == EMAIL_INDEX:
                raise DuplicateEmailError() from exc
            if constraint == USERNAME_INDEX:
                raise DuplicateUsernameError() from exc
            logger.error("identity store %s violated constraint %s", operation, constraint)
            raise StorageError(f"{operation} rejected by backend") from exc
        except psycopg.Error as exc:
            logger.error("identity store %s failed: %s", operation, exc)
            raise StorageError(f"{operation} failed") from exc


class InMemoryIdentityStore:
    """Process-local account store used for development and tests.

    Documents are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self) -> None:
        self._documents: dict[str, dict] = {}
        self._lock = Lock()

    def find_by_email(self, email: str) -> Account | None:
        return self._find(lambda doc: doc["email"] == email)

    def find_by_username(self, username: str) -> Account | None:
        return self._find(lambda doc: doc["username"] == username)

    def find_by_id(self, account_id: str) -> Account | None:
        with self._lock:
            document = self._documents.get(account_id)
        return account_from_document(document) if document else None

    def create(self, account: Account) -> Account:
        document = account_to_document(account)
        with self._lock:
            if account.id in self._documents:
                raise StorageError("account id already exists")
            for existing in self._documents.values():
                if existing["email"] == account.email:
                    raise DuplicateEmailError()
                if existing["username"] == account.username:
                    raise DuplicateUsernameError()
            self._documents[account.id] = document
        return account_from_document(document)

    def replace(self, account_id: str, account: Account) -> Account:
        document = account_to_document(account)
        with self._lock:
            if account_id not in self._documents:
                raise AccountNotFoundError()
            self._documents[account_id] = document
        return account_from_document(document)

    def remove(self, account_id: str) -> None:
        with self._lock:
            self._documents.pop(account_id, None)

    def __len__(self) -> int:
        return len(self._documents)

    def _find(self, predicate) -> Account | None:
        with self._lock:
            match = next((doc for doc in self._documents.values() if predicate(doc)), None)
        return account_from_document(match) if match else None
