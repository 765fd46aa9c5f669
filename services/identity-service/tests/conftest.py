from __future__ import annotations

import pytest

from identity_service.domain.service import IdentityLifecycle
from identity_service.repository import InMemoryIdentityStore
from identity_service.security.passwords import CredentialManager
from identity_service.security.tokens import TokenService

# bcrypt's minimum cost keeps the suite fast
TEST_ROUNDS = 4


@pytest.fixture()
def credentials() -> CredentialManager:
    return CredentialManager(rounds=TEST_ROUNDS)


@pytest.fixture()
def tokens() -> TokenService:
    return TokenService(
        access_secret="test-access-secret",
        refresh_secret="test-refresh-secret",
        access_ttl_seconds=900,
        refresh_ttl_seconds=3600,
        issuer="identity-tests",
    )


@pytest.fixture()
def store() -> InMemoryIdentityStore:
    return InMemoryIdentityStore()


@pytest.fixture()
def lifecycle(store, credentials, tokens) -> IdentityLifecycle:
    return IdentityLifecycle(store, credentials, tokens)
