"""Tests for access/refresh token issuance and verification."""

from __future__ import annotations

import time

import jwt
import pytest

from identity_service.domain.errors import InvalidTokenError
from identity_service.security.tokens import TokenService


def test_access_and_refresh_tokens_verify_to_their_subject(tokens):
    assert tokens.verify_access(tokens.issue_access("acct-1")) == "acct-1"
    assert tokens.verify_refresh(tokens.issue_refresh("acct-1")) == "acct-1"


def test_refresh_token_is_rejected_where_access_is_expected(tokens):
    with pytest.raises(InvalidTokenError):
        tokens.verify_access(tokens.issue_refresh("acct-1"))


def test_access_token_is_rejected_where_refresh_is_expected(tokens):
    with pytest.raises(InvalidTokenError):
        tokens.verify_refresh(tokens.issue_access("acct-1"))


def test_type_tag_is_checked_even_when_secrets_match():
    shared = TokenService(access_secret="same", refresh_secret="same")
    with pytest.raises(InvalidTokenError):
        shared.verify_access(shared.issue_refresh("acct-1"))


@pytest.mark.parametrize("ttl", [0, -30])
def test_token_with_non_positive_lifetime_is_already_expired(ttl):
    service = TokenService(
        access_secret="a", refresh_secret="r", access_ttl_seconds=ttl, refresh_ttl_seconds=ttl
    )
    with pytest.raises(InvalidTokenError):
        service.verify_access(service.issue_access("acct-1"))
    with pytest.raises(InvalidTokenError):
        service.verify_refresh(service.issue_refresh("acct-1"))


def test_failures_are_indistinguishable(tokens):
    other = TokenService(access_secret="other", refresh_secret="other-refresh", issuer="identity-tests")
    forged = other.issue_access("acct-1")
    now = int(time.time())
    expired = jwt.encode(
        {"iss": "identity-tests", "sub": "acct-1", "type": "access", "iat": now - 10, "exp": now - 5},
        "test-access-secret",
        algorithm="HS256",
    )
    messages = set()
    for bad in (forged, expired, "not-a-jwt", tokens.issue_refresh("acct-1")):
        with pytest.raises(InvalidTokenError) as excinfo:
            tokens.verify_access(bad)
        assert excinfo.value.__cause__ is None
        messages.add(str(excinfo.value))
    assert messages == {"invalid or expired token"}


def test_token_missing_type_claim_is_rejected(tokens):
    now = int(time.time())
    untyped = jwt.encode(
        {"iss": "identity-tests", "sub": "acct-1", "iat": now, "exp": now + 60},
        "test-access-secret",
        algorithm="HS256",
    )
    with pytest.raises(InvalidTokenError):
        tokens.verify_access(untyped)


def test_issue_pair_reports_lifetimes(tokens):
    pair = tokens.issue_pair("acct-9")
    assert pair.token_type == "bearer"
    assert pair.access_expires_in == 900
    assert pair.refresh_expires_in == 3600
    assert tokens.verify_access(pair.access_token) == "acct-9"
    assert tokens.verify_refresh(pair.refresh_token) == "acct-9"


def test_each_issued_token_is_unique(tokens):
    assert tokens.issue_access("acct-1") != tokens.issue_access("acct-1")
