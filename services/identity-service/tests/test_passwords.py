from __future__ import annotations

import bcrypt
import pytest

from identity_service.domain.errors import StorageError
from identity_service.security.passwords import CredentialManager


def test_hash_is_salted_per_call(credentials):
    first = credentials.hash("hunter2pass")
    second = credentials.hash("hunter2pass")
    assert first != second
    assert credentials.verify("hunter2pass", first)
    assert credentials.verify("hunter2pass", second)


def test_wrong_password_does_not_verify(credentials):
    hashed = credentials.hash("hunter2pass")
    assert credentials.verify("hunter3pass", hashed) is False


def test_malformed_hash_is_a_mismatch(credentials):
    assert credentials.verify("hunter2pass", "not-a-bcrypt-hash") is False


def test_cost_factor_is_encoded_in_hash():
    assert CredentialManager(rounds=5).hash("pw").startswith("$2b$05$")


def test_long_passwords_are_accepted(credentials):
    password = "x" * 100
    assert credentials.verify(password, credentials.hash(password))


def test_invalid_cost_factor_is_a_storage_error():
    with pytest.raises(StorageError):
        CredentialManager(rounds=3).hash("x")


def test_verify_missing_spends_a_bcrypt_check(monkeypatch, credentials):
    calls = []
    original = bcrypt.checkpw

    def counting_checkpw(password, hashed):
        calls.append(hashed)
        return original(password, hashed)

    monkeypatch.setattr(bcrypt, "checkpw", counting_checkpw)

    assert credentials.verify_missing("hunter2pass") is False
    assert credentials.verify_missing("decoy-password") is False
    assert len(calls) == 2
    assert calls[0].startswith(b"$2b$04$")
