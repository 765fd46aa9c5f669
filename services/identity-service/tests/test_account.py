"""Tests for account projections and the per-record merge rules."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from identity_service.domain.account import (
    Account,
    Preferences,
    Profile,
    StreamingSubscription,
    account_from_document,
    account_to_document,
    merge_preferences,
    merge_profile,
    validate_username,
)
from identity_service.domain.errors import ValidationError


def _account(**overrides) -> Account:
    fields = dict(id="acct-1", email="a@b.com", username="alice", credential_hash="$2b$04$hash")
    fields.update(overrides)
    return Account(**fields)


def test_defaults_match_documented_values():
    preferences = Preferences()
    assert Profile().favorite_genres == []
    assert (preferences.language, preferences.region, preferences.adult_content) == ("en", "US", False)
    assert preferences.notifications.push is False
    assert preferences.notifications.new_recommendations is True
    assert preferences.privacy.profile_visibility == "public"
    assert preferences.privacy.allow_group_invites is True


def test_merge_preferences_only_touches_given_leaves():
    current = merge_preferences(Preferences(), {"language": "fr", "notifications": {"email": False}})

    merged = merge_preferences(current, {"notifications": {"push": True}, "privacy": {"ratings_visibility": "friends"}})

    assert merged.language == "fr"
    assert merged.notifications.email is False
    assert merged.notifications.push is True
    assert merged.notifications.group_invites is True
    assert merged.privacy.ratings_visibility == "friends"
    assert merged.privacy.profile_visibility == "public"


def test_merge_profile_keeps_unspecified_fields():
    current = Profile(first_name="Alice", bio="hello", favorite_genres=["drama"])

    merged = merge_profile(current, {"last_name": "Liddell", "date_of_birth": "1990-04-01"})

    assert merged.first_name == "Alice"
    assert merged.bio == "hello"
    assert merged.favorite_genres == ["drama"]
    assert merged.date_of_birth == date(1990, 4, 1)


@pytest.mark.parametrize(
    "changes",
    [
        {"nickname": "al"},
        {"bio": "x" * 501},
        {"date_of_birth": "yesterday"},
        {"date_of_birth": 19900401},
        {"favorite_genres": "drama"},
        {"favorite_genres": ["drama", 3]},
        {"first_name": 42},
    ],
)
def test_merge_profile_rejects_bad_input(changes):
    with pytest.raises(ValidationError):
        merge_profile(Profile(), changes)


def test_merge_preferences_rejects_unknown_visibility():
    with pytest.raises(ValidationError):
        merge_preferences(Preferences(), {"privacy": {"profile_visibility": "everyone"}})


def test_merge_preferences_rejects_unknown_notification_flag():
    with pytest.raises(ValidationError):
        merge_preferences(Preferences(), {"notifications": {"sms": True}})


@pytest.mark.parametrize(
    "changes",
    [
        {"notifications": {"email": "false"}},
        {"notifications": {"push": 1}},
        {"privacy": {"allow_group_invites": "no"}},
        {"adult_content": "true"},
        {"language": 7},
        {"notifications": "off"},
    ],
)
def test_merge_preferences_rejects_non_boolean_flags_and_bad_shapes(changes):
    with pytest.raises(ValidationError):
        merge_preferences(Preferences(), changes)


def test_merge_profile_accepts_date_objects():
    assert merge_profile(Profile(), {"date_of_birth": date(1990, 4, 1)}).date_of_birth == date(1990, 4, 1)


@pytest.mark.parametrize("added_at", [5, "not-a-timestamp", None])
def test_subscription_rejects_unparseable_added_at(added_at):
    with pytest.raises(ValidationError):
        StreamingSubscription.from_mapping(
            {"service_id": "nflx", "service_name": "Netflix", "is_active": True, "added_at": added_at}
        )


def test_subscription_missing_field_is_a_validation_error():
    with pytest.raises(ValidationError, match="service_name"):
        StreamingSubscription.from_mapping(
            {"service_id": "nflx", "is_active": True, "added_at": "2024-01-01T00:00:00+00:00"}
        )


@pytest.mark.parametrize("username", ["al", "a" * 31, "alice_1", "alice!"])
def test_validate_username_rejects_malformed(username):
    with pytest.raises(ValidationError):
        validate_username(username)


def test_projections_never_expose_credential_hash():
    account = _account()
    owner = account.owner_view()
    public = account.public_view()

    assert not hasattr(owner, "credential_hash")
    assert owner.email == "a@b.com"
    assert public.email is None
    assert public.username == "alice"


def test_touch_strictly_increases_updated_at():
    account = _account()
    before = account.updated_at

    account.touch(now=before)

    assert account.updated_at > before


def test_document_restores_nested_records_and_subscriptions():
    added = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    account = _account(
        profile=Profile(first_name="Alice", date_of_birth=date(1990, 4, 1)),
        preferences=merge_preferences(Preferences(), {"privacy": {"allow_group_invites": False}}),
        streaming_subscriptions=[
            StreamingSubscription(service_id="nf", service_name="Netflix", is_active=True, added_at=added, tier="premium")
        ],
    )

    restored = account_from_document(account_to_document(account))

    assert restored == account


def test_document_with_missing_sections_gets_defaults():
    now = datetime.now(timezone.utc).isoformat()
    restored = account_from_document(
        {
            "id": "acct-1",
            "email": "a@b.com",
            "username": "alice",
            "credential_hash": "h",
            "created_at": now,
            "updated_at": now,
        }
    )
    assert restored.profile.favorite_genres == []
    assert restored.preferences == Preferences()
    assert restored.streaming_subscriptions == []
