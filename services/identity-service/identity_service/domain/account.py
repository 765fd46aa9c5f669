"""Account aggregate, nested profile/preference records, and their merge rules."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Mapping

from .errors import ValidationError

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9]{3,30}$")
BIO_MAX_LENGTH = 500
VISIBILITY_LEVELS = ("public", "friends", "private")


@dataclass(slots=True, frozen=True)
class Profile:
    first_name: str | None = None
    last_name: str | None = None
    avatar: str | None = None
    date_of_birth: date | None = None
    bio: str | None = None
    favorite_genres: list[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class NotificationSettings:
    new_recommendations: bool = True
    group_invites: bool = True
    movie_updates: bool = True
    email: bool = True
    push: bool = False


@dataclass(slots=True, frozen=True)
class PrivacySettings:
    profile_visibility: str = "public"
    ratings_visibility: str = "public"
    allow_group_invites: bool = True


@dataclass(slots=True, frozen=True)
class Preferences:
    language: str = "en"
    region: str = "US"
    adult_content: bool = False
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    privacy: PrivacySettings = field(default_factory=PrivacySettings)


@dataclass(slots=True, frozen=True)
class StreamingSubscription:
    """A streaming service linked to an account."""

    service_id: str
    service_name: str
    is_active: bool
    added_at: datetime
    tier: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StreamingSubscription":
        """Build a subscription from a plain mapping, parsing ``added_at`` when needed."""
        if not isinstance(data, Mapping):
            raise ValidationError("streaming subscription must be an object")
        try:
            return cls(
                service_id=_require_str(data["service_id"], "service_id"),
                service_name=_require_str(data["service_name"], "service_name"),
                is_active=_require_bool(data["is_active"], "is_active"),
                added_at=_parse_datetime(data["added_at"], "added_at"),
                tier=_optional_str(data.get("tier"), "tier"),
            )
        except KeyError as exc:
            raise ValidationError(f"streaming subscription is missing {exc}") from exc


@dataclass(slots=True, frozen=True)
class AccountView:
    """Caller-facing projection of an account; never carries the credential hash.

    ``email`` is ``None`` in the public projection shown to other accounts.
    """

    id: str
    username: str
    profile: Profile
    preferences: Preferences
    streaming_subscriptions: list[StreamingSubscription]
    created_at: datetime
    updated_at: datetime
    email: str | None = None


@dataclass(slots=True)
class Account:
    """Aggregate root for a registered identity."""

    id: str
    email: str
    username: str
    credential_hash: str
    profile: Profile = field(default_factory=Profile)
    preferences: Preferences = field(default_factory=Preferences)
    streaming_subscriptions: list[StreamingSubscription] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def owner_view(self) -> AccountView:
        """Projection returned to the account owner: everything but the credential hash."""
        return AccountView(
            id=self.id,
            email=self.email,
            username=self.username,
            profile=self.profile,
            preferences=self.preferences,
            streaming_subscriptions=list(self.streaming_subscriptions),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def public_view(self) -> AccountView:
        """Projection shown to other accounts: additionally strips the email."""
        return replace(self.owner_view(), email=None)

    def touch(self, now: datetime | None = None) -> None:
        """Advance ``updated_at`` so it strictly increases even on a coarse clock."""
        now = now or datetime.now(timezone.utc)
        if now <= self.updated_at:
            now = self.updated_at + timedelta(microseconds=1)
        self.updated_at = now


def normalize_email(email: str) -> str:
    return email.lower()


def validate_username(username: str) -> str:
    if not USERNAME_PATTERN.match(username):
        raise ValidationError("username must be 3-30 alphanumeric characters")
    return username


def _known_fields(record_type: type, changes: Mapping[str, Any], label: str) -> dict[str, Any]:
    if not isinstance(changes, Mapping):
        raise ValidationError(f"{label} must be an object")
    allowed = {f.name for f in fields(record_type)}
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValidationError(f"unknown {label} field(s): {', '.join(unknown)}")
    return dict(changes)


def _require_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be a boolean")
    return value


def _require_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value


def _optional_str(value: Any, name: str) -> str | None:
    return None if value is None else _require_str(value, name)


def _parse_date(value: Any, name: str) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise ValidationError(f"{name} must be an ISO date") from exc
    raise ValidationError(f"{name} must be an ISO date")


def _parse_datetime(value: Any, name: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError as exc:
            raise ValidationError(f"{name} must be an ISO timestamp") from exc
    raise ValidationError(f"{name} must be an ISO timestamp")


def _string_list(value: Any, name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)) or not all(isinstance(item, str) for item in value):
        raise ValidationError(f"{name} must be a list of strings")
    return list(value)


def merge_profile(current: Profile, changes: Mapping[str, Any]) -> Profile:
    """Apply a partial profile update; keys absent from ``changes`` keep their value."""
    updates = _known_fields(Profile, changes, "profile")
    for key in ("first_name", "last_name", "avatar", "bio"):
        if key in updates:
            updates[key] = _optional_str(updates[key], key)
    if "favorite_genres" in updates:
        updates["favorite_genres"] = _string_list(updates["favorite_genres"], "favorite_genres")
    if "date_of_birth" in updates:
        updates["date_of_birth"] = _parse_date(updates["date_of_birth"], "date_of_birth")
    bio = updates.get("bio")
    if bio is not None and len(bio) > BIO_MAX_LENGTH:
        raise ValidationError(f"bio must be at most {BIO_MAX_LENGTH} characters")
    return replace(current, **updates)


def merge_notifications(
    current: NotificationSettings, changes: Mapping[str, Any]
) -> NotificationSettings:
    updates = _known_fields(NotificationSettings, changes, "notifications")
    return replace(current, **{key: _require_bool(value, key) for key, value in updates.items()})


def merge_privacy(current: PrivacySettings, changes: Mapping[str, Any]) -> PrivacySettings:
    updates = _known_fields(PrivacySettings, changes, "privacy")
    for key in ("profile_visibility", "ratings_visibility"):
        if key in updates and updates[key] not in VISIBILITY_LEVELS:
            raise ValidationError(f"{key} must be one of {', '.join(VISIBILITY_LEVELS)}")
    if "allow_group_invites" in updates:
        _require_bool(updates["allow_group_invites"], "allow_group_invites")
    return replace(current, **updates)


def merge_preferences(current: Preferences, changes: Mapping[str, Any]) -> Preferences:
    """Apply a partial preferences update, merging the nested records field by field."""
    updates = _known_fields(Preferences, changes, "preferences")
    notifications = updates.pop("notifications", None)
    privacy = updates.pop("privacy", None)
    for key in ("language", "region"):
        if key in updates:
            _require_str(updates[key], key)
    if "adult_content" in updates:
        _require_bool(updates["adult_content"], "adult_content")
    merged = replace(current, **updates)
    if notifications is not None:
        merged = replace(merged, notifications=merge_notifications(merged.notifications, notifications))
    if privacy is not None:
        merged = replace(merged, privacy=merge_privacy(merged.privacy, privacy))
    return merged


def account_to_document(account: Account) -> dict[str, Any]:
    """Serialise an account into the JSON document persisted by the store."""
    document = asdict(account)
    dob = account.profile.date_of_birth
    document["profile"]["date_of_birth"] = dob.isoformat() if dob else None
    document["streaming_subscriptions"] = [
        {**asdict(sub), "added_at": sub.added_at.isoformat()}
        for sub in account.streaming_subscriptions
    ]
    document["created_at"] = account.created_at.isoformat()
    document["updated_at"] = account.updated_at.isoformat()
    return document


def account_from_document(document: Mapping[str, Any]) -> Account:
    """Rebuild an account from a stored document, filling defaults for absent fields."""
    profile = merge_profile(Profile(), document.get("profile") or {})
    preferences = merge_preferences(Preferences(), document.get("preferences") or {})
    return Account(
        id=document["id"],
        email=document["email"],
        username=document["username"],
        credential_hash=document["credential_hash"],
        profile=profile,
        preferences=preferences,
        streaming_subscriptions=[
            StreamingSubscription.from_mapping(item)
            for item in document.get("streaming_subscriptions") or []
        ],
        created_at=_parse_timestamp(document["created_at"]),
        updated_at=_parse_timestamp(document["updated_at"]),
    )


def _parse_timestamp(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
