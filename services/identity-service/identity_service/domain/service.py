"""Identity lifecycle orchestrating persistence, credential checks, and token issuance."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from .account import (
    Account,
    AccountView,
    Preferences,
    Profile,
    StreamingSubscription,
    merge_preferences,
    merge_profile,
    normalize_email,
    validate_username,
)
from .contracts import AuthResult, LoginInput, RegisterInput, UpdateAccountInput
from .errors import (
    AccountNotFoundError,
    DuplicateEmailError,
    DuplicateUsernameError,
    InvalidCredentialsError,
)
from ..repository import IdentityStore
from ..security.passwords import CredentialManager
from ..security.tokens import TokenService

logger = logging.getLogger(__name__)


class IdentityLifecycle:
    """Account workflows: registration, login, profile mutation, deletion, and token refresh.

    Holds no account state between calls; every operation reads through the store.
    """

    def __init__(
        self,
        store: IdentityStore,
        credentials: CredentialManager,
        tokens: TokenService,
    ) -> None:
        """Store dependencies used to orchestrate persistence and token issuance."""
        self._store = store
        self._credentials = credentials
        self._tokens = tokens

    def register(self, payload: RegisterInput) -> AuthResult:
        """Create an account and hand back its owner view with a fresh token pair.

        Raises
        ------
        DuplicateEmailError
            When an account already uses the normalised email.
        DuplicateUsernameError
            When the username is taken.
        ValidationError
            When the username or the initial profile/preferences are malformed.
        """
        email = normalize_email(payload.email)
        username = validate_username(payload.username)
        if self._store.find_by_email(email) is not None:
            raise DuplicateEmailError()
        if self._store.find_by_username(username) is not None:
            raise DuplicateUsernameError()

        profile = merge_profile(Profile(), payload.profile or {})
        preferences = merge_preferences(Preferences(), payload.preferences or {})
        credential_hash = self._credentials.hash(payload.password)

        now = datetime.now(timezone.utc)
        account = self._store.create(
            Account(
                id=str(uuid.uuid4()),
                email=email,
                username=username,
                credential_hash=credential_hash,
                profile=profile,
                preferences=preferences,
                streaming_subscriptions=[],
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("account registered id=%s", account.id)
        return self._authenticated(account)

    def login(self, payload: LoginInput) -> AuthResult:
        """Check credentials and issue a token pair.

        An unknown email and a wrong password raise the same error.
        """
        account = self._store.find_by_email(normalize_email(payload.email))
        if account is None:
            self._credentials.verify_missing(payload.password)
        if account is None or not self._credentials.verify(payload.password, account.credential_hash):
            logger.info("login failed")
            raise InvalidCredentialsError()
        logger.info("login succeeded id=%s", account.id)
        return self._authenticated(account)

    def get_by_id(self, account_id: str) -> AccountView | None:
        """Return the owner view of an account, or ``None`` when it does not exist."""
        account = self._store.find_by_id(account_id)
        return account.owner_view() if account else None

    def get_public_by_id(self, account_id: str) -> AccountView | None:
        """Return the view of an account shown to other callers (no email)."""
        account = self._store.find_by_id(account_id)
        return account.public_view() if account else None

    def authenticate(self, access_token: str) -> AccountView:
        """Resolve a presented access token to the calling account.

        Raises ``InvalidTokenError`` for a bad token and ``AccountNotFoundError``
        when the token is valid but its account has been deleted.
        """
        account_id = self._tokens.verify_access(access_token)
        view = self.get_by_id(account_id)
        if view is None:
            raise AccountNotFoundError()
        return view

    def update(self, account_id: str, changes: UpdateAccountInput) -> AccountView:
        """Merge a partial update into the stored account and persist it."""
        account = self._require(account_id)
        if changes.profile is not None:
            account.profile = merge_profile(account.profile, changes.profile)
        if changes.preferences is not None:
            account.preferences = merge_preferences(account.preferences, changes.preferences)
        if changes.streaming_subscriptions is not None:
            account.streaming_subscriptions = [
                item if isinstance(item, StreamingSubscription) else StreamingSubscription.from_mapping(item)
                for item in changes.streaming_subscriptions
            ]
        account.touch()
        saved = self._store.replace(account.id, account)
        logger.info("account updated id=%s", saved.id)
        return saved.owner_view()

    def remove(self, account_id: str) -> None:
        """Hard-delete an account; raises ``AccountNotFoundError`` if it is already gone."""
        self._require(account_id)
        self._store.remove(account_id)
        logger.info("account deleted id=%s", account_id)

    def refresh(self, refresh_token: str) -> AuthResult:
        """Exchange a refresh token for a brand-new token pair.

        The presented token stays valid until it expires; there is no denylist.
        """
        account_id = self._tokens.verify_refresh(refresh_token)
        account = self._require(account_id)
        logger.info("token refreshed id=%s", account.id)
        return self._authenticated(account)

    def _require(self, account_id: str) -> Account:
        account = self._store.find_by_id(account_id)
        if account is None:
            raise AccountNotFoundError()
        return account

    def _authenticated(self, account: Account) -> AuthResult:
        return AuthResult(account=account.owner_view(), tokens=self._tokens.issue_pair(account.id))
