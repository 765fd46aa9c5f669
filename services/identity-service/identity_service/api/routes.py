"""HTTP route definitions for the identity service."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl

from ..domain.account import AccountView
from ..domain.contracts import AuthResult, LoginInput, RegisterInput, UpdateAccountInput
from ..domain.errors import (
    AccountNotFoundError,
    DuplicateEmailError,
    DuplicateUsernameError,
    IdentityError,
    InvalidCredentialsError,
    InvalidTokenError,
    ValidationError,
)
from ..domain.service import IdentityLifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")

bearer_scheme = HTTPBearer(auto_error=False)

Visibility = Literal["public", "friends", "private"]


class ProfileIn(BaseModel):
    """Profile fields accepted on registration and update; omitted fields are left as-is."""

    model_config = ConfigDict(extra="forbid")

    first_name: str | None = Field(default=None, max_length=50)
    last_name: str | None = Field(default=None, max_length=50)
    avatar: HttpUrl | None = None
    date_of_birth: date | None = None
    bio: str | None = Field(default=None, max_length=500)
    favorite_genres: list[str] | None = None


class NotificationsIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    new_recommendations: bool | None = None
    group_invites: bool | None = None
    movie_updates: bool | None = None
    email: bool | None = None
    push: bool | None = None


class PrivacyIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    profile_visibility: Visibility | None = None
    ratings_visibility: Visibility | None = None
    allow_group_invites: bool | None = None


class PreferencesIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    language: str | None = Field(default=None, min_length=2, max_length=2)
    region: str | None = Field(default=None, min_length=2, max_length=2)
    adult_content: bool | None = None
    notifications: NotificationsIn | None = None
    privacy: PrivacyIn | None = None


class SubscriptionIn(BaseModel):
    service_id: str
    service_name: str
    is_active: bool
    tier: str | None = None
    added_at: datetime


class RegisterRequest(BaseModel):
    """Payload accepted when registering an account."""

    email: EmailStr
    username: str = Field(..., min_length=3, max_length=30, pattern=r"^[a-zA-Z0-9]+$")
    password: str = Field(..., min_length=8)
    profile: ProfileIn | None = None
    preferences: PreferencesIn | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    """Request body for exchanging a refresh token for a new token pair."""

    refresh_token: str


class UpdateProfileRequest(BaseModel):
    """Partial account update; nested objects merge into the stored values."""

    profile: ProfileIn | None = None
    preferences: PreferencesIn | None = None
    streaming_subscriptions: list[SubscriptionIn] | None = None


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    first_name: str | None
    last_name: str | None
    avatar: str | None
    date_of_birth: date | None
    bio: str | None
    favorite_genres: list[str]


class NotificationsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    new_recommendations: bool
    group_invites: bool
    movie_updates: bool
    email: bool
    push: bool


class PrivacyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    profile_visibility: str
    ratings_visibility: str
    allow_group_invites: bool


class PreferencesOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    language: str
    region: str
    adult_content: bool
    notifications: NotificationsOut
    privacy: PrivacyOut


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    service_id: str
    service_name: str
    is_active: bool
    tier: str | None
    added_at: datetime


class PublicAccountResponse(BaseModel):
    """Account as shown to other callers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    profile: ProfileOut
    preferences: PreferencesOut
    streaming_subscriptions: list[SubscriptionOut]
    created_at: datetime
    updated_at: datetime


class AccountResponse(PublicAccountResponse):
    """Account as shown to its owner."""

    email: EmailStr


class AuthResponse(BaseModel):
    """Account plus the bearer token pair issued for it."""

    account: AccountResponse
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: str
    refresh_expires_in: int

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(
            account=AccountResponse.model_validate(result.account),
            access_token=result.tokens.access_token,
            token_type=result.tokens.token_type,
            expires_in=result.tokens.access_expires_in,
            refresh_token=result.tokens.refresh_token,
            refresh_expires_in=result.tokens.refresh_expires_in,
        )


class MessageResponse(BaseModel):
    message: str


def get_lifecycle(request: Request) -> IdentityLifecycle:
    """Resolve the `IdentityLifecycle` stored on the FastAPI application state."""
    lifecycle: IdentityLifecycle = request.app.state.identity_lifecycle
    return lifecycle


def current_account(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
) -> AccountView:
    """Materialise the caller from an `Authorization: Bearer <token>` header."""
    if credentials is None:
        raise _unauthorized("access token required")
    try:
        return lifecycle.authenticate(credentials.credentials)
    except AccountNotFoundError as exc:
        raise _unauthorized("account not found") from exc
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc


@router.post("/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
) -> AuthResponse:
    """Register an account and return it with a fresh token pair."""
    try:
        result = lifecycle.register(
            RegisterInput(
                email=payload.email,
                username=payload.username,
                password=payload.password,
                profile=_partial(payload.profile),
                preferences=_partial(payload.preferences),
            )
        )
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc
    return AuthResponse.from_result(result)


@router.post("/auth/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
) -> AuthResponse:
    try:
        result = lifecycle.login(LoginInput(email=payload.email, password=payload.password))
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc
    return AuthResponse.from_result(result)


@router.post("/auth/refresh", response_model=AuthResponse)
def refresh_token(
    payload: RefreshTokenRequest,
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
) -> AuthResponse:
    """Rotate a refresh token into a brand-new token pair."""
    try:
        result = lifecycle.refresh(payload.refresh_token)
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc
    return AuthResponse.from_result(result)


@router.post("/auth/logout", response_model=MessageResponse)
def logout() -> MessageResponse:
    """Acknowledge a logout; tokens are self-contained so the client simply discards them."""
    return MessageResponse(message="logged out")


@router.get("/users/profile", response_model=AccountResponse)
def get_profile(
    caller: AccountView = Depends(current_account),
) -> AccountResponse:
    return AccountResponse.model_validate(caller)


@router.put("/users/profile", response_model=AccountResponse)
def update_profile(
    payload: UpdateProfileRequest,
    caller: AccountView = Depends(current_account),
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
) -> AccountResponse:
    """Merge a partial profile/preferences update into the caller's account."""
    subscriptions = None
    if payload.streaming_subscriptions is not None:
        subscriptions = [item.model_dump() for item in payload.streaming_subscriptions]
    try:
        account = lifecycle.update(
            caller.id,
            UpdateAccountInput(
                profile=_partial(payload.profile),
                preferences=_partial(payload.preferences),
                streaming_subscriptions=subscriptions,
            ),
        )
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc, not_found_status=status.HTTP_400_BAD_REQUEST) from exc
    return AccountResponse.model_validate(account)


@router.delete("/users/profile", response_model=MessageResponse)
def delete_profile(
    caller: AccountView = Depends(current_account),
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
) -> MessageResponse:
    try:
        lifecycle.remove(caller.id)
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc, not_found_status=status.HTTP_400_BAD_REQUEST) from exc
    return MessageResponse(message="account deleted")


@router.get("/users/{account_id}", response_model=PublicAccountResponse)
def get_account(
    account_id: str,
    caller: AccountView = Depends(current_account),
    lifecycle: IdentityLifecycle = Depends(get_lifecycle),
) -> PublicAccountResponse:
    """Retrieve another account without its email address."""
    account = lifecycle.get_public_by_id(account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="account not found")
    return PublicAccountResponse.model_validate(account)


def _partial(model: BaseModel | None) -> dict | None:
    if model is None:
        return None
    return model.model_dump(mode="json", exclude_none=True)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _http_error_from_identity_error(
    exc: IdentityError, not_found_status: int = status.HTTP_404_NOT_FOUND
) -> HTTPException:
    if isinstance(exc, (DuplicateEmailError, DuplicateUsernameError, ValidationError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, (InvalidCredentialsError, InvalidTokenError)):
        return _unauthorized(str(exc))
    if isinstance(exc, AccountNotFoundError):
        return HTTPException(status_code=not_found_status, detail=str(exc))
    logger.error("unclassified identity failure: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal error")
