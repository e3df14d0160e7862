"""
api/routes/v1/auth.py -- Authentication and own-profile REST endpoints.

Routes:
  POST  /api/v1/auth/register         -- self-registration; returns user + token
  POST  /api/v1/auth/login            -- password login; sets JWT cookie
  POST  /api/v1/auth/logout           -- clears cookie; 200
  GET   /api/v1/auth/me               -- current user profile (requires auth)
  PATCH /api/v1/auth/me               -- update own full name (requires auth)
  POST  /api/v1/auth/change-password  -- verify current, set new (requires auth)

Security:
  POST /login and /register are rate-limited per IP (LOGIN_RATE_LIMIT).
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on responses that carry a token.
  Registration can never create an ultra_admin.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from slowapi.util import get_remote_address

from api.limiter import LOGIN_RATE_LIMIT, limiter
from api.models import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ProfileUpdate,
    RegisterRequest,
    RoleEnum,
    UserResponse,
)
from audit.store import ActivityStore
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import authenticate_user, hash_password, issue_token, set_auth_cookie, verify_password
from core.config import get_settings
from core.errors import AuthenticationError, NotFoundError, ValidationError

logger = logging.getLogger("credvault.api.auth")

# Auth policy:
# - POST  /api/v1/auth/register:        public -- gated by SELF_REGISTRATION_ENABLED
# - POST  /api/v1/auth/login:           public -- login endpoint must be unauthenticated
# - POST  /api/v1/auth/logout:          public -- clearing a cookie needs no prior auth
# - GET   /api/v1/auth/me:              requires auth (get_current_user)
# - PATCH /api/v1/auth/me:              requires auth (get_current_user)
# - POST  /api/v1/auth/change-password: requires auth (get_current_user)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(LOGIN_RATE_LIMIT)  # must sit above @router so FastAPI still sees the signature
@router.post("/auth/register", response_model=LoginResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and log it in.

    ultra_admin is rejected; that role is only created through the CLI
    or by another ultra_admin. Duplicate email raises ConflictError (409).
    """
    if not get_settings().self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self-registration is disabled."},
        )
    if body.role == RoleEnum.ultra_admin:
        raise ValidationError("Invalid role specified.")

    user_store: UserStore = request.app.state.user_store
    activity: ActivityStore = request.app.state.activity_store

    new_user = User(
        email=body.email,
        role=body.role.value,
        full_name=body.full_name,
        allowed_categories=body.allowed_categories,
        allowed_subcategories=body.allowed_subcategories,
    )
    user_id = user_store.create_user(new_user, body.password)
    created = user_store.get_by_id(user_id)
    activity.log(created.id, "USER_REGISTERED", {"email": created.email}, get_remote_address(request))
    logger.info("User %s registered (role=%s)", created.id, created.role)

    return _token_response(created, status_code=201)


@limiter.limit(LOGIN_RATE_LIMIT)
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set JWT cookie.

    Returns the same generic error for unknown email and wrong password to
    avoid leaking which emails are registered.
    """
    user_store: UserStore = request.app.state.user_store
    activity: ActivityStore = request.app.state.activity_store

    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        raise AuthenticationError()

    user_store.update_last_login(user.id)
    # No-op for ultra_admin -- ActivityStore.log checks the role.
    activity.log(user.id, "USER_LOGIN", {"email": user.email}, get_remote_address(request))
    return _token_response(user_store.get_by_id(user.id))


@router.post("/auth/logout", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie("access_token")
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the profile of the currently authenticated user."""
    return UserResponse.from_user(current_user)


@router.patch("/auth/me", response_model=UserResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Update the caller's own full name. Role and grants are not editable here."""
    user_store: UserStore = request.app.state.user_store
    activity: ActivityStore = request.app.state.activity_store

    updated = user_store.update_user(current_user.id, full_name=body.full_name)
    if updated is None:
        raise NotFoundError("User not found.")
    activity.log(current_user.id, "PROFILE_UPDATED", {"fields": ["full_name"]}, get_remote_address(request))
    return UserResponse.from_user(updated)


@router.post("/auth/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Replace the caller's password after verifying the current one.

    The new password must differ from the current one.
    """
    user_store: UserStore = request.app.state.user_store
    activity: ActivityStore = request.app.state.activity_store
    ip = get_remote_address(request)

    user = user_store.get_by_id(current_user.id, include_password=True)
    if user is None:
        raise NotFoundError("User not found.")
    if not verify_password(body.current_password, user.hashed_password):
        activity.log(user.id, "PASSWORD_CHANGE_FAILED", {"reason": "Invalid current password"}, ip)
        raise ValidationError("Current password is incorrect.")
    if verify_password(body.new_password, user.hashed_password):
        raise ValidationError("New password must be different from current password.")

    user_store.update_password(user.id, hash_password(body.new_password))
    activity.log(user.id, "PASSWORD_CHANGED", {}, ip)
    return MessageResponse(message="Password updated successfully.")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _token_response(user: User, status_code: int = 200) -> JSONResponse:
    settings = get_settings()
    token = issue_token(user)
    resp = JSONResponse(
        status_code=status_code,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=settings.token_expire_seconds,
            user=UserResponse.from_user(user),
        ).model_dump(),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp
