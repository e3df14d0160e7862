"""
api/routes/v1/users.py -- User administration REST endpoints.

Routes:
  GET    /api/v1/users        -- list users (super_admin+)
  POST   /api/v1/users        -- create user, schedule welcome email (super_admin+)
  GET    /api/v1/users/{id}   -- one user (self or super_admin+)
  PUT    /api/v1/users/{id}   -- update user (self or super_admin+)
  DELETE /api/v1/users/{id}   -- delete user and its activity log (super_admin+)

Visibility:
  ultra_admin accounts do not exist for anyone but another ultra_admin.
  They are left out of listings and GET/PUT/DELETE on one returns 404.

Privilege rules on PUT:
  - Only super_admin+ may change role, allowed_categories or
    allowed_subcategories, including on their own account.
  - Only an ultra_admin may grant the ultra_admin role.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from slowapi.util import get_remote_address

from api.models import MessageResponse, RoleEnum, UserCreate, UserResponse, UserUpdate
from audit.store import ActivityStore
from auth.dependencies import get_current_user, require_roles
from auth.models import User
from auth.store import UserStore
from core.errors import NotFoundError, UnauthorizedError
from core.models import TOP_TIER_ROLES, ULTRA_ADMIN
from notify.email import EmailNotifier

logger = logging.getLogger("credvault.api.users")

router = APIRouter()

_require_top_tier = require_roles(*TOP_TIER_ROLES)


@router.get("/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    current_user: User = Depends(_require_top_tier),
) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    found = user_store.list_users(include_ultra_admin=current_user.role == ULTRA_ADMIN)
    return [UserResponse.from_user(u) for u in found]


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(_require_top_tier),
) -> UserResponse:
    """Create an account on behalf of someone else.

    The welcome email carries the initial password and is sent after the
    response, so an SMTP failure never undoes the creation.
    """
    if body.role == RoleEnum.ultra_admin and current_user.role != ULTRA_ADMIN:
        raise UnauthorizedError("Only an ultra_admin can grant the ultra_admin role.")

    user_store: UserStore = request.app.state.user_store
    activity: ActivityStore = request.app.state.activity_store

    user_id = user_store.create_user(
        User(
            email=body.email,
            role=body.role.value,
            full_name=body.full_name,
            allowed_categories=body.allowed_categories,
            allowed_subcategories=body.allowed_subcategories,
        ),
        body.password,
    )
    created = user_store.get_by_id(user_id)
    activity.log(
        current_user.id,
        "USER_CREATED",
        {"createdUserId": created.id, "email": created.email},
        get_remote_address(request),
    )
    logger.info("User %s created by user %s (role=%s)", created.id, current_user.id, created.role)

    if body.send_welcome_email:
        notifier: EmailNotifier = request.app.state.email_notifier
        background_tasks.add_task(
            _send_welcome, notifier, created.email, created.full_name or created.email, body.password
        )

    return UserResponse.from_user(created)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    target = _load_visible(request, user_id, current_user)
    _require_self_or_top_tier(current_user, target)
    return UserResponse.from_user(target)


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserUpdate,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    target = _load_visible(request, user_id, current_user)
    _require_self_or_top_tier(current_user, target)

    changes = body.model_dump(exclude_unset=True)
    privileged = {"role", "allowed_categories", "allowed_subcategories"} & set(changes)
    if privileged and current_user.role not in TOP_TIER_ROLES:
        raise UnauthorizedError("Only super_admin or ultra_admin can change roles or category grants.")
    if changes.get("role") is not None:
        changes["role"] = RoleEnum(changes["role"]).value
        if changes["role"] == ULTRA_ADMIN and current_user.role != ULTRA_ADMIN:
            raise UnauthorizedError("Only an ultra_admin can grant the ultra_admin role.")

    user_store: UserStore = request.app.state.user_store
    activity: ActivityStore = request.app.state.activity_store

    updated = user_store.update_user(user_id, **changes)
    if updated is None:
        raise NotFoundError("User not found.")
    activity.log(
        current_user.id,
        "USER_UPDATED",
        {"updatedUserId": updated.id, "fields": sorted(k for k in changes if k != "password")},
        get_remote_address(request),
    )
    return UserResponse.from_user(updated)


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(_require_top_tier),
) -> MessageResponse:
    """Delete a user together with its activity log rows.

    ultra_admin accounts cannot be deleted; the store refuses and this
    returns 404 as for a missing user.
    """
    user_store: UserStore = request.app.state.user_store
    activity: ActivityStore = request.app.state.activity_store

    deleted = user_store.delete_user(user_id)
    if deleted is None:
        raise NotFoundError("User not found.")
    activity.log(
        current_user.id,
        "USER_DELETED",
        {"deletedUserId": deleted.id, "email": deleted.email},
        get_remote_address(request),
    )
    logger.info("User %s deleted by user %s", deleted.id, current_user.id)
    return MessageResponse(message="User deleted successfully.")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_visible(request: Request, user_id: int, current_user: User) -> User:
    user_store: UserStore = request.app.state.user_store
    target = user_store.get_by_id(user_id)
    if target is None:
        raise NotFoundError("User not found.")
    if target.role == ULTRA_ADMIN and current_user.role != ULTRA_ADMIN:
        raise NotFoundError("User not found.")
    return target


def _require_self_or_top_tier(current_user: User, target: User) -> None:
    if current_user.id != target.id and current_user.role not in TOP_TIER_ROLES:
        raise UnauthorizedError("Not authorized to access this user.")


def _send_welcome(notifier: EmailNotifier, address: str, full_name: str, password: str) -> None:
    result = notifier.send_welcome_email(address, full_name, password)
    if not result["success"]:
        logger.warning("Welcome email to %s failed: %s", address, result.get("error"))
