"""
api/routes/v1/activities.py -- Activity log REST endpoints.

Routes:
  GET /api/v1/activities     -- all activity (admin+), newest first
  GET /api/v1/activities/me  -- the caller's own activity

ultra_admin actions are never written to the log. When the caller is an
ultra_admin, GET /activities uses the privileged read, which would also show
rows left behind by an account that was later promoted to ultra_admin.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import ActivityListResponse, ActivityResponse
from audit.store import ActivityStore
from auth.dependencies import get_current_user, require_roles
from auth.models import User
from core.models import ADMIN_TIER_ROLES, ULTRA_ADMIN

router = APIRouter()


@router.get("/activities", response_model=ActivityListResponse)
def list_activities(
    request: Request,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(require_roles(*ADMIN_TIER_ROLES)),
) -> ActivityListResponse:
    activity: ActivityStore = request.app.state.activity_store
    if current_user.role == ULTRA_ADMIN:
        items = activity.list_all_including_privileged(limit=limit, offset=offset)
        total = activity.count_including_privileged()
    else:
        items = activity.list_all(limit=limit, offset=offset)
        total = activity.count()
    return ActivityListResponse(
        items=[ActivityResponse.from_activity(a) for a in items],
        total_items=total,
    )


@router.get("/activities/me", response_model=list[ActivityResponse])
def my_activities(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> list[ActivityResponse]:
    """Always empty for an ultra_admin."""
    activity: ActivityStore = request.app.state.activity_store
    return [ActivityResponse.from_activity(a) for a in activity.list_by_actor(current_user.id)]
