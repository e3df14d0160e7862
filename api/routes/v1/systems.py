"""
api/routes/v1/systems.py -- System credential REST endpoints.

Routes:
  GET    /api/v1/systems                                   -- accessible systems
  GET    /api/v1/systems/mine                              -- accessible systems the caller created
  GET    /api/v1/systems/category/{category}               -- accessible systems in a category
  GET    /api/v1/systems/category/{category}/{subcategory} -- ... in a subcategory
  GET    /api/v1/systems/{id}                              -- one system with decrypted password
  POST   /api/v1/systems                                   -- create (admin+)
  PUT    /api/v1/systems/{id}                              -- update (admin+)
  DELETE /api/v1/systems/{id}                              -- delete (admin+)

The role gate on writes only rejects plain users early. Whether an admin may
touch a given category is decided by vault.policy inside SystemService.

Listings never carry secrets. Only GET /systems/{id} decrypts, and that
read is recorded as SYSTEM_VIEWED.

The static paths (/mine, /category/...) are registered before /{system_id}.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from slowapi.util import get_remote_address

from api.models import MessageResponse, SystemCreate, SystemDetailResponse, SystemResponse, SystemUpdate
from auth.dependencies import get_current_user, require_roles
from auth.models import User
from core.models import ADMIN_TIER_ROLES
from vault.models import System
from vault.service import SystemService

router = APIRouter()

_require_admin_tier = require_roles(*ADMIN_TIER_ROLES)


def _service(request: Request) -> SystemService:
    return request.app.state.system_service


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


@router.get("/systems", response_model=list[SystemResponse])
def list_systems(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> list[SystemResponse]:
    found = _service(request).get_accessible_systems(current_user)
    return [SystemResponse.from_system(s) for s in found]


@router.get("/systems/mine", response_model=list[SystemResponse])
def list_my_systems(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> list[SystemResponse]:
    found = _service(request).get_systems_by_creator(current_user)
    return [SystemResponse.from_system(s) for s in found]


@router.get("/systems/category/{category}", response_model=list[SystemResponse])
def list_systems_by_category(
    request: Request,
    category: str,
    current_user: User = Depends(get_current_user),
) -> list[SystemResponse]:
    """Unknown categories are a 400, not an empty list."""
    found = _service(request).get_systems_by_category(current_user, category)
    return [SystemResponse.from_system(s) for s in found]


@router.get("/systems/category/{category}/{subcategory}", response_model=list[SystemResponse])
def list_systems_by_subcategory(
    request: Request,
    category: str,
    subcategory: str,
    current_user: User = Depends(get_current_user),
) -> list[SystemResponse]:
    found = _service(request).get_systems_by_subcategory(current_user, category, subcategory)
    return [SystemResponse.from_system(s) for s in found]


# ---------------------------------------------------------------------------
# Single system
# ---------------------------------------------------------------------------


@router.get("/systems/{system_id}", response_model=SystemDetailResponse)
def get_system(
    request: Request,
    system_id: int,
    current_user: User = Depends(get_current_user),
) -> SystemDetailResponse:
    system = _service(request).get_system(current_user, system_id, get_remote_address(request))
    return SystemDetailResponse.from_system(system)


@router.post("/systems", response_model=SystemResponse, status_code=201)
def create_system(
    request: Request,
    body: SystemCreate,
    current_user: User = Depends(_require_admin_tier),
) -> SystemResponse:
    system = System(
        name=body.name,
        category=body.category.value,
        subcategory=body.subcategory,
        description=body.description,
        username=body.username,
        password=body.password,
        url=body.url,
        notes=body.notes,
    )
    created = _service(request).create_system(current_user, system, get_remote_address(request))
    return SystemResponse.from_system(created)


@router.put("/systems/{system_id}", response_model=SystemResponse)
def update_system(
    request: Request,
    system_id: int,
    body: SystemUpdate,
    current_user: User = Depends(_require_admin_tier),
) -> SystemResponse:
    changes = body.model_dump(exclude_unset=True)
    if changes.get("category") is not None:
        changes["category"] = body.category.value
    updated = _service(request).update_system(current_user, system_id, changes, get_remote_address(request))
    return SystemResponse.from_system(updated)


@router.delete("/systems/{system_id}", response_model=MessageResponse)
def delete_system(
    request: Request,
    system_id: int,
    current_user: User = Depends(_require_admin_tier),
) -> MessageResponse:
    _service(request).delete_system(current_user, system_id, get_remote_address(request))
    return MessageResponse(message="System deleted successfully.")
