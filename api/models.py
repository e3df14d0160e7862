"""
API request and response models for CredVault REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py,
vault/models.py and audit/models.py, which own the internal domain
representation. Route handlers map between the two.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from audit.models import ActivityLog
from auth.models import User
from vault.models import System

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: the address is verified by the welcome email, not here.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    ultra_admin = "ultra_admin"
    super_admin = "super_admin"
    admin = "admin"
    user = "user"


class CategoryEnum(str, Enum):
    web_software = "web_software"
    database = "database"
    network = "network"


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Users -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    allowed_categories is a plain string list on purpose: unknown values are
    dropped by the store rather than rejected with a 422.
    """

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=6, max_length=128)
    full_name: Optional[str] = Field(default=None, max_length=255)
    role: RoleEnum = RoleEnum.user
    allowed_categories: list[str] = Field(default_factory=list)
    allowed_subcategories: dict[str, list[str]] = Field(default_factory=dict)


class UserCreate(RegisterRequest):
    """Request body for POST /api/v1/users (super_admin and above)."""

    send_welcome_email: bool = True


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}. Omitted fields are unchanged.

    A blank password leaves the current password in place.
    """

    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=128)
    role: Optional[RoleEnum] = None
    allowed_categories: Optional[list[str]] = None
    allowed_subcategories: Optional[dict[str, list[str]]] = None


class ProfileUpdate(BaseModel):
    """Request body for PATCH /api/v1/auth/me."""

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str = Field(min_length=1, max_length=255)


class LoginRequest(BaseModel):
    email: str = Field(max_length=255)
    password: str = Field(max_length=128)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(max_length=128)
    new_password: str = Field(min_length=6, max_length=128)


# ---------------------------------------------------------------------------
# Users -- responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    full_name: Optional[str]
    role: str
    allowed_categories: list[str]
    allowed_subcategories: dict[str, list[str]]
    created_at: str
    updated_at: str
    last_login: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method -- the mapping lives next to the output model."""
        return cls(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            allowed_categories=user.allowed_categories,
            allowed_subcategories=user.allowed_subcategories,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
            last_login=user.last_login,
        )


class LoginResponse(BaseModel):
    """Response for login and register. The token is also set as a cookie."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


# ---------------------------------------------------------------------------
# Systems
# ---------------------------------------------------------------------------


class SystemCreate(BaseModel):
    """Request body for POST /api/v1/systems.

    No whitespace stripping: the password must round-trip byte for byte.
    """

    name: str = Field(min_length=1, max_length=255)
    category: CategoryEnum
    subcategory: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    username: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=1024)
    url: Optional[str] = Field(default=None, max_length=2048)
    notes: Optional[str] = Field(default=None, max_length=5000)


class SystemUpdate(BaseModel):
    """Request body for PUT /api/v1/systems/{id}.

    Omitted fields are unchanged. password="" clears the stored secret.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[CategoryEnum] = None
    subcategory: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    username: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=1024)
    url: Optional[str] = Field(default=None, max_length=2048)
    notes: Optional[str] = Field(default=None, max_length=5000)


class SystemResponse(BaseModel):
    """One row in a systems listing. No secret."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    category: str
    subcategory: Optional[str]
    description: Optional[str]
    username: Optional[str]
    url: Optional[str]
    notes: Optional[str]
    created_by: Optional[int]
    created_by_email: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_system(cls, system: System) -> "SystemResponse":
        return cls(**_system_fields(system))


class SystemDetailResponse(SystemResponse):
    """Single-system view with the decrypted secret.

    password is None when no secret is stored or it could not be decrypted.
    """

    password: Optional[str] = None

    @classmethod
    def from_system(cls, system: System) -> "SystemDetailResponse":
        return cls(**_system_fields(system), password=system.password)


def _system_fields(system: System) -> dict:
    return {
        "id": system.id,
        "name": system.name,
        "category": system.category,
        "subcategory": system.subcategory,
        "description": system.description,
        "username": system.username,
        "url": system.url,
        "notes": system.notes,
        "created_by": system.created_by,
        "created_by_email": system.created_by_email,
        "created_at": system.created_at,
        "updated_at": system.updated_at,
    }


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


class ActivityResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    action: str
    details: dict[str, Any]
    ip_address: Optional[str]
    created_at: str
    user_email: Optional[str] = None
    user_role: Optional[str] = None

    @classmethod
    def from_activity(cls, log: ActivityLog) -> "ActivityResponse":
        return cls(
            id=log.id,
            user_id=log.user_id,
            action=log.action,
            details=log.details,
            ip_address=log.ip_address,
            created_at=log.created_at,
            user_email=log.user_email,
            user_role=log.user_role,
        )


class ActivityListResponse(BaseModel):
    """Response for GET /api/v1/activities."""

    model_config = ConfigDict(frozen=True)

    items: list[ActivityResponse]
    total_items: int


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------


class SendTestEmailRequest(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)


class EmailResultResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    message_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
