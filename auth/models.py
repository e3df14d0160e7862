"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in vault/models.py and audit/models.py -- dataclasses own domain shape;
stores and routes do the work.

Layer rule: no imports from api/, vault/, audit/, or notify/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """An account that can log in and act on system credentials.

    The same object is the "actor" handed to the access policy engine, so it
    carries the role and both category grants.

    allowed_categories holds only values from core.models.SYSTEM_CATEGORIES;
    the store filters anything else out before writing.
    allowed_subcategories maps category -> list of subcategory tags. A
    category with no entry here means every subcategory under it is visible.

    hashed_password is only populated by lookups that need it (login,
    change-password); it is never serialized to API responses.
    """

    email: str
    role: str  # "ultra_admin", "super_admin", "admin", "user"
    id: int | None = None
    full_name: str | None = None
    hashed_password: str | None = None
    allowed_categories: list[str] = field(default_factory=list)
    allowed_subcategories: dict[str, list[str]] = field(default_factory=dict)
    created_at: str | None = None
    updated_at: str | None = None
    last_login: str | None = None
