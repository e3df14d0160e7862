"""
vault/policy.py -- Access policy for system credentials.

Decides whether an actor (a User with role, allowed_categories and
allowed_subcategories) may view, create, update or delete a system entry
with a given category/subcategory. Pure functions over plain data: no I/O,
no logging, so every rule is unit-testable in isolation.

Rules, in precedence order:
  1. ultra_admin, super_admin -- unrestricted.
  2. admin -- every operation requires the system's category to be in
     allowed_categories. Moving a system to a category outside that set is
     rejected. Subcategory restrictions apply to admin reads only.
  3. user -- view only. Category must be allowed; if the system has a
     subcategory and the user has a restriction list for that category, the
     subcategory must be on it. No restriction list means the whole
     category is visible; an empty list hides every system that has a
     subcategory.
  4. Anything else is denied with UnauthorizedError.

Authorship is not a grant. A system created by an ultra_admin is gated by
the same category/subcategory rules as every other system.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Optional

from auth.models import User
from core.errors import UnauthorizedError
from core.models import ADMIN, TOP_TIER_ROLES, USER
from vault.models import System


class Operation(str, Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


_WRITE_OPERATIONS = frozenset({Operation.CREATE, Operation.UPDATE, Operation.DELETE})


def _category_allowed(actor: User, category: str) -> bool:
    return category in (actor.allowed_categories or [])


def _subcategory_allowed(actor: User, category: str, subcategory: Optional[str]) -> bool:
    if not subcategory:
        return True
    restriction = (actor.allowed_subcategories or {}).get(category)
    if restriction is None:
        return True
    return subcategory in restriction


def can_access(actor: User, operation: Operation, category: str, subcategory: Optional[str] = None) -> bool:
    """Return True if actor may perform operation on a system in category/subcategory."""
    if actor.role in TOP_TIER_ROLES:
        return True
    if actor.role == ADMIN:
        if not _category_allowed(actor, category):
            return False
        if operation in _WRITE_OPERATIONS:
            return True
        return _subcategory_allowed(actor, category, subcategory)
    if actor.role == USER:
        if operation is not Operation.VIEW:
            return False
        return _category_allowed(actor, category) and _subcategory_allowed(actor, category, subcategory)
    return False


def authorize(
    actor: User,
    operation: Operation,
    category: str,
    subcategory: Optional[str] = None,
    new_category: Optional[str] = None,
) -> None:
    """Raise UnauthorizedError unless the operation is permitted.

    new_category is the target category of an update. When it differs from
    the current one the actor needs write access to both.
    """
    if not can_access(actor, operation, category, subcategory):
        raise UnauthorizedError(f"Not authorized to {operation.value} systems in category '{category}'.")
    if new_category is not None and new_category != category:
        if not can_access(actor, operation, new_category):
            raise UnauthorizedError(f"Not authorized to move systems into category '{new_category}'.")


def filter_accessible(actor: User, systems: Iterable[System]) -> list[System]:
    """Return the systems the actor may view, evaluated entry by entry.

    The two top tiers get every system. No pagination: the full set is
    filtered in memory.
    """
    if actor.role in TOP_TIER_ROLES:
        return list(systems)
    return [s for s in systems if can_access(actor, Operation.VIEW, s.category, s.subcategory)]
