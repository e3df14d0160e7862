"""
vault/service.py -- Use cases for system credentials.

Every operation follows the same order:
  1. load the target (NotFoundError if missing),
  2. ask vault.policy to authorize the actor (UnauthorizedError on denial),
  3. read or write through SystemStore,
  4. record the action through ActivityStore (a no-op for ultra_admin).

Route handlers call these methods and never combine store and policy calls
themselves, so the HTTP layer cannot skip a check.
"""

from __future__ import annotations

import logging
from typing import Optional

from audit.store import ActivityStore
from auth.models import User
from core.errors import NotFoundError, ValidationError
from core.models import SYSTEM_CATEGORIES
from vault import policy
from vault.models import System
from vault.policy import Operation
from vault.store import SystemStore

logger = logging.getLogger("credvault.vault")


class SystemService:
    def __init__(self, system_store: SystemStore, activity_store: ActivityStore) -> None:
        self.systems = system_store
        self.activity = activity_store

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_system(self, actor: User, system: System, ip_address: Optional[str] = None) -> System:
        _check_category(system.category)
        policy.authorize(actor, Operation.CREATE, system.category, system.subcategory)

        system.created_by = actor.id
        created = self.systems.create(system)
        self.activity.log(
            actor.id,
            "SYSTEM_CREATED",
            {"systemId": created.id, "name": created.name},
            ip_address,
        )
        logger.info("System %s created by user %s", created.id, actor.id)
        return created

    def update_system(self, actor: User, system_id: int, changes: dict, ip_address: Optional[str] = None) -> System:
        existing = self._require(system_id)
        new_category = changes.get("category")
        if new_category is not None:
            _check_category(new_category)
        policy.authorize(
            actor,
            Operation.UPDATE,
            existing.category,
            existing.subcategory,
            new_category=new_category,
        )

        updated = self.systems.update(system_id, **changes)
        if updated is None:
            # Deleted between the existence check and the update.
            raise NotFoundError("System not found.")
        self.activity.log(
            actor.id,
            "SYSTEM_UPDATED",
            {"systemId": updated.id, "name": updated.name},
            ip_address,
        )
        return updated

    def delete_system(self, actor: User, system_id: int, ip_address: Optional[str] = None) -> System:
        existing = self._require(system_id)
        policy.authorize(actor, Operation.DELETE, existing.category, existing.subcategory)

        deleted = self.systems.delete(system_id)
        if deleted is None:
            raise NotFoundError("System not found.")
        self.activity.log(
            actor.id,
            "SYSTEM_DELETED",
            {"systemId": system_id, "name": deleted.name},
            ip_address,
        )
        logger.info("System %s deleted by user %s", system_id, actor.id)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_system(self, actor: User, system_id: int, ip_address: Optional[str] = None) -> System:
        """Return one system with its decrypted secret and record the view."""
        system = self.systems.get_with_password(system_id)
        if system is None:
            raise NotFoundError("System not found.")
        policy.authorize(actor, Operation.VIEW, system.category, system.subcategory)

        self.activity.log(
            actor.id,
            "SYSTEM_VIEWED",
            {"systemId": system.id, "name": system.name},
            ip_address,
        )
        return system

    def get_accessible_systems(self, actor: User) -> list[System]:
        return policy.filter_accessible(actor, self.systems.list_all())

    def get_systems_by_category(self, actor: User, category: str) -> list[System]:
        _check_category(category)
        return policy.filter_accessible(actor, self.systems.list_by_category(category))

    def get_systems_by_subcategory(self, actor: User, category: str, subcategory: str) -> list[System]:
        _check_category(category)
        return policy.filter_accessible(actor, self.systems.list_by_subcategory(category, subcategory))

    def get_systems_by_creator(self, actor: User) -> list[System]:
        """Systems the actor created that the actor can still see."""
        return policy.filter_accessible(actor, self.systems.list_by_creator(actor.id))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, system_id: int) -> System:
        system = self.systems.get(system_id)
        if system is None:
            raise NotFoundError("System not found.")
        return system


def _check_category(category: str) -> None:
    if category not in SYSTEM_CATEGORIES:
        raise ValidationError(f"Unknown category '{category}'.", detail=f"Expected one of {', '.join(SYSTEM_CATEGORIES)}.")
