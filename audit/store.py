"""
audit/store.py -- Append-only activity log over SQLAlchemy Core.

Pattern: Repository + Data Mapper (same as auth/store.py and vault/store.py).

The ultra_admin rule:
  Actions taken by an ultra_admin are never recorded. log() looks up the
  actor's role itself and returns None for the top tier instead of inserting.
  Read views exclude ultra_admin-authored rows as well, except
  list_all_including_privileged() / count_including_privileged(), which an
  ultra_admin caller uses for the broader view.

Ordering: newest first (created_at DESC, id DESC as the tiebreaker for rows
written in the same microsecond).

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from audit.models import ActivityLog
from core.database import activity_logs, users
from core.models import ULTRA_ADMIN

logger = logging.getLogger("credvault.audit")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ActivityStore:
    """Repository for ActivityLog records.

    Usage:
        store = ActivityStore(engine)
        store.log(user_id, "SYSTEM_VIEWED", {"systemId": 4, "name": "VPN"}, "10.0.0.7")
        rows = store.list_all(limit=50, offset=0)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def log(
        self,
        actor_id: int,
        action: str,
        details: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[ActivityLog]:
        """Append one record and return it.

        Returns None without writing when the actor is an ultra_admin.
        """
        with self.engine.begin() as conn:
            role = conn.execute(select(users.c.role).where(users.c.id == actor_id)).scalar()
            if role == ULTRA_ADMIN:
                return None
            created_at = _now_iso()
            payload = details or {}
            result = conn.execute(
                activity_logs.insert().values(
                    user_id=actor_id,
                    action=action,
                    details=json.dumps(payload, default=str),
                    ip_address=ip_address,
                    created_at=created_at,
                )
            )
            log_id = result.inserted_primary_key[0]
        logger.debug("Activity %s recorded for user %s", action, actor_id)
        return ActivityLog(
            id=log_id,
            user_id=actor_id,
            action=action,
            details=payload,
            ip_address=ip_address,
            created_at=created_at,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_all(self, limit: Optional[int] = None, offset: int = 0) -> list[ActivityLog]:
        """Return records newest first, excluding ultra_admin actors.

        limit=None returns the unbounded set.
        """
        return self._list(exclude_privileged=True, limit=limit, offset=offset)

    def list_all_including_privileged(self, limit: Optional[int] = None, offset: int = 0) -> list[ActivityLog]:
        """Same as list_all() without the ultra_admin exclusion."""
        return self._list(exclude_privileged=False, limit=limit, offset=offset)

    def list_by_actor(self, actor_id: int) -> list[ActivityLog]:
        """Return one actor's records newest first.

        Short-circuits to [] for an ultra_admin without querying the log.
        """
        with self.engine.connect() as conn:
            role = conn.execute(select(users.c.role).where(users.c.id == actor_id)).scalar()
            if role == ULTRA_ADMIN:
                return []
            rows = conn.execute(
                self._joined_select()
                .where(activity_logs.c.user_id == actor_id)
                .order_by(activity_logs.c.created_at.desc(), activity_logs.c.id.desc())
            ).fetchall()
        return [_row_to_activity(r) for r in rows]

    def count(self) -> int:
        """Number of records visible through list_all()."""
        return self._count(exclude_privileged=True)

    def count_including_privileged(self) -> int:
        """Number of records visible through list_all_including_privileged()."""
        return self._count(exclude_privileged=False)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _joined_select():
        return select(
            activity_logs,
            users.c.email.label("user_email"),
            users.c.role.label("user_role"),
        ).select_from(activity_logs.join(users, activity_logs.c.user_id == users.c.id))

    def _list(self, exclude_privileged: bool, limit: Optional[int], offset: int) -> list[ActivityLog]:
        query = self._joined_select()
        if exclude_privileged:
            query = query.where(users.c.role != ULTRA_ADMIN)
        query = query.order_by(activity_logs.c.created_at.desc(), activity_logs.c.id.desc())
        if limit:
            query = query.limit(limit).offset(offset)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_activity(r) for r in rows]

    def _count(self, exclude_privileged: bool) -> int:
        query = select(func.count()).select_from(activity_logs.join(users, activity_logs.c.user_id == users.c.id))
        if exclude_privileged:
            query = query.where(users.c.role != ULTRA_ADMIN)
        with self.engine.connect() as conn:
            result = conn.execute(query).scalar()
        return result or 0


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_activity(row) -> ActivityLog:
    return ActivityLog(
        id=row.id,
        user_id=row.user_id,
        action=row.action,
        details=json.loads(row.details) if row.details else {},
        ip_address=row.ip_address,
        created_at=row.created_at,
        user_email=row.user_email,
        user_role=row.user_role,
    )
