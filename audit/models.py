"""
audit/models.py -- Domain dataclass for the activity log.

Pure data container. All filtering rules (ultra_admin exclusion, ordering,
pagination) live in audit/store.py.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ActivityLog:
    """Append-only record of a privileged or sensitive action.

    Records are never updated. They are deleted only together with the user
    they belong to (see auth.store.UserStore.delete_user).

    user_email / user_role are joined from the users table on reads and are
    None on the record returned by ActivityStore.log().

    id is None before the record is written to the database.
    """

    user_id: int
    action: str  # e.g. "SYSTEM_VIEWED", "USER_LOGIN"
    details: dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    id: Optional[int] = None
    user_email: Optional[str] = None
    user_role: Optional[str] = None
