"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper (same as vault/store.py and audit/store.py).
UserStore is the repository; _row_to_user is the mapper. Route and
dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Passwords are hashed here (bcrypt via auth.tokens.hash_password) so a
  plaintext password never reaches the users table.

Invariants enforced here rather than in routes:
  - Duplicate email raises ConflictError.
  - allowed_categories is filtered to the fixed category set; unknown values
    are dropped, never stored.
  - An update with an omitted or blank password keeps the existing hash.
  - An ultra_admin account is never deleted. delete_user() returns None and
    leaves the row untouched.
  - Deleting any other user removes its activity_logs rows first, inside the
    same transaction.

Layer rule: no imports from api/, vault/, or notify/. The activity_logs
table is imported from core.database only for the delete cascade.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.tokens import hash_password
from core.database import activity_logs, users
from core.errors import ConflictError
from core.models import ULTRA_ADMIN, filter_categories

# Columns that update_user() accepts. Anything else is a programming error.
_UPDATABLE_FIELDS = {"email", "full_name", "role", "password", "allowed_categories", "allowed_subcategories"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _clean_subcategories(value: dict | None) -> dict[str, list[str]]:
    """Normalize a category -> subcategories mapping for storage.

    Keys outside the fixed category set are dropped, matching the
    allowed_categories rule. Values are de-duplicated string lists.
    """
    cleaned: dict[str, list[str]] = {}
    for category, subs in (value or {}).items():
        valid = filter_categories([category])
        if not valid or not isinstance(subs, (list, tuple, set)):
            continue
        seen: list[str] = []
        for sub in subs:
            if isinstance(sub, str) and sub.strip() and sub.strip() not in seen:
                seen.append(sub.strip())
        cleaned[valid[0]] = seen
    return cleaned


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(engine)
        user_id = store.create_user(User(email="a@x.io", role="user"), password="secret")
        user = store.get_by_email("a@x.io", include_password=True)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one user record exists."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return (result or 0) > 0

    def get_by_id(self, user_id: int, include_password: bool = False) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row, include_password) if row is not None else None

    def get_by_email(self, email: str, include_password: bool = False) -> User | None:
        """Look up a user by exact email. Returns None if not found.

        include_password=True is for the login and change-password paths only.
        """
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == email)).fetchone()
        return _row_to_user(row, include_password) if row is not None else None

    def list_users(self, include_ultra_admin: bool = False) -> list[User]:
        """Return users newest first.

        ultra_admin accounts are hidden unless include_ultra_admin is set;
        only an ultra_admin caller should ever see them.
        """
        query = users.select()
        if not include_ultra_admin:
            query = query.where(users.c.role != ULTRA_ADMIN)
        query = query.order_by(users.c.created_at.desc(), users.c.id.desc())
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    def is_ultra_admin(self, user_id: int) -> bool:
        with self.engine.connect() as conn:
            role = conn.execute(select(users.c.role).where(users.c.id == user_id)).scalar()
        return role == ULTRA_ADMIN

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User, password: str) -> int:
        """Insert a new user and return its assigned database ID.

        The plaintext password is hashed before the insert. Categories are
        filtered to the fixed set; unrecognised values are dropped.

        Raises ConflictError if the email is already registered.
        """
        now = _now_iso()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    users.insert().values(
                        email=user.email,
                        hashed_password=hash_password(password),
                        role=user.role,
                        full_name=user.full_name,
                        allowed_categories=json.dumps(filter_categories(user.allowed_categories)),
                        allowed_subcategories=json.dumps(_clean_subcategories(user.allowed_subcategories)),
                        created_at=now,
                        updated_at=now,
                    )
                )
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise ConflictError("Email already registered.") from exc

    def update_user(self, user_id: int, **fields) -> User | None:
        """Update mutable fields on an existing user and return the fresh record.

        Accepted fields: email, full_name, role, password, allowed_categories,
        allowed_subcategories. A password that is None or blank is ignored so
        the existing hash stays in place.

        Returns None if user_id was not found. Raises ConflictError if the new
        email belongs to another account.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")

        values: dict = {}
        for key in ("email", "full_name", "role"):
            if fields.get(key) is not None:
                values[key] = fields[key]
        if fields.get("allowed_categories") is not None:
            values["allowed_categories"] = json.dumps(filter_categories(fields["allowed_categories"]))
        if fields.get("allowed_subcategories") is not None:
            values["allowed_subcategories"] = json.dumps(_clean_subcategories(fields["allowed_subcategories"]))
        password = fields.get("password")
        if password is not None and password.strip() != "":
            values["hashed_password"] = hash_password(password)
        values["updated_at"] = _now_iso()

        try:
            with self.engine.begin() as conn:
                result = conn.execute(users.update().where(users.c.id == user_id).values(**values))
        except IntegrityError as exc:
            raise ConflictError("Email already registered.") from exc
        if result.rowcount == 0:
            return None
        return self.get_by_id(user_id)

    def update_password(self, user_id: int, hashed_password: str) -> bool:
        """Replace the stored hash. The caller hashes and verifies."""
        with self.engine.begin() as conn:
            result = conn.execute(
                users.update()
                .where(users.c.id == user_id)
                .values(hashed_password=hashed_password, updated_at=_now_iso())
            )
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.begin() as conn:
            conn.execute(users.update().where(users.c.id == user_id).values(last_login=_now_iso()))

    def delete_user(self, user_id: int) -> User | None:
        """Permanently delete a user and its activity logs in one transaction.

        Returns the deleted User, or None if the user does not exist or is an
        ultra_admin (in which case nothing is touched). Any failure inside the
        transaction rolls back both deletes.
        """
        with self.engine.begin() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
            if row is None or row.role == ULTRA_ADMIN:
                return None
            conn.execute(activity_logs.delete().where(activity_logs.c.user_id == user_id))
            conn.execute(users.delete().where(users.c.id == user_id))
        return _row_to_user(row)


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, include_password: bool = False) -> User:
    return User(
        id=row.id,
        email=row.email,
        role=row.role,
        full_name=row.full_name,
        hashed_password=row.hashed_password if include_password else None,
        allowed_categories=json.loads(row.allowed_categories or "[]"),
        allowed_subcategories=json.loads(row.allowed_subcategories or "{}"),
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_login=row.last_login,
    )
