"""
vault/store.py -- SQLAlchemy Core persistence layer for system credentials.

Pattern: Repository + Data Mapper. SystemStore is the repository;
_row_to_system is the mapper. The store owns the CredentialCipher so that
no other layer ever sees an envelope or writes plaintext.

Secret handling:
  create()/update() encrypt the password before it reaches SQL.
  get()/list_*() never return the secret.
  get_with_password() decrypts; a failed decryption yields password=None.

Every query is scoped to the systems table, so a system lookup can never
return a user record and vice versa.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.engine import Engine

from core.cipher import CredentialCipher
from core.database import systems, users
from vault.models import System

_UPDATABLE_FIELDS = {"name", "description", "category", "subcategory", "username", "password", "url", "notes"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SystemStore:
    """Repository for System entities.

    Usage:
        store = SystemStore(engine, CredentialCipher(settings.encryption_key))
        system = store.create(System(name="VPN", category="network", password="s3cret", created_by=1))
        store.get_with_password(system.id).password   # "s3cret"
    """

    def __init__(self, engine: Engine, cipher: CredentialCipher) -> None:
        self.engine = engine
        self.cipher = cipher

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, system: System) -> System:
        """Insert a new system and return the stored record (without secret)."""
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                systems.insert().values(
                    name=system.name,
                    description=system.description,
                    category=system.category,
                    subcategory=system.subcategory,
                    username=system.username,
                    password=self.cipher.encrypt(system.password),
                    url=system.url,
                    notes=system.notes,
                    created_by=system.created_by,
                    created_at=now,
                    updated_at=now,
                )
            )
            system_id = result.inserted_primary_key[0]
        return self.get(system_id)

    def update(self, system_id: int, **fields) -> Optional[System]:
        """Apply a partial update and return the fresh record.

        Fields left out (or passed as None) keep their stored value. For
        password, None keeps the stored secret, "" clears it, anything else
        is re-encrypted with a fresh IV.

        Returns None if system_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown system fields: {unknown!r}")

        values = {k: v for k, v in fields.items() if k != "password" and v is not None}
        if "password" in fields and fields["password"] is not None:
            values["password"] = self.cipher.encrypt(fields["password"])
        values["updated_at"] = _now_iso()

        with self.engine.begin() as conn:
            result = conn.execute(systems.update().where(systems.c.id == system_id).values(**values))
        if result.rowcount == 0:
            return None
        return self.get(system_id)

    def delete(self, system_id: int) -> Optional[System]:
        """Delete a system. Returns the deleted record, or None if not found."""
        with self.engine.begin() as conn:
            row = conn.execute(self._select().where(systems.c.id == system_id)).fetchone()
            if row is None:
                return None
            conn.execute(systems.delete().where(systems.c.id == system_id))
        return _row_to_system(row)

    def reset_passwords(self) -> list[System]:
        """Null out every stored secret. Used after an encryption key rotation.

        Returns the affected systems so the caller can report them.
        """
        with self.engine.begin() as conn:
            rows = conn.execute(self._select().where(systems.c.password.is_not(None))).fetchall()
            conn.execute(systems.update().values(password=None, updated_at=_now_iso()))
        return [_row_to_system(r) for r in rows]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, system_id: int) -> Optional[System]:
        """Look up a system by primary key without its secret."""
        with self.engine.connect() as conn:
            row = conn.execute(self._select().where(systems.c.id == system_id)).fetchone()
        return _row_to_system(row) if row is not None else None

    def get_with_password(self, system_id: int) -> Optional[System]:
        """Look up a system and decrypt its secret into System.password."""
        with self.engine.connect() as conn:
            row = conn.execute(
                self._select(include_password=True).where(systems.c.id == system_id)
            ).fetchone()
        if row is None:
            return None
        system = _row_to_system(row)
        system.password = self.cipher.decrypt(row.password)
        return system

    def list_all(self) -> list[System]:
        """All systems, newest first."""
        query = self._select().order_by(systems.c.created_at.desc(), systems.c.id.desc())
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_system(r) for r in rows]

    def list_by_category(self, category: str) -> list[System]:
        query = (
            self._select()
            .where(systems.c.category == category)
            .order_by(systems.c.subcategory, systems.c.name)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_system(r) for r in rows]

    def list_by_subcategory(self, category: str, subcategory: str) -> list[System]:
        query = (
            self._select()
            .where((systems.c.category == category) & (systems.c.subcategory == subcategory))
            .order_by(systems.c.name)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_system(r) for r in rows]

    def list_by_creator(self, user_id: int) -> list[System]:
        query = (
            self._select()
            .where(systems.c.created_by == user_id)
            .order_by(systems.c.created_at.desc(), systems.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_system(r) for r in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _select(include_password: bool = False):
        columns = [c for c in systems.c if include_password or c.name != "password"]
        return select(*columns, users.c.email.label("created_by_email")).select_from(
            systems.outerjoin(users, systems.c.created_by == users.c.id)
        )


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_system(row) -> System:
    # password is deliberately not mapped; get_with_password() fills it in
    # after decryption.
    return System(
        id=row.id,
        name=row.name,
        description=row.description,
        category=row.category,
        subcategory=row.subcategory,
        username=row.username,
        url=row.url,
        notes=row.notes,
        created_by=row.created_by,
        created_by_email=row.created_by_email,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
