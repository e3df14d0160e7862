"""
core/database.py -- Shared SQLAlchemy Core schema and engine factory.

Users, systems and activity logs live in one database so that deleting a
user and its activity-log rows can run inside a single transaction. Each
repository (auth/store.py, vault/store.py, audit/store.py) receives the same
Engine and owns the queries for its own table.

Schema notes:
  - users and systems are separate tables; there is no type discriminator.
  - systems.created_by references users.id with ON DELETE SET NULL.
    Authorship is accountability only and never grants access.
  - activity_logs.user_id references users.id. UserStore.delete_user removes
    the log rows explicitly in the same transaction before the user row.
  - JSON payloads (allowed_categories, allowed_subcategories, details) are
    serialized as TEXT so the schema stays portable across SQLite and
    PostgreSQL.
  - Timestamps are ISO 8601 UTC strings.

Security: all queries elsewhere use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("full_name", String(255)),
    Column("allowed_categories", Text, nullable=False, server_default="[]"),  # JSON array
    Column("allowed_subcategories", Text, nullable=False, server_default="{}"),  # JSON object
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

systems = Table(
    "systems",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("category", String(50), nullable=False),
    Column("subcategory", String(100)),
    Column("username", String(255)),
    Column("password", Text),  # "iv:ciphertext" envelope, never plaintext
    Column("url", Text),
    Column("notes", Text),
    Column("created_by", Integer, ForeignKey("users.id", ondelete="SET NULL")),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

activity_logs = Table(
    "activity_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("action", String(100), nullable=False),
    Column("details", Text),  # JSON object
    Column("ip_address", String(64)),
    Column("created_at", String(32), nullable=False),
)


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign-key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys is off by default in SQLite.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _disable_pysqlite_autobegin(dbapi_conn, connection_record) -> None:
    dbapi_conn.isolation_level = None


def _emit_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


def create_db_engine(db_url: str, create_schema: bool = True) -> Engine:
    """Create an Engine for db_url and make sure every table exists.

    With create_schema=False no DDL runs here; the caller is expected to run
    metadata.create_all(conn) inside its own transaction. On SQLite the
    engine then issues BEGIN itself, because the pysqlite driver otherwise
    commits DDL outside the surrounding transaction.

    Usage:
        engine = create_db_engine("sqlite:///credvault.db")
        engine = create_db_engine("postgresql://user:pw@host/credvault")
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
        if not create_schema:
            event.listen(engine, "connect", _disable_pysqlite_autobegin)
            event.listen(engine, "begin", _emit_begin)
    if create_schema:
        metadata.create_all(engine)
    return engine
