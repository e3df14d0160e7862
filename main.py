#!/usr/bin/env python3
"""
CredVault -- administrative command line.

Usage:
  python main.py init-db --email root@example.org
  python main.py init-db --email root@example.org --with-samples
  python main.py create-ultra-admin --email root@example.org --full-name "Vault Owner"
  python main.py reset-system-passwords --yes

Passwords are read with a hidden prompt unless --password is given.

Environment variables (see core/config.py):
  DATABASE_URL     SQLAlchemy URL. Defaults to a SQLite file next to this script.
  ENCRYPTION_KEY   Exactly 32 characters. Required to encrypt sample secrets.
  SECRET_KEY       Required unless DEBUG=true.
"""

import argparse
import getpass
import json
import sys
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password
from core.cipher import CredentialCipher
from core.config import get_settings
from core.database import create_db_engine, metadata, systems, users
from core.errors import ConflictError
from core.models import SYSTEM_CATEGORIES, ULTRA_ADMIN
from vault.store import SystemStore

# Example entries for a fresh install, one or two per category.
SAMPLE_SYSTEMS = [
    {
        "name": "VPN Access",
        "description": "Main VPN access for remote work",
        "category": "network",
        "subcategory": "vpn_services",
        "username": "vpn_admin",
        "password": "change-me-vpn",
        "url": "https://vpn.example.org",
    },
    {
        "name": "DNS Management",
        "description": "DNS management for organisation domains",
        "category": "network",
        "subcategory": "dns_management",
        "username": "dns_admin",
        "password": "change-me-dns",
        "url": "https://dns.example.org",
    },
    {
        "name": "Source Code Hosting",
        "description": "Organisation account on the code hosting service",
        "category": "web_software",
        "subcategory": "development_tools",
        "username": "git_admin",
        "password": "change-me-git",
        "url": "https://git.example.org",
    },
    {
        "name": "Website CMS",
        "description": "Main website content management system",
        "category": "web_software",
        "subcategory": "cms_platforms",
        "username": "cms_admin",
        "password": "change-me-cms",
        "url": "https://www.example.org/admin",
    },
    {
        "name": "Production PostgreSQL",
        "description": "Main production database server",
        "category": "database",
        "subcategory": "sql_databases",
        "username": "pg_admin",
        "password": "change-me-pg",
        "url": "postgresql://db.example.org",
    },
]


def _read_password(given: Optional[str]) -> str:
    if given:
        return given
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Confirm password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    if len(first) < 6:
        print("  [!] Password must be at least 6 characters.")
        sys.exit(1)
    return first


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create the schema and seed the first ultra_admin (and samples) in one transaction.

    A database that already has users only gets the schema check; nothing is
    seeded twice. A failed seed leaves no tables behind.
    """
    settings = get_settings()
    engine = create_db_engine(settings.database_url, create_schema=False)
    print(f"  Database: {engine.url.render_as_string(hide_password=True)}")

    if inspect(engine).has_table(users.name) and UserStore(engine).has_users():
        metadata.create_all(engine)
        print("  Users already exist -- skipping seed.")
        return 0

    password = _read_password(args.password)
    cipher = CredentialCipher(settings.encryption_key)
    now = datetime.now(timezone.utc).isoformat()

    try:
        with engine.begin() as conn:
            metadata.create_all(conn)
            result = conn.execute(
                users.insert().values(
                    email=args.email,
                    hashed_password=hash_password(password),
                    role=ULTRA_ADMIN,
                    full_name=args.full_name,
                    allowed_categories=json.dumps(list(SYSTEM_CATEGORIES)),
                    allowed_subcategories=json.dumps({}),
                    created_at=now,
                    updated_at=now,
                )
            )
            owner_id = result.inserted_primary_key[0]
            if args.with_samples:
                for sample in SAMPLE_SYSTEMS:
                    conn.execute(
                        systems.insert().values(
                            **{k: v for k, v in sample.items() if k != "password"},
                            password=cipher.encrypt(sample["password"]),
                            created_by=owner_id,
                            created_at=now,
                            updated_at=now,
                        )
                    )
    except IntegrityError as exc:
        print(f"  [!] Could not seed database: {exc.orig}")
        return 1

    print(f"  Ultra admin created: {args.email}")
    if args.with_samples:
        print(f"  {len(SAMPLE_SYSTEMS)} sample systems created. Replace their passwords before use.")
    print("\n  Change this password after the first login.\n")
    return 0


def cmd_create_ultra_admin(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = UserStore(create_db_engine(settings.database_url))
    password = _read_password(args.password)
    try:
        user_id = store.create_user(
            User(
                email=args.email,
                role=ULTRA_ADMIN,
                full_name=args.full_name,
                allowed_categories=list(SYSTEM_CATEGORIES),
            ),
            password,
        )
    except ConflictError as exc:
        print(f"  [!] {exc.message}")
        return 1
    print(f"  Ultra admin {args.email} created (id {user_id}).")
    return 0


def cmd_reset_system_passwords(args: argparse.Namespace) -> int:
    """Null every stored system secret, e.g. after ENCRYPTION_KEY was rotated."""
    if not args.yes:
        answer = input("  This clears EVERY stored system password. Type 'reset' to continue: ")
        if answer.strip() != "reset":
            print("  Aborted.")
            return 1

    settings = get_settings()
    store = SystemStore(create_db_engine(settings.database_url), CredentialCipher(settings.encryption_key))
    affected = store.reset_passwords()
    print(f"  Reset passwords for {len(affected)} system(s):")
    for system in affected:
        print(f"   - {system.name} (ID: {system.id})")
    if affected:
        print("\n  System administrators need to set new passwords for these systems.\n")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credvault",
        description="Administrative tasks for the CredVault credential store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db --email root@example.org --with-samples
  python main.py create-ultra-admin --email owner@example.org
  python main.py reset-system-passwords --yes
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    init_db = sub.add_parser("init-db", help="Create tables and seed the first ultra_admin")
    init_db.add_argument("--email", required=True, help="Email for the seeded ultra_admin")
    init_db.add_argument("--full-name", default="Ultra Admin", help="Display name (default: Ultra Admin)")
    init_db.add_argument("--password", help="Password (prompted when omitted)")
    init_db.add_argument("--with-samples", action="store_true", help="Also create example systems")
    init_db.set_defaults(func=cmd_init_db)

    ultra = sub.add_parser("create-ultra-admin", help="Add another ultra_admin account")
    ultra.add_argument("--email", required=True)
    ultra.add_argument("--full-name", default=None)
    ultra.add_argument("--password", help="Password (prompted when omitted)")
    ultra.set_defaults(func=cmd_create_ultra_admin)

    reset = sub.add_parser("reset-system-passwords", help="Clear every stored system password")
    reset.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    reset.set_defaults(func=cmd_reset_system_passwords)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
