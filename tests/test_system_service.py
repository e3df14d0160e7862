"""Tests for vault/store.py and vault/service.py.

Covers:
- secrets are stored as envelopes and only get_with_password() decrypts
- update: omitted password keeps the secret, "" clears it, new value re-encrypts
- listings by category / subcategory / creator
- reset_passwords() nulls every secret
- service: policy enforced on every operation, activity recorded,
  ultra_admin actions leave no trace, unknown category is a ValidationError
"""

import pytest
from sqlalchemy import select

from auth.models import User
from core.database import systems
from core.errors import NotFoundError, UnauthorizedError, ValidationError
from vault.models import System


@pytest.fixture
def people(user_store) -> dict[str, User]:
    specs = {
        "ultra": ("ultra_admin", [], {}),
        "super": ("super_admin", [], {}),
        "net_admin": ("admin", ["network"], {}),
        "web_admin_cms": ("admin", ["web_software"], {"web_software": ["cms_platforms"]}),
        "net_user": ("user", ["network"], {"network": ["vpn_services"]}),
    }
    result = {}
    for key, (role, cats, subs) in specs.items():
        uid = user_store.create_user(
            User(email=f"{key}@example.org", role=role, allowed_categories=cats, allowed_subcategories=subs),
            "secret123",
        )
        result[key] = user_store.get_by_id(uid)
    return result


def _raw_password(engine, system_id):
    with engine.connect() as conn:
        return conn.execute(select(systems.c.password).where(systems.c.id == system_id)).scalar()


class TestSystemStore:
    def test_secret_stored_encrypted(self, system_store, engine):
        created = system_store.create(System(name="VPN", category="network", password="vpn-pass"))
        raw = _raw_password(engine, created.id)
        assert raw and raw != "vpn-pass"
        assert ":" in raw
        assert created.password is None
        assert system_store.get(created.id).password is None
        assert system_store.get_with_password(created.id).password == "vpn-pass"

    def test_no_password_stored_as_null(self, system_store, engine):
        created = system_store.create(System(name="Docs", category="web_software"))
        assert _raw_password(engine, created.id) is None
        assert system_store.get_with_password(created.id).password is None

    def test_update_password_semantics(self, system_store, engine):
        created = system_store.create(System(name="DB", category="database", password="one"))
        envelope = _raw_password(engine, created.id)

        system_store.update(created.id, notes="rotated soon")
        assert _raw_password(engine, created.id) == envelope

        system_store.update(created.id, password="two")
        assert system_store.get_with_password(created.id).password == "two"
        assert _raw_password(engine, created.id) != envelope

        system_store.update(created.id, password="")
        assert _raw_password(engine, created.id) is None

    def test_update_unknown_field(self, system_store):
        created = system_store.create(System(name="DB", category="database"))
        with pytest.raises(ValueError):
            system_store.update(created.id, created_by=5)

    def test_update_missing(self, system_store):
        assert system_store.update(404, name="x") is None

    def test_corrupt_envelope_reads_as_none(self, system_store, engine):
        created = system_store.create(System(name="VPN", category="network", password="x"))
        with engine.begin() as conn:
            conn.execute(systems.update().where(systems.c.id == created.id).values(password="garbage"))
        assert system_store.get_with_password(created.id).password is None

    def test_listings(self, system_store, people):
        owner = people["super"].id
        system_store.create(System(name="VPN", category="network", subcategory="vpn_services", created_by=owner))
        system_store.create(System(name="DNS", category="network", subcategory="dns_management"))
        system_store.create(System(name="PG", category="database", subcategory="sql_databases", created_by=owner))

        assert {s.name for s in system_store.list_all()} == {"VPN", "DNS", "PG"}
        assert [s.name for s in system_store.list_by_category("network")] == ["DNS", "VPN"]
        assert [s.name for s in system_store.list_by_subcategory("network", "vpn_services")] == ["VPN"]
        mine = system_store.list_by_creator(owner)
        assert {s.name for s in mine} == {"VPN", "PG"}
        assert all(s.created_by_email == "super@example.org" for s in mine)

    def test_reset_passwords(self, system_store):
        a = system_store.create(System(name="A", category="network", password="a"))
        b = system_store.create(System(name="B", category="network"))
        affected = system_store.reset_passwords()
        assert [s.id for s in affected] == [a.id]
        assert system_store.get_with_password(a.id).password is None
        assert system_store.get_with_password(b.id).password is None

    def test_delete(self, system_store):
        created = system_store.create(System(name="A", category="network"))
        assert system_store.delete(created.id).name == "A"
        assert system_store.get(created.id) is None
        assert system_store.delete(created.id) is None


class TestSystemService:
    def test_admin_creates_in_own_category(self, system_service, activity_store, people):
        admin = people["net_admin"]
        created = system_service.create_system(admin, System(name="VPN", category="network", password="p"), "10.0.0.1")
        assert created.created_by == admin.id
        [entry] = activity_store.list_by_actor(admin.id)
        assert entry.action == "SYSTEM_CREATED"
        assert entry.details == {"systemId": created.id, "name": "VPN"}
        assert entry.ip_address == "10.0.0.1"

    def test_admin_cannot_create_elsewhere(self, system_service, activity_store, people):
        with pytest.raises(UnauthorizedError):
            system_service.create_system(people["net_admin"], System(name="PG", category="database"))
        assert activity_store.count() == 0

    def test_user_cannot_create(self, system_service, people):
        with pytest.raises(UnauthorizedError):
            system_service.create_system(people["net_user"], System(name="VPN", category="network"))

    def test_unknown_category(self, system_service, people):
        with pytest.raises(ValidationError):
            system_service.create_system(people["super"], System(name="X", category="mainframe"))

    def test_admin_write_ignores_subcategory(self, system_service, people):
        admin = people["web_admin_cms"]
        created = system_service.create_system(
            admin, System(name="Git", category="web_software", subcategory="development_tools")
        )
        updated = system_service.update_system(admin, created.id, {"notes": "ok"})
        assert updated.notes == "ok"

    def test_admin_read_respects_subcategory(self, system_service, people):
        admin = people["web_admin_cms"]
        created = system_service.create_system(
            people["super"], System(name="Git", category="web_software", subcategory="development_tools")
        )
        with pytest.raises(UnauthorizedError):
            system_service.get_system(admin, created.id)
        assert system_service.get_accessible_systems(admin) == []

    def test_move_to_forbidden_category(self, system_service, people):
        admin = people["net_admin"]
        created = system_service.create_system(admin, System(name="VPN", category="network"))
        with pytest.raises(UnauthorizedError):
            system_service.update_system(admin, created.id, {"category": "database"})

    def test_update_missing(self, system_service, people):
        with pytest.raises(NotFoundError):
            system_service.update_system(people["super"], 999, {"name": "x"})

    def test_delete(self, system_service, activity_store, people):
        admin = people["net_admin"]
        created = system_service.create_system(admin, System(name="VPN", category="network"))
        system_service.delete_system(admin, created.id)
        assert [e.action for e in activity_store.list_by_actor(admin.id)] == ["SYSTEM_DELETED", "SYSTEM_CREATED"]
        with pytest.raises(NotFoundError):
            system_service.delete_system(admin, created.id)

    def test_view_decrypts_and_logs(self, system_service, activity_store, people):
        created = system_service.create_system(
            people["super"], System(name="VPN", category="network", subcategory="vpn_services", password="pw")
        )
        user = people["net_user"]
        seen = system_service.get_system(user, created.id, "10.1.1.1")
        assert seen.password == "pw"
        assert activity_store.list_by_actor(user.id)[0].action == "SYSTEM_VIEWED"

    def test_user_blocked_by_subcategory(self, system_service, people):
        created = system_service.create_system(
            people["super"], System(name="DNS", category="network", subcategory="dns_management")
        )
        with pytest.raises(UnauthorizedError):
            system_service.get_system(people["net_user"], created.id)

    def test_get_missing(self, system_service, people):
        with pytest.raises(NotFoundError):
            system_service.get_system(people["super"], 999)

    def test_ultra_admin_leaves_no_trace(self, system_service, activity_store, people):
        ultra = people["ultra"]
        created = system_service.create_system(ultra, System(name="Root", category="network", password="pw"))
        system_service.get_system(ultra, created.id)
        system_service.update_system(ultra, created.id, {"password": "pw2"})
        system_service.delete_system(ultra, created.id)
        assert activity_store.count_including_privileged() == 0

    def test_listings_filtered(self, system_service, people):
        owner = people["super"]
        for name, cat, sub in [
            ("VPN", "network", "vpn_services"),
            ("DNS", "network", "dns_management"),
            ("PG", "database", "sql_databases"),
        ]:
            system_service.create_system(owner, System(name=name, category=cat, subcategory=sub))

        user = people["net_user"]
        assert [s.name for s in system_service.get_accessible_systems(user)] == ["VPN"]
        assert [s.name for s in system_service.get_systems_by_category(user, "network")] == ["VPN"]
        assert system_service.get_systems_by_category(user, "database") == []
        assert [s.name for s in system_service.get_systems_by_subcategory(owner, "network", "dns_management")] == ["DNS"]
        assert len(system_service.get_systems_by_creator(owner)) == 3
        assert system_service.get_systems_by_creator(user) == []
        with pytest.raises(ValidationError):
            system_service.get_systems_by_category(user, "mainframe")
