import json
from dataclasses import replace
from datetime import timedelta

import pytest

from app.crm import close_app, create_app
from app.crm.db import session_scope
from app.crm.models import AuditEvent, User
from app.crm.modules.system.service import run_backup
from app.crm.storage import LocalStorage, StorageError, storage_from_config


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("AUTO_INIT_DB", "1")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    for k in ("ADMIN_USERNAME", "ADMIN_PASSWORD", "SEED_SAMPLE_DATA", "LOGIN_RATE_LIMIT"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    yield app
    close_app(app)


@pytest.fixture()
def client(app):
    c = app.test_client()
    c.post("/login", json={"username": "admin", "password": "admin123"})
    return c


def test_system_endpoints_require_login(app):
    anon = app.test_client()
    for method, path in (
        ("get", "/api/settings/company"),
        ("post", "/api/settings/company"),
        ("get", "/api/settings/preferences"),
        ("get", "/api/system/db-size"),
        ("post", "/api/system/backup"),
        ("post", "/api/system/clear-cache"),
        ("get", "/api/system/diagnostics"),
    ):
        assert getattr(anon, method)(path).status_code == 401, path


def test_company_settings_round_trip(client):
    assert client.get("/api/settings/company").json == {}

    settings = {"company_name": "Acme CRM", "currency": "MYR", "fiscal_year_start": 1}
    r = client.post("/api/settings/company", json=settings)
    assert r.status_code == 200
    assert r.json["message"] == "Company settings saved successfully"
    assert client.get("/api/settings/company").json == settings

    # Saving replaces the whole document.
    client.post("/api/settings/company", json={"company_name": "Acme"})
    assert client.get("/api/settings/company").json == {"company_name": "Acme"}


def test_settings_must_be_flat_object(client):
    assert client.post("/api/settings/company", json=["a", "b"]).status_code == 400
    assert client.post("/api/settings/company", json={"address": {"city": "Ipoh"}}).status_code == 400


def test_preferences_are_per_user(app, client):
    r = client.post("/api/settings/preferences", json={"theme": "dark", "page_size": 50})
    assert r.json["message"] == "Preferences saved successfully"
    assert client.get("/api/settings/preferences").json == {"theme": "dark", "page_size": 50}

    client.post("/api/users", json={"username": "mei", "full_name": "Mei", "password": "pw"})
    other = app.test_client()
    other.post("/login", json={"username": "mei", "password": "pw"})
    assert other.get("/api/settings/preferences").json == {}


def test_db_size(client):
    r = client.get("/api/system/db-size")
    assert r.status_code == 200
    assert r.json["bytes"] > 0
    assert r.json["size"].endswith("KB") or r.json["size"].endswith("B")


def test_backup_writes_to_storage(tmp_path, client):
    r = client.post("/api/system/backup")
    assert r.status_code == 200
    assert r.json["message"] == "Backup completed successfully"
    key = r.json["key"]
    assert key.startswith("backups/crm-backup-")

    path = tmp_path / "storage" / key
    assert path.exists()
    dump = json.loads(path.read_text())
    assert [c["name"] for c in dump["tables"]["customers"]] == ["Tech Solutions Inc."]
    assert r.json["size_bytes"] == path.stat().st_size


class _LosingStorage(LocalStorage):
    """Accepts writes but never keeps them."""

    def put_bytes(self, key, data, *, content_type=None):
        pass


def test_backup_fails_when_object_is_missing(tmp_path, app):
    storage = _LosingStorage(root=tmp_path / "lost")
    with session_scope(app) as s:
        admin = s.query(User).filter(User.username == "admin").one()
        with pytest.raises(StorageError):
            run_backup(s, storage, admin)
        assert s.query(AuditEvent).filter(AuditEvent.action == "system.backup").count() == 0


def test_clear_cache_purges_expired_sessions(app, client):
    store = app.extensions["crm_sessions"]
    stale = store.create(user_id=999)
    store._records[stale.token] = replace(stale, expires_at=stale.created_at - timedelta(days=1))

    r = client.post("/api/system/clear-cache")
    assert r.status_code == 200
    assert r.json["expired_sessions_removed"] == 1
    # The caller's live session is kept.
    assert client.get("/api/customers").status_code == 200


def test_diagnostics(client):
    r = client.get("/api/system/diagnostics")
    assert r.status_code == 200
    body = r.json
    assert body["status"] == "Healthy"
    assert body["db_status"] == "Connected"
    assert body["env"] == "test"
    assert body["active_sessions"] == 1
    assert body["counts"] == {"users": 1, "customers": 1, "contacts": 1, "opportunities": 1, "activities": 1}
    assert "minute" in body["uptime"]
    assert body["storage"].startswith("local:")


def test_mutations_are_audited(app, client):
    cid = client.post("/api/customers", json={"name": "Audit Co", "phone": "09-000"}).json["id"]
    client.delete(f"/api/customers/{cid}")

    with session_scope(app) as s:
        events = (
            s.query(AuditEvent)
            .filter(AuditEvent.entity_type == "Customer", AuditEvent.entity_id == str(cid))
            .order_by(AuditEvent.id)
            .all()
        )
        actions = [e.action for e in events]
        assert actions == ["customer.create", "customer.delete"]
        login = s.query(AuditEvent).filter(AuditEvent.action == "auth.login").first()
        assert login.actor_username == "admin"
        assert login.request_id


def test_audit_trail_endpoint(client):
    cid = client.post("/api/customers", json={"name": "Trail Co", "phone": "05-123"}).json["id"]
    client.put(f"/api/customers/{cid}", json={"name": "Trail Co Bhd", "phone": "05-123"})

    r = client.get(f"/api/system/audit?entity_type=Customer&entity_id={cid}")
    assert r.status_code == 200
    assert [e["action"] for e in r.json] == ["customer.edit", "customer.create"]
    edit = r.json[0]
    assert edit["actor_username"] == "admin"
    assert edit["metadata"]["changes"]["name"] == {"old": "Trail Co", "new": "Trail Co Bhd"}

    r = client.get("/api/system/audit?action=auth.login&limit=1")
    assert len(r.json) == 1

    assert client.get("/api/system/audit?date_from=yesterday").status_code == 400


def test_local_storage_rejects_escaping_keys(tmp_path):
    storage = LocalStorage(root=tmp_path / "root")
    storage.put_bytes("a/b.json", b"{}")
    assert storage.exists("a/b.json")
    assert not storage.exists("a/missing.json")
    with pytest.raises(StorageError):
        storage.put_bytes("../outside.json", b"{}")


def test_storage_from_config():
    assert isinstance(storage_from_config({"STORAGE_ROOT": "/tmp/x"}), LocalStorage)
    with pytest.raises(StorageError):
        storage_from_config({"STORAGE_BACKEND": "ftp"})
    with pytest.raises(StorageError):
        storage_from_config({"STORAGE_BACKEND": "s3"})
