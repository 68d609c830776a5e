import pytest

from app.crm import close_app, create_app


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


def _admin(client):
    return next(u for u in client.get("/api/users").json if u["username"] == "admin")


def test_users_never_expose_password_hash(client):
    users = client.get("/api/users").json
    assert users
    for u in users:
        assert "password_hash" not in u
        assert "password" not in u
    admin = _admin(client)
    assert admin["role"] == "admin"
    assert "password_hash" not in client.get(f"/api/users/{admin['id']}").json


def test_create_user(client):
    r = client.post(
        "/api/users",
        json={"username": "jane", "full_name": "Jane Tan", "password": "pw-123", "role": "staff"},
    )
    assert r.status_code == 200
    assert r.json["message"] == "User added successfully"
    body = client.get(f"/api/users/{r.json['id']}").json
    assert body["username"] == "jane"
    assert body["full_name"] == "Jane Tan"


def test_create_user_validation(client):
    r = client.post("/api/users", json={"username": "", "full_name": "", "password": ""})
    assert r.status_code == 400
    assert len(r.json["details"]) == 3

    r = client.post("/api/users", json={"username": "x", "full_name": "X", "password": "p", "role": "root"})
    assert r.status_code == 400


def test_duplicate_username_is_conflict(client):
    r = client.post("/api/users", json={"username": "admin", "full_name": "Imposter", "password": "pw"})
    assert r.status_code == 409
    assert len(client.get("/api/users").json) == 1


def test_update_user(client):
    uid = client.post("/api/users", json={"username": "ali", "full_name": "Ali", "password": "pw"}).json["id"]
    r = client.put(f"/api/users/{uid}", json={"username": "ali.b", "full_name": "Ali Bakar", "role": "admin"})
    assert r.status_code == 200
    body = client.get(f"/api/users/{uid}").json
    assert body["username"] == "ali.b"
    assert body["role"] == "admin"

    # Password is unchanged by an update.
    other = client.application.test_client()
    assert other.post("/login", json={"username": "ali.b", "password": "pw"}).status_code == 200


def test_admin_cannot_be_renamed(client):
    admin = _admin(client)
    r = client.put(f"/api/users/{admin['id']}", json={"username": "root", "full_name": "Root"})
    assert r.status_code == 400
    assert _admin(client)["username"] == "admin"


def test_deleting_admin_is_a_silent_noop(client):
    admin = _admin(client)
    r = client.delete(f"/api/users/{admin['id']}")
    assert r.status_code == 200
    assert r.json["deleted"] is False
    assert client.get(f"/api/users/{admin['id']}").status_code == 200
    # The caller's own session is untouched.
    assert client.get("/api/customers").status_code == 200


def test_delete_user_ends_their_sessions(app, client):
    uid = client.post("/api/users", json={"username": "temp", "full_name": "Temp", "password": "pw"}).json["id"]
    theirs = app.test_client()
    assert theirs.post("/login", json={"username": "temp", "password": "pw"}).status_code == 200
    assert theirs.get("/api/customers").status_code == 200

    r = client.delete(f"/api/users/{uid}")
    assert r.status_code == 200
    assert r.json["deleted"] is True
    assert client.get(f"/api/users/{uid}").status_code == 404
    assert theirs.get("/api/customers").status_code == 401
    assert client.delete(f"/api/users/{uid}").status_code == 404


def test_protected_account_follows_admin_username(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("AUTO_INIT_DB", "1")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("ADMIN_USERNAME", "root")
    for k in ("ADMIN_PASSWORD", "SEED_SAMPLE_DATA", "LOGIN_RATE_LIMIT"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    try:
        c = app.test_client()
        assert c.post("/login", json={"username": "root", "password": "admin123"}).status_code == 200
        root = next(u for u in c.get("/api/users").json if u["username"] == "root")

        r = c.put(f"/api/users/{root['id']}", json={"username": "superuser", "full_name": "Root"})
        assert r.status_code == 400
        r = c.delete(f"/api/users/{root['id']}")
        assert r.status_code == 200
        assert r.json["deleted"] is False
        assert c.get(f"/api/users/{root['id']}").status_code == 200

        # A plain account that merely happens to be called "admin" is not special here.
        uid = c.post("/api/users", json={"username": "admin", "full_name": "Imposter", "password": "pw"}).json["id"]
        r = c.delete(f"/api/users/{uid}")
        assert r.status_code == 200
        assert r.json["deleted"] is True
    finally:
        close_app(app)
