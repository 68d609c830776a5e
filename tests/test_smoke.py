import pytest

from app.crm import close_app, create_app


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("AUTO_INIT_DB", "1")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    for k in ("ADMIN_USERNAME", "ADMIN_PASSWORD", "SEED_SAMPLE_DATA", "LOGIN_RATE_LIMIT"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    yield app.test_client()
    close_app(app)


def _login(client, username="admin", password="admin123"):
    return client.post("/login", json={"username": username, "password": password})


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_root_redirects_to_login(client):
    r = client.get("/")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/login")


def test_login_page_renders(client):
    r = client.get("/login")
    assert r.status_code == 200
    assert b"<form" in r.data


def test_login_success_and_failure(client):
    r = _login(client, password="wrong")
    assert r.status_code == 401
    assert r.json["error"] == "Invalid credentials"

    r = _login(client, username="nobody", password="whatever")
    assert r.status_code == 401
    assert r.json["error"] == "Invalid credentials"

    # Non-string credentials are just wrong credentials.
    r = client.post("/login", json={"username": 123, "password": "x"})
    assert r.status_code == 401
    assert r.json["error"] == "Invalid credentials"
    r = client.post("/login", json={"username": ["admin"], "password": {"p": 1}})
    assert r.status_code == 401

    r = _login(client)
    assert r.status_code == 200
    assert r.json == {"success": True, "redirect": "/dashboard"}


def test_login_accepts_form_data(client):
    r = client.post("/login", data={"username": "admin", "password": "admin123"})
    assert r.status_code == 200
    assert r.json["success"] is True


def test_pages_redirect_when_anonymous(client):
    for page in ("dashboard", "customers", "contacts", "opportunities", "activities", "reports", "settings"):
        r = client.get(f"/{page}")
        assert r.status_code == 302, page
        assert r.headers["Location"].endswith("/login")


def test_api_returns_401_when_anonymous(client):
    for path in ("/api/customers", "/api/dashboard/stats", "/api/users", "/api/reports/summary"):
        r = client.get(path)
        assert r.status_code == 401, path
        assert "Location" not in r.headers
        assert r.json["error"] == "Authentication required"


def test_pages_render_after_login(client):
    _login(client)
    for page in ("dashboard", "customers", "contacts", "opportunities", "activities", "reports", "settings"):
        r = client.get(f"/{page}")
        assert r.status_code == 200, page

    # Logged-in users skip the login form.
    r = client.get("/login")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")


def test_logout_invalidates_replayed_cookie(client):
    _login(client)
    assert client.get("/api/customers").status_code == 200
    old_cookie = client.get_cookie("session").value

    r = client.get("/logout")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/login")
    assert client.get("/api/customers").status_code == 401

    client.set_cookie("session", old_cookie)
    assert client.get("/api/customers").status_code == 401
    assert client.get("/dashboard").status_code == 302


def test_api_logout(client):
    assert client.post("/api/logout").status_code == 401

    _login(client)
    r = client.post("/api/logout")
    assert r.status_code == 200
    assert r.json["message"] == "Logged out successfully"
    assert client.get("/api/customers").status_code == 401


def test_unknown_api_route_is_json_404(client):
    _login(client)
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert "error" in r.json
