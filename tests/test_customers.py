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
    c = app.test_client()
    c.post("/login", json={"username": "admin", "password": "admin123"})
    yield c
    close_app(app)


def _create(client, **overrides):
    payload = {
        "name": "Acme Sdn Bhd",
        "phone": "03-1111222",
        "email": "sales@acme.test",
        "address": "Penang",
        "notes": "Referred by partner",
    }
    payload.update(overrides)
    return client.post("/api/customers", json=payload)


def test_create_and_get_customer(client):
    r = _create(client)
    assert r.status_code == 200
    assert r.json["message"] == "Customer added successfully"
    cid = r.json["id"]

    r = client.get(f"/api/customers/{cid}")
    assert r.status_code == 200
    body = r.json
    assert body["id"] == cid
    assert body["name"] == "Acme Sdn Bhd"
    assert body["phone"] == "03-1111222"
    assert body["email"] == "sales@acme.test"
    assert body["address"] == "Penang"
    assert body["notes"] == "Referred by partner"
    assert body["created_at"]

    listed = {c["id"]: c for c in client.get("/api/customers").json}
    assert listed[cid] == body


def test_customers_listed_newest_first(client):
    first = _create(client, phone="1").json["id"]
    second = _create(client, phone="2").json["id"]
    ids = [c["id"] for c in client.get("/api/customers").json]
    assert ids.index(second) < ids.index(first)


def test_customer_search(client):
    _create(client, name="Borneo Logistics", phone="088-123")
    r = client.get("/api/customers?q=borneo")
    assert [c["name"] for c in r.json] == ["Borneo Logistics"]


def test_required_fields(client):
    r = client.post("/api/customers", json={"name": "  ", "email": "x@y.z"})
    assert r.status_code == 400
    assert "Name is required." in r.json["details"]
    assert "Phone is required." in r.json["details"]


def test_duplicate_phone_is_conflict(client):
    before = len(client.get("/api/customers").json)
    r = _create(client, name="Other", phone="012-3456789")
    assert r.status_code == 409
    assert len(client.get("/api/customers").json) == before


def test_update_replaces_all_fields(client):
    cid = _create(client).json["id"]
    r = client.put(f"/api/customers/{cid}", json={"name": "Acme Holdings", "phone": "03-9999000"})
    assert r.status_code == 200
    assert r.json["message"] == "Customer updated successfully"

    body = client.get(f"/api/customers/{cid}").json
    assert body["name"] == "Acme Holdings"
    assert body["phone"] == "03-9999000"
    assert body["email"] is None
    assert body["address"] is None
    assert body["notes"] is None


def test_update_to_taken_phone_is_conflict(client):
    cid = _create(client).json["id"]
    r = client.put(f"/api/customers/{cid}", json={"name": "Acme", "phone": "012-3456789"})
    assert r.status_code == 409
    assert client.get(f"/api/customers/{cid}").json["phone"] == "03-1111222"


def test_missing_customer_is_404(client):
    assert client.get("/api/customers/9999").status_code == 404
    # Ids past the 64-bit key range never reach the database.
    r = client.get("/api/customers/99999999999999999999999")
    assert r.status_code == 404
    assert "error" in r.json
    r = client.put("/api/customers/9999", json={"name": "x", "phone": "y"})
    assert r.status_code == 404
    assert r.json["error"] == "Customer not found"
    assert client.delete("/api/customers/9999").status_code == 404


def test_delete_does_not_cascade(client):
    cid = _create(client).json["id"]
    contact_id = client.post("/api/contacts", json={"customer_id": cid, "contact_name": "Lim"}).json["id"]
    opp_id = client.post("/api/opportunities", json={"customer_id": cid, "title": "Fleet deal"}).json["id"]

    r = client.delete(f"/api/customers/{cid}")
    assert r.status_code == 200
    assert r.json["message"] == "Customer deleted successfully"
    assert client.get(f"/api/customers/{cid}").status_code == 404

    contact = client.get(f"/api/contacts/{contact_id}").json
    assert contact["customer_id"] == cid
    assert contact["customer_name"] is None
    opp = client.get(f"/api/opportunities/{opp_id}").json
    assert opp["customer_id"] == cid
    assert opp["customer_name"] is None
