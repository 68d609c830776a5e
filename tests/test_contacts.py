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


@pytest.fixture()
def customer_id(client):
    return client.post("/api/customers", json={"name": "Delta Foods", "phone": "07-555000"}).json["id"]


def test_create_contact(client, customer_id):
    r = client.post(
        "/api/contacts",
        json={
            "customer_id": customer_id,
            "contact_name": "Siti Aminah",
            "position": "Procurement",
            "email": "siti@delta.test",
        },
    )
    assert r.status_code == 200
    assert r.json["message"] == "Contact added successfully"

    body = client.get(f"/api/contacts/{r.json['id']}").json
    assert body["contact_name"] == "Siti Aminah"
    assert body["customer_name"] == "Delta Foods"
    assert body["position"] == "Procurement"
    assert body["phone"] is None


def test_contact_requires_existing_customer(client):
    r = client.post("/api/contacts", json={"contact_name": "Nobody"})
    assert r.status_code == 400
    assert "customer_id is required." in r.json["details"]

    r = client.post("/api/contacts", json={"customer_id": 9999, "contact_name": "Nobody"})
    assert r.status_code == 400
    assert "does not exist" in r.json["error"]

    r = client.post("/api/contacts", json={"customer_id": "abc", "contact_name": "Nobody"})
    assert r.status_code == 400

    r = client.post("/api/contacts", json={"customer_id": 10**30, "contact_name": "Nobody"})
    assert r.status_code == 400
    assert "customer_id is out of range." in r.json["details"]


def test_contact_name_required(client, customer_id):
    r = client.post("/api/contacts", json={"customer_id": customer_id})
    assert r.status_code == 400
    assert "Contact name is required." in r.json["details"]


def test_filter_by_customer(client, customer_id):
    client.post("/api/contacts", json={"customer_id": customer_id, "contact_name": "A"})
    client.post("/api/contacts", json={"customer_id": customer_id, "contact_name": "B"})
    everyone = client.get("/api/contacts").json
    mine = client.get(f"/api/contacts?customer_id={customer_id}").json
    assert len(everyone) == 3
    assert sorted(c["contact_name"] for c in mine) == ["A", "B"]


def test_filter_rejects_bad_customer_id(client):
    r = client.get("/api/contacts?customer_id=abc")
    assert r.status_code == 400
    assert "customer_id must be an integer." in r.json["details"]
    assert client.get(f"/api/contacts?customer_id={10**30}").status_code == 400


def test_update_and_delete_contact(client, customer_id):
    contact_id = client.post(
        "/api/contacts", json={"customer_id": customer_id, "contact_name": "Old", "notes": "keep?"}
    ).json["id"]

    r = client.put(f"/api/contacts/{contact_id}", json={"customer_id": customer_id, "contact_name": "New"})
    assert r.status_code == 200
    body = client.get(f"/api/contacts/{contact_id}").json
    assert body["contact_name"] == "New"
    assert body["notes"] is None

    r = client.put(f"/api/contacts/{contact_id}", json={"customer_id": 9999, "contact_name": "New"})
    assert r.status_code == 400

    r = client.delete(f"/api/contacts/{contact_id}")
    assert r.status_code == 200
    assert r.json["message"] == "Contact deleted successfully"
    assert client.get(f"/api/contacts/{contact_id}").status_code == 404
    assert client.delete(f"/api/contacts/{contact_id}").status_code == 404
