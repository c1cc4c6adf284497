import pytest
from fastapi.testclient import TestClient

from socialpulse.db import get_db
from socialpulse.main import app
from socialpulse.models import Org, OrgMember, User, ApiKey
from socialpulse.security.auth import hash_api_key, get_password_hash, verify_password

@pytest.fixture
def client(db):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

def _register(client, email="ana@example.com"):
    res = client.post("/auth/register", json={"name": "Ana", "email": email, "password": "s3cret-pass"})
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.json()['access_token']}"}

def test_password_hash_round_trip():
    hashed = get_password_hash("hunter22")
    assert verify_password("hunter22", hashed)
    assert not verify_password("hunter23", hashed)
    assert not verify_password("hunter22", None)

def test_register_creates_workspace(client):
    headers = _register(client)

    me = client.get("/auth/me", headers=headers).json()
    assert me["email"] == "ana@example.com"
    assert [o["name"] for o in me["orgs"]] == ["Ana's Workspace"]
    assert me["orgs"][0]["role"] == "owner"

def test_duplicate_registration_is_rejected(client):
    _register(client)
    res = client.post("/auth/register", json={"name": "Ana", "email": "ANA@example.com", "password": "x"})
    assert res.status_code == 400

def test_login(client):
    _register(client)
    res = client.post("/auth/login", data={"username": "ana@example.com", "password": "s3cret-pass"})
    assert res.status_code == 200
    assert res.json()["token_type"] == "bearer"

    res = client.post("/auth/login", data={"username": "ana@example.com", "password": "wrong"})
    assert res.status_code == 401

def test_workspace_routes_require_auth(client):
    assert client.get("/sentiment/mood").status_code == 401

def test_org_header_is_checked_against_membership(client, db):
    headers = _register(client)
    foreign = Org(name="Someone else")
    db.add(foreign)
    db.commit()

    assert client.get("/sentiment/mood", headers=headers).status_code == 200
    assert client.get("/sentiment/mood", headers={**headers, "X-Org-Id": str(foreign.id)}).status_code == 403
    assert client.get("/sentiment/mood", headers={**headers, "X-Org-Id": "abc"}).status_code == 400

def test_api_key_is_bound_to_its_workspace(client, db):
    org = Org(name="Keyed")
    user = User(email="bot@example.com", name="Bot")
    db.add_all([org, user])
    db.flush()
    db.add(OrgMember(org_id=org.id, user_id=user.id, role="member"))
    db.add(ApiKey(org_id=org.id, name="ci", key_hash=hash_api_key("sk-test-123")))
    db.commit()

    res = client.post("/metrics", json={"metrics": [{"platform": "TWITTER", "value": 3}]}, headers={"X-API-Key": "sk-test-123"})
    assert res.status_code == 200
    assert res.json()[0]["org_id"] == org.id

    assert client.get("/metrics", headers={"X-API-Key": "wrong"}).status_code == 401
