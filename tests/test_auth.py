import jwt

import db


def signup(client, email="ada@example.com", password="secret123", **extra):
    return client.post("/api/users/signup", json=dict(email=email, password=password, **extra))


def test_health(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_signup_returns_token_and_session(client):
    resp = signup(client, name="Ada")
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["user"]["email"] == "ada@example.com"
    assert "passwordHash" not in body["user"]
    assert body["needsRegistration"] is True
    assert body["dashboardRoute"] == "/dashboard/profile"

    claims = jwt.decode(body["token"], "test-secret", algorithms=["HS256"])
    assert claims["email"] == "ada@example.com"
    assert claims["role"] == "participant"


def test_signup_duplicate_email(client):
    assert signup(client).status_code == 201
    resp = signup(client, email="ADA@example.com")
    assert resp.status_code == 409


def test_signup_validation(client):
    assert signup(client, password="").status_code == 400
    assert signup(client, email="not-an-email").status_code == 400
    assert signup(client, password="123").status_code == 400
    assert signup(client, role="admin").status_code == 400


def test_signup_claims_stub_account(client):
    db.collection("users").insert_one({
        "id": "stub-1", "email": "stub@example.com", "name": "Stub", "role": "participant",
        "passwordHash": None, "profileCompleted": False, "hackathonsRegistered": [{"hackCode": "HACK-1"}],
    })
    resp = signup(client, email="stub@example.com", role="judge")
    assert resp.status_code == 201
    user = db.find_user_by_email("stub@example.com")
    assert user["id"] == "stub-1"
    assert user["role"] == "judge"
    assert user["hackathonsRegistered"] == [{"hackCode": "HACK-1"}]


def test_login(client):
    signup(client, role="organizer")
    resp = client.post("/api/users/login", json={"email": "ada@example.com", "password": "secret123"})
    assert resp.status_code == 200
    assert resp.get_json()["dashboardRoute"] == "/dashboard/organizer-tools"

    resp = client.post("/api/users/login", json={"email": "ada@example.com", "password": "wrong-pass"})
    assert resp.status_code == 401


def test_token_required(client):
    assert client.get("/api/users/me").status_code == 401
    resp = client.get("/api/users/me", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid token"


def test_expired_token(client, app):
    token = jwt.encode({"user_id": "x", "email": "x@example.com", "exp": 0}, "test-secret", algorithm="HS256")
    resp = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Token expired"


def test_update_profile(client, make_user, auth_header):
    user = make_user("p@example.com")
    headers = auth_header(user)

    resp = client.put("/api/users/me", json={
        "bio": "Backend dev",
        "preferredHackathonTypes": ["ai-ml", "fintech"],
        "teamSizePreference": "2-3",
    }, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["user"]["profileCompleted"] is True

    resp = client.put("/api/users/me", json={"preferredHackathonTypes": ["knitting"]}, headers=headers)
    assert resp.status_code == 400


def test_change_role_requires_admin(client, make_user, auth_header):
    admin = make_user("admin@example.com", role="admin")
    user = make_user("u@example.com")

    resp = client.patch(f"/api/users/{user['id']}/role", json={"role": "judge"}, headers=auth_header(user))
    assert resp.status_code == 403

    resp = client.patch(f"/api/users/{user['id']}/role", json={"role": "judge"}, headers=auth_header(admin))
    assert resp.status_code == 200
    assert db.find_user_by_email("u@example.com")["role"] == "judge"

    resp = client.patch("/api/users/missing/role", json={"role": "judge"}, headers=auth_header(admin))
    assert resp.status_code == 404
