import pytest

import db
from conftest import iso_in


@pytest.fixture
def alice(make_user, auth_header):
    user = make_user("alice@example.com")
    return user, auth_header(user)


def create(client, headers, **fields):
    payload = {"recipientEmail": "alice@example.com", "message": "Hello"}
    payload.update(fields)
    return client.post("/api/notifications", json=payload, headers=headers)


def test_create_and_list(client, alice):
    _, headers = alice
    assert create(client, headers).status_code == 201
    assert create(client, headers, message="Second", type="warning").status_code == 201

    body = client.get("/api/notifications/me", headers=headers).get_json()
    assert body["unreadCount"] == 2
    assert [n["message"] for n in body["notifications"]] == ["Second", "Hello"]


@pytest.mark.parametrize("fields", [
    {"recipientEmail": "nobody"},
    {"message": "   "},
    {"message": "x" * 501},
    {"type": "party"},
])
def test_create_validation(client, alice, fields):
    _, headers = alice
    assert create(client, headers, **fields).status_code == 400


def test_read_unread_and_delete(client, alice, make_user, auth_header):
    _, headers = alice
    first = create(client, headers).get_json()["notification"]
    create(client, headers, message="Other")

    assert client.put(f"/api/notifications/{first['id']}/read", headers=headers).status_code == 200
    body = client.get("/api/notifications/me?unreadOnly=true", headers=headers).get_json()
    assert [n["message"] for n in body["notifications"]] == ["Other"]
    assert body["unreadCount"] == 1

    assert client.put(f"/api/notifications/{first['id']}/unread", headers=headers).status_code == 200
    resp = client.put("/api/notifications/all/read", headers=headers)
    assert resp.get_json()["updated"] == 2

    intruder = auth_header(make_user("mallory@example.com"))
    assert client.put(f"/api/notifications/{first['id']}/read", headers=intruder).status_code == 404
    assert client.delete(f"/api/notifications/{first['id']}", headers=intruder).status_code == 404

    assert client.delete(f"/api/notifications/{first['id']}", headers=headers).status_code == 200
    assert db.collection("notifications").count_documents({"id": first["id"]}) == 0


def test_announcements(client, hackathon, organizer, alice):
    code = hackathon["hackCode"]
    _, org_headers = organizer
    payload = {"hackCode": code, "title": "Kickoff", "content": "Starts at 9", "expiryDate": iso_in(3)}

    _, alice_headers = alice
    assert client.post("/api/announcements", json=payload, headers=alice_headers).status_code == 403
    assert client.post("/api/announcements", json=dict(payload, expiryDate=iso_in(-1)),
                       headers=org_headers).status_code == 400
    assert client.post("/api/announcements", json=dict(payload, expiryDate="soon"),
                       headers=org_headers).status_code == 400
    assert client.post("/api/announcements", json=payload, headers=org_headers).status_code == 201

    db.collection("hackathons").update_one({"hackCode": code}, {"$push": {"announcements": {
        "id": "old", "title": "Old", "content": "", "expiryDate": iso_in(-2),
    }}})
    active = client.get(f"/api/announcements?hackCode={code}").get_json()["announcements"]
    assert [a["title"] for a in active] == ["Kickoff"]
    everything = client.get(f"/api/announcements?hackCode={code}&includeExpired=true").get_json()["announcements"]
    assert len(everything) == 2
    assert client.get("/api/announcements").status_code == 400
