import db
from conftest import iso_in


def test_create_requires_organizer(client, make_user, auth_header, hackathon_payload):
    participant = make_user("p@example.com")
    resp = client.post("/api/hackathons", json=hackathon_payload, headers=auth_header(participant))
    assert resp.status_code == 403


def test_create_fills_defaults(client, organizer, hackathon_payload):
    _, headers = organizer
    del hackathon_payload["maxParticipants"]
    resp = client.post("/api/hackathons", json=hackathon_payload, headers=headers)
    assert resp.status_code == 201

    body = resp.get_json()
    assert body["hackCode"].startswith("HACK-")
    created = body["hackathon"]
    assert created["approvalStatus"] == "pending"
    assert created["admins"] == ["org@example.com"]
    assert created["maxParticipants"] == 100
    assert created["status"] == "upcoming"
    assert [ps["statement"] for ps in created["problemStatements"]] == ["Reduce food waste", "Track carbon emissions"]
    assert all(ps["id"] for ps in created["problemStatements"])
    assert created["rounds"][0]["type"] == "ppt"


def test_create_validation(client, organizer, hackathon_payload):
    _, headers = organizer

    missing = dict(hackathon_payload)
    del missing["title"]
    resp = client.post("/api/hackathons", json=missing, headers=headers)
    assert resp.status_code == 400
    assert "title" in resp.get_json()["error"]

    backwards = dict(hackathon_payload, startDate=iso_in(20))
    assert client.post("/api/hackathons", json=backwards, headers=headers).status_code == 400

    bad_category = dict(hackathon_payload, category="Knitting")
    assert client.post("/api/hackathons", json=bad_category, headers=headers).status_code == 400

    bad_round = dict(hackathon_payload, rounds=[{"type": "essay"}])
    assert client.post("/api/hackathons", json=bad_round, headers=headers).status_code == 400


def test_listing_shows_only_approved(client, organizer, hackathon, hackathon_payload, make_user, auth_header):
    _, headers = organizer
    client.post("/api/hackathons", json=dict(hackathon_payload, title="Pending Jam"), headers=headers)

    resp = client.get("/api/hackathons")
    titles = [h["title"] for h in resp.get_json()["hackathons"]]
    assert titles == ["Green Code Jam"]

    assert client.get("/api/hackathons?approvalStatus=pending").status_code == 403

    admin = make_user("admin@example.com", role="admin")
    resp = client.get("/api/hackathons?approvalStatus=pending", headers=auth_header(admin))
    assert [h["title"] for h in resp.get_json()["hackathons"]] == ["Pending Jam"]


def test_listing_filters(client, hackathon):
    assert client.get("/api/hackathons?category=Sustainability").get_json()["total"] == 1
    assert client.get("/api/hackathons?category=Gaming").get_json()["total"] == 0
    assert client.get("/api/hackathons?search=code").get_json()["total"] == 1
    assert client.get("/api/hackathons?status=upcoming").get_json()["total"] == 1
    assert client.get("/api/hackathons?status=ended").get_json()["total"] == 0


def test_get_single(client, hackathon):
    resp = client.get(f"/api/hackathons/{hackathon['hackCode']}")
    assert resp.status_code == 200
    assert resp.get_json()["title"] == "Green Code Jam"
    assert client.get("/api/hackathons/HACK-NOPE").status_code == 404


def test_update_only_by_admins(client, hackathon, organizer, make_user, auth_header):
    code = hackathon["hackCode"]
    stranger = make_user("s@example.com", role="organizer")
    resp = client.put(f"/api/hackathons/{code}", json={"title": "Hijacked"}, headers=auth_header(stranger))
    assert resp.status_code == 403

    _, headers = organizer
    resp = client.put(f"/api/hackathons/{code}", json={"title": "Green Code Jam 2", "maxParticipants": 80}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["hackathon"]["title"] == "Green Code Jam 2"
    assert db.find_hackathon(code)["maxParticipants"] == 80

    resp = client.put(f"/api/hackathons/{code}", json={"endDate": iso_in(1)}, headers=headers)
    assert resp.status_code == 400


def test_co_admin_management(client, hackathon, organizer, make_user, auth_header):
    code = hackathon["hackCode"]
    _, headers = organizer

    resp = client.post(f"/api/hackathons/{code}/admins", json={"adminEmail": "Co@Example.com"}, headers=headers)
    assert resp.status_code == 200
    assert "co@example.com" in db.find_hackathon(code)["admins"]

    co_admin = make_user("co@example.com")
    resp = client.put(f"/api/hackathons/{code}", json={"description": "edited"}, headers=auth_header(co_admin))
    assert resp.status_code == 200

    assert client.delete(f"/api/hackathons/{code}/admins/org@example.com", headers=headers).status_code == 400
    assert client.delete(f"/api/hackathons/{code}/admins/co@example.com", headers=headers).status_code == 200
    assert "co@example.com" not in db.find_hackathon(code)["admins"]


def test_approval_notifies_organizer(client, organizer, hackathon_payload, make_user, auth_header):
    _, headers = organizer
    code = client.post("/api/hackathons", json=hackathon_payload, headers=headers).get_json()["hackCode"]

    admin = make_user("admin@example.com", role="admin")
    assert client.patch(f"/api/hackathons/{code}/approval", json={"approvalStatus": "approved"},
                        headers=headers).status_code == 403
    resp = client.patch(f"/api/hackathons/{code}/approval", json={"approvalStatus": "approved"},
                        headers=auth_header(admin))
    assert resp.status_code == 200
    assert db.find_hackathon(code)["approvalStatus"] == "approved"

    notes = list(db.collection("notifications").find({"recipientEmail": "org@example.com"}))
    assert len(notes) == 1
    assert notes[0]["type"] == "success"


def test_delete_cascades(client, hackathon, organizer, register_team, submit):
    code = hackathon["hackCode"]
    team, headers = register_team(code, "lead@example.com")
    submit(headers, code, team["id"])

    _, org_headers = organizer
    resp = client.delete(f"/api/hackathons/{code}", headers=org_headers)
    assert resp.status_code == 200
    assert resp.get_json()["removed"]["teams"] == 1
    assert resp.get_json()["removed"]["submissions"] == 1
    assert db.find_hackathon(code) is None
    assert db.find_user_by_email("lead@example.com")["hackathonsRegistered"] == []


def test_team_list_and_export(client, hackathon, organizer, register_team, submit):
    code = hackathon["hackCode"]
    team_a, headers_a = register_team(code, "a@example.com", name="Alpha")
    register_team(code, "b@example.com", name="Beta")
    submit(headers_a, code, team_a["id"], round_index=0)
    submit(headers_a, code, team_a["id"], round_index=1)

    _, org_headers = organizer
    teams = client.get(f"/api/hackathons/{code}/teams", headers=org_headers).get_json()["teams"]
    progress = {t["name"]: t["progress"] for t in teams}
    assert progress == {"Alpha": "REG → R1 → R2", "Beta": "REG"}

    resp = client.get(f"/api/hackathons/{code}/teams?round=1", headers=org_headers)
    assert [t["name"] for t in resp.get_json()["teams"]] == ["Alpha"]

    resp = client.get(f"/api/hackathons/{code}/teams/export", headers=org_headers)
    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    assert 'filename="teams_All_All.csv"' in resp.headers["Content-Disposition"]
    lines = resp.get_data(as_text=True).splitlines()
    assert lines[0] == "#,Team,Leader,Status,Progress"
    assert lines[1] == "1,Alpha,A,Active,REG → R1 → R2"
    assert lines[2] == "2,Beta,B,Active,REG"

    assert client.get(f"/api/hackathons/{code}/teams?round=first", headers=org_headers).status_code == 400


def test_export_filename_is_sanitized(client, hackathon, organizer):
    _, org_headers = organizer
    resp = client.get(f"/api/hackathons/{hackathon['hackCode']}/teams/export",
                      query_string={"problemStatement": 'Reduce "food" waste'}, headers=org_headers)
    assert resp.status_code == 200
    assert resp.headers["Content-Disposition"] == 'attachment; filename="teams_All_Reduce_food_waste.csv"'
