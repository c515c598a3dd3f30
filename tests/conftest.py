from datetime import timedelta
from types import SimpleNamespace

import mongomock
import pytest

import db
import mailer
from app import create_app
from auth import create_token
from config import Config
from db import new_id, now_iso, now_utc


class ConfigForTests(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    MONGO_DB_NAME = "hackdb_test"
    EMAILS_ENABLED = False


def iso_in(days):
    return (now_utc() + timedelta(days=days)).isoformat().replace("+00:00", "Z")


@pytest.fixture
def app():
    app = create_app(ConfigForTests, mongomock.MongoClient())
    db.ensure_indexes()
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def fake_send_email(email_to, subject, body):
        sent.append({"to": email_to, "subject": subject, "body": body})
        return True

    monkeypatch.setattr(mailer, "send_email", fake_send_email)
    return sent


@pytest.fixture
def make_user(app):
    def _make_user(email, role="participant", name=None):
        user = {
            "id": new_id(),
            "email": email,
            "name": name or email.split("@")[0].title(),
            "role": role,
            "passwordHash": "x",
            "profileCompleted": True,
            "hackathonsRegistered": [],
            "createdAt": now_iso(),
        }
        db.collection("users").insert_one(dict(user))
        return user
    return _make_user


@pytest.fixture
def auth_header(app):
    def _auth_header(user):
        with app.app_context():
            token = create_token(user)
        return {"Authorization": f"Bearer {token}"}
    return _auth_header


@pytest.fixture
def organizer(make_user, auth_header):
    user = make_user("org@example.com", role="organizer", name="Olivia Org")
    return user, auth_header(user)


@pytest.fixture
def hackathon_payload():
    return {
        "title": "Green Code Jam",
        "description": "Build for the planet",
        "category": "Sustainability",
        "difficultyLevel": "Intermediate",
        "startDate": iso_in(10),
        "endDate": iso_in(12),
        "registrationDeadline": iso_in(5),
        "maxParticipants": 50,
        "problemStatements": [
            {"statement": "Reduce food waste", "type": "software"},
            {"statement": "Track carbon emissions", "type": "software"},
        ],
        "rounds": [
            {"name": "Idea pitch", "type": "ppt", "endDate": iso_in(11)},
            {"name": "Final build", "type": "project", "endDate": iso_in(12)},
        ],
    }


@pytest.fixture
def hackathon(client, organizer, hackathon_payload):
    """An approved hackathon owned by the organizer fixture."""
    _, headers = organizer
    resp = client.post("/api/hackathons", json=hackathon_payload, headers=headers)
    assert resp.status_code == 201
    hack_code = resp.get_json()["hackCode"]
    db.collection("hackathons").update_one({"hackCode": hack_code}, {"$set": {"approvalStatus": "approved"}})
    return db.find_hackathon(hack_code)


@pytest.fixture
def register_team(client, make_user, auth_header):
    """Register a team led by a fresh user; returns (team, leader headers)."""
    def _register_team(hack_code, leader_email, members=(), problem_statement_id=None, name=None):
        leader = db.find_user_by_email(leader_email) or make_user(leader_email)
        headers = auth_header(leader)
        resp = client.post("/api/registration", json={
            "hackCode": hack_code,
            "teamName": name or f"Team {leader_email.split('@')[0]}",
            "members": [{"email": m} for m in members],
            "problemStatementId": problem_statement_id,
        }, headers=headers)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["team"], headers
    return _register_team


@pytest.fixture
def submit(client):
    def _submit(headers, hack_code, team_id, round_index=0, title="Project"):
        resp = client.post("/api/submissions", json={
            "hackCode": hack_code,
            "teamId": team_id,
            "roundIndex": round_index,
            "projectTitle": title,
            "links": {"repo": "https://github.com/example/repo"},
        }, headers=headers)
        assert resp.status_code in (200, 201), resp.get_json()
        return resp.get_json()["submission"]
    return _submit


DEFAULT_CRITERIA_NAMES = ("innovation", "impact", "technicality", "presentation")


def all_scores(value):
    return {name: value for name in DEFAULT_CRITERIA_NAMES}


@pytest.fixture
def arena(hackathon, organizer, register_team, submit):
    """Three teams with a round 0 submission each; gamma works on the second problem statement."""
    code = hackathon["hackCode"]
    statements = hackathon["problemStatements"]
    teams, headers, subs = {}, {}, {}
    for name, ps_index in (("alpha", 0), ("beta", 0), ("gamma", 1)):
        team, team_headers = register_team(
            code, f"{name}@example.com", name=name.title(), problem_statement_id=statements[ps_index]["id"]
        )
        teams[name] = team
        headers[name] = team_headers
        subs[name] = submit(team_headers, code, team["id"], title=f"{name.title()} App")
    return SimpleNamespace(
        code=code, hackathon=hackathon, teams=teams, headers=headers, subs=subs, org_headers=organizer[1]
    )


@pytest.fixture
def add_judges(client, organizer, auth_header):
    """Create accepted judges; returns {email: (assignment, headers)}."""
    def _add_judges(code, emails, rounds=(0, 1)):
        resp = client.post(f"/api/judge-management/hackathons/{code}/assign-judges", json={
            "judges": [{"email": email, "assignedRounds": list(rounds)} for email in emails],
        }, headers=organizer[1])
        assert resp.status_code == 201, resp.get_json()
        created = {a["judge"]["email"]: a for a in resp.get_json()["assignments"]}
        return {email: (created[email], auth_header(db.find_user_by_email(email))) for email in emails}
    return _add_judges


@pytest.fixture
def give_to(client, organizer):
    def _give_to(code, assignment, submissions):
        resp = client.post(f"/api/judge-management/hackathons/{code}/bulk-assign-submissions", json={
            "submissionIds": [s["id"] for s in submissions],
            "evaluatorIds": [assignment["id"]],
        }, headers=organizer[1])
        assert resp.status_code == 200, resp.get_json()
    return _give_to


@pytest.fixture
def score(client):
    def _score(headers, submission, scores, feedback=""):
        return client.post(f"/api/judge-management/submissions/{submission['id']}/score",
                           json={"scores": scores, "feedback": feedback}, headers=headers)
    return _score
