import db
from badges import BADGES, earned_badge_types
from conftest import all_scores


def test_catalogue_for_new_user(client, make_user, auth_header):
    user = make_user("new@example.com")
    resp = client.get(f"/api/badges/user/{user['id']}", headers=auth_header(user))
    assert resp.status_code == 200
    badges = resp.get_json()["badges"]
    assert len(badges) == len(BADGES)
    assert not any(b["isUnlocked"] for b in badges)

    assert client.get("/api/badges/user/missing", headers=auth_header(user)).status_code == 404


def test_check_awards_once(client, arena):
    alpha_headers = arena.headers["alpha"]
    client.patch(f"/api/judge-management/submissions/{arena.subs['alpha']['id']}/status",
                 json={"status": "winner"}, headers=arena.org_headers)

    resp = client.post("/api/badges/check", headers=alpha_headers)
    assert resp.status_code == 200
    unlocked = {b["type"] for b in resp.get_json()["unlockedBadges"]}
    assert unlocked == {"first-registration", "first-submission", "finalist", "champion"}

    again = client.post("/api/badges/check", headers=alpha_headers).get_json()
    assert again["unlockedBadges"] == []
    assert db.collection("user_badges").count_documents({}) == 4


def test_judge_and_organizer_badges(client, arena, add_judges, give_to, score):
    assignment, judge_headers = add_judges(arena.code, ["j@example.com"])["j@example.com"]
    give_to(arena.code, assignment, [arena.subs["beta"]])
    score(judge_headers, arena.subs["beta"], all_scores(5))

    judge = db.find_user_by_email("j@example.com")
    organizer = db.find_user_by_email("org@example.com")
    assert earned_badge_types(judge) == {"judge"}
    assert earned_badge_types(organizer) == {"organizer"}


def test_progress(client, arena):
    alpha = db.find_user_by_email("alpha@example.com")
    client.post("/api/badges/check", headers=arena.headers["alpha"])

    resp = client.get(f"/api/badges/progress/{alpha['id']}", headers=arena.headers["alpha"])
    body = resp.get_json()
    assert body["unlockedCount"] == 2
    assert body["totalCount"] == len(BADGES)
    assert body["progressPercentage"] == 25
    assert body["rarityStats"]["common"] == {"total": 2, "unlocked": 2}
    assert body["nextBadge"]["rarity"] == "uncommon"
