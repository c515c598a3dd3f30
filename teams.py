import logging

from flask import Blueprint, g, jsonify, request

from auth import ensure_user, is_hackathon_admin, token_required
from db import collection, find_hackathon, new_id, now_iso, now_utc, parse_datetime
from mailer import send_added_to_team_email
from notifications import notify

logger = logging.getLogger(__name__)

registration_bp = Blueprint("registration", __name__)
teams_bp = Blueprint("teams", __name__)


def team_emails(team):
    emails = [team.get("leader", {}).get("email")]
    emails += [m.get("email") for m in team.get("members", [])]
    return [e for e in emails if e]


def is_team_member(user, team):
    return bool(user) and user["email"] in team_emails(team)


def find_team_of(email, hack_code):
    return collection("teams").find_one(
        {"hackCode": hack_code, "$or": [{"leader.email": email}, {"members.email": email}]},
        {"_id": 0},
    )


def remove_submissions(submission_ids):
    """Delete submissions together with their scores and judge assignments."""
    if not submission_ids:
        return
    collection("scores").delete_many({"submissionId": {"$in": submission_ids}})
    collection("judge_assignments").update_many(
        {"assignedSubmissions": {"$in": submission_ids}},
        {"$pull": {"assignedSubmissions": {"$in": submission_ids}}},
    )
    collection("submissions").delete_many({"id": {"$in": submission_ids}})


@registration_bp.route("", methods=["POST"])
@token_required
def register_team():
    data = request.get_json(silent=True) or {}
    hack_code = data.get("hackCode")
    team_name = (data.get("teamName") or "").strip()
    if not hack_code or not team_name:
        return jsonify({"error": "hackCode and teamName are required"}), 400

    hackathon = find_hackathon(hack_code)
    if not hackathon:
        return jsonify({"error": "Hackathon not found"}), 404
    if hackathon.get("approvalStatus") != "approved":
        return jsonify({"error": "Hackathon is not open for registration"}), 400
    if hackathon.get("registrationDeadline") and now_utc() > parse_datetime(hackathon["registrationDeadline"]):
        return jsonify({"error": "Registration deadline has passed"}), 400

    leader_email = g.user["email"]
    leader = {"email": leader_email, "name": g.user.get("name") or leader_email}

    members = []
    seen = {leader_email}
    for member in data.get("members") or []:
        email = (member.get("email") or "").lower().strip()
        if not email or email in seen:
            continue
        if "@" not in email:
            return jsonify({"error": f"Invalid member email: {email}"}), 400
        seen.add(email)
        members.append({"email": email, "name": member.get("name") or email.split("@")[0]})

    all_emails = [leader_email] + [m["email"] for m in members]

    # nobody may be on two teams of the same hackathon
    taken = set()
    for team in collection("teams").find(
        {"hackCode": hack_code, "$or": [{"leader.email": {"$in": all_emails}}, {"members.email": {"$in": all_emails}}]},
        {"_id": 0},
    ):
        taken.update(e for e in team_emails(team) if e in all_emails)
    if taken:
        return jsonify({"error": f"Already registered in this hackathon: {', '.join(sorted(taken))}"}), 409

    max_participants = hackathon.get("maxParticipants", 100)
    if len(hackathon.get("participants", [])) + len(all_emails) > max_participants:
        return jsonify({"error": "Hackathon is full"}), 409

    problem_statement_id = data.get("problemStatementId")
    if problem_statement_id and not any(ps["id"] == problem_statement_id for ps in hackathon.get("problemStatements", [])):
        return jsonify({"error": "Problem statement not found"}), 400

    team_obj = {
        "id": new_id(),
        "hackCode": hack_code,
        "name": team_name,
        "leader": leader,
        "members": members,
        "problemStatementId": problem_statement_id,
        "status": "active",
        "createdAt": now_iso(),
    }

    try:
        collection("teams").insert_one(dict(team_obj))
        for member in [leader] + members:
            ensure_user(member["email"], member["name"])
            collection("users").update_one(
                {"email": member["email"]},
                {"$addToSet": {"hackathonsRegistered": {"hackCode": hack_code, "teamId": team_obj["id"]}}},
            )
        collection("hackathons").update_one(
            {"hackCode": hack_code},
            {"$addToSet": {"participants": {"$each": all_emails}}},
        )
    except Exception as e:
        logger.exception("Error while registering team %s for %s", team_name, hack_code)
        return jsonify({"error": "Registration failed", "details": str(e)}), 500

    for member in members:
        notify(member["email"], f"{leader['name']} added you to team {team_name} for {hackathon['title']}.", "info",
               f"/hackathons/{hack_code}")
        if not send_added_to_team_email(member["email"], team_name, hackathon["title"], leader["name"]):
            logger.error("Team invite email failed to %s", member["email"])

    logger.info("Team %s (%s) registered for %s by %s", team_name, team_obj["id"], hack_code, leader_email)
    return jsonify({"message": "Team registered successfully", "team": team_obj}), 201


@teams_bp.route("/mine", methods=["GET"])
@token_required
def get_my_team():
    hack_code = request.args.get("hackCode")
    if not hack_code:
        return jsonify({"error": "hackCode is required"}), 400

    team = find_team_of(g.user["email"], hack_code)
    if not team:
        return jsonify({
            "message": f"User {g.user['email']} is not registered in hackathon {hack_code}",
            "registrationStatus": "no",
            "team": None,
        }), 200

    hackathon = find_hackathon(hack_code) or {}
    return jsonify({
        "message": "Team details fetched successfully",
        "registrationStatus": "yes",
        "hackathon": {
            "hackCode": hack_code,
            "title": hackathon.get("title"),
            "startDate": hackathon.get("startDate"),
            "endDate": hackathon.get("endDate"),
        },
        "team": team,
    }), 200


@teams_bp.route("/<team_id>", methods=["GET"])
@token_required
def get_team(team_id):
    team = collection("teams").find_one({"id": team_id}, {"_id": 0})
    if not team:
        return jsonify({"error": "Team not found"}), 404
    if not is_team_member(g.user, team) and not is_hackathon_admin(g.user, find_hackathon(team["hackCode"])):
        return jsonify({"error": "Not authorized to view this team"}), 403

    submissions = list(collection("submissions").find({"teamId": team_id}, {"_id": 0}).sort("roundIndex", 1))
    return jsonify({"team": team, "submissions": submissions}), 200


@teams_bp.route("/<team_id>/leave", methods=["POST"])
@token_required
def leave_team(team_id):
    email = g.user["email"]
    team = collection("teams").find_one({"id": team_id}, {"_id": 0})
    if not team or not is_team_member(g.user, team):
        return jsonify({"error": "Team not found"}), 404

    hack_code = team["hackCode"]
    team_deleted = False

    if team["leader"]["email"] == email:
        # If leader leaves, promote first member if exists, else delete team
        if team.get("members"):
            new_leader = team["members"].pop(0)
            collection("teams").update_one(
                {"id": team_id},
                {"$set": {"leader": new_leader, "members": team["members"]}},
            )
            notify(new_leader["email"], f"You are now the leader of team {team['name']}.", "info")
        else:
            submission_ids = [s["id"] for s in collection("submissions").find({"teamId": team_id}, {"id": 1})]
            remove_submissions(submission_ids)
            collection("judge_assignments").update_many({"assignedTeams": team_id}, {"$pull": {"assignedTeams": team_id}})
            collection("teams").delete_one({"id": team_id})
            team_deleted = True
    else:
        collection("teams").update_one({"id": team_id}, {"$pull": {"members": {"email": email}}})

    collection("users").update_one({"email": email}, {"$pull": {"hackathonsRegistered": {"hackCode": hack_code}}})
    collection("hackathons").update_one({"hackCode": hack_code}, {"$pull": {"participants": email}})

    logger.info("%s left team %s in %s (teamDeleted=%s)", email, team_id, hack_code, team_deleted)
    return jsonify({
        "message": f"{email} left team {team_id} in hackathon {hack_code} successfully",
        "teamDeleted": team_deleted,
    }), 200
