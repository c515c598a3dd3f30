import logging

from flask import Blueprint, g, jsonify, request

from auth import is_hackathon_admin, token_required
from db import collection, find_hackathon, new_id, now_iso, now_utc, parse_datetime
from teams import is_team_member

logger = logging.getLogger(__name__)

submissions_bp = Blueprint("submissions", __name__)

SUBMISSION_STATUSES = ("submitted", "shortlisted", "rejected", "winner")
SUBMISSION_FIELDS = ("projectTitle", "description", "links", "techStack")


def round_count(hackathon):
    # a hackathon without explicit rounds has a single implicit round 0
    return max(len(hackathon.get("rounds") or []), 1)


def submission_deadline(hackathon, round_index):
    rounds = hackathon.get("rounds") or []
    if round_index < len(rounds) and rounds[round_index].get("endDate"):
        return parse_datetime(rounds[round_index]["endDate"])
    if hackathon.get("submissionDeadline"):
        return parse_datetime(hackathon["submissionDeadline"])
    return None


def resolve_problem_statement(hackathon, problem_statement_id):
    for ps in hackathon.get("problemStatements", []):
        if ps["id"] == problem_statement_id:
            return {"id": ps["id"], "statement": ps["statement"]}
    return None


def assigned_judges_for(submission):
    return sorted(
        a["judge"]["email"]
        for a in collection("judge_assignments").find(
            {"hackCode": submission["hackCode"], "$or": [
                {"assignedSubmissions": submission["id"]},
                {"assignedTeams": submission["teamId"]},
            ]},
            {"_id": 0, "judge": 1},
        )
    )


@submissions_bp.route("", methods=["POST"])
@token_required
def submit_project():
    data = request.get_json(silent=True) or {}
    hack_code = data.get("hackCode")
    team_id = data.get("teamId")
    round_index = data.get("roundIndex")

    if not hack_code or not team_id or round_index is None or not data.get("projectTitle"):
        return jsonify({"error": "hackCode, teamId, roundIndex and projectTitle are required"}), 400
    if isinstance(round_index, bool) or not isinstance(round_index, int):
        return jsonify({"error": "roundIndex must be an integer"}), 400

    hackathon = find_hackathon(hack_code)
    if not hackathon:
        return jsonify({"error": "Hackathon not found"}), 404

    team = collection("teams").find_one({"id": team_id, "hackCode": hack_code}, {"_id": 0})
    if not team:
        return jsonify({"error": "Team not found"}), 404
    if not is_team_member(g.user, team):
        return jsonify({"error": "Only team members can submit for this team"}), 403
    if team.get("status") == "inactive":
        return jsonify({"error": "Team is no longer active in this hackathon"}), 409

    if round_index < 0 or round_index >= round_count(hackathon):
        return jsonify({"error": f"Round {round_index} does not exist"}), 400
    deadline = submission_deadline(hackathon, round_index)
    if deadline and now_utc() > deadline:
        return jsonify({"error": "Submission deadline has passed"}), 400

    problem_statement_id = data.get("problemStatementId") or team.get("problemStatementId")
    problem_statement = None
    if problem_statement_id:
        problem_statement = resolve_problem_statement(hackathon, problem_statement_id)
        if not problem_statement:
            return jsonify({"error": "Problem statement not found"}), 400

    fields = {k: data[k] for k in SUBMISSION_FIELDS if k in data}
    fields["problemStatement"] = problem_statement
    fields["updatedAt"] = now_iso()

    existing = collection("submissions").find_one({"teamId": team_id, "roundIndex": round_index}, {"_id": 0})
    if existing:
        collection("submissions").update_one({"id": existing["id"]}, {"$set": fields})
        submission = collection("submissions").find_one({"id": existing["id"]}, {"_id": 0})
        logger.info("Submission %s updated by %s", existing["id"], g.user["email"])
        return jsonify({"message": "Submission updated successfully", "submission": submission}), 200

    submission = {
        "id": new_id(),
        "hackCode": hack_code,
        "teamId": team_id,
        "teamName": team["name"],
        "roundIndex": round_index,
        "projectTitle": data["projectTitle"],
        "description": data.get("description", ""),
        "links": data.get("links", {}),
        "techStack": data.get("techStack", []),
        "problemStatement": problem_statement,
        "status": "submitted",
        "submittedBy": g.user["email"],
        "submittedAt": now_iso(),
        "updatedAt": fields["updatedAt"],
    }
    try:
        collection("submissions").insert_one(dict(submission))
    except Exception as e:
        logger.exception("Error while saving submission for team %s", team_id)
        return jsonify({"error": "Failed to save submission", "details": str(e)}), 500

    logger.info("Submission %s created for team %s round %s", submission["id"], team_id, round_index)
    return jsonify({"message": "Submission saved successfully", "submission": submission}), 201


@submissions_bp.route("", methods=["GET"])
@token_required
def list_submissions():
    hack_code = request.args.get("hackCode")
    team_id = request.args.get("teamId")
    if not hack_code:
        return jsonify({"error": "hackCode is required"}), 400

    hackathon = find_hackathon(hack_code)
    if not hackathon:
        return jsonify({"error": "Hackathon not found"}), 404

    query = {"hackCode": hack_code}
    is_admin = is_hackathon_admin(g.user, hackathon)
    if team_id:
        team = collection("teams").find_one({"id": team_id, "hackCode": hack_code}, {"_id": 0})
        if not team:
            return jsonify({"error": "Team not found"}), 404
        if not is_admin and not is_team_member(g.user, team):
            return jsonify({"error": "Not authorized to view these submissions"}), 403
        query["teamId"] = team_id
    elif not is_admin:
        return jsonify({"error": "Not authorized. Only admins can list all submissions."}), 403

    if request.args.get("roundIndex") is not None:
        try:
            query["roundIndex"] = int(request.args["roundIndex"])
        except ValueError:
            return jsonify({"error": "roundIndex must be an integer"}), 400

    submissions = list(collection("submissions").find(query, {"_id": 0}).sort("submittedAt", 1))
    return jsonify({"submissions": submissions, "total": len(submissions)}), 200


@submissions_bp.route("/<submission_id>", methods=["GET"])
@token_required
def get_submission(submission_id):
    submission = collection("submissions").find_one({"id": submission_id}, {"_id": 0})
    if not submission:
        return jsonify({"error": "Submission not found"}), 404

    hackathon = find_hackathon(submission["hackCode"])
    team = collection("teams").find_one({"id": submission["teamId"]}, {"_id": 0}) or {}
    if is_hackathon_admin(g.user, hackathon):
        submission["assignedJudges"] = assigned_judges_for(submission)
        submission["evaluations"] = list(collection("scores").find({"submissionId": submission_id}, {"_id": 0}))
    elif not is_team_member(g.user, team):
        return jsonify({"error": "Not authorized to view this submission"}), 403

    submission["team"] = team or None
    return jsonify(submission), 200
