import logging

from flask import Blueprint, current_app, g, jsonify, request

from auth import ensure_user, is_hackathon_admin, token_required
from db import collection, find_hackathon, new_id, now_iso
from errors import ValidationError
from hackathons import load_managed_hackathon, normalize_problem_statements
from mailer import send_judge_invitation_email
from notifications import notify
from scoring import (
    criteria_for_round,
    distribute_round_robin,
    evaluation_average,
    problem_statement_text,
    submission_average,
    validate_criteria,
)
from submissions import round_count

logger = logging.getLogger(__name__)

judging_bp = Blueprint("judging", __name__)

JUDGE_TYPES = ("platform", "sponsor", "hybrid")
ASSIGNMENT_STATUSES = ("pending", "accepted", "declined")
ASSIGNMENT_MODES = ("manual", "equal")
SCOPE_TYPES = ("round", "problem-statement")


# --- helpers ---
def _clean_email(value):
    return (value or "").strip().lower()


def load_assignment(assignment_id):
    """(assignment, hackathon, None) or (None, None, error response)."""
    assignment = collection("judge_assignments").find_one({"id": assignment_id}, {"_id": 0})
    if not assignment:
        return None, None, (jsonify({"error": "Judge assignment not found"}), 404)
    return assignment, find_hackathon(assignment["hackCode"]), None


def load_managed_assignment(assignment_id):
    assignment, hackathon, error = load_assignment(assignment_id)
    if error:
        return None, None, error
    if not is_hackathon_admin(g.user, hackathon):
        return None, None, (jsonify({"error": "Not authorized. Only admins can manage judges."}), 403)
    return assignment, hackathon, None


def validate_round_indices(hackathon, indices):
    if not isinstance(indices, list):
        raise ValidationError("roundIndices must be a list")
    total = round_count(hackathon)
    for index in indices:
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < total:
            raise ValidationError(f"Round {index} does not exist")
    return sorted(set(indices))


def validate_id_list(ids, field):
    """Deduplicated list of string ids, in request order."""
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise ValidationError(f"{field} must be a list of strings")
    return list(dict.fromkeys(ids))


def validate_problem_statement_ids(hackathon, ids):
    ids = validate_id_list(ids, "problemStatementIds")
    known = {ps["id"] for ps in hackathon.get("problemStatements", [])}
    unknown = [ps_id for ps_id in ids if ps_id not in known]
    if unknown:
        raise ValidationError(f"Unknown problem statements: {', '.join(unknown)}")
    return ids


def build_assignment(hackathon, judge_data, status, invited_by):
    email = _clean_email(judge_data.get("email"))
    if not email or "@" not in email:
        raise ValidationError("A valid judge email is required")
    judge_type = judge_data.get("type", "platform")
    if judge_type not in JUDGE_TYPES:
        raise ValidationError(f"judge type must be one of {', '.join(JUDGE_TYPES)}")

    return {
        "id": new_id(),
        "hackCode": hackathon["hackCode"],
        "judge": {
            "email": email,
            "name": judge_data.get("name") or email.split("@")[0],
            "type": judge_type,
            "sponsorCompany": judge_data.get("sponsorCompany"),
        },
        "status": status,
        "assignedRounds": validate_round_indices(hackathon, judge_data.get("assignedRounds", [])),
        "assignedProblemStatements": validate_problem_statement_ids(
            hackathon, judge_data.get("assignedProblemStatements", [])
        ),
        "assignedTeams": [],
        "assignedSubmissions": [],
        "maxSubmissions": judge_data.get("maxSubmissions"),
        "invitedBy": invited_by,
        "createdAt": now_iso(),
        "respondedAt": None,
    }


def _register_judge(hackathon, assignment):
    email = assignment["judge"]["email"]
    user = ensure_user(email, assignment["judge"]["name"])
    if not user.get("passwordHash") and user.get("role") == "participant":
        collection("users").update_one({"email": email}, {"$set": {"role": "judge"}})
    collection("judge_assignments").insert_one(dict(assignment))
    collection("hackathons").update_one({"hackCode": hackathon["hackCode"]}, {"$addToSet": {"judges": email}})


def submissions_for_assignment(assignment):
    """Submissions a judge holds directly or through assigned teams."""
    query = {"hackCode": assignment["hackCode"], "$or": [
        {"id": {"$in": assignment.get("assignedSubmissions", [])}},
        {"teamId": {"$in": assignment.get("assignedTeams", [])}},
    ]}
    return list(collection("submissions").find(query, {"_id": 0}).sort("submittedAt", 1))


def averages_by_submission(hackathon, submissions):
    """submission id -> (average, evaluation count)."""
    ids = [s["id"] for s in submissions]
    evaluations = {}
    for score in collection("scores").find({"submissionId": {"$in": ids}}, {"_id": 0}):
        evaluations.setdefault(score["submissionId"], []).append(score)

    results = {}
    for submission in submissions:
        criteria = [c["name"] for c in criteria_for_round(hackathon, submission.get("roundIndex", 0))]
        evals = evaluations.get(submission["id"], [])
        results[submission["id"]] = (submission_average(evals, criteria), len(evals))
    return results


def _judge_load(assignment):
    return len(submissions_for_assignment(assignment))


def _scope_key(scope_type, index):
    return f"{scope_type}:{index}"


def _resolve_scope(hackathon, scope_type, index):
    """Return (key, mongo query for in-scope submissions)."""
    if scope_type not in SCOPE_TYPES:
        raise ValidationError(f"type must be one of {', '.join(SCOPE_TYPES)}")
    if scope_type == "round":
        try:
            round_index = int(index)
        except ValueError:
            raise ValidationError("round index must be an integer")
        validate_round_indices(hackathon, [round_index])
        return _scope_key(scope_type, round_index), {"hackCode": hackathon["hackCode"], "roundIndex": round_index}

    validate_problem_statement_ids(hackathon, [index])
    return _scope_key(scope_type, index), {"hackCode": hackathon["hackCode"], "problemStatement.id": index}


def _eligible_query(hackathon, scope_type, index):
    query = {"hackCode": hackathon["hackCode"], "status": {"$ne": "declined"}}
    if scope_type == "round":
        query["assignedRounds"] = int(index)
    else:
        query["assignedProblemStatements"] = index
    return query


# --- Problem statements and criteria ---
@judging_bp.route("/hackathons/<hack_code>/problem-statements", methods=["POST"])
@token_required
def add_problem_statements(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    incoming = normalize_problem_statements(data.get("problemStatements") or [])
    if not incoming:
        return jsonify({"error": "problemStatements is required"}), 400

    existing = {ps["statement"].lower() for ps in hackathon.get("problemStatements", [])}
    added = []
    for ps in incoming:
        if ps["statement"].lower() in existing:
            continue
        existing.add(ps["statement"].lower())
        added.append(ps)

    if added:
        collection("hackathons").update_one({"hackCode": hack_code}, {"$push": {"problemStatements": {"$each": added}}})
    logger.info("%d problem statements added to %s by %s", len(added), hack_code, g.user["email"])
    return jsonify({
        "message": "Problem statements added",
        "added": added,
        "skipped": len(incoming) - len(added),
        "problemStatements": hackathon.get("problemStatements", []) + added,
    }), 200


@judging_bp.route("/hackathons/<hack_code>/rounds/<int:round_index>/judging-criteria", methods=["GET"])
@token_required
def get_judging_criteria(hack_code, round_index):
    hackathon = find_hackathon(hack_code)
    if not hackathon:
        return jsonify({"error": "Hackathon not found"}), 404
    if round_index >= round_count(hackathon):
        return jsonify({"error": f"Round {round_index} does not exist"}), 404
    return jsonify({
        "hackCode": hack_code,
        "roundIndex": round_index,
        "criteria": criteria_for_round(hackathon, round_index),
    }), 200


@judging_bp.route("/hackathons/<hack_code>/rounds/<int:round_index>/judging-criteria", methods=["PUT"])
@token_required
def update_judging_criteria(hack_code, round_index):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error
    rounds = hackathon.get("rounds") or []
    if round_index >= len(rounds):
        return jsonify({"error": f"Round {round_index} does not exist"}), 404

    data = request.get_json(silent=True) or {}
    criteria = validate_criteria(data.get("criteria"))
    collection("hackathons").update_one(
        {"hackCode": hack_code},
        {"$set": {f"rounds.{round_index}.judgingCriteria": criteria}},
    )
    logger.info("Judging criteria of %s round %d updated by %s", hack_code, round_index, g.user["email"])
    return jsonify({"message": "Judging criteria updated", "roundIndex": round_index, "criteria": criteria}), 200


# --- Judge assignment management ---
@judging_bp.route("/hackathons/<hack_code>/invite-judge", methods=["POST"])
@token_required
def invite_judge(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    assignment = build_assignment(hackathon, data, "pending", g.user["email"])
    email = assignment["judge"]["email"]
    if collection("judge_assignments").find_one({"hackCode": hack_code, "judge.email": email}):
        return jsonify({"error": f"{email} is already a judge of this hackathon"}), 409

    _register_judge(hackathon, assignment)
    dashboard_url = f"{current_app.config['FRONTEND_URL']}/dashboard/judge-panel"
    notify(email, f"You have been invited to judge '{hackathon['title']}'.", "invite", "/dashboard/judge-panel")
    email_sent = send_judge_invitation_email(
        email, assignment["judge"]["name"], hackathon["title"], g.user.get("name") or g.user["email"], dashboard_url
    )

    logger.info("Judge %s invited to %s by %s", email, hack_code, g.user["email"])
    return jsonify({"message": "Judge invited", "assignment": assignment, "emailSent": email_sent}), 201


@judging_bp.route("/hackathons/<hack_code>/assign-judges", methods=["POST"])
@token_required
def assign_judges(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    judges = data.get("judges") or []
    if not isinstance(judges, list) or not judges:
        return jsonify({"error": "judges must be a non-empty list"}), 400

    created, skipped = [], []
    for judge_data in judges:
        assignment = build_assignment(hackathon, judge_data, "accepted", g.user["email"])
        email = assignment["judge"]["email"]
        if collection("judge_assignments").find_one({"hackCode": hack_code, "judge.email": email}):
            skipped.append(email)
            continue
        _register_judge(hackathon, assignment)
        notify(email, f"You are a judge of '{hackathon['title']}'.", "info", "/dashboard/judge-panel")
        created.append(assignment)

    logger.info("Judges assigned to %s by %s: created=%d skipped=%d", hack_code, g.user["email"], len(created), len(skipped))
    return jsonify({"message": "Judges assigned", "assignments": created, "skipped": skipped}), 201


@judging_bp.route("/hackathons/<hack_code>/judge-assignments", methods=["GET"])
@token_required
def get_judge_assignments(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    assignments = list(collection("judge_assignments").find({"hackCode": hack_code}, {"_id": 0}).sort("createdAt", 1))
    return jsonify({"hackCode": hack_code, "assignments": assignments, "total": len(assignments)}), 200


@judging_bp.route("/judge-assignments/<assignment_id>", methods=["GET"])
@token_required
def get_judge_assignment_details(assignment_id):
    assignment, hackathon, error = load_assignment(assignment_id)
    if error:
        return error
    if assignment["judge"]["email"] != g.user["email"] and not is_hackathon_admin(g.user, hackathon):
        return jsonify({"error": "Not authorized to view this assignment"}), 403

    assignment["submissions"] = submissions_for_assignment(assignment)
    assignment["hackathon"] = {
        "hackCode": hackathon["hackCode"],
        "title": hackathon.get("title"),
        "rounds": hackathon.get("rounds", []),
        "problemStatements": hackathon.get("problemStatements", []),
    }
    return jsonify(assignment), 200


@judging_bp.route("/judge-assignments/<assignment_id>", methods=["PUT"])
@token_required
def update_judge_assignment(assignment_id):
    assignment, hackathon, error = load_managed_assignment(assignment_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    updates = {}
    judge = data.get("judge") or {}
    if "name" in judge:
        updates["judge.name"] = judge["name"]
    if "type" in judge:
        if judge["type"] not in JUDGE_TYPES:
            return jsonify({"error": f"judge type must be one of {', '.join(JUDGE_TYPES)}"}), 400
        updates["judge.type"] = judge["type"]
    if "sponsorCompany" in judge:
        updates["judge.sponsorCompany"] = judge["sponsorCompany"]
    if "maxSubmissions" in data:
        cap = data["maxSubmissions"]
        if cap is not None and (isinstance(cap, bool) or not isinstance(cap, int) or cap < 1):
            return jsonify({"error": "maxSubmissions must be a positive integer or null"}), 400
        updates["maxSubmissions"] = cap
    if "assignedRounds" in data:
        updates["assignedRounds"] = validate_round_indices(hackathon, data["assignedRounds"])
    if "assignedProblemStatements" in data:
        updates["assignedProblemStatements"] = validate_problem_statement_ids(hackathon, data["assignedProblemStatements"])

    if not updates:
        return jsonify({"error": "No editable fields provided"}), 400

    collection("judge_assignments").update_one({"id": assignment_id}, {"$set": updates})
    updated = collection("judge_assignments").find_one({"id": assignment_id}, {"_id": 0})
    return jsonify({"message": "Judge assignment updated", "assignment": updated}), 200


@judging_bp.route("/judge-assignments/<assignment_id>", methods=["DELETE"])
@token_required
def remove_judge_assignment(assignment_id):
    assignment, hackathon, error = load_managed_assignment(assignment_id)
    if error:
        return error

    collection("judge_assignments").delete_one({"id": assignment_id})
    logger.info("Judge assignment %s removed from %s by %s", assignment_id, hackathon["hackCode"], g.user["email"])
    return jsonify({"message": "Judge assignment removed", "id": assignment_id}), 200


@judging_bp.route("/hackathons/<hack_code>/judges/<assignment_id>", methods=["DELETE"])
@token_required
def delete_judge(hack_code, assignment_id):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    assignment = collection("judge_assignments").find_one({"id": assignment_id, "hackCode": hack_code}, {"_id": 0})
    if not assignment:
        return jsonify({"error": "Judge assignment not found"}), 404

    email = assignment["judge"]["email"]
    try:
        scores_removed = collection("scores").delete_many({"hackCode": hack_code, "judgeEmail": email}).deleted_count
        assignments_removed = collection("judge_assignments").delete_many(
            {"hackCode": hack_code, "judge.email": email}
        ).deleted_count
        collection("hackathons").update_one({"hackCode": hack_code}, {"$pull": {"judges": email}})
    except Exception as e:
        logger.exception("Error while deleting judge %s from %s", email, hack_code)
        return jsonify({"error": "Failed to delete judge", "details": str(e)}), 500

    logger.info("Judge %s deleted from %s: %d assignments, %d scores", email, hack_code, assignments_removed, scores_removed)
    return jsonify({
        "message": f"Judge {email} removed",
        "deletedJudge": {
            "email": email,
            "assignmentsRemoved": assignments_removed,
            "scoresRemoved": scores_removed,
        },
    }), 200


@judging_bp.route("/judge-assignments/<assignment_id>/assign-teams", methods=["POST"])
@token_required
def assign_teams_to_judge(assignment_id):
    assignment, hackathon, error = load_managed_assignment(assignment_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    team_ids = validate_id_list(data.get("teamIds"), "teamIds")

    known = {t["id"] for t in collection("teams").find({"hackCode": hackathon["hackCode"], "id": {"$in": team_ids}}, {"id": 1})}
    unknown = [t for t in team_ids if t not in known]
    if unknown:
        return jsonify({"error": f"Unknown teams: {', '.join(unknown)}"}), 400

    collection("judge_assignments").update_one({"id": assignment_id}, {"$set": {"assignedTeams": team_ids}})
    message = "All teams unassigned" if not team_ids else f"{len(team_ids)} teams assigned"
    return jsonify({"message": message, "assignmentId": assignment_id, "assignedTeams": team_ids}), 200


@judging_bp.route("/judge-assignments/<assignment_id>/assign-rounds", methods=["POST"])
@token_required
def assign_rounds_to_judge(assignment_id):
    assignment, hackathon, error = load_managed_assignment(assignment_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    rounds = validate_round_indices(hackathon, data.get("roundIndices"))
    collection("judge_assignments").update_one({"id": assignment_id}, {"$set": {"assignedRounds": rounds}})
    return jsonify({"message": "Rounds assigned", "assignmentId": assignment_id, "assignedRounds": rounds}), 200


@judging_bp.route("/judge-assignments/<assignment_id>/assign-problem-statements", methods=["POST"])
@token_required
def assign_problem_statements_to_judge(assignment_id):
    assignment, hackathon, error = load_managed_assignment(assignment_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    ps_ids = validate_problem_statement_ids(hackathon, data.get("problemStatementIds"))
    collection("judge_assignments").update_one({"id": assignment_id}, {"$set": {"assignedProblemStatements": ps_ids}})
    return jsonify({
        "message": "Problem statements assigned",
        "assignmentId": assignment_id,
        "assignedProblemStatements": ps_ids,
    }), 200


# --- Distribution ---
@judging_bp.route("/hackathons/<hack_code>/<scope_type>/<index>/assignment-mode", methods=["POST"])
@token_required
def set_assignment_mode(hack_code, scope_type, index):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    mode = data.get("mode")
    if mode not in ASSIGNMENT_MODES:
        return jsonify({"error": f"mode must be one of {', '.join(ASSIGNMENT_MODES)}"}), 400

    key, _ = _resolve_scope(hackathon, scope_type, index)
    collection("hackathons").update_one({"hackCode": hack_code}, {"$set": {f"assignmentModes.{key}": mode}})
    logger.info("Assignment mode of %s %s set to %s", hack_code, key, mode)
    return jsonify({"message": "Assignment mode updated", "scope": key, "mode": mode}), 200


@judging_bp.route("/hackathons/<hack_code>/<scope_type>/<index>/auto-distribute", methods=["POST"])
@token_required
def auto_distribute_teams(hack_code, scope_type, index):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    key, submission_query = _resolve_scope(hackathon, scope_type, index)
    if hackathon.get("assignmentModes", {}).get(key) == "manual":
        return jsonify({"error": f"Assignment mode for {key} is manual"}), 400

    data = request.get_json(silent=True) or {}
    judges_per_submission = data.get("judgesPerSubmission", 1)
    max_per_judge = data.get("maxSubmissionsPerJudge")

    submissions = list(collection("submissions").find(submission_query, {"_id": 0}).sort("submittedAt", 1))
    scope_ids = [s["id"] for s in submissions]
    scope_set = set(scope_ids)

    eligible = list(collection("judge_assignments").find(_eligible_query(hackathon, scope_type, index), {"_id": 0}))
    judges = [
        {
            "id": a["id"],
            "email": a["judge"]["email"],
            "load": len([s for s in a.get("assignedSubmissions", []) if s not in scope_set]),
            "maxSubmissions": a.get("maxSubmissions"),
        }
        for a in eligible
    ]
    allocation, unassigned, partial = distribute_round_robin(scope_ids, judges, judges_per_submission, max_per_judge)

    assignments = collection("judge_assignments")
    if scope_ids:
        assignments.update_many(
            {"hackCode": hack_code, "assignedSubmissions": {"$in": scope_ids}},
            {"$pull": {"assignedSubmissions": {"$in": scope_ids}}},
        )
    distribution = []
    for judge in sorted(judges, key=lambda j: j["email"]):
        submission_ids = allocation[judge["id"]]
        if submission_ids:
            assignments.update_one(
                {"id": judge["id"]},
                {"$addToSet": {"assignedSubmissions": {"$each": submission_ids}}},
            )
            notify(judge["email"], f"{len(submission_ids)} submissions of '{hackathon['title']}' await your evaluation.",
                   "info", "/dashboard/judge-panel")
        distribution.append({
            "assignmentId": judge["id"],
            "judgeEmail": judge["email"],
            "submissionIds": submission_ids,
            "count": len(submission_ids),
        })

    logger.info("Auto-distributed %d submissions of %s %s among %d judges", len(scope_ids), hack_code, key, len(judges))
    return jsonify({
        "message": "Submissions distributed",
        "scope": key,
        "totalSubmissions": len(scope_ids),
        "distribution": distribution,
        "unassigned": unassigned,
        "partiallyAssigned": partial,
    }), 200


@judging_bp.route("/hackathons/<hack_code>/bulk-assign-submissions", methods=["POST"])
@token_required
def bulk_assign_submissions_to_evaluators(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    submission_ids = validate_id_list(data.get("submissionIds"), "submissionIds")
    evaluator_ids = validate_id_list(data.get("evaluatorIds"), "evaluatorIds")
    if not submission_ids or not evaluator_ids:
        return jsonify({"error": "submissionIds and evaluatorIds must be non-empty lists"}), 400

    known = {s["id"] for s in collection("submissions").find({"hackCode": hack_code, "id": {"$in": submission_ids}}, {"id": 1})}
    unknown = [s for s in submission_ids if s not in known]
    if unknown:
        return jsonify({"error": f"Unknown submissions: {', '.join(unknown)}"}), 400

    evaluators = list(collection("judge_assignments").find({"hackCode": hack_code, "id": {"$in": evaluator_ids}}, {"_id": 0}))
    if len(evaluators) != len(set(evaluator_ids)):
        return jsonify({"error": "One or more evaluators were not found"}), 400
    declined = [e["judge"]["email"] for e in evaluators if e["status"] == "declined"]
    if declined:
        return jsonify({"error": f"Evaluators declined the invitation: {', '.join(declined)}"}), 400

    for evaluator in evaluators:
        collection("judge_assignments").update_one(
            {"id": evaluator["id"]},
            {"$addToSet": {"assignedSubmissions": {"$each": submission_ids}}},
        )
        notify(evaluator["judge"]["email"], f"{len(submission_ids)} submissions of '{hackathon['title']}' were assigned to you.",
               "info", "/dashboard/judge-panel")

    logger.info("Bulk assigned %d submissions to %d evaluators in %s", len(submission_ids), len(evaluators), hack_code)
    return jsonify({
        "message": "Submissions assigned",
        "submissionIds": submission_ids,
        "evaluators": [e["id"] for e in evaluators],
    }), 200


# --- Overviews ---
@judging_bp.route("/hackathons/<hack_code>/evaluators", methods=["GET"])
@token_required
def get_all_evaluators(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    evaluators = []
    for assignment in collection("judge_assignments").find({"hackCode": hack_code}, {"_id": 0}).sort("createdAt", 1):
        held = [s["id"] for s in submissions_for_assignment(assignment)]
        evaluated = collection("scores").count_documents(
            {"judgeEmail": assignment["judge"]["email"], "submissionId": {"$in": held}}
        )
        assignment["totalAssigned"] = len(held)
        assignment["evaluated"] = evaluated
        assignment["pending"] = len(held) - evaluated
        evaluators.append(assignment)

    return jsonify({"hackCode": hack_code, "evaluators": evaluators, "total": len(evaluators)}), 200


def _available_judges(hackathon, problem_statement_id=None):
    judges = []
    query = {"hackCode": hackathon["hackCode"], "status": {"$in": ["pending", "accepted"]}}
    for assignment in collection("judge_assignments").find(query, {"_id": 0}).sort("judge.email", 1):
        covered = assignment.get("assignedProblemStatements") or []
        if problem_statement_id and covered and problem_statement_id not in covered:
            continue
        judges.append({
            "assignmentId": assignment["id"],
            "email": assignment["judge"]["email"],
            "name": assignment["judge"]["name"],
            "type": assignment["judge"]["type"],
            "status": assignment["status"],
            "currentLoad": _judge_load(assignment),
            "maxSubmissions": assignment.get("maxSubmissions"),
        })
    return judges


@judging_bp.route("/hackathons/<hack_code>/available-judges", methods=["GET"])
@token_required
def get_available_judges(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error
    judges = _available_judges(hackathon)
    return jsonify({"hackCode": hack_code, "judges": judges, "total": len(judges)}), 200


@judging_bp.route("/hackathons/<hack_code>/problem-statements/<problem_statement_id>/available-judges", methods=["GET"])
@token_required
def get_available_judges_for_problem_statement(hack_code, problem_statement_id):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error
    validate_problem_statement_ids(hackathon, [problem_statement_id])
    judges = _available_judges(hackathon, problem_statement_id)
    return jsonify({
        "hackCode": hack_code,
        "problemStatementId": problem_statement_id,
        "judges": judges,
        "total": len(judges),
    }), 200


@judging_bp.route("/hackathons/<hack_code>/assignment-overview", methods=["GET"])
@token_required
def get_assignment_overview(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    query = {"hackCode": hack_code}
    if request.args.get("roundIndex") is not None:
        try:
            query["roundIndex"] = int(request.args["roundIndex"])
        except ValueError:
            return jsonify({"error": "roundIndex must be an integer"}), 400

    submissions = list(collection("submissions").find(query, {"_id": 0}).sort("submittedAt", 1))
    assignments = list(collection("judge_assignments").find({"hackCode": hack_code}, {"_id": 0}))
    averages = averages_by_submission(hackathon, submissions)

    overview = []
    for submission in submissions:
        judges = sorted(
            a["judge"]["email"] for a in assignments
            if submission["id"] in a.get("assignedSubmissions", []) or submission["teamId"] in a.get("assignedTeams", [])
        )
        average, count = averages[submission["id"]]
        overview.append({
            "submissionId": submission["id"],
            "teamId": submission["teamId"],
            "teamName": submission.get("teamName"),
            "projectTitle": submission.get("projectTitle"),
            "roundIndex": submission.get("roundIndex"),
            "problemStatement": problem_statement_text(submission.get("problemStatement")) or None,
            "status": submission.get("status"),
            "assignedJudges": judges,
            "scoreCount": count,
            "averageScore": average,
        })

    return jsonify({
        "hackCode": hack_code,
        "submissions": overview,
        "totalSubmissions": len(overview),
        "unassigned": sum(1 for o in overview if not o["assignedJudges"]),
        "evaluated": sum(1 for o in overview if o["scoreCount"] > 0),
    }), 200


# --- Judge side ---
def _set_assignment_status(assignment, hackathon, status):
    updates = {"status": status, "respondedAt": now_iso()}
    if status == "declined":
        updates["assignedSubmissions"] = []
        updates["assignedTeams"] = []
    collection("judge_assignments").update_one({"id": assignment["id"]}, {"$set": updates})
    notify(
        hackathon["organizer"],
        f"{assignment['judge']['email']} {status} the judging invitation for '{hackathon['title']}'.",
        "info",
    )
    logger.info("Judge assignment %s is now %s", assignment["id"], status)
    return collection("judge_assignments").find_one({"id": assignment["id"]}, {"_id": 0})


@judging_bp.route("/judge-assignments/<assignment_id>/status", methods=["PATCH"])
@token_required
def update_judge_status(assignment_id):
    assignment, hackathon, error = load_assignment(assignment_id)
    if error:
        return error

    is_judge = assignment["judge"]["email"] == g.user["email"]
    if not is_judge and not is_hackathon_admin(g.user, hackathon):
        return jsonify({"error": "Not authorized to change this assignment"}), 403

    data = request.get_json(silent=True) or {}
    status = data.get("status")
    allowed = ("accepted", "declined") if is_judge and not is_hackathon_admin(g.user, hackathon) else ASSIGNMENT_STATUSES
    if status not in allowed:
        return jsonify({"error": f"status must be one of {', '.join(allowed)}"}), 400

    updated = _set_assignment_status(assignment, hackathon, status)
    return jsonify({"message": "Judge status updated", "assignment": updated}), 200


@judging_bp.route("/judge-assignments/<assignment_id>/respond", methods=["POST"])
@token_required
def respond_to_invitation(assignment_id):
    assignment, hackathon, error = load_assignment(assignment_id)
    if error:
        return error
    if assignment["judge"]["email"] != g.user["email"]:
        return jsonify({"error": "Only the invited judge can respond"}), 403
    if assignment["status"] != "pending":
        return jsonify({"error": f"Invitation already {assignment['status']}"}), 409

    data = request.get_json(silent=True) or {}
    response = data.get("response")
    if response not in ("accept", "decline"):
        return jsonify({"error": "response must be 'accept' or 'decline'"}), 400

    updated = _set_assignment_status(assignment, hackathon, "accepted" if response == "accept" else "declined")
    return jsonify({"message": f"Invitation {updated['status']}", "assignment": updated}), 200


def _my_assignment_views():
    email = g.user["email"]
    views = []
    for assignment in collection("judge_assignments").find({"judge.email": email}, {"_id": 0}).sort("createdAt", 1):
        hackathon = find_hackathon(assignment["hackCode"]) or {}
        submissions = submissions_for_assignment(assignment)
        my_scores = {
            s["submissionId"]: s
            for s in collection("scores").find(
                {"judgeEmail": email, "submissionId": {"$in": [x["id"] for x in submissions]}}, {"_id": 0}
            )
        }
        for submission in submissions:
            score = my_scores.get(submission["id"])
            submission["scoredByMe"] = score is not None
            submission["myScore"] = score
            submission["criteria"] = criteria_for_round(hackathon, submission.get("roundIndex", 0))
        assignment["hackathon"] = {"hackCode": assignment["hackCode"], "title": hackathon.get("title")}
        assignment["submissions"] = submissions
        views.append((assignment, my_scores))
    return views


@judging_bp.route("/my-assignments", methods=["GET"])
@token_required
def get_my_assigned_submissions():
    assignments = [assignment for assignment, _ in _my_assignment_views()]
    return jsonify({"assignments": assignments, "total": len(assignments)}), 200


@judging_bp.route("/judge/dashboard", methods=["GET"])
@token_required
def get_judge_dashboard():
    hackathons = []
    totals = {"assigned": 0, "evaluated": 0, "pending": 0}
    for assignment, my_scores in _my_assignment_views():
        assigned = len(assignment["submissions"])
        evaluated = sum(1 for s in assignment["submissions"] if s["scoredByMe"])
        given = [evaluation_average(s) for s in my_scores.values()]
        given = [v for v in given if v is not None]
        hackathons.append({
            "assignmentId": assignment["id"],
            "hackCode": assignment["hackCode"],
            "title": assignment["hackathon"]["title"],
            "status": assignment["status"],
            "assigned": assigned,
            "evaluated": evaluated,
            "pending": assigned - evaluated,
            "averageScoreGiven": round(sum(given) / len(given), 2) if given else None,
        })
        totals["assigned"] += assigned
        totals["evaluated"] += evaluated
        totals["pending"] += assigned - evaluated

    return jsonify({
        "judge": {"email": g.user["email"], "name": g.user.get("name")},
        "hackathons": hackathons,
        "totals": totals,
        "pendingInvitations": sum(1 for h in hackathons if h["status"] == "pending"),
    }), 200
