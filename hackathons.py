import logging
import re

from flask import Blueprint, Response, current_app, g, jsonify, request
from werkzeug.utils import secure_filename

from auth import is_hackathon_admin, is_platform_admin, optional_user, roles_required, token_required
from db import collection, find_hackathon, new_hack_code, new_id, now_iso, now_utc, parse_datetime
from errors import ValidationError
from notifications import notify
from scoring import build_csv, problem_statement_text, team_progress, validate_criteria

logger = logging.getLogger(__name__)

hackathons_bp = Blueprint("hackathons", __name__)

CATEGORIES = (
    "Artificial Intelligence", "Blockchain", "Cybersecurity",
    "Fintech", "Gaming", "Healthcare", "Sustainability",
    "Mobile Development", "Web Development", "IoT",
    "Data Science", "DevOps", "EdTech",
)
DIFFICULTY_LEVELS = ("Beginner", "Intermediate", "Advanced")
MODES = ("online", "offline", "hybrid")
APPROVAL_STATUSES = ("pending", "approved", "rejected")
ROUND_TYPES = ("ppt", "project", "both")

REQUIRED_FIELDS = ("title", "category", "difficultyLevel", "startDate", "endDate", "registrationDeadline")
DATE_FIELDS = ("startDate", "endDate", "registrationDeadline", "submissionDeadline")
LIST_FIELDS = ("requirements", "perks", "tags", "problemStatementTypes")
EMAIL_LIST_FIELDS = ("judges", "mentors")
EDITABLE_FIELDS = (
    "title", "description", "images", "category", "difficultyLevel", "location",
    "startDate", "endDate", "registrationDeadline", "submissionDeadline",
    "maxParticipants", "problemStatements", "problemStatementTypes", "rounds",
    "requirements", "perks", "tags", "judges", "mentors", "mode", "prizePool",
)


# --- validation ---
def normalize_problem_statements(items):
    if not isinstance(items, list):
        raise ValidationError("problemStatements must be a list")
    normalized = []
    for item in items:
        if isinstance(item, str):
            statement, ps_type, ps_id = item, None, None
        elif isinstance(item, dict):
            statement, ps_type, ps_id = item.get("statement"), item.get("type"), item.get("id")
        else:
            raise ValidationError("problem statements must be strings or objects")
        statement = (statement or "").strip()
        if not statement:
            continue
        normalized.append({"id": ps_id or new_id(), "statement": statement, "type": ps_type})
    return normalized


def normalize_rounds(rounds):
    if not isinstance(rounds, list):
        raise ValidationError("rounds must be a list")
    normalized = []
    for index, item in enumerate(rounds):
        if not isinstance(item, dict):
            raise ValidationError("each round must be an object")
        round_doc = {
            "name": item.get("name") or f"Round {index + 1}",
            "description": item.get("description", ""),
            "startDate": item.get("startDate"),
            "endDate": item.get("endDate"),
            "type": item.get("type", "project"),
        }
        if round_doc["type"] not in ROUND_TYPES:
            raise ValidationError(f"round type must be one of {', '.join(ROUND_TYPES)}")
        for field in ("startDate", "endDate"):
            if round_doc[field]:
                try:
                    parse_datetime(round_doc[field])
                except ValueError:
                    raise ValidationError(f"Invalid {field} in round {index + 1}")
        if round_doc["startDate"] and round_doc["endDate"] and \
                parse_datetime(round_doc["endDate"]) < parse_datetime(round_doc["startDate"]):
            raise ValidationError(f"Round {index + 1} ends before it starts")
        if item.get("judgingCriteria"):
            round_doc["judgingCriteria"] = validate_criteria(item["judgingCriteria"])
        normalized.append(round_doc)
    return normalized


def validate_hackathon(data, existing=None):
    """Return the cleaned document fields. existing is set for updates."""
    if existing is None:
        missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cleaned = {k: data[k] for k in EDITABLE_FIELDS if k in data}

    if "title" in cleaned and not (cleaned["title"] or "").strip():
        raise ValidationError("title cannot be empty")
    if "category" in cleaned and cleaned["category"] not in CATEGORIES:
        raise ValidationError(f"category must be one of {', '.join(CATEGORIES)}")
    if "difficultyLevel" in cleaned and cleaned["difficultyLevel"] not in DIFFICULTY_LEVELS:
        raise ValidationError(f"difficultyLevel must be one of {', '.join(DIFFICULTY_LEVELS)}")
    if "mode" in cleaned and cleaned["mode"] not in MODES:
        raise ValidationError(f"mode must be one of {', '.join(MODES)}")

    dates = {}
    for field in DATE_FIELDS:
        value = cleaned.get(field, (existing or {}).get(field))
        if value:
            try:
                dates[field] = parse_datetime(value)
            except ValueError:
                raise ValidationError(f"Invalid {field}")
    if "startDate" in dates and "endDate" in dates and dates["endDate"] < dates["startDate"]:
        raise ValidationError("endDate cannot be before startDate")
    if "registrationDeadline" in dates and "endDate" in dates and dates["registrationDeadline"] > dates["endDate"]:
        raise ValidationError("registrationDeadline cannot be after endDate")

    if "maxParticipants" in cleaned:
        max_participants = cleaned["maxParticipants"]
        if isinstance(max_participants, bool) or not isinstance(max_participants, int) or max_participants < 1:
            raise ValidationError("maxParticipants must be a positive integer")

    for field in LIST_FIELDS:
        if field in cleaned and not isinstance(cleaned[field], list):
            raise ValidationError(f"{field} must be a list")
    for field in EMAIL_LIST_FIELDS:
        if field in cleaned:
            if not isinstance(cleaned[field], list):
                raise ValidationError(f"{field} must be a list of emails")
            cleaned[field] = sorted({(e or "").strip().lower() for e in cleaned[field] if e})

    if "problemStatements" in cleaned:
        cleaned["problemStatements"] = normalize_problem_statements(cleaned["problemStatements"])
    if "rounds" in cleaned:
        cleaned["rounds"] = normalize_rounds(cleaned["rounds"])
    if "prizePool" in cleaned:
        prize_pool = cleaned["prizePool"] or {}
        if not isinstance(prize_pool, dict):
            raise ValidationError("prizePool must be an object")
        cleaned["prizePool"] = {
            "amount": prize_pool.get("amount"),
            "currency": prize_pool.get("currency", "USD"),
            "breakdown": prize_pool.get("breakdown", ""),
        }
    return cleaned


def derive_status(hackathon, now=None):
    now = now or now_utc()
    try:
        start = parse_datetime(hackathon["startDate"])
        end = parse_datetime(hackathon["endDate"])
    except (KeyError, TypeError, ValueError):
        return hackathon.get("status", "upcoming")
    if now < start:
        return "upcoming"
    if now > end:
        return "ended"
    return "ongoing"


def serialize_hackathon(hackathon):
    hackathon = dict(hackathon)
    hackathon.pop("_id", None)
    hackathon["status"] = derive_status(hackathon)
    return hackathon


def load_managed_hackathon(hack_code):
    """(hackathon, None) when the caller may manage it, else (None, error response)."""
    hackathon = find_hackathon(hack_code)
    if not hackathon:
        return None, (jsonify({"error": "Hackathon not found"}), 404)
    if not is_hackathon_admin(g.user, hackathon):
        return None, (jsonify({"error": "Not authorized. Only admins can manage this hackathon."}), 403)
    return hackathon, None


# --- Routes ---
@hackathons_bp.route("", methods=["POST"])
@token_required
@roles_required("organizer", "admin")
def create_hackathon():
    data = request.get_json(silent=True) or {}
    user_email = g.user["email"]

    logger.debug("Received hackathon create request from user=%s, data=%s", user_email, data)

    hackathon_doc = validate_hackathon(data)
    hackathon_doc.setdefault("maxParticipants", current_app.config["DEFAULT_MAX_PARTICIPANTS"])
    hackathon_doc.setdefault("mode", "online")
    hackathon_doc.setdefault("problemStatements", [])
    hackathon_doc.setdefault("rounds", [])
    hackathon_doc.setdefault("judges", [])
    hackathon_doc.setdefault("mentors", [])
    hackathon_doc.update({
        "hackCode": new_hack_code(),
        "organizer": user_email,
        "admins": [user_email],
        "participants": [],
        "approvalStatus": "pending",
        "assignmentModes": {},
        "announcements": [],
        "createdAt": now_iso(),
    })

    try:
        collection("hackathons").insert_one(hackathon_doc)
    except Exception as e:
        logger.exception("Error while inserting hackathon into MongoDB")
        return jsonify({"error": "MongoDB insert failed", "details": str(e)}), 500

    logger.info("Hackathon created successfully: hackCode=%s by %s", hackathon_doc["hackCode"], user_email)
    return jsonify({
        "message": "Hackathon created",
        "hackCode": hackathon_doc["hackCode"],
        "hackathon": serialize_hackathon(hackathon_doc),
    }), 201


@hackathons_bp.route("", methods=["GET"])
def get_all_hackathons():
    query = {"approvalStatus": "approved"}

    # platform admins may look at pending/rejected ones too
    approval = request.args.get("approvalStatus")
    if approval:
        if not is_platform_admin(optional_user()):
            return jsonify({"error": "Only platform admins can filter by approvalStatus"}), 403
        if approval not in APPROVAL_STATUSES and approval != "all":
            return jsonify({"error": f"approvalStatus must be one of {', '.join(APPROVAL_STATUSES)} or all"}), 400
        if approval == "all":
            query.pop("approvalStatus")
        else:
            query["approvalStatus"] = approval

    for field in ("category", "mode", "difficultyLevel"):
        if request.args.get(field):
            query[field] = request.args[field]
    search = request.args.get("search")
    if search:
        query["title"] = {"$regex": re.escape(search), "$options": "i"}

    hackathons = [serialize_hackathon(h) for h in collection("hackathons").find(query, {"_id": 0})]

    status = request.args.get("status")
    if status:
        hackathons = [h for h in hackathons if h["status"] == status]

    return jsonify({"hackathons": hackathons, "total": len(hackathons)}), 200


@hackathons_bp.route("/<hack_code>", methods=["GET"])
def get_hackathon(hack_code):
    hackathon = find_hackathon(hack_code)
    if not hackathon:
        return jsonify({"error": "Hackathon not found"}), 404
    return jsonify(serialize_hackathon(hackathon)), 200


@hackathons_bp.route("/<hack_code>", methods=["PUT"])
@token_required
def update_hackathon(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    update_fields = validate_hackathon(data, existing=hackathon)
    if not update_fields:
        return jsonify({"error": "No editable fields provided"}), 400

    collection("hackathons").update_one({"hackCode": hack_code}, {"$set": update_fields})
    logger.info("Hackathon %s updated by %s: %s", hack_code, g.user["email"], sorted(update_fields))
    return jsonify({
        "message": "Hackathon updated successfully",
        "hackathon": serialize_hackathon(find_hackathon(hack_code)),
    }), 200


@hackathons_bp.route("/<hack_code>", methods=["DELETE"])
@token_required
def delete_hackathon(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    try:
        removed = {
            "teams": collection("teams").delete_many({"hackCode": hack_code}).deleted_count,
            "submissions": collection("submissions").delete_many({"hackCode": hack_code}).deleted_count,
            "scores": collection("scores").delete_many({"hackCode": hack_code}).deleted_count,
            "judgeAssignments": collection("judge_assignments").delete_many({"hackCode": hack_code}).deleted_count,
        }
        collection("users").update_many({}, {"$pull": {"hackathonsRegistered": {"hackCode": hack_code}}})
        collection("hackathons").delete_one({"hackCode": hack_code})
    except Exception as e:
        logger.exception("Error while deleting hackathon %s", hack_code)
        return jsonify({"error": "Failed to delete hackathon", "details": str(e)}), 500

    logger.info("Hackathon %s deleted by %s (%s)", hack_code, g.user["email"], removed)
    return jsonify({"message": "Hackathon deleted", "hackCode": hack_code, "removed": removed}), 200


@hackathons_bp.route("/<hack_code>/approval", methods=["PATCH"])
@token_required
@roles_required("admin")
def update_approval_status(hack_code):
    data = request.get_json(silent=True) or {}
    approval_status = data.get("approvalStatus")
    if approval_status not in APPROVAL_STATUSES:
        return jsonify({"error": f"approvalStatus must be one of {', '.join(APPROVAL_STATUSES)}"}), 400

    hackathon = find_hackathon(hack_code)
    if not hackathon:
        return jsonify({"error": "Hackathon not found"}), 404

    collection("hackathons").update_one({"hackCode": hack_code}, {"$set": {"approvalStatus": approval_status}})
    notify(
        hackathon["organizer"],
        f"Your hackathon '{hackathon['title']}' was {approval_status}.",
        "success" if approval_status == "approved" else "info",
        f"/hackathons/{hack_code}",
    )
    logger.info("Hackathon %s marked %s by %s", hack_code, approval_status, g.user["email"])
    return jsonify({"message": f"Hackathon {approval_status}", "hackCode": hack_code, "approvalStatus": approval_status}), 200


@hackathons_bp.route("/<hack_code>/admins", methods=["POST"])
@token_required
def add_admin(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    new_admin = (data.get("adminEmail") or "").lower().strip()
    if not new_admin or "@" not in new_admin:
        return jsonify({"error": "adminEmail is required"}), 400

    collection("hackathons").update_one({"hackCode": hack_code}, {"$addToSet": {"admins": new_admin}})
    notify(new_admin, f"You are now an organizer of '{hackathon['title']}'.", "info", f"/hackathons/{hack_code}")
    return jsonify({"message": f"{new_admin} added as admin"}), 200


@hackathons_bp.route("/<hack_code>/admins/<admin_email>", methods=["DELETE"])
@token_required
def remove_admin(hack_code, admin_email):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    admin_email = admin_email.lower().strip()
    if admin_email == g.user["email"]:
        return jsonify({"error": "You cannot remove yourself"}), 400
    if admin_email not in hackathon.get("admins", []):
        return jsonify({"error": f"{admin_email} is not an admin of this hackathon"}), 404

    collection("hackathons").update_one({"hackCode": hack_code}, {"$pull": {"admins": admin_email}})
    return jsonify({"message": f"{admin_email} removed from admins"}), 200


def _teams_with_progress(hackathon, round_filter=None, ps_filter=None):
    hack_code = hackathon["hackCode"]
    rounds_count = len(hackathon.get("rounds", []))
    submissions = list(collection("submissions").find({"hackCode": hack_code}, {"_id": 0}))
    teams = list(collection("teams").find({"hackCode": hack_code}, {"_id": 0}).sort("createdAt", 1))

    results = []
    for team in teams:
        team_submissions = [s for s in submissions if s["teamId"] == team["id"]]
        if round_filter is not None and not any(s.get("roundIndex") == round_filter for s in team_submissions):
            continue
        if ps_filter and not any(problem_statement_text(s.get("problemStatement")) == ps_filter for s in team_submissions):
            continue
        team["progress"] = team_progress(team["id"], submissions, rounds_count)
        team["submissionCount"] = len(team_submissions)
        results.append(team)
    return results


def parse_filters():
    round_param = request.args.get("round", "All")
    ps_param = request.args.get("problemStatement", "All")
    round_filter = None
    if round_param != "All":
        try:
            round_filter = int(round_param)
        except ValueError:
            raise ValidationError("round must be 'All' or a round index")
    ps_filter = None if ps_param == "All" else ps_param
    return round_param, ps_param, round_filter, ps_filter


@hackathons_bp.route("/<hack_code>/teams", methods=["GET"])
@token_required
def list_teams(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    _, _, round_filter, ps_filter = parse_filters()
    teams = _teams_with_progress(hackathon, round_filter, ps_filter)
    return jsonify({"hackCode": hack_code, "teams": teams, "total": len(teams)}), 200


@hackathons_bp.route("/<hack_code>/teams/export", methods=["GET"])
@token_required
def export_teams(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    round_param, ps_param, round_filter, ps_filter = parse_filters()
    teams = _teams_with_progress(hackathon, round_filter, ps_filter)
    rows = [
        [idx + 1, team["name"], team.get("leader", {}).get("name") or "N/A", team.get("status", "active").capitalize(), team["progress"]]
        for idx, team in enumerate(teams)
    ]
    content = build_csv(["#", "Team", "Leader", "Status", "Progress"], rows)
    filename = secure_filename(f"teams_{round_param}_{ps_param}.csv") or "teams.csv"
    return Response(
        content,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"{filename}\""},
    )
