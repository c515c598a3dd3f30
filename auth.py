import logging
from datetime import timedelta
from functools import wraps

import jwt
from flask import Blueprint, current_app, g, jsonify, request
from pymongo.errors import DuplicateKeyError
from werkzeug.security import check_password_hash, generate_password_hash

from db import collection, find_user_by_email, new_id, now_iso, now_utc

logger = logging.getLogger(__name__)

users_bp = Blueprint("users", __name__)

ROLES = ("participant", "organizer", "judge", "admin")
SELF_ASSIGNABLE_ROLES = ("participant", "organizer", "judge")

HACKATHON_TYPES = (
    "web-development", "mobile-app", "ai-ml", "blockchain", "iot", "game-dev",
    "design", "social-impact", "fintech", "healthtech", "edtech", "other",
)
TEAM_SIZE_PREFERENCES = ("solo", "2-3", "4-5", "6+", "any")
PROFILE_FIELDS = ("name", "bio", "domain", "courseDuration", "currentYear", "yearsOfExperience")

_DASHBOARD_ROUTES = {
    "admin": "/admin",
    "organizer": "/dashboard/organizer-tools",
    "judge": "/dashboard/judge-panel",
}


# --- Auth helpers ---
def create_token(user):
    payload = {
        "user_id": user["id"],
        "email": user["email"],
        "role": user.get("role", "participant"),
        "exp": now_utc() + timedelta(hours=current_app.config["TOKEN_TTL_HOURS"]),
    }
    return jwt.encode(payload, current_app.config["SECRET_KEY"], algorithm="HS256")


def decode_token(token):
    return jwt.decode(token, current_app.config["SECRET_KEY"], algorithms=["HS256"])


def token_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return jsonify({"error": "Missing or invalid Authorization header"}), 401
        token = auth_header.split(" ", 1)[1].strip()
        try:
            claims = decode_token(token)
        except jwt.ExpiredSignatureError:
            return jsonify({"error": "Token expired"}), 401
        except jwt.InvalidTokenError:
            return jsonify({"error": "Invalid token"}), 401

        user = collection("users").find_one({"id": claims.get("user_id")}, {"_id": 0})
        if not user:
            return jsonify({"error": "User no longer exists"}), 401
        g.user = user
        return f(*args, **kwargs)
    return wrapper


def optional_user():
    """The caller's user when a valid bearer token is present, otherwise None."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    try:
        claims = decode_token(auth_header.split(" ", 1)[1].strip())
    except jwt.InvalidTokenError:
        return None
    return collection("users").find_one({"id": claims.get("user_id")}, {"_id": 0})


def roles_required(*roles):
    """Use below @token_required."""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            if g.user.get("role") not in roles:
                return jsonify({"error": "Not authorized for this action"}), 403
            return f(*args, **kwargs)
        return wrapper
    return decorator


def is_platform_admin(user):
    return bool(user) and user.get("role") == "admin"


def is_hackathon_admin(user, hackathon):
    if not user or not hackathon:
        return False
    return is_platform_admin(user) or user["email"] in hackathon.get("admins", [])


def dashboard_route_for(user):
    if not user or not user.get("role"):
        return "/dashboard/profile"
    return _DASHBOARD_ROUTES.get(user["role"], "/dashboard/profile")


def needs_registration(user):
    return not user or not user.get("profileCompleted")


def public_user(user):
    return {k: v for k, v in user.items() if k not in ("passwordHash", "_id")}


def _session_payload(user, message):
    return {
        "message": message,
        "token": create_token(user),
        "user": public_user(user),
        "dashboardRoute": dashboard_route_for(user),
        "needsRegistration": needs_registration(user),
    }


def ensure_user(email, name=None):
    """Return the user for email, creating a stub participant account if missing."""
    email = (email or "").strip().lower()
    user = find_user_by_email(email)
    if user:
        return user
    user = {
        "id": new_id(),
        "email": email,
        "name": name or email.split("@")[0],
        "role": "participant",
        "passwordHash": None,
        "profileCompleted": False,
        "hackathonsRegistered": [],
        "createdAt": now_iso(),
    }
    collection("users").insert_one(dict(user))
    logger.info("Created stub user for %s", email)
    return user


# --- Routes ---
@users_bp.route("/signup", methods=["POST"])
def signup():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    role = (data.get("role") or "participant").strip().lower()

    if not email or not password:
        return jsonify({"error": "Email and password required"}), 400
    if "@" not in email:
        return jsonify({"error": "Invalid email"}), 400
    if len(password) < current_app.config["MIN_PASSWORD_LENGTH"]:
        return jsonify({"error": f"Password must be at least {current_app.config['MIN_PASSWORD_LENGTH']} characters"}), 400
    if role not in SELF_ASSIGNABLE_ROLES:
        return jsonify({"error": f"Role must be one of {', '.join(SELF_ASSIGNABLE_ROLES)}"}), 400

    existing = find_user_by_email(email)
    if existing and existing.get("passwordHash"):
        return jsonify({"error": "User already exists"}), 409

    hashed = generate_password_hash(password)
    users = collection("users")
    try:
        if existing:
            # stub account created by a team invite; claim it
            users.update_one(
                {"email": email},
                {"$set": {"passwordHash": hashed, "role": role, "name": data.get("name") or existing.get("name")}},
            )
            user = find_user_by_email(email)
        else:
            user = {
                "id": new_id(),
                "email": email,
                "name": data.get("name") or email.split("@")[0],
                "role": role,
                "passwordHash": hashed,
                "profileCompleted": False,
                "hackathonsRegistered": [],
                "createdAt": now_iso(),
            }
            users.insert_one(dict(user))
    except DuplicateKeyError:
        return jsonify({"error": "User already exists"}), 409
    except Exception as e:
        logger.exception("Error while creating user %s", email)
        return jsonify({"error": "Server error", "details": str(e)}), 500

    logger.info("User signed up: %s (%s)", email, role)
    return jsonify(_session_payload(user, "Signup successful")), 201


@users_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify({"error": "Email and password required"}), 400

    user = find_user_by_email(email)
    if not user or not user.get("passwordHash") or not check_password_hash(user["passwordHash"], password):
        return jsonify({"error": "Invalid credentials"}), 401

    return jsonify(_session_payload(user, "Login successful")), 200


@users_bp.route("/me", methods=["GET"])
@token_required
def me():
    return jsonify({
        "user": public_user(g.user),
        "dashboardRoute": dashboard_route_for(g.user),
        "needsRegistration": needs_registration(g.user),
    }), 200


@users_bp.route("/me", methods=["PUT"])
@token_required
def update_profile():
    data = request.get_json(silent=True) or {}
    updates = {field: data[field] for field in PROFILE_FIELDS if field in data}

    if "preferredHackathonTypes" in data:
        types = data.get("preferredHackathonTypes") or []
        if not isinstance(types, list) or any(t not in HACKATHON_TYPES for t in types):
            return jsonify({"error": f"preferredHackathonTypes must be a list of {', '.join(HACKATHON_TYPES)}"}), 400
        updates["preferredHackathonTypes"] = types

    if "teamSizePreference" in data:
        if data["teamSizePreference"] not in TEAM_SIZE_PREFERENCES:
            return jsonify({"error": f"teamSizePreference must be one of {', '.join(TEAM_SIZE_PREFERENCES)}"}), 400
        updates["teamSizePreference"] = data["teamSizePreference"]

    if not updates:
        return jsonify({"error": "No profile fields provided"}), 400

    updates["profileCompleted"] = True
    collection("users").update_one({"id": g.user["id"]}, {"$set": updates})
    user = collection("users").find_one({"id": g.user["id"]}, {"_id": 0})
    return jsonify({
        "message": "Profile updated",
        "user": public_user(user),
        "dashboardRoute": dashboard_route_for(user),
        "needsRegistration": needs_registration(user),
    }), 200


@users_bp.route("/<user_id>/role", methods=["PATCH"])
@token_required
@roles_required("admin")
def change_role(user_id):
    data = request.get_json(silent=True) or {}
    role = (data.get("role") or "").strip().lower()
    if role not in ROLES:
        return jsonify({"error": f"Role must be one of {', '.join(ROLES)}"}), 400

    result = collection("users").update_one({"id": user_id}, {"$set": {"role": role}})
    if result.matched_count == 0:
        return jsonify({"error": "User not found"}), 404

    logger.info("Role of user %s set to %s by %s", user_id, role, g.user["email"])
    return jsonify({"message": "Role updated", "userId": user_id, "role": role}), 200
