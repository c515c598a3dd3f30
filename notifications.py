import logging
from datetime import datetime, timezone

from flask import Blueprint, g, jsonify, request
from pymongo import DESCENDING

from auth import is_hackathon_admin, token_required
from db import collection, find_hackathon, new_id, now_iso, parse_datetime

logger = logging.getLogger(__name__)

notifications_bp = Blueprint("notifications", __name__)
announcements_bp = Blueprint("announcements", __name__)

NOTIFICATION_TYPES = ("info", "success", "warning", "error", "invite", "result")
MAX_MESSAGE_LENGTH = 500


def notify(recipient_email, message, type_="info", link=None):
    """Store an in-app notification for one user."""
    notification = {
        "id": new_id(),
        "recipientEmail": (recipient_email or "").strip().lower(),
        "message": message,
        "type": type_,
        "link": link,
        "read": False,
        "createdAt": now_iso(),
    }
    collection("notifications").insert_one(dict(notification))
    return notification


def validate_notification_input(data):
    """Returns an error message, or None when the payload is acceptable."""
    recipient = (data.get("recipientEmail") or "").strip()
    message = (data.get("message") or "").strip()
    type_ = data.get("type", "info")

    if not recipient or "@" not in recipient:
        return "A valid recipientEmail is required"
    if not message:
        return "message is required"
    if len(message) > MAX_MESSAGE_LENGTH:
        return f"message must be at most {MAX_MESSAGE_LENGTH} characters"
    if type_ not in NOTIFICATION_TYPES:
        return f"type must be one of {', '.join(NOTIFICATION_TYPES)}"
    return None


@notifications_bp.route("", methods=["POST"])
@token_required
def create_notification():
    data = request.get_json(silent=True) or {}
    error = validate_notification_input(data)
    if error:
        return jsonify({"error": error}), 400

    notification = notify(
        data["recipientEmail"],
        data["message"].strip(),
        data.get("type", "info"),
        data.get("link"),
    )
    logger.info("Notification %s created by %s for %s", notification["id"], g.user["email"], notification["recipientEmail"])
    return jsonify({"message": "Notification created", "notification": notification}), 201


@notifications_bp.route("/me", methods=["GET"])
@token_required
def get_my_notifications():
    query = {"recipientEmail": g.user["email"]}
    if request.args.get("unreadOnly", "false").lower() == "true":
        query["read"] = False

    notifications = list(
        collection("notifications").find(query, {"_id": 0}).sort("createdAt", DESCENDING)
    )
    unread_count = collection("notifications").count_documents({"recipientEmail": g.user["email"], "read": False})
    return jsonify({"notifications": notifications, "unreadCount": unread_count}), 200


def _set_read(notification_id, read):
    result = collection("notifications").update_one(
        {"id": notification_id, "recipientEmail": g.user["email"]},
        {"$set": {"read": read}},
    )
    if result.matched_count == 0:
        return jsonify({"error": "Notification not found"}), 404
    return jsonify({"message": "Notification updated", "id": notification_id, "read": read}), 200


@notifications_bp.route("/all/read", methods=["PUT"])
@token_required
def mark_all_as_read():
    result = collection("notifications").update_many(
        {"recipientEmail": g.user["email"], "read": False},
        {"$set": {"read": True}},
    )
    return jsonify({"message": "All notifications marked as read", "updated": result.modified_count}), 200


@notifications_bp.route("/<notification_id>/read", methods=["PUT"])
@token_required
def mark_as_read(notification_id):
    return _set_read(notification_id, True)


@notifications_bp.route("/<notification_id>/unread", methods=["PUT"])
@token_required
def mark_as_unread(notification_id):
    return _set_read(notification_id, False)


@notifications_bp.route("/<notification_id>", methods=["DELETE"])
@token_required
def delete_notification(notification_id):
    result = collection("notifications").delete_one({"id": notification_id, "recipientEmail": g.user["email"]})
    if result.deleted_count == 0:
        return jsonify({"error": "Notification not found"}), 404
    return jsonify({"message": "Notification deleted", "id": notification_id}), 200


# --- Announcements ---
@announcements_bp.route("", methods=["POST"])
@token_required
def create_announcement():
    data = request.get_json(silent=True) or {}
    hack_code = data.get("hackCode")
    title = data.get("title")
    content = data.get("content")
    expiry_date = data.get("expiryDate")

    if not hack_code or not title or not content or not expiry_date:
        return jsonify({"error": "hackCode, title, content and expiryDate are required"}), 400

    try:
        expiry_datetime = parse_datetime(expiry_date)
    except ValueError:
        return jsonify({"error": "Invalid expiry date format"}), 400
    if expiry_datetime <= datetime.now(timezone.utc):
        return jsonify({"error": "Expiry date must be in the future"}), 400

    hackathon = find_hackathon(hack_code)
    if not hackathon:
        return jsonify({"error": "Hackathon not found"}), 404
    if not is_hackathon_admin(g.user, hackathon):
        return jsonify({"error": "Not authorized. Only admins can post announcements."}), 403

    announcement = {
        "id": new_id(),
        "title": title,
        "content": content,
        "createdBy": g.user["email"],
        "createdAt": now_iso(),
        "expiryDate": expiry_date,
    }
    collection("hackathons").update_one({"hackCode": hack_code}, {"$push": {"announcements": announcement}})

    logger.info("Announcement %s posted to %s by %s", announcement["id"], hack_code, g.user["email"])
    return jsonify({"message": "Announcement created successfully", "announcement": announcement}), 201


@announcements_bp.route("", methods=["GET"])
def get_announcements():
    hack_code = request.args.get("hackCode")
    include_expired = request.args.get("includeExpired", "false").lower() == "true"

    if not hack_code:
        return jsonify({"error": "hackCode is required"}), 400

    hackathon = find_hackathon(hack_code, {"announcements": 1, "_id": 0})
    if not hackathon:
        return jsonify({"error": "Hackathon not found"}), 404

    announcements = hackathon.get("announcements", [])

    if not include_expired:
        current_time = datetime.now(timezone.utc)
        active_announcements = []
        for announcement in announcements:
            try:
                if parse_datetime(announcement["expiryDate"]) > current_time:
                    active_announcements.append(announcement)
            except (ValueError, KeyError):
                continue
        announcements = active_announcements

    return jsonify({"announcements": announcements}), 200
