import logging

from flask import Blueprint, g, jsonify

from auth import token_required
from db import collection, now_iso

logger = logging.getLogger(__name__)

badges_bp = Blueprint("badges", __name__)

RARITY_ORDER = ("common", "uncommon", "rare", "epic", "legendary")

BADGES = (
    {"type": "first-registration", "name": "First Steps", "rarity": "common",
     "description": "Registered for your first hackathon"},
    {"type": "first-submission", "name": "Shipped It", "rarity": "common",
     "description": "Your team made its first submission"},
    {"type": "team-player", "name": "Team Player", "rarity": "uncommon",
     "description": "Registered for three hackathons"},
    {"type": "judge", "name": "Judge", "rarity": "uncommon",
     "description": "Evaluated a submission"},
    {"type": "finalist", "name": "Finalist", "rarity": "rare",
     "description": "A submission of your team was shortlisted"},
    {"type": "organizer", "name": "Organizer", "rarity": "rare",
     "description": "Organized an approved hackathon"},
    {"type": "champion", "name": "Champion", "rarity": "epic",
     "description": "Your team won a hackathon"},
    {"type": "serial-winner", "name": "Serial Winner", "rarity": "legendary",
     "description": "Won three different hackathons"},
)


def _team_ids_of(email):
    teams = collection("teams").find({"$or": [{"leader.email": email}, {"members.email": email}]}, {"_id": 0, "id": 1})
    return [t["id"] for t in teams]


def earned_badge_types(user):
    """Badge types whose rule the user currently satisfies."""
    email = user["email"]
    team_ids = _team_ids_of(email)
    submissions = collection("submissions")
    registered = len({r.get("hackCode") for r in user.get("hackathonsRegistered", [])})

    earned = set()
    if registered >= 1:
        earned.add("first-registration")
    if registered >= 3:
        earned.add("team-player")
    if team_ids and submissions.count_documents({"teamId": {"$in": team_ids}}):
        earned.add("first-submission")
    if collection("scores").count_documents({"judgeEmail": email}):
        earned.add("judge")
    # a winning submission was shortlisted on the way
    if team_ids and submissions.count_documents({"teamId": {"$in": team_ids}, "status": {"$in": ["shortlisted", "winner"]}}):
        earned.add("finalist")
    won = {s["hackCode"] for s in submissions.find({"teamId": {"$in": team_ids}, "status": "winner"}, {"hackCode": 1})} \
        if team_ids else set()
    if won:
        earned.add("champion")
    if len(won) >= 3:
        earned.add("serial-winner")
    if collection("hackathons").count_documents({"organizer": email, "approvalStatus": "approved"}):
        earned.add("organizer")
    return earned


def unlocked_badges(user_id):
    return {b["badgeType"]: b for b in collection("user_badges").find({"userId": user_id}, {"_id": 0})}


def badges_with_state(user_id):
    unlocked = unlocked_badges(user_id)
    return [
        dict(badge, isUnlocked=badge["type"] in unlocked, unlockedAt=unlocked.get(badge["type"], {}).get("unlockedAt"))
        for badge in BADGES
    ]


def _find_user(user_id):
    return collection("users").find_one({"id": user_id}, {"_id": 0, "passwordHash": 0})


@badges_bp.route("/user/<user_id>", methods=["GET"])
@token_required
def get_user_badges(user_id):
    if not _find_user(user_id):
        return jsonify({"error": "User not found"}), 404
    return jsonify({"userId": user_id, "badges": badges_with_state(user_id)}), 200


@badges_bp.route("/check", methods=["POST"])
@token_required
def check_and_award_badges():
    user = g.user
    already = unlocked_badges(user["id"])
    earned = earned_badge_types(user)
    newly = []
    for badge in BADGES:
        if badge["type"] in already or badge["type"] not in earned:
            continue
        record = {"userId": user["id"], "badgeType": badge["type"], "unlockedAt": now_iso()}
        collection("user_badges").insert_one(dict(record))
        newly.append(dict(badge, unlockedAt=record["unlockedAt"]))

    if newly:
        logger.info("User %s unlocked badges: %s", user["email"], ", ".join(b["type"] for b in newly))
    return jsonify({"unlockedBadges": newly, "total": len(newly)}), 200


@badges_bp.route("/progress/<user_id>", methods=["GET"])
@token_required
def get_badge_progress(user_id):
    if not _find_user(user_id):
        return jsonify({"error": "User not found"}), 404

    badges = badges_with_state(user_id)
    unlocked_count = sum(1 for b in badges if b["isUnlocked"])
    rarity_stats = {
        rarity: {
            "total": sum(1 for b in badges if b["rarity"] == rarity),
            "unlocked": sum(1 for b in badges if b["rarity"] == rarity and b["isUnlocked"]),
        }
        for rarity in RARITY_ORDER
    }
    locked = sorted((b for b in badges if not b["isUnlocked"]), key=lambda b: RARITY_ORDER.index(b["rarity"]))

    return jsonify({
        "userId": user_id,
        "unlockedCount": unlocked_count,
        "totalCount": len(badges),
        "progressPercentage": round(unlocked_count * 100 / len(badges)),
        "rarityStats": rarity_stats,
        "nextBadge": locked[0] if locked else None,
    }), 200
