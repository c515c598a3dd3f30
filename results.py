import logging
import re

from flask import Blueprint, Response, g, jsonify, request

from auth import is_hackathon_admin, token_required
from db import collection, find_hackathon, new_id, now_iso
from errors import ValidationError
from hackathons import load_managed_hackathon
from judging import averages_by_submission, validate_id_list
from mailer import send_shortlisted_email, send_winner_email
from notifications import notify
from scoring import (
    build_csv,
    combined_score,
    criteria_for_round,
    evaluation_average,
    format_score,
    problem_statement_text,
    rank_entries,
    validate_scores,
)
from submissions import SUBMISSION_STATUSES, round_count
from teams import team_emails

logger = logging.getLogger(__name__)

# mounted next to judging_bp under /api/judge-management
results_bp = Blueprint("results", __name__)
scores_bp = Blueprint("scores", __name__)


def _round_submissions(hack_code, round_index, **extra):
    query = {"hackCode": hack_code, "roundIndex": round_index}
    query.update(extra)
    return list(collection("submissions").find(query, {"_id": 0}).sort("submittedAt", 1))


def _check_round(hackathon, round_index):
    if round_index >= round_count(hackathon):
        raise ValidationError(f"Round {round_index} does not exist")


def _notify_team(team, message, type_, link=None):
    for email in team_emails(team):
        notify(email, message, type_, link)


# --- Scoring ---
@results_bp.route("/submissions/<submission_id>/score", methods=["POST"])
@token_required
def score_submission(submission_id):
    submission = collection("submissions").find_one({"id": submission_id}, {"_id": 0})
    if not submission:
        return jsonify({"error": "Submission not found"}), 404

    judge_email = g.user["email"]
    assignment = collection("judge_assignments").find_one({
        "hackCode": submission["hackCode"],
        "judge.email": judge_email,
        "status": "accepted",
        "$or": [{"assignedSubmissions": submission_id}, {"assignedTeams": submission["teamId"]}],
    }, {"_id": 0})
    if not assignment:
        return jsonify({"error": "You are not assigned to evaluate this submission"}), 403

    hackathon = find_hackathon(submission["hackCode"])
    data = request.get_json(silent=True) or {}
    scores = validate_scores(data.get("scores"), criteria_for_round(hackathon, submission.get("roundIndex", 0)))
    feedback = (data.get("feedback") or "").strip()

    existing = collection("scores").find_one({"submissionId": submission_id, "judgeEmail": judge_email}, {"_id": 0})
    if existing:
        collection("scores").update_one(
            {"id": existing["id"]},
            {"$set": {"scores": scores, "feedback": feedback, "updatedAt": now_iso()}},
        )
        score = collection("scores").find_one({"id": existing["id"]}, {"_id": 0})
        logger.info("Score for %s updated by %s", submission_id, judge_email)
        return jsonify({"message": "Score updated", "score": score}), 200

    score = {
        "id": new_id(),
        "submissionId": submission_id,
        "hackCode": submission["hackCode"],
        "roundIndex": submission.get("roundIndex", 0),
        "teamId": submission["teamId"],
        "judgeEmail": judge_email,
        "judgeName": assignment["judge"].get("name") or g.user.get("name"),
        "scores": scores,
        "feedback": feedback,
        "createdAt": now_iso(),
        "updatedAt": now_iso(),
    }
    collection("scores").insert_one(dict(score))
    logger.info("Submission %s scored by %s", submission_id, judge_email)
    return jsonify({"message": "Score submitted", "score": score}), 201


@results_bp.route("/submissions/<submission_id>/status", methods=["PATCH"])
@token_required
def update_submission_status(submission_id):
    submission = collection("submissions").find_one({"id": submission_id}, {"_id": 0})
    if not submission:
        return jsonify({"error": "Submission not found"}), 404
    hackathon, error = load_managed_hackathon(submission["hackCode"])
    if error:
        return error

    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in SUBMISSION_STATUSES:
        return jsonify({"error": f"status must be one of {', '.join(SUBMISSION_STATUSES)}"}), 400

    collection("submissions").update_one({"id": submission_id}, {"$set": {"status": status, "updatedAt": now_iso()}})
    if status in ("shortlisted", "winner"):
        team = collection("teams").find_one({"id": submission["teamId"]}, {"_id": 0})
        if team:
            message = (
                f"Your team {team['name']} was shortlisted in '{hackathon['title']}'."
                if status == "shortlisted"
                else f"Congratulations! Your team {team['name']} is a winner of '{hackathon['title']}'."
            )
            _notify_team(team, message, "result", f"/hackathons/{hackathon['hackCode']}")

    logger.info("Submission %s marked %s by %s", submission_id, status, g.user["email"])
    return jsonify({"message": "Submission status updated", "id": submission_id, "status": status}), 200


# --- Rounds ---
@results_bp.route("/hackathons/<hack_code>/rounds/<int:round_index>/shortlist", methods=["POST"])
@token_required
def shortlist_round(hack_code, round_index):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error
    _check_round(hackathon, round_index)

    data = request.get_json(silent=True) or {}
    cutoff_score = data.get("cutoffScore")
    if cutoff_score is None or isinstance(cutoff_score, bool) or not isinstance(cutoff_score, (int, float)):
        return jsonify({"error": "cutoffScore is required and must be a number"}), 400

    submissions = _round_submissions(hack_code, round_index)
    averages = averages_by_submission(hackathon, submissions)

    shortlisted, rejected = [], []
    for submission in submissions:
        average, _ = averages[submission["id"]]
        if average is not None and average >= cutoff_score:
            shortlisted.append(submission["id"])
        else:
            rejected.append(submission["id"])

    if shortlisted:
        collection("submissions").update_many({"id": {"$in": shortlisted}}, {"$set": {"status": "shortlisted"}})
    if rejected:
        collection("submissions").update_many({"id": {"$in": rejected}}, {"$set": {"status": "rejected"}})

    advancing = {s["teamId"] for s in submissions if s["id"] in shortlisted}
    updated_teams = {"active": [], "inactive": []}
    for team in collection("teams").find({"hackCode": hack_code}, {"_id": 0, "id": 1}):
        updated_teams["active" if team["id"] in advancing else "inactive"].append(team["id"])
    collection("teams").update_many({"hackCode": hack_code, "id": {"$in": updated_teams["active"]}}, {"$set": {"status": "active"}})
    collection("teams").update_many({"hackCode": hack_code, "id": {"$in": updated_teams["inactive"]}}, {"$set": {"status": "inactive"}})

    logger.info("Round %d of %s shortlisted at %s: %d in, %d out", round_index, hack_code, cutoff_score,
                len(shortlisted), len(rejected))
    return jsonify({
        "message": "Shortlisting completed",
        "cutoffScore": cutoff_score,
        "shortlisted": shortlisted,
        "rejected": rejected,
        "updatedTeams": updated_teams,
    }), 200


@results_bp.route("/hackathons/<hack_code>/rounds/<int:round_index>/leaderboard", methods=["GET"])
@token_required
def get_leaderboard(hack_code, round_index):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error
    _check_round(hackathon, round_index)

    submissions = _round_submissions(hack_code, round_index)
    averages = averages_by_submission(hackathon, submissions)
    entries = []
    for submission in submissions:
        average, count = averages[submission["id"]]
        entries.append({
            "submissionId": submission["id"],
            "teamId": submission["teamId"],
            "teamName": submission.get("teamName"),
            "projectTitle": submission.get("projectTitle"),
            "problemStatement": problem_statement_text(submission.get("problemStatement")) or None,
            "status": submission.get("status"),
            "averageScore": average,
            "scoreCount": count,
            "submittedAt": submission.get("submittedAt"),
        })

    return jsonify({"hackCode": hack_code, "roundIndex": round_index, "leaderboard": rank_entries(entries)}), 200


def collect_winners(hackathon, round_index):
    """Winning submissions of a round, ordered by combined score and numbered."""
    hack_code = hackathon["hackCode"]
    winners = _round_submissions(hack_code, round_index, status="winner")
    if not winners:
        return []

    project_averages = averages_by_submission(hackathon, winners)
    if round_index == 0:
        ppt_by_team = {s["teamId"]: project_averages[s["id"]][0] for s in winners}
    else:
        first_round = _round_submissions(hack_code, 0, teamId={"$in": [w["teamId"] for w in winners]})
        first_averages = averages_by_submission(hackathon, first_round)
        ppt_by_team = {s["teamId"]: first_averages[s["id"]][0] for s in first_round}

    entries = []
    for submission in winners:
        team = collection("teams").find_one({"id": submission["teamId"]}, {"_id": 0}) or {}
        ppt_score = ppt_by_team.get(submission["teamId"])
        project_score = project_averages[submission["id"]][0]
        entries.append({
            "submissionId": submission["id"],
            "teamId": submission["teamId"],
            "teamName": team.get("name") or submission.get("teamName"),
            "projectTitle": submission.get("projectTitle"),
            "leader": team.get("leader"),
            "members": team.get("members", []),
            "pptScore": ppt_score,
            "projectScore": project_score,
            "combinedScore": combined_score(ppt_score, project_score),
            "submittedAt": submission.get("submittedAt"),
        })

    entries.sort(key=lambda e: (e["combinedScore"] is None, -(e["combinedScore"] or 0), e["submittedAt"] or ""))
    for position, entry in enumerate(entries, start=1):
        entry["position"] = position
    return entries


@results_bp.route("/hackathons/<hack_code>/rounds/<int:round_index>/winners", methods=["GET"])
@token_required
def get_winners(hack_code, round_index):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error
    _check_round(hackathon, round_index)

    winners = collect_winners(hackathon, round_index)
    return jsonify({"hackCode": hack_code, "roundIndex": round_index, "winners": winners, "total": len(winners)}), 200


@results_bp.route("/hackathons/<hack_code>/send-winner-emails", methods=["POST"])
@token_required
def send_winner_emails(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    round_index = data.get("roundIndex", round_count(hackathon) - 1)
    if isinstance(round_index, bool) or not isinstance(round_index, int) or round_index < 0:
        return jsonify({"error": "roundIndex must be a non-negative integer"}), 400
    _check_round(hackathon, round_index)

    winners = collect_winners(hackathon, round_index)
    if not winners:
        return jsonify({"error": "No winners selected for this round"}), 400

    status = {
        "winnersNotified": 0,
        "shortlistedNotified": 0,
        "emailsSent": 0,
        "emailsFailed": 0,
        "details": [],
    }
    link = f"/hackathons/{hack_code}"

    def record(email, kind, sent, team_name):
        status["emailsSent" if sent else "emailsFailed"] += 1
        status["details"].append({"email": email, "type": kind, "team": team_name, "status": "sent" if sent else "failed"})

    for winner in winners:
        members = ([winner["leader"]] if winner.get("leader") else []) + winner["members"]
        for member in members:
            sent = send_winner_email(
                member["email"], member.get("name") or member["email"], hackathon["title"], winner, winners,
            )
            notify(member["email"], f"Your team {winner['teamName']} placed #{winner['position']} in '{hackathon['title']}'.",
                   "result", link)
            record(member["email"], "winner", sent, winner["teamName"])
            status["winnersNotified"] += 1

    if data.get("includeShortlisted"):
        winning_teams = {w["teamId"] for w in winners}
        for submission in _round_submissions(hack_code, round_index, status="shortlisted"):
            if submission["teamId"] in winning_teams:
                continue
            team = collection("teams").find_one({"id": submission["teamId"]}, {"_id": 0})
            if not team:
                continue
            for member in [team["leader"]] + team.get("members", []):
                sent = send_shortlisted_email(member["email"], member.get("name") or member["email"], hackathon["title"], team["name"])
                notify(member["email"], f"Your team {team['name']} was shortlisted in '{hackathon['title']}'.", "result", link)
                record(member["email"], "shortlisted", sent, team["name"])
                status["shortlistedNotified"] += 1

    collection("hackathons").update_one({"hackCode": hack_code}, {"$set": {"results": {
        "roundIndex": round_index,
        "winners": [
            {k: w[k] for k in ("teamId", "teamName", "projectTitle", "position", "combinedScore")}
            for w in winners
        ],
        "publishedAt": now_iso(),
        "publishedBy": g.user["email"],
    }}})

    logger.info("Winner emails for %s: sent=%d failed=%d", hack_code, status["emailsSent"], status["emailsFailed"])
    return jsonify({"message": "Winner notifications sent", **status}), 200


@results_bp.route("/hackathons/<hack_code>/results", methods=["GET"])
def get_results(hack_code):
    hackathon = find_hackathon(hack_code)
    if not hackathon:
        return jsonify({"error": "Hackathon not found"}), 404
    if "results" not in hackathon:
        return jsonify({"error": "Results not published yet for this hackathon"}), 404
    return jsonify({"hackCode": hack_code, "results": hackathon["results"]}), 200


# --- /api/scores ---
@scores_bp.route("/submission/<submission_id>", methods=["GET"])
@token_required
def get_submission_scores(submission_id):
    submission = collection("submissions").find_one({"id": submission_id}, {"_id": 0})
    if not submission:
        return jsonify({"error": "Submission not found"}), 404
    hackathon, error = load_managed_hackathon(submission["hackCode"])
    if error:
        return error

    criteria = [c["name"] for c in criteria_for_round(hackathon, submission.get("roundIndex", 0))]
    evaluations = list(collection("scores").find({"submissionId": submission_id}, {"_id": 0}).sort("createdAt", 1))
    for evaluation in evaluations:
        evaluation["averageScore"] = round(evaluation_average(evaluation, criteria), 2)
    return jsonify({
        "submissionId": submission_id,
        "evaluations": evaluations,
        "averageScore": averages_by_submission(hackathon, [submission])[submission_id][0],
    }), 200


@scores_bp.route("/submissions-scores", methods=["POST"])
@token_required
def get_scores_for_submissions():
    data = request.get_json(silent=True) or {}
    submission_ids = validate_id_list(data.get("submissionIds"), "submissionIds")

    submissions = list(collection("submissions").find({"id": {"$in": submission_ids}}, {"_id": 0, "id": 1, "hackCode": 1}))
    allowed = {}
    for submission in submissions:
        code = submission["hackCode"]
        if code not in allowed:
            allowed[code] = is_hackathon_admin(g.user, find_hackathon(code))
    visible = [s["id"] for s in submissions if allowed[s["hackCode"]]]

    scores = list(collection("scores").find({"submissionId": {"$in": visible}}, {"_id": 0}).sort("createdAt", 1))
    return jsonify({"scores": scores, "total": len(scores)}), 200


def parse_judged_filters():
    """round is 'All', 'Round N' or N (1-based); problemStatement is 'All' or its text."""
    round_param = request.args.get("round", "All")
    ps_param = request.args.get("problemStatement", "All")
    round_index = None
    if round_param != "All":
        match = re.fullmatch(r"(?:round\s*)?(\d+)", round_param.strip(), re.IGNORECASE)
        if not match or int(match.group(1)) < 1:
            raise ValidationError("round must be 'All' or a round number")
        round_index = int(match.group(1)) - 1
    return round_param, ps_param, round_index, None if ps_param == "All" else ps_param


def judged_evaluations(hackathon, round_index=None, ps_filter=None):
    hack_code = hackathon["hackCode"]
    submissions = {s["id"]: s for s in collection("submissions").find({"hackCode": hack_code}, {"_id": 0})}
    teams = {t["id"]: t for t in collection("teams").find({"hackCode": hack_code}, {"_id": 0})}
    judge_names = {
        a["judge"]["email"]: a["judge"].get("name")
        for a in collection("judge_assignments").find({"hackCode": hack_code}, {"_id": 0, "judge": 1})
    }

    evaluations = []
    for score in collection("scores").find({"submissionId": {"$in": list(submissions)}}, {"_id": 0}).sort("createdAt", 1):
        submission = submissions[score["submissionId"]]
        score_round = submission.get("roundIndex", 0)
        statement = problem_statement_text(submission.get("problemStatement"))
        if round_index is not None and score_round != round_index:
            continue
        if ps_filter and statement != ps_filter:
            continue

        team = teams.get(submission["teamId"], {})
        criteria = [c["name"] for c in criteria_for_round(hackathon, score_round)]
        evaluations.append({
            "id": score["id"],
            "submissionId": score["submissionId"],
            "team": {"id": submission["teamId"], "name": team.get("name") or submission.get("teamName")},
            "projectTitle": submission.get("projectTitle"),
            "judge": {
                "email": score["judgeEmail"],
                "name": judge_names.get(score["judgeEmail"]) or score.get("judgeName") or score["judgeEmail"],
            },
            "round": score_round + 1,
            "roundIndex": score_round,
            "problemStatement": statement or None,
            "scores": score["scores"],
            "averageScore": round(evaluation_average(score, criteria), 2),
            "feedback": score.get("feedback") or "",
            "createdAt": score.get("createdAt"),
        })
    return evaluations


def judged_summary(evaluations):
    by_round, by_ps = {}, {}
    for evaluation in evaluations:
        round_label = f"Round {evaluation['round']}"
        by_round[round_label] = by_round.get(round_label, 0) + 1
        ps_entry = by_ps.setdefault(evaluation["problemStatement"] or "N/A", {"total": 0, "byRound": {}})
        ps_entry["total"] += 1
        ps_entry["byRound"][round_label] = ps_entry["byRound"].get(round_label, 0) + 1

    averages = [e["averageScore"] for e in evaluations]
    return {
        "total": len(evaluations),
        "byRound": by_round,
        "byProblemStatement": by_ps,
        "averageScore": round(sum(averages) / len(averages), 2) if averages else None,
    }


@scores_bp.route("/hackathons/<hack_code>/judged", methods=["GET"])
@token_required
def get_judged_submissions(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    _, _, round_index, ps_filter = parse_judged_filters()
    evaluations = judged_evaluations(hackathon, round_index, ps_filter)
    return jsonify({"hackCode": hack_code, "evaluations": evaluations, "summary": judged_summary(evaluations)}), 200


@scores_bp.route("/hackathons/<hack_code>/judged/export", methods=["GET"])
@token_required
def export_judged_submissions(hack_code):
    hackathon, error = load_managed_hackathon(hack_code)
    if error:
        return error

    round_param, ps_param, round_index, ps_filter = parse_judged_filters()
    rows = [
        [
            e["team"]["name"] or "Unknown Team",
            e["problemStatement"] or "N/A",
            e["judge"]["name"],
            format_score(e["averageScore"]),
            f"Round {e['round']}",
            e["feedback"] or "No feedback provided",
        ]
        for e in judged_evaluations(hackathon, round_index, ps_filter)
    ]
    content = build_csv(["Team Name", "Problem Statement", "Judge", "Average Score", "Round", "Feedback"], rows)

    round_part = "all" if round_index is None else f"round-{round_index + 1}"
    ps_part = "all" if ps_filter is None else "filtered"
    return Response(
        content,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"judged-submissions-{round_part}-{ps_part}.csv\""},
    )
