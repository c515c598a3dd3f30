"""Score aggregation, ranking, round-robin distribution and CSV rendering.

Everything here works on plain dicts pulled from Mongo so the route handlers
can stay thin and the arithmetic can be tested without a database.
"""
import csv
import io
from numbers import Number
from typing import Dict, List, Optional, Tuple

from errors import ValidationError

DEFAULT_CRITERIA = [
    {"name": "innovation", "description": "Originality of the idea", "maxScore": 10},
    {"name": "impact", "description": "Potential real-world impact", "maxScore": 10},
    {"name": "technicality", "description": "Technical depth and execution", "maxScore": 10},
    {"name": "presentation", "description": "Clarity of the demo and pitch", "maxScore": 10},
]


# ============================================================================
# CRITERIA
# ============================================================================

def criteria_for_round(hackathon: dict, round_index: int) -> List[dict]:
    rounds = hackathon.get("rounds") or []
    if 0 <= round_index < len(rounds):
        criteria = rounds[round_index].get("judgingCriteria")
        if criteria:
            return criteria
    return [dict(c) for c in DEFAULT_CRITERIA]


def validate_criteria(criteria) -> List[dict]:
    if not isinstance(criteria, list) or not criteria:
        raise ValidationError("criteria must be a non-empty list")

    normalized = []
    seen = set()
    for item in criteria:
        if not isinstance(item, dict):
            raise ValidationError("each criterion must be an object")
        name = (item.get("name") or "").strip()
        if not name:
            raise ValidationError("each criterion needs a name")
        if name.lower() in seen:
            raise ValidationError(f"duplicate criterion: {name}")
        max_score = item.get("maxScore", 10)
        if isinstance(max_score, bool) or not isinstance(max_score, Number) or max_score <= 0:
            raise ValidationError(f"maxScore of {name} must be a positive number")
        seen.add(name.lower())
        normalized.append({
            "name": name,
            "description": item.get("description", ""),
            "maxScore": max_score,
        })
    return normalized


def validate_scores(scores, criteria: List[dict]) -> Dict[str, float]:
    """Check a judge's criterion -> value mapping against the round criteria."""
    if not isinstance(scores, dict) or not scores:
        raise ValidationError("scores must be an object of criterion: value")

    names = {c["name"]: c for c in criteria}
    unknown = [k for k in scores if k not in names]
    if unknown:
        raise ValidationError(f"Unknown criteria: {', '.join(sorted(unknown))}")

    validated = {}
    for name, criterion in names.items():
        if name not in scores:
            raise ValidationError(f"Missing score for {name}")
        value = scores[name]
        if isinstance(value, bool) or not isinstance(value, Number):
            raise ValidationError(f"Score for {name} must be a number")
        if value < 0 or value > criterion["maxScore"]:
            raise ValidationError(f"Score for {name} must be between 0 and {criterion['maxScore']}")
        validated[name] = value
    return validated


# ============================================================================
# AGGREGATION
# ============================================================================

def evaluation_average(evaluation: dict, criteria_names: Optional[List[str]] = None) -> Optional[float]:
    """Mean of one judge's criterion values. Missing criteria count as 0."""
    scores = evaluation.get("scores") or {}
    if criteria_names:
        return sum(scores.get(name, 0) for name in criteria_names) / len(criteria_names)
    values = list(scores.values())
    if not values:
        return None
    return sum(values) / len(values)


def submission_average(evaluations: List[dict], criteria_names: Optional[List[str]] = None) -> Optional[float]:
    per_judge = [evaluation_average(e, criteria_names) for e in evaluations]
    per_judge = [v for v in per_judge if v is not None]
    if not per_judge:
        return None
    return round(sum(per_judge) / len(per_judge), 2)


def combined_score(ppt_score: Optional[float], project_score: Optional[float]) -> Optional[float]:
    available = [s for s in (ppt_score, project_score) if s is not None]
    if not available:
        return None
    return round(sum(available) / len(available), 2)


def rank_entries(entries: List[dict], key: str = "averageScore") -> List[dict]:
    """Sort by key descending (None last) and attach competition ranks (1, 1, 3)."""
    scored = sorted(
        (e for e in entries if e.get(key) is not None),
        key=lambda e: (-e[key], e.get("submittedAt") or ""),
    )
    unscored = [e for e in entries if e.get(key) is None]

    ranked = []
    for i, entry in enumerate(scored):
        if i > 0 and entry[key] == scored[i - 1][key]:
            entry["rank"] = ranked[-1]["rank"]
        else:
            entry["rank"] = i + 1
        ranked.append(entry)
    for entry in unscored:
        entry["rank"] = None
        ranked.append(entry)
    return ranked


# ============================================================================
# DISTRIBUTION
# ============================================================================

def distribute_round_robin(
    submission_ids: List[str],
    judges: List[dict],
    judges_per_submission: int = 1,
    max_per_judge: Optional[int] = None,
) -> Tuple[Dict[str, List[str]], List[str], List[str]]:
    """Deal submissions to judges cyclically.

    judges are dicts with ``id``, ``email`` and optionally ``load`` (submissions
    already held outside this distribution) and ``maxSubmissions``.

    Returns (allocation by judge id, unassigned ids, partially assigned ids).
    """
    if not judges:
        raise ValidationError("No eligible judges to distribute submissions to")
    if isinstance(judges_per_submission, bool) or not isinstance(judges_per_submission, int) or judges_per_submission < 1:
        raise ValidationError("judgesPerSubmission must be a positive integer")
    if judges_per_submission > len(judges):
        raise ValidationError(
            f"judgesPerSubmission ({judges_per_submission}) exceeds the number of eligible judges ({len(judges)})"
        )
    if max_per_judge is not None and (isinstance(max_per_judge, bool) or not isinstance(max_per_judge, int) or max_per_judge < 1):
        raise ValidationError("maxSubmissionsPerJudge must be a positive integer")

    ordered = sorted(judges, key=lambda j: j["email"])
    allocation = {j["id"]: [] for j in ordered}

    def has_capacity(judge):
        held = judge.get("load", 0) + len(allocation[judge["id"]])
        if max_per_judge is not None and len(allocation[judge["id"]]) >= max_per_judge:
            return False
        own_cap = judge.get("maxSubmissions")
        if own_cap is not None and held >= own_cap:
            return False
        return True

    unassigned, partial = [], []
    pointer = 0
    count = len(ordered)
    for submission_id in submission_ids:
        chosen = []
        for _ in range(count):
            judge = ordered[pointer % count]
            pointer += 1
            if has_capacity(judge):
                chosen.append(judge["id"])
                if len(chosen) == judges_per_submission:
                    break
        for judge_id in chosen:
            allocation[judge_id].append(submission_id)
        if not chosen:
            unassigned.append(submission_id)
        elif len(chosen) < judges_per_submission:
            partial.append(submission_id)

    return allocation, unassigned, partial


# ============================================================================
# PRESENTATION HELPERS
# ============================================================================

def team_progress(team_id: str, submissions: List[dict], rounds_count: int) -> str:
    """'REG' followed by ' → R<n>' for every round the team submitted to."""
    submitted_rounds = {s.get("roundIndex") for s in submissions if s.get("teamId") == team_id}
    progress = "REG"
    for index in range(rounds_count):
        if index in submitted_rounds:
            progress += f" → R{index + 1}"
    return progress


def problem_statement_text(ps) -> str:
    if ps is None:
        return ""
    if isinstance(ps, str):
        return ps
    if isinstance(ps, dict):
        return ps.get("statement") or ""
    return str(ps)


def format_score(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:.2f}"


def build_csv(headers: List[str], rows: List[list]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row)
    return output.getvalue()
