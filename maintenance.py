import logging

from db import collection

logger = logging.getLogger(__name__)

EMPTY_PROFILE_FIELDS = ("domain", "courseDuration", "currentYear", "yearsOfExperience")


def cleanup_empty_profile_fields():
    """Unset profile fields stored as empty strings. Returns {field: users modified}."""
    counts = {}
    for field in EMPTY_PROFILE_FIELDS:
        result = collection("users").update_many({field: ""}, {"$unset": {field: ""}})
        counts[field] = result.modified_count
        logger.info("Removed empty '%s' from %d users", field, result.modified_count)
    return counts
