import logging
import uuid
from datetime import datetime, timezone

from pymongo import ASCENDING, MongoClient
from pymongo.errors import OperationFailure

from config import Config

logger = logging.getLogger(__name__)

_client = None
_database = None

COLLECTIONS = (
    "users",
    "hackathons",
    "teams",
    "submissions",
    "scores",
    "judge_assignments",
    "notifications",
    "user_badges",
)


def init_db(client=None, db_name=None):
    """Bind the module to a Mongo client. Tests pass a mongomock client."""
    global _client, _database
    _client = client or MongoClient(Config.MONGO_URI)
    _database = _client[db_name or Config.MONGO_DB_NAME]
    return _database


def get_db():
    if _database is None:
        init_db()
    return _database


def collection(name):
    if name not in COLLECTIONS:
        raise KeyError(f"Unknown collection: {name}")
    return get_db()[name]


def ensure_indexes():
    database = get_db()
    database["users"].create_index([("email", ASCENDING)], unique=True)
    database["users"].create_index([("id", ASCENDING)], unique=True)
    database["hackathons"].create_index([("hackCode", ASCENDING)], unique=True)
    database["teams"].create_index([("id", ASCENDING)], unique=True)
    database["teams"].create_index([("hackCode", ASCENDING)])
    database["submissions"].create_index([("id", ASCENDING)], unique=True)
    database["submissions"].create_index([("hackCode", ASCENDING), ("roundIndex", ASCENDING)])
    database["scores"].create_index([("submissionId", ASCENDING), ("judgeEmail", ASCENDING)], unique=True)
    database["judge_assignments"].create_index([("hackCode", ASCENDING), ("judge.email", ASCENDING)], unique=True)
    database["notifications"].create_index([("recipientEmail", ASCENDING)])

    # team names may repeat inside a hackathon; older deployments had a unique index
    try:
        indexes = database["teams"].index_information()
        legacy = indexes.get("hackCode_1_name_1")
        if legacy and legacy.get("unique"):
            logger.info("Dropping unique index on {hackCode, name} in teams collection")
            database["teams"].drop_index("hackCode_1_name_1")
        else:
            logger.info("No unique index on {hackCode, name} found in teams collection")
    except OperationFailure as e:
        logger.error("Error checking/dropping teams index: %s", e)


# --- id and time helpers ---
def new_id():
    return str(uuid.uuid4())


def new_hack_code():
    return "HACK-" + uuid.uuid4().hex[:8].upper()


def now_utc():
    return datetime.now(timezone.utc)


def now_iso():
    return now_utc().isoformat().replace("+00:00", "Z")


def parse_datetime(value):
    """Parse an ISO-8601 string into an aware datetime. Naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# --- lookups shared across blueprints ---
def find_hackathon(hack_code, projection=None):
    if not hack_code:
        return None
    return collection("hackathons").find_one({"hackCode": hack_code}, projection or {"_id": 0})


def find_user_by_email(email):
    return collection("users").find_one({"email": (email or "").strip().lower()}, {"_id": 0})
