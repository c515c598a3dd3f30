import os


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Configuration
class Config:
    MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "hackdb")

    SECRET_KEY = os.getenv("SECRET_KEY", "change-this-in-production")
    TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "168"))  # 7 days

    # Email credentials (use an app password, not the account password)
    EMAIL_ADDRESS = os.getenv("EMAIL_ADDRESS", "")
    EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD", "")
    SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))
    EMAILS_ENABLED = _env_bool("EMAILS_ENABLED", True)

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

    DEFAULT_MAX_PARTICIPANTS = 100
    MIN_PASSWORD_LENGTH = 6
