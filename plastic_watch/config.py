import os
from datetime import timedelta


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret")

    db_path = os.path.join(basedir, "instance", "plasticwatch.db")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", f"sqlite:///{db_path}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    PERMANENT_SESSION_LIFETIME = timedelta(minutes=30)
    MAX_CONTENT_LENGTH = 50 * 1024 * 1024  # 50 MB
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    WTF_CSRF_ENABLED = _env_bool("WTF_CSRF_ENABLED", True)

    # Object storage
    UPLOAD_DIR = os.environ.get("UPLOAD_DIR", os.path.join(basedir, "static", "uploads"))
    UPLOAD_URL_PREFIX = os.environ.get("UPLOAD_URL_PREFIX", "/static/uploads")
    ORPHAN_GRACE_HOURS = int(os.environ.get("ORPHAN_GRACE_HOURS", "24"))

    # AI suggestions
    SUGGESTION_PROVIDER = os.environ.get("SUGGESTION_PROVIDER", "gemini")
    GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
    SUGGESTION_TIMEOUT = float(os.environ.get("SUGGESTION_TIMEOUT", "15"))
    AI_ENABLED_DEFAULT = _env_bool("AI_ENABLED_DEFAULT", True)

    # Geolocation
    GEO_SAMPLES = int(os.environ.get("GEO_SAMPLES", "3"))
    GEO_TIMEOUT = float(os.environ.get("GEO_TIMEOUT", "10"))

    # Contribution drafts kept in memory; idle ones expire with the session
    DRAFT_LIMIT = int(os.environ.get("DRAFT_LIMIT", "1000"))

    # Limiter: in-memory for dev; point at Redis in production
    RATELIMIT_DEFAULT = os.environ.get("RATELIMIT_DEFAULT", "200 per day;50 per hour")
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_DIR = os.environ.get("LOG_DIR")
