import os

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # dotenv is optional for production, but useful locally


def _flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # --- Database ---
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_PUBLIC_URL = os.environ.get("DATABASE_PUBLIC_URL")

    # --- Redis (Celery broker / result backend) ---
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

    # --- Time ---
    DEFAULT_TIMEZONE = os.environ.get("DEFAULT_TIMEZONE", "America/Los_Angeles")

    # --- Local state files ---
    PENDING_STATE_PATH = os.environ.get("PENDING_STATE_PATH", "var/pending_medications.json")
    LAST_CHECK_PATH = os.environ.get("LAST_CHECK_PATH", "var/last_check.txt")

    # --- Reminder behaviour ---
    PENDING_EXPIRY_HOURS = int(os.environ.get("PENDING_EXPIRY_HOURS", "2"))
    ON_TIME_WINDOW_MINUTES = int(os.environ.get("ON_TIME_WINDOW_MINUTES", "30"))
    SNOOZE_MINUTES = int(os.environ.get("SNOOZE_MINUTES", "10"))

    # --- Reports / reconciliation ---
    MAX_REPORT_DAYS = int(os.environ.get("MAX_REPORT_DAYS", "90"))
    RECONCILE_INTERVAL_SECONDS = float(os.environ.get("RECONCILE_INTERVAL_SECONDS", "900"))

    # Raise on internal invariant violations instead of logging and dropping.
    STRICT_INVARIANTS = _flag("STRICT_INVARIANTS")

settings = Settings()
