"""Celery application instance shared across the backend.

Start a worker (with the beat scheduler) with:
    celery -A app.celery_app worker -B -Q reminder -l info --concurrency=1

A single worker process keeps the pending-dose file single-writer.
"""

from celery import Celery

from config import settings

celery_app = Celery("medreminder_backend", broker=settings.REDIS_URL, backend=settings.REDIS_URL)

# Global task settings
celery_app.conf.task_acks_late = True
celery_app.conf.task_reject_on_worker_lost = True
celery_app.conf.task_default_retry_delay = 30  # seconds
celery_app.conf.timezone = settings.DEFAULT_TIMEZONE

celery_app.conf.task_routes = {
    "app.workers.reminder.*": {"queue": "reminder"},
}

# Beat schedule: backfill missed doses and repair the pending list periodically
celery_app.conf.beat_schedule = {
    "reconcile-missed-doses": {
        "task": "app.workers.reminder.reconcile",
        "schedule": settings.RECONCILE_INTERVAL_SECONDS,
    }
}

# --- Ensure tasks are registered ---
import app.workers.reminder  # noqa: E402,F401
