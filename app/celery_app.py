"""Celery application instance used as an alternative cron trigger.

Start a worker with embedded beat:
    celery -A app.celery_app worker -B -Q reminder -l info --concurrency=1
"""

from celery import Celery
from celery.schedules import crontab

from config import settings

BROKER_URL = settings.REDIS_URL or "redis://localhost:6379/0"

celery_app = Celery("napomni_backend", broker=BROKER_URL, backend=BROKER_URL)

# Global task settings
celery_app.conf.task_acks_late = True
celery_app.conf.task_reject_on_worker_lost = True
celery_app.conf.task_default_retry_delay = 30  # seconds
celery_app.conf.timezone = "UTC"

celery_app.conf.task_routes = {
    "app.workers.reminder.dispatch_due": {"queue": "reminder"},
    "app.workers.reminder.send_daily_digest": {"queue": "reminder"},
}

# Beat schedule: one reminder tick per minute plus the morning digest
celery_app.conf.beat_schedule = {
    "dispatch-due-reminders": {
        "task": "app.workers.reminder.dispatch_due",
        "schedule": 60.0,
    },
    "send-daily-digest": {
        "task": "app.workers.reminder.send_daily_digest",
        "schedule": crontab(minute=0, hour=settings.DAILY_DIGEST_HOUR_UTC),
    },
}

# --- Ensure tasks are registered ---
import app.workers.reminder  # noqa: E402,F401
