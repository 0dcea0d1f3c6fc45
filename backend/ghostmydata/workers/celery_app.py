"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from ghostmydata.config import settings
from ghostmydata.db.database import build_engine, build_session_factory
from ghostmydata.logging_config import configure_logging

celery_app = Celery(
    "ghostmydata_workers",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "ghostmydata.workers.tasks.scan_brokers",
        "ghostmydata.workers.tasks.submit_requests",
        "ghostmydata.workers.tasks.monitor_exposure",
    ],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes max per task
    task_soft_time_limit=540,  # 9 minutes soft limit
    worker_prefetch_multiplier=1,  # One task at a time for heavy operations
    task_acks_late=True,  # Acknowledge after completion
    task_reject_on_worker_lost=True,
)

# Scheduled tasks (beat schedule)
celery_app.conf.beat_schedule = {
    # Send pending removal requests every 15 minutes
    "process-pending-removals": {
        "task": "ghostmydata.workers.tasks.submit_requests.process_pending_removals",
        "schedule": crontab(minute="*/15"),
    },
    # Retry failed removals every 6 hours
    "retry-failed-removals": {
        "task": "ghostmydata.workers.tasks.submit_requests.retry_failed_removals",
        "schedule": crontab(minute=30, hour="*/6"),
    },
    # Re-scan for exposures daily at 2 AM
    "daily-exposure-scan": {
        "task": "ghostmydata.workers.tasks.scan_brokers.scan_all_users",
        "schedule": crontab(hour=2, minute=0),
    },
    # Verify removals past their processing window daily at 4 AM
    "verify-removals": {
        "task": "ghostmydata.workers.tasks.monitor_exposure.verify_due_removals",
        "schedule": crontab(hour=4, minute=0),
    },
    # Hand off requests with no automated channel daily at 5 AM
    "mark-manual-removals": {
        "task": "ghostmydata.workers.tasks.submit_requests.mark_manual_removals",
        "schedule": crontab(hour=5, minute=0),
    },
}


@worker_process_init.connect
def setup_worker_logging(**kwargs):
    configure_logging(settings.log_level)


def get_async_session() -> tuple[AsyncEngine, async_sessionmaker]:
    """Create an engine and session factory for one task run.

    Each task runs on its own event loop, so the engine can't be shared.
    """
    engine = build_engine()
    return engine, build_session_factory(engine)
