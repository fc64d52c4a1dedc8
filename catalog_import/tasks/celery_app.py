"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from catalog_import.config.settings import get_settings

settings = get_settings()

# Create Celery app
app = Celery(
    "catalog_import",
    broker=settings.broker_url,
    backend=settings.result_backend,
    include=[
        "catalog_import.tasks.imports",
    ],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=2 * 60 * 60,  # 2 hours
    task_soft_time_limit=110 * 60,  # 1 hour 50 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,
)

# Configure periodic tasks with Celery Beat
app.conf.beat_schedule = {
    # Remove old progress records and spilled results (daily at 4 AM)
    "cleanup-import-progress-daily": {
        "task": "tasks.cleanup_import_progress",
        "schedule": crontab(hour=4, minute=0),
        "kwargs": {"days_old": settings.cleanup_days_old},
    },
}

if __name__ == "__main__":
    app.start()
