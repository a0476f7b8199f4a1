"""Celery application for rollup maintenance and analysis recovery"""

from celery import Celery
from celery.schedules import crontab

from callinsight.config import settings

celery_app = Celery(
    "callinsight",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["callinsight.jobs.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=86400,
    timezone="UTC",
    enable_utc=True,
    task_time_limit=600,  # 10 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,  # both jobs are idempotent
    task_reject_on_worker_lost=True,

    task_routes={
        "reconcile_rollups": {"queue": "maintenance"},
        "reprocess_failed_analyses": {"queue": "maintenance"},
    },

    beat_schedule={
        "reprocess-failed-analyses": {
            "task": "reprocess_failed_analyses",
            "schedule": crontab(minute=5),  # hourly
            "kwargs": {"limit": 100},
        },
        "reconcile-rollups": {
            "task": "reconcile_rollups",
            "schedule": crontab(hour=2, minute=15),  # daily, after the UTC day closes
            "kwargs": {"days": settings.rollup_reconcile_days},
        },
    },
)
