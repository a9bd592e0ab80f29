"""Celery application for cart sweeps, dedup purges and staff texts"""

from celery import Celery

from app.config import settings
from app.core.logging import configure_logging

configure_logging(settings)

celery_app = Celery(
    "ordering",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.jobs.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_time_limit=300,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Results are never read
    task_ignore_result=True,
    beat_schedule={
        "expire-inactive-carts": {
            "task": "expire_inactive_carts",
            "schedule": 15 * 60.0,
        },
        "purge-processed-messages": {
            "task": "purge_processed_messages",
            "schedule": 24 * 60 * 60.0,
        },
    },
)
