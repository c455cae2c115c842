"""
Celery application for pipeline execution workers
"""

import logging

from celery import Celery

from core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "data_platform",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "worker.tasks",
    ]
)

celery_app.conf.update(
    # Task settings
    task_track_started=True,
    task_acks_late=True,  # Acknowledge only after the run finished
    worker_prefetch_multiplier=1,  # One request at a time per worker
    task_ignore_result=settings.CELERY_RESULT_BACKEND is None,

    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Routing
    task_default_queue=settings.CELERY_QUEUE,
    task_routes={
        "worker.tasks.execute_pipeline": {"queue": settings.CELERY_QUEUE},
    },
)
