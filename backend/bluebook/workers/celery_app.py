"""
Celery Application — background processing for hf.bluebook.
Runs the slow, external-facing work off the request path: AI floor-plan
analysis and Golden Thread package generation.
"""
from celery import Celery

from bluebook.config import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "bluebook",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=["bluebook.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Europe/London",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_soft_time_limit=300,   # 5 minutes soft limit
    task_time_limit=600,        # 10 minutes hard limit
    result_expires=3600,
    # Vision calls are metered per worker
    task_annotations={"tasks.analyze_floor_plan": {"rate_limit": "30/m"}},
)
