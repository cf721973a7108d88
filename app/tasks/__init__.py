"""
Celery app for background work.

Only invitation e-mails run here; everything else is answered inside the
request. Start a worker with:

    celery -A app.tasks.celery_app worker -Q email --loglevel=INFO
"""
from __future__ import annotations

import os

from celery import Celery

from app.config import _env_int

EMAIL_QUEUE = "email"


def make_celery() -> Celery:
    # An empty REDIS_URL (tests, local runs without e-mail) still needs a broker URL to build the app.
    broker = os.getenv("REDIS_URL") or "redis://localhost:6379/0"
    backend = os.getenv("CELERY_RESULT_BACKEND") or broker

    app = Celery("training_platform", broker=broker, backend=backend, include=["app.tasks.email_task"])
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_routes={"app.tasks.email_task.*": {"queue": EMAIL_QUEUE}},
        # Results are only looked at when debugging a failed invite.
        result_expires=3600,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        worker_concurrency=_env_int("CELERY_CONCURRENCY", 2),
        # Keeps bulk invites under typical SMTP provider limits.
        task_default_rate_limit="30/m",
    )
    return app


celery_app = make_celery()
