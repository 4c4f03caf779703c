"""
Celery worker for aqar.

Start worker:    celery -A aqar.worker worker --loglevel=info
"""
from celery import Celery

from aqar.core.config import settings

import sentry_sdk
from sentry_sdk.integrations.celery import CeleryIntegration as SentryCeleryIntegration

import aqar.models  # noqa: F401  register all models

celery_app = Celery(
    "aqar_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.REDIS_URL,
    include=[
        "aqar.tasks.rent",
    ],
)

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        release=settings.APP_VERSION,
        integrations=[SentryCeleryIntegration()],
        send_default_pii=False,
    )

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=False,  # a redelivered rent task would pay holders twice
    worker_prefetch_multiplier=1,
    result_expires=86400,  # 24h
)
