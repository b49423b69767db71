"""
Celery configuration for background tasks (impresión de tickets y comandas)
"""
from celery import Celery
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

# Create Celery instance
celery_app = Celery(
    "pos_api",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.modules.printing.tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.BUSINESS_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=2 * 60,  # 2 minutes
    task_soft_time_limit=90,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Los tickets no se reintentan eternamente ni se guardan resultados mucho tiempo
    task_ignore_result=True,
    result_expires=3600,  # 1 hour

    # Task routes for different queues
    task_routes={
        "app.modules.printing.tasks.*": {"queue": "printing"},
    },
)

if __name__ == "__main__":
    celery_app.start()
