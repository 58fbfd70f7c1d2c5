"""
Celery configuration for background tasks

Las tareas solo se encolan por solicitud explícita (no hay beat schedule):
el núcleo no tiene procesos disparados por temporizador.
"""
from celery import Celery
import logging

logger = logging.getLogger(__name__)

# Import settings with error handling
try:
    from app.core.config import settings
    redis_url = settings.redis_url
    always_eager = settings.CELERY_TASK_ALWAYS_EAGER
except Exception as e:
    logger.warning(f"Could not load settings: {e}")
    # Fallback URL for development
    redis_url = "redis://redis:6379/0"
    always_eager = False

# Create Celery instance
celery_app = Celery(
    "minimarket_pos",
    broker=redis_url,
    backend=redis_url,
    include=[
        "app.modules.clients.tasks",
        "app.modules.pos.tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    task_always_eager=always_eager,

    # Result backend settings
    result_expires=3600,  # 1 hour

    # Task routes for different queues
    task_routes={
        "app.modules.clients.tasks.*": {"queue": "ledger"},
        "app.modules.pos.tasks.*": {"queue": "shifts"},
    },
)

if __name__ == "__main__":
    celery_app.start()
