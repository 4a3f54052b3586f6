"""
Celery configuration for the contact API
Broker: Redis
Workers: notification delivery (confirmation + admin emails)
"""

from datetime import datetime, timezone

from celery import Celery, Task
from celery.exceptions import Ignore, Retry

from app.core.celery_runtime import (
    resolve_celery_broker_url,
    resolve_celery_result_backend,
)
from app.core.sanitizer import redact_pii
from app.workers.dlq import enqueue_failure


class DlqTask(Task):
    """Base task that sends terminal failures to the DLQ."""

    abstract = True

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        if isinstance(exc, (Retry, Ignore)):
            return super().on_failure(exc, task_id, args, kwargs, einfo)

        max_retries = getattr(self, "max_retries", None)
        retries = getattr(self.request, "retries", 0)
        if max_retries is not None and retries < max_retries:
            return super().on_failure(exc, task_id, args, kwargs, einfo)

        delivery = getattr(self.request, "delivery_info", {}) or {}
        payload = {
            "task_id": task_id,
            "task_name": self.name,
            "queue": delivery.get("routing_key"),
            "args": args,
            "kwargs": kwargs,
            "retries": retries,
            "max_retries": max_retries,
            "error_type": type(exc).__name__,
            "error_message": redact_pii(str(exc)),
            "traceback": getattr(einfo, "traceback", None),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "hostname": getattr(self.request, "hostname", None),
        }
        enqueue_failure(payload)

        return super().on_failure(exc, task_id, args, kwargs, einfo)


celery_app = Celery(
    'contact_api',
    broker=resolve_celery_broker_url(),
    backend=resolve_celery_result_backend(),
    include=[
        'workers.tasks.notification',
    ]
)

celery_app.Task = DlqTask

# Threads other than the importing one resolve shared_task proxies here too
celery_app.set_default()

celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Routing
    task_routes={
        'workers.tasks.notification.send_confirmation_email': {'queue': 'notification'},
        'workers.tasks.notification.send_admin_notification': {'queue': 'notification'},
    },

    # Publishing must fail fast so the API can fall back to in-process delivery
    task_publish_retry=True,
    task_publish_retry_policy={
        'max_retries': 2,
        'interval_start': 0,
        'interval_step': 0.2,
        'interval_max': 0.5,
    },
    broker_connection_timeout=3,

    # Retry policy
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_max_retries=3,
    task_default_retry_delay=60,

    # Worker settings
    worker_max_tasks_per_child=1000,
)

celery_app.conf.task_default_queue = 'default'
