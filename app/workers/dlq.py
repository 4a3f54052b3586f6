from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

import redis

from app.core.celery_runtime import resolve_dlq_redis_url
from app.core.config import settings

logger = logging.getLogger(__name__)


def _client() -> redis.Redis:
    return redis.from_url(resolve_dlq_redis_url(), socket_timeout=5)


def enqueue_failure(payload: Dict[str, Any]) -> bool:
    """Push a terminally failed notification onto the dead-letter list."""
    key = settings.NOTIFICATION_DLQ_KEY
    max_len = max(settings.NOTIFICATION_DLQ_MAX_LENGTH, 0)
    try:
        client = _client()
        data = json.dumps(payload, default=str, ensure_ascii=True)
        pipe = client.pipeline()
        pipe.lpush(key, data)
        if max_len:
            pipe.ltrim(key, 0, max_len - 1)
        pipe.execute()
    except Exception as exc:
        logger.exception(
            "dlq_enqueue_failed key=%s error=%s",
            key,
            exc,
            extra={"event": "dlq_enqueue_failed"},
        )
        return False

    logger.warning(
        "Notification moved to DLQ key=%s task=%s",
        key,
        payload.get("task_name"),
        extra={"event": "dlq_enqueued"},
    )
    return True


def peek_failures(limit: int = 20) -> List[Dict[str, Any]]:
    """Most recent dead-lettered payloads, newest first."""
    raw = _client().lrange(settings.NOTIFICATION_DLQ_KEY, 0, max(limit, 1) - 1)
    return [json.loads(item) for item in raw]
