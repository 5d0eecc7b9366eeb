import json
import logging
from datetime import datetime, timezone
from typing import Any

from redis import Redis
from redis.exceptions import RedisError

from worker.config import WorkerSettings, get_settings

NOTIFICATIONS_KEY = "notifications"
MAX_NOTIFICATIONS = 500

logger = logging.getLogger(__name__)


class Notifier:
    """Fire-and-forget operator notifications pushed onto a Redis list."""

    def __init__(self, settings: WorkerSettings | None = None, redis_client: Redis | None = None) -> None:
        self.settings = settings or get_settings()
        self.fallback: list[dict[str, Any]] = []
        self._redis: Redis | None = redis_client
        if self._redis is None and self.settings.notifications_enabled:
            try:
                self._redis = Redis.from_url(self.settings.redis_url, decode_responses=True)
                self._redis.ping()
            except RedisError:
                logger.warning("Redis unavailable at %s; keeping notifications in memory", self.settings.redis_url)
                self._redis = None

    def notify(self, kind: str, title: str, message: str, **details: Any) -> None:
        payload = {
            "kind": kind,
            "title": title,
            "message": message,
            "details": details,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        encoded = json.dumps(payload, default=str)
        try:
            if self._redis:
                self._redis.lpush(NOTIFICATIONS_KEY, encoded)
                self._redis.ltrim(NOTIFICATIONS_KEY, 0, MAX_NOTIFICATIONS - 1)
                return
        except RedisError as exc:
            logger.warning("Failed to push notification to Redis: %s", exc)
        self.fallback.append(payload)
        del self.fallback[:-MAX_NOTIFICATIONS]
