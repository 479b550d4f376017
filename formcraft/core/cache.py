import logging
from typing import Dict, Iterable
import redis
from fastapi import Request
from formcraft.core.config import Settings

logger = logging.getLogger(__name__)

class ViewCounter:
    """Per-form view counters kept in Redis.

    Counter failures never break the page that triggered them: errors are
    logged and reads fall back to zero.
    """

    def __init__(self, client: redis.Redis):
        self.redis = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "ViewCounter":
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )
        return cls(client)

    def view_key(self, form_id: str) -> str:
        return f"views:form:{form_id}"

    def bump_view(self, form_id: str) -> None:
        try:
            self.redis.incr(self.view_key(form_id), 1)
        except redis.RedisError as e:
            logger.error(f"View counter bump error for form {form_id}: {e}")

    def get_views(self, form_ids: Iterable[str]) -> Dict[str, int]:
        ids = [str(f) for f in form_ids]
        if not ids:
            return {}
        try:
            raw = self.redis.mget([self.view_key(f) for f in ids])
        except redis.RedisError as e:
            logger.error(f"View counter read error: {e}")
            return {f: 0 for f in ids}
        return {f: int(v or 0) for f, v in zip(ids, raw)}

    def drop(self, form_id: str) -> None:
        try:
            self.redis.delete(self.view_key(form_id))
        except redis.RedisError as e:
            logger.error(f"View counter delete error for form {form_id}: {e}")

    def close(self) -> None:
        self.redis.close()

def get_view_counter(request: Request) -> ViewCounter:
    return request.app.state.view_counter
