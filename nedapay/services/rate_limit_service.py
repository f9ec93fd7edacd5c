import logging
from typing import Any

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-size request counter per client, kept in Redis.

    The counter key expires ``window_seconds`` after the last accepted request.
    When Redis is unreachable requests are let through.
    """

    def __init__(self, redis_client: Any | None, max_requests: int, window_seconds: int, prefix: str = "rate_limit"):
        self.redis_client = redis_client
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prefix = prefix

    def _key(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"

    def allow(self, identifier: str) -> bool:
        if self.redis_client is None:
            return True

        key = self._key(identifier)
        try:
            current = self.redis_client.get(key)
            count = int(current) if current else 0
            if count >= self.max_requests:
                return False

            pipe = self.redis_client.pipeline()
            pipe.incr(key)
            pipe.pexpire(key, self.window_seconds * 1000)
            pipe.execute()
        except (RedisError, ConnectionError, TimeoutError) as exc:
            logger.warning(
                "Redis error while rate limiting %s: %s: %s. Allowing request.",
                identifier,
                type(exc).__name__,
                exc,
            )
        except ValueError:
            logger.error("Invalid counter value in Redis for %s", key)
        return True
