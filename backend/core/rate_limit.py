import threading
import time
from typing import Callable, Dict, Optional
from redis import Redis
from redis.exceptions import RedisError
from core.config import settings
from utils.logger import get_logger

logger = get_logger("backend.core.rate_limit")


class LoginRateLimiter:
    """
    Fixed-window attempt counter, held in process memory.

    State per identifier is [count, window_start]. A new window starts on the
    first attempt after the previous one expired, so up to 2x `limit` attempts
    can land around a window boundary.
    """

    def __init__(self, limit: int = 5, window_seconds: float = 15 * 60, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._attempts: Dict[str, list] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _sweep(self, now: float) -> None:
        # At most once per window, drop identifiers whose window has closed
        if now - self._last_sweep <= self.window_seconds:
            return
        self._attempts = {
            key: attempt for key, attempt in self._attempts.items()
            if now - attempt[1] <= self.window_seconds
        }
        self._last_sweep = now

    def check_and_record(self, identifier: str) -> bool:
        now = self._clock()
        with self._lock:
            self._sweep(now)
            attempt = self._attempts.get(identifier)

            if attempt is None or now - attempt[1] > self.window_seconds:
                self._attempts[identifier] = [1, now]
                return True

            if attempt[0] >= self.limit:
                logger.warning("Rate limit exceeded", extra={"identifier": identifier, "count": attempt[0], "limit": self.limit})
                return False

            attempt[0] += 1
            return True

    def reset(self, identifier: Optional[str] = None) -> None:
        with self._lock:
            if identifier is None:
                self._attempts.clear()
            else:
                self._attempts.pop(identifier, None)


class RedisLoginRateLimiter:
    """
    Same fixed-window policy with counts kept in Redis, shared by every
    process pointed at the same server. The key expiry is the window.

    INCR and EXPIRE NX go out in one MULTI block, so each attempt gets a
    distinct count and a key never outlives its window. Attempts past the
    limit are rolled back with DECR. Requires Redis 7 (EXPIRE NX).

    If Redis fails mid-flight the attempt is counted in process memory
    instead of failing the login.
    """

    def __init__(self, redis: Redis, limit: int = 5, window_seconds: int = 15 * 60, prefix: str = "login_attempts"):
        self.redis = redis
        self.limit = limit
        self.window_seconds = int(window_seconds)
        self.prefix = prefix
        self.fallback = LoginRateLimiter(limit=limit, window_seconds=window_seconds)

    def _key(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"

    def check_and_record(self, identifier: str) -> bool:
        key = self._key(identifier)
        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.incr(key)
            pipe.expire(key, self.window_seconds, nx=True)
            count, _ = pipe.execute()

            if count > self.limit:
                self.redis.decr(key)
                logger.warning("Rate limit exceeded", extra={"identifier": identifier, "count": count - 1, "limit": self.limit})
                return False
            return True
        except RedisError as e:
            logger.warning(f"Redis rate limit check failed - counting in memory: {e}", extra={"identifier": identifier})
            return self.fallback.check_and_record(identifier)

    def reset(self, identifier: Optional[str] = None) -> None:
        self.fallback.reset(identifier)
        if identifier is not None:
            self.redis.delete(self._key(identifier))
            return
        keys = list(self.redis.scan_iter(match=f"{self.prefix}:*"))
        if keys:
            self.redis.delete(*keys)


def build_login_limiter():
    """Redis-backed limiter when RATE_LIMIT_REDIS_URL is set and reachable, else in-memory."""
    limit = settings.LOGIN_RATE_LIMIT_ATTEMPTS
    window = settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS

    if settings.RATE_LIMIT_REDIS_URL:
        try:
            redis = Redis.from_url(settings.RATE_LIMIT_REDIS_URL, decode_responses=True, socket_connect_timeout=1)
            redis.ping()
            logger.info("Redis connection established for login rate limiting")
            return RedisLoginRateLimiter(redis, limit=limit, window_seconds=window)
        except RedisError as e:
            logger.warning(f"Redis not available - using in-memory login rate limiting: {e}")

    return LoginRateLimiter(limit=limit, window_seconds=window)


login_limiter = build_login_limiter()


def get_login_limiter():
    return login_limiter
