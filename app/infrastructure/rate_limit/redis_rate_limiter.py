import redis

from ...application.ports.rate_limiter import RateLimiter


class RedisRateLimiter(RateLimiter):
    def __init__(self, url: str = None, prefix: str = "rl:", client=None) -> None:
        self.client = client if client is not None else redis.Redis.from_url(url)
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        rk = self._key(key)
        # Use Redis INCR with EXPIRE for the window
        pipe = self.client.pipeline()
        pipe.incr(rk, 1)
        pipe.expire(rk, window_seconds)
        count, _ = pipe.execute()
        return int(count) <= int(max_requests)

    def reset(self, key: str) -> None:
        self.client.delete(self._key(key))
