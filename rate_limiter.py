"""
Fixed-window rate limiting per client IP
The counter store is injected: in-memory for a single instance, Redis when
several serverless instances must share limits
"""

import json
import logging
import time
from typing import Callable, Dict, Optional

import redis

from config import (
    DEFAULT_RATE_LIMIT_MAX_REQUESTS,
    DEFAULT_RATE_LIMIT_WINDOW_MS,
    RATE_LIMIT_MAX_ENTRIES,
)
from models import RateLimitEntry

logger = logging.getLogger(__name__)

FALLBACK_CLIENT_IP = '127.0.0.1'


def _now_ms():
    return time.time() * 1000


class InMemoryRateLimitStore:
    """Process-local store; counts are lost on cold start"""

    backend_name = 'memory'

    def __init__(self, max_entries: int = RATE_LIMIT_MAX_ENTRIES):
        self.max_entries = max_entries
        self._entries: Dict[str, RateLimitEntry] = {}

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key):
        return key in self._entries

    def get(self, key: str) -> Optional[RateLimitEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: RateLimitEntry, ttl_ms: float):
        self._entries[key] = entry

    def cleanup(self, now_ms: float, window_ms: int):
        """Drop long-expired entries once the map grows past max_entries"""
        if len(self._entries) <= self.max_entries:
            return

        cutoff = now_ms - window_ms
        expired = [key for key, entry in self._entries.items() if entry.reset_at < cutoff]
        for key in expired:
            del self._entries[key]

        logger.info(f"Rate limit cleanup removed {len(expired)} entries, {len(self._entries)} remaining")


class RedisRateLimitStore:
    """Shared store; entries expire through Redis TTLs"""

    backend_name = 'redis'
    key_prefix = 'ebay-search:ratelimit:'

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str):
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> Optional[RateLimitEntry]:
        try:
            data = self.client.get(self.key_prefix + key)
        except redis.RedisError as e:
            logger.warning(f"Redis get failed for rate limit entry: {e}")
            return None
        if not data:
            return None
        try:
            return RateLimitEntry.from_dict(json.loads(data))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Discarding unreadable rate limit entry for {key}: {e}")
            return None

    def set(self, key: str, entry: RateLimitEntry, ttl_ms: float):
        try:
            self.client.set(self.key_prefix + key, json.dumps(entry.to_dict()), px=max(int(ttl_ms), 1))
        except redis.RedisError as e:
            logger.warning(f"Redis set failed for rate limit entry: {e}")

    def cleanup(self, now_ms: float, window_ms: int):
        # Redis expires keys on its own
        return None


class FixedWindowRateLimiter:
    """
    Allows max_requests per client within each window_ms window

    The check is read-then-write, so simultaneous requests from one IP can
    slip a few requests past the limit.
    """

    def __init__(self, store=None, window_ms: int = DEFAULT_RATE_LIMIT_WINDOW_MS,
                 max_requests: int = DEFAULT_RATE_LIMIT_MAX_REQUESTS,
                 clock: Callable[[], float] = _now_ms):
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.window_ms = window_ms
        self.max_requests = max_requests
        self.clock = clock

    @property
    def retry_after_seconds(self):
        return int(self.window_ms // 1000)

    def check(self, client_ip: str) -> bool:
        """
        Count a request from client_ip

        Args:
            client_ip (str): Resolved client address

        Returns:
            bool: True if the request is allowed
        """
        now = self.clock()
        self.store.cleanup(now, self.window_ms)

        entry = self.store.get(client_ip)
        if entry is None:
            entry = RateLimitEntry(request_count=0, reset_at=now + self.window_ms)

        if entry.is_expired(now):
            entry.request_count = 0
            entry.reset_at = now + self.window_ms

        if entry.request_count >= self.max_requests:
            return False

        entry.request_count += 1
        self.store.set(client_ip, entry, entry.reset_at - now)
        return True


def get_client_ip(request) -> str:
    """Resolve the caller IP: X-Forwarded-For, X-Real-IP, socket address, loopback"""
    forwarded_for = request.headers.get('X-Forwarded-For', '')
    if forwarded_for:
        first = forwarded_for.split(',')[0].strip()
        if first:
            return first

    real_ip = request.headers.get('X-Real-IP', '').strip()
    if real_ip:
        return real_ip

    return request.remote_addr or FALLBACK_CLIENT_IP


def create_rate_limiter(config) -> FixedWindowRateLimiter:
    """
    Build the limiter described by the app config

    Falls back to the in-memory store when Redis is configured but unreachable.
    """
    store = None
    redis_url = config.get('RATE_LIMIT_REDIS_URL')
    if redis_url:
        try:
            store = RedisRateLimitStore.from_url(redis_url)
            store.client.ping()
            logger.info("Using Redis rate limit store")
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis unavailable for rate limiting, using in-memory store: {e}")
            store = None

    return FixedWindowRateLimiter(
        store=store,
        window_ms=config.get('RATE_LIMIT_WINDOW_MS', DEFAULT_RATE_LIMIT_WINDOW_MS),
        max_requests=config.get('RATE_LIMIT_MAX_REQUESTS', DEFAULT_RATE_LIMIT_MAX_REQUESTS),
    )
