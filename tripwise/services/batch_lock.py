"""
Cross-process guard for the pricing batch.

With the celery backend the API process and every worker child build their
own PricingScheduler, so a per-process threading.Lock cannot keep batches
apart. RedisBatchLock wraps a redis lock behind the same acquire / release /
locked surface the scheduler already uses.
"""

from __future__ import annotations

import logging

import redis
from redis.exceptions import LockError

logger = logging.getLogger(__name__)


class RedisBatchLock:
    def __init__(self, client: redis.Redis, name: str, timeout: float):
        self.name = name
        self._lock = client.lock(name, timeout=timeout, blocking=False)

    @classmethod
    def from_url(cls, url: str, name: str, timeout: float) -> "RedisBatchLock":
        return cls(redis.Redis.from_url(url), name, timeout)

    def acquire(self, blocking: bool = False) -> bool:
        return bool(self._lock.acquire(blocking=blocking))

    def release(self) -> None:
        try:
            self._lock.release()
        except LockError:
            # expiry handed the lock to someone else while this batch ran
            logger.warning("Pricing batch lock %s expired before release", self.name)

    def locked(self) -> bool:
        return bool(self._lock.locked())
