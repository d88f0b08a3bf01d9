"""
Queue abstraction for dispatching SIF deliveries to workers.

Two lanes share one interface: an immediate FIFO of SIF ids ready for
delivery, and a delayed lane keyed by the epoch time at which a SIF becomes
due (scheduled sends and retry backoff). Supports an in-memory fallback for
tests/local runs and a Redis-backed implementation for production.
"""

from __future__ import annotations

import heapq
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions


class JobQueue(Protocol):
    """Minimal queue interface for dispatching SIF ids to workers."""

    def enqueue(self, sif_id: str) -> None:
        ...

    def enqueue_at(self, sif_id: str, due_at: float) -> None:
        ...

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        ...

    def promote_due(self, now: float | None = None) -> int:
        """Moves every delayed SIF whose time has come onto the FIFO."""
        ...


@dataclass
class InMemoryJobQueue:
    """Simple FIFO plus a heap of delayed entries for testing/dev."""

    items: list[str] = field(default_factory=list)
    delayed: list[tuple[float, str]] = field(default_factory=list)

    def enqueue(self, sif_id: str) -> None:
        self.items.append(sif_id)

    def enqueue_at(self, sif_id: str, due_at: float) -> None:
        heapq.heappush(self.delayed, (due_at, sif_id))

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        self.promote_due()
        if not self.items:
            return None
        return self.items.pop(0)

    def promote_due(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        promoted = 0
        while self.delayed and self.delayed[0][0] <= now:
            _, sif_id = heapq.heappop(self.delayed)
            self.items.append(sif_id)
            promoted += 1
        return promoted


@dataclass
class RedisJobQueue:
    """Redis list for ready SIF ids, sorted set (score = due time) for delayed ones."""

    url: str
    queue_key: str = "isif:deliveries"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    @property
    def delayed_key(self) -> str:
        return f"{self.queue_key}:delayed"

    def enqueue(self, sif_id: str) -> None:
        self.client.rpush(self.queue_key, sif_id)

    def enqueue_at(self, sif_id: str, due_at: float) -> None:
        self.client.zadd(self.delayed_key, {sif_id: due_at})

    def promote_due(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        promoted = 0
        for raw_id in self.client.zrangebyscore(self.delayed_key, "-inf", now):
            # zrem returning 0 means another worker already promoted it.
            if self.client.zrem(self.delayed_key, raw_id):
                self.client.rpush(self.queue_key, raw_id)
                promoted += 1
        return promoted

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        try:
            self.promote_due()
            if block:
                result = self.client.blpop(self.queue_key, timeout=timeout or 0)
                if result is None:
                    return None
                _, sif_id = result
            else:
                sif_id = self.client.lpop(self.queue_key)
                if sif_id is None:
                    return None
            return sif_id.decode("utf-8")
        except redis_exceptions.ConnectionError:
            # Managed Redis drops idle connections; reconnect and let the
            # worker loop poll again.
            self.client = redis.Redis.from_url(self.url)
            return None
