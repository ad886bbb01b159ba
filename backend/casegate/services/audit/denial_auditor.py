import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from redis.asyncio import Redis as AsyncRedis

from ...auth.rbac_contract import Action, Resource
from ...domain.access import AuthenticatedUser, DenialReason, RequestMeta
from ...domain.ports.denial_log import DenialLogRepositoryFactory

logger = logging.getLogger("casegate.audit")

DENIAL_THRESHOLD = 3
DENIAL_WINDOW_SECONDS = 300
REDIS_KEY_PREFIX = "denials:"

Clock = Callable[[], float]


def counter_key(user_id, resource: Resource | str, action: Action | str) -> str:
    resource_value = getattr(resource, "value", resource)
    action_value = getattr(action, "value", action)
    return f"{user_id}:{resource_value}:{action_value}"


class DenialCounterStore(Protocol):
    async def hit(self, key: str, now: float) -> int:
        """Count one denial and return the count after it.

        When the count reaches the threshold the counter is removed in the
        same atomic step, so exactly one caller sees the threshold value.
        """
        ...


@dataclass
class _Counter:
    count: int
    last_denial_at: float


class InMemoryDenialCounterStore:
    """Process-wide counters guarded by a lock.

    Counters are only reset lazily, on the next denial for the same key;
    there is no background sweep.
    """

    def __init__(
        self,
        threshold: int = DENIAL_THRESHOLD,
        window_seconds: float = DENIAL_WINDOW_SECONDS,
    ) -> None:
        self.threshold = threshold
        self.window_seconds = window_seconds
        self._counters: dict[str, _Counter] = {}
        self._lock = threading.Lock()

    def hit_sync(self, key: str, now: float) -> int:
        with self._lock:
            counter = self._counters.get(key)
            if counter is None or now - counter.last_denial_at > self.window_seconds:
                counter = _Counter(count=0, last_denial_at=now)
                self._counters[key] = counter
            counter.count += 1
            counter.last_denial_at = now
            count = counter.count
            if count >= self.threshold:
                del self._counters[key]
            return count

    async def hit(self, key: str, now: float) -> int:
        return self.hit_sync(key, now)

    def peek(self, key: str) -> int:
        with self._lock:
            counter = self._counters.get(key)
            return counter.count if counter else 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()


# KEYS[1] counter key; ARGV: now, window, threshold, ttl seconds
_HIT_SCRIPT = """
local data = redis.call('HMGET', KEYS[1], 'count', 'last')
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local threshold = tonumber(ARGV[3])
local count = tonumber(data[1]) or 0
local last = tonumber(data[2])
if last == nil or now - last > window then
    count = 0
end
count = count + 1
if count >= threshold then
    redis.call('DEL', KEYS[1])
    return count
end
redis.call('HSET', KEYS[1], 'count', count, 'last', ARGV[1])
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[4]))
return count
"""


class RedisDenialCounterStore:
    """Counters shared across worker processes.

    The read-modify-write runs as one Lua script, so concurrent denials
    from different processes cannot lose an increment. Keys expire after
    the window.
    """

    def __init__(
        self,
        redis_client: AsyncRedis,
        threshold: int = DENIAL_THRESHOLD,
        window_seconds: float = DENIAL_WINDOW_SECONDS,
    ) -> None:
        self._redis = redis_client
        self.threshold = threshold
        self.window_seconds = window_seconds

    async def hit(self, key: str, now: float) -> int:
        result = await self._redis.eval(
            _HIT_SCRIPT,
            1,
            f"{REDIS_KEY_PREFIX}{key}",
            now,
            self.window_seconds,
            self.threshold,
            max(1, math.ceil(self.window_seconds)),
        )
        return int(result)


class DenialAuditor:
    """Persists a denial log only for repeated denials.

    A single denial stays in the counter store. The denial that brings a
    (user, resource, action) key to the threshold inside the window writes
    one PermissionDenialLog row and clears the counter.
    """

    def __init__(
        self,
        store: DenialCounterStore,
        repository_factory: DenialLogRepositoryFactory,
        *,
        threshold: int = DENIAL_THRESHOLD,
        clock: Clock = time.time,
    ) -> None:
        self._store = store
        self._repository_factory = repository_factory
        self.threshold = threshold
        self._clock = clock

    async def record_denial(
        self,
        user: AuthenticatedUser,
        resource: Resource,
        action: Action,
        resource_id: str | None,
        reason: DenialReason | str,
        request_meta: RequestMeta | None = None,
    ) -> bool:
        """Count a denial and persist it once the threshold is reached.

        Returns True when a log row was written. Never raises: counter and
        persistence failures are logged and dropped.
        """
        key = counter_key(user.id, resource, action)
        reason_value = getattr(reason, "value", reason)
        try:
            count = await self._store.hit(key, self._clock())
        except Exception as exc:
            logger.error("denial_counter_failed key=%s", key, exc_info=exc)
            return False

        if count < self.threshold:
            logger.debug("denial_counted key=%s count=%d", key, count)
            return False

        meta = request_meta or RequestMeta()
        try:
            async with self._repository_factory() as repository:
                await repository.create(
                    org_id=user.org_id,
                    user_id=user.id,
                    resource=getattr(resource, "value", resource),
                    action=getattr(action, "value", action),
                    resource_id=resource_id,
                    reason=reason_value,
                    ip_address=meta.ip_address,
                    user_agent=meta.user_agent,
                )
        except Exception as exc:
            logger.error(
                "denial_log_persist_failed key=%s reason=%s", key, reason_value, exc_info=exc
            )
            return False

        logger.info(
            "denial_log_persisted key=%s count=%d reason=%s resource_id=%s",
            key,
            count,
            reason_value,
            resource_id,
        )
        return True


def build_counter_store(
    backend: str,
    *,
    threshold: int = DENIAL_THRESHOLD,
    window_seconds: float = DENIAL_WINDOW_SECONDS,
    redis_client: AsyncRedis | None = None,
) -> DenialCounterStore:
    if backend == "memory":
        return InMemoryDenialCounterStore(threshold=threshold, window_seconds=window_seconds)
    if backend == "redis":
        if redis_client is None:
            raise ValueError("redis counter backend requires a redis client")
        return RedisDenialCounterStore(
            redis_client, threshold=threshold, window_seconds=window_seconds
        )
    raise ValueError(f"Unknown denial counter backend: {backend}")
