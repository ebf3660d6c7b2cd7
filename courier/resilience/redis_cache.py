"""Redis-backed implementation of the shared cache contract."""
import json
import logging
from typing import Any, Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# KEYS[1] = key, ARGV[1] = expected (JSON, "" for absent), ARGV[2] = new (JSON),
# ARGV[3] = ttl seconds ("0" for none).
_CAS_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if ARGV[1] == '' then
    if current then return 0 end
elseif current ~= ARGV[1] then
    return 0
end
if tonumber(ARGV[3]) > 0 then
    redis.call('SET', KEYS[1], ARGV[2], 'EX', ARGV[3])
else
    redis.call('SET', KEYS[1], ARGV[2])
end
return 1
"""


class RedisCache:
    """Cache stored in Redis so every worker sees the same breaker state.

    Values are JSON-encoded. Counters are stored as plain integers, which
    are also valid JSON, so ``get`` on a counter returns an int.

    Args:
        redis: Async Redis client.
        key_prefix: Namespace prepended to every key.
    """

    def __init__(self, redis: Redis, key_prefix: str = "courier") -> None:
        self.redis = redis
        self.key_prefix = key_prefix
        self._cas = redis.register_script(_CAS_SCRIPT)

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    async def get(self, key: str) -> Any:
        raw = await self.redis.get(self._make_key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error("Discarding undecodable cache value for %s", key)
            return None

    async def put(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        await self.redis.set(self._make_key(key), json.dumps(value), ex=ttl or None)

    async def increment(self, key: str, by: int = 1, ttl: Optional[int] = None) -> int:
        full_key = self._make_key(key)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.incrby(full_key, by)
            if ttl:
                pipe.expire(full_key, ttl)
            results = await pipe.execute()
        return int(results[0])

    async def compare_and_swap(
        self, key: str, expected: Any, new: Any, ttl: Optional[int] = None
    ) -> bool:
        expected_raw = "" if expected is None else json.dumps(expected)
        result = await self._cas(
            keys=[self._make_key(key)],
            args=[expected_raw, json.dumps(new), int(ttl or 0)],
        )
        return bool(result)

    async def forget(self, key: str) -> bool:
        return bool(await self.redis.delete(self._make_key(key)))
