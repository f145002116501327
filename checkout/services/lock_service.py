import redis

from checkout.utils.retry import redis_retry
from checkout.utils.settings import REDIS_URL
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

# compare-and-delete in one atomic step, only the owner can release
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Redis task locks for the periodic sweeps.
    -one worker per sweep at a time
    -the lock expires on its own if the worker dies
    """

    def __init__(self, url: str | None = None, client=None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def key(name: str) -> str:
        return f"checkout:task:{name}:lock"

    @redis_retry()
    def acquire_task_lock(self, name: str, owner: str, ttl: int) -> bool:
        key = self.key(name)
        logger.info(f"Acquire lock {key} for {owner}")
        # SET checkout:task:expire:lock "<owner>" NX EX <ttl>
        return bool(self.redis.set(name=key, value=owner, nx=True, ex=ttl))

    @redis_retry()
    def release_task_lock(self, name: str, owner: str) -> bool:
        key = self.key(name)
        logger.info(f"Release lock {key} for {owner}")
        return bool(self.redis.eval(_RELEASE_LUA, 1, key, owner))
