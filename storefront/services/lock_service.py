import threading
import time

import redis

from storefront.utils.retry import redis_retry
from storefront.utils.settings import CHECKOUT_LOCK_BACKEND, CHECKOUT_LOCK_TTL_SECONDS, REDIS_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


def checkout_lock_key(cart_key: str) -> str:
    return f"checkout:{cart_key}:lock"


class LocalFlightLock:
    """
    Blokada "w locie" dla jednego procesu: klucz -> (wlasciciel, wygasa).
    threading.Lock bo fastapi odpala sync endpointy w threadpoolu.
    """

    def __init__(self):
        self._held: dict[str, tuple[str, float]] = {}
        self._mutex = threading.Lock()

    def acquire(self, key: str, owner: str, ttl: int = CHECKOUT_LOCK_TTL_SECONDS) -> bool:
        now = time.monotonic()
        with self._mutex:
            current = self._held.get(key)
            if current and current[1] > now:
                logger.info(f"Lock {key} busy (held by {current[0]})")
                return False
            self._held[key] = (owner, now + ttl)
        logger.info(f"Acquire lock {key} for {owner}")
        return True

    def release(self, key: str, owner: str) -> bool:
        with self._mutex:
            current = self._held.get(key)
            if not current or current[0] != owner:
                return False
            del self._held[key]
        logger.info(f"Release lock {key} for {owner}")
        return True


class RedisFlightLock:
    """
    -blokada checkoutu wspolna dla wielu workerow
    -SET NX EX przy acquire
    -zwalnianie tylko przez wlasciciela (lua)
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @redis_retry()
    def acquire(self, key: str, owner: str, ttl: int = CHECKOUT_LOCK_TTL_SECONDS) -> bool:
        logger.info(f"Acquire lock {key} for {owner}")
        #SET checkout:pawsCart:lock "<owner>" NX EX 120
        return bool(self.redis.set(name=key, value=owner, nx=True, ex=ttl))

    @redis_retry()
    def release(self, key: str, owner: str) -> bool:
        logger.info(f"Release lock {key} for {owner}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, owner)
        return bool(res)


def build_flight_lock(backend: str | None = None):
    backend = (backend or CHECKOUT_LOCK_BACKEND).lower()
    if backend == "redis":
        return RedisFlightLock()
    if backend != "memory":
        raise ValueError(f"Unknown checkout lock backend: {backend}")
    return LocalFlightLock()
