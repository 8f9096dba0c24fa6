import logging
import threading
import time

import redis
from flask import current_app

from ..errors import RateLimited

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_EXT = 'access_gate.rate_store'


class MemoryCounters:
    """Process-local counters answering the two Redis calls the limiter makes."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._counts = {}  # key -> (count, deadline or None)
        self._guard = threading.Lock()

    def _live(self, key):
        count, deadline = self._counts.get(key, (0, None))
        if deadline is not None and deadline <= self._clock():
            self._counts.pop(key, None)
            return 0, None
        return count, deadline

    def incr(self, key):
        with self._guard:
            count, deadline = self._live(key)
            self._counts[key] = (count + 1, deadline)
            # window buckets never come back; forget the stale ones
            if len(self._counts) > 1024:
                now = self._clock()
                self._counts = {k: v for k, v in self._counts.items() if v[1] is None or v[1] > now}
            return count + 1

    def expire(self, key, ttl):
        with self._guard:
            count, _ = self._live(key)
            if count:
                self._counts[key] = (count, self._clock() + ttl)


def _connect(app):
    url = app.config.get('REDIS_URL')
    if app.config.get('USE_REDIS') and url:
        try:
            client = redis.from_url(url, decode_responses=True, socket_timeout=2)
            client.ping()
            logger.info('rate limiting backed by redis')
            return client
        except redis.RedisError as e:
            logger.warning('redis unavailable (%s), rate limiting in memory', e)
    return MemoryCounters()


def r():
    store = current_app.extensions.get(_EXT)
    if store is not None:
        return store
    with _lock:
        store = current_app.extensions.get(_EXT)
        if store is None:
            store = _connect(current_app)
            current_app.extensions[_EXT] = store
        return store


def check_rate_ip(ip: str, limit: int | None = None, window: int | None = None):
    limit = limit or current_app.config.get('CHECK_RATE_LIMIT', 60)
    window = window or current_app.config.get('CHECK_RATE_WINDOW', 60)
    if limit <= 0:
        return
    k = f"rl:check:{ip}:{int(time.time() // window)}"
    try:
        v = r().incr(k)
        r().expire(k, window)
    except redis.RedisError as e:
        # advisory only
        logger.warning('rate limit skipped: %s', e)
        return
    if v > limit:
        raise RateLimited('too many link checks, slow down')
