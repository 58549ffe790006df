import copy
import time
from collections import OrderedDict
from functools import wraps
from threading import RLock


def _freeze(value):
    if isinstance(value, (str, int, float, bool, type(None), bytes)):
        return value
    if isinstance(value, dict):
        return tuple(sorted((str(key), _freeze(val)) for key, val in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return repr(value)


class TTLCache:
    """Bounded LRU store whose entries expire ``ttl`` seconds after insertion."""

    def __init__(self, ttl_seconds, maxsize=1024, clock=time.monotonic):
        self.ttl = float(ttl_seconds or 0)
        self.maxsize = max(1, int(maxsize or 1))
        self._clock = clock
        self._entries = OrderedDict()
        self._lock = RLock()

    def get(self, key, default=None):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return default
            self._entries.move_to_end(key)
            return copy.deepcopy(value)

    def set(self, key, value):
        if self.ttl <= 0:
            return
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl, copy.deepcopy(value))
            self._entries.move_to_end(key)
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)


_MISSING = object()


def ttl_cache(ttl_seconds=3600, maxsize=1024, cache_none=False):
    """Memoize a function for ``ttl_seconds``; ``None`` results are retried unless cache_none."""

    def decorator(func):
        store = TTLCache(ttl_seconds, maxsize)

        @wraps(func)
        def wrapper(*args, **kwargs):
            key = (_freeze(args), _freeze(kwargs))
            cached = store.get(key, _MISSING)
            if cached is not _MISSING:
                return cached

            result = func(*args, **kwargs)
            if result is not None or cache_none:
                store.set(key, result)
            return copy.deepcopy(result)

        wrapper.cache_clear = store.clear
        wrapper.cache = store
        return wrapper

    return decorator
