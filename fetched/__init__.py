"""
HTTP requests delivered through callbacks, events or futures, with an optional
time-bounded response cache.

The module-level functions use a process-wide `Client`, created on first use.
"""

import threading
from typing import Dict, Optional

from .cache import Cache, CorruptCacheFile, MemoryCache
from .client import Client
from .delivery import Emitter
from .model import (CacheEntry, InvalidOptions, Outcome, OutcomeKind, RequestOptions, RequestType,
                    ResponseSnapshot)
from .outcome import classify, is_ok


__all__ = [
    'Cache', 'CacheEntry', 'Client', 'CorruptCacheFile', 'Emitter', 'InvalidOptions', 'MemoryCache',
    'Outcome', 'OutcomeKind', 'RequestOptions', 'RequestType', 'ResponseSnapshot',
    'cache_entries', 'classify', 'close', 'default_client', 'is_ok', 'load_cache', 'request',
    'set_cache_time', 'write_cache',
]

_default_client = None  # type: Optional[Client]
_default_lock = threading.Lock()


def default_client() -> Client:
    global _default_client
    with _default_lock:
        if _default_client is None:
            _default_client = Client()
        return _default_client


def request(options):
    return default_client().request(options)


def set_cache_time(ttl: float) -> None:
    default_client().set_cache_time(ttl)


def load_cache(path) -> None:
    default_client().load_cache(path)


def write_cache(path) -> None:
    default_client().write_cache(path)


def cache_entries() -> Dict[str, CacheEntry]:
    return default_client().cache.entries


def close() -> None:
    """
    Release the process-wide client. The next call creates a fresh one.
    """
    global _default_client
    with _default_lock:
        client, _default_client = _default_client, None
    if client is not None:
        client.close()
