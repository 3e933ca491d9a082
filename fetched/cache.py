from abc import ABC, abstractmethod
import base64
import copy
import hashlib
import json
import logging
from pathlib import Path
import threading
import time
from typing import Callable, Dict, Optional, Union

from .model import CacheEntry, RequestOptions, ResponseSnapshot
from .util import dumps


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# How a `bytes` body is spelled in a cache file.
BASE64 = 'base64'


def build_hash(options: RequestOptions) -> str:
    """
    The cache key for a normalized request: the SHA-256 of its JSON form.
    """
    content = dumps(options.to_dict(), sort_keys=True)
    return hashlib.sha256(content.encode('utf-8')).hexdigest()


class CorruptCacheFile(Exception):
    def __init__(self, path: PathLike):
        super().__init__('Cannot read cache file: {}'.format(path))
        self.__path = Path(path)

    @property
    def path(self) -> Path:
        return self.__path


class Cache(ABC):
    """
    An abstraction of a response cache.

    A response cache has a relatively narrow scope: to remember a response for a limited time such that it can be
    recalled later under the same key. Expired entries are dropped lazily, as the first step of `lookup()` and
    `insert()`; there is no background sweeper.
    """

    @abstractmethod
    def purge(self) -> None:
        """
        Remove every entry whose expiry has passed.
        """

    @abstractmethod
    def lookup(self, key: str) -> Optional[ResponseSnapshot]:
        """
        Retrieve a cached response.

        @param key
          The hash of the normalized request.
        @return
          The cached response, or `None` if there is no unexpired one.
        """

    @abstractmethod
    def insert(self, key: str, ttl: float, response) -> CacheEntry:
        """
        Add a response to the cache, replacing any entry under `key`.

        @param key
          The hash of the normalized request.
        @param ttl
          How long the entry lives, in milliseconds.
        @param response
          The response to cache. Only the `ResponseSnapshot` fields are kept.
        @return
          The stored entry.
        """

    @abstractmethod
    def load_from(self, path: PathLike) -> None:
        """
        Merge the entries of a file written by `dump_to()` into the cache.

        Entries are taken as they are; expired ones go on the next purge. A missing file is not an error.
        """

    @abstractmethod
    def dump_to(self, path: PathLike) -> None:
        """
        Write every entry, including expired ones not yet purged, to a file.
        """

    @property
    @abstractmethod
    def entries(self) -> Dict[str, CacheEntry]:
        """
        The live table of entries, keyed by request hash.
        """

    @property
    @abstractmethod
    def default_ttl(self) -> float:
        """
        The TTL in milliseconds applied to requests that do not set their own. 0 disables caching.
        """

    @abstractmethod
    def set_default_ttl(self, ttl: float) -> None:
        pass

    def close(self):
        """
        Close any resources associated with the cache.
        """


class MemoryCache(Cache):
    """
    The cache of a single process, held in a dict.

    Each public operation runs under one lock, so requests finishing on different worker threads cannot interleave
    a purge with an insert or a lookup.
    """

    def __init__(self, default_ttl: float = 0, clock: Callable[[], float] = time.time) -> None:
        """
        Initialize the cache.

        @param default_ttl
          The TTL in milliseconds for requests that do not specify one.
        @param clock
          Returns the current time in seconds. Swapped out in tests.
        """
        self.__entries = {}  # type: Dict[str, CacheEntry]
        self.__default_ttl = default_ttl
        self.__clock = clock
        self.__lock = threading.RLock()

    def _now(self) -> float:
        return self.__clock() * 1000

    @property
    def entries(self) -> Dict[str, CacheEntry]:
        """
        The live table. Meant for inspection; mutate it through the methods.
        """
        return self.__entries

    @property
    def default_ttl(self) -> float:
        return self.__default_ttl

    def set_default_ttl(self, ttl: float) -> None:
        logger.info('Setting the default cache TTL to {} ms.'.format(ttl))
        self.__default_ttl = ttl

    def purge(self) -> None:
        with self.__lock:
            now = self._now()
            expired = [key for key, entry in self.__entries.items() if entry.is_expired(now)]
            for key in expired:
                del self.__entries[key]
            if expired:
                logger.info('Purged {} expired cache entries.'.format(len(expired)))

    def lookup(self, key: str) -> Optional[ResponseSnapshot]:
        with self.__lock:
            self.purge()
            entry = self.__entries.get(key)
            if entry is None:
                logger.info('No matching cache entry found.')
                return None
            logger.info('Returning response from cache.')
            return copy.deepcopy(entry.data)

    def insert(self, key: str, ttl: float, response) -> CacheEntry:
        with self.__lock:
            self.purge()
            # Project the response so the entry holds no reference to a live connection.
            entry = CacheEntry(data=copy.deepcopy(ResponseSnapshot.project(response)),
                               expires_at=self._now() + ttl)
            self.__entries[key] = entry
            logger.info('Cached response for {} ms.'.format(ttl))
            return entry

    def clear(self) -> None:
        with self.__lock:
            self.__entries.clear()

    def load_from(self, path: PathLike) -> None:
        path = Path(path)
        if not path.exists():
            logger.info('No cache file at {}. Nothing to load.'.format(path))
            return

        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
            loaded = {key: entry_from_json(value) for key, value in raw.items()}
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            logger.warning('Found a corrupt cache file at {}.'.format(path))
            raise CorruptCacheFile(path) from e

        with self.__lock:
            self.__entries.update(loaded)
        logger.info('Loaded {} cache entries from {}.'.format(len(loaded), path))

    def dump_to(self, path: PathLike) -> None:
        path = Path(path)
        with self.__lock:
            serialized = {key: entry_to_json(entry) for key, entry in self.__entries.items()}
        with open(path, 'w', encoding='utf-8') as f:
            f.write(dumps(serialized))
        logger.info('Wrote {} cache entries to {}.'.format(len(serialized), path))


def entry_to_json(entry: CacheEntry) -> dict:
    """
    The JSON form of an entry. A `bytes` body is stored as base64 and flagged
    with `body_encoding`, so a JSON body of any shape reads back unchanged.
    """
    serialized = entry.to_dict()
    body = entry.data.body
    if isinstance(body, (bytes, bytearray)):
        serialized['data']['body'] = base64.b64encode(bytes(body)).decode('ascii')
        serialized['body_encoding'] = BASE64
    return serialized


def entry_from_json(value: dict) -> CacheEntry:
    """
    @throws KeyError, TypeError, AttributeError, ValueError
      If `value` is not something `entry_to_json()` wrote.
    """
    data = dict(value['data'])
    encoding = value.get('body_encoding')
    if encoding == BASE64:
        data['body'] = base64.b64decode(data['body'], validate=True)
    elif encoding is not None:
        raise ValueError('Unknown body encoding: {}'.format(encoding))
    return CacheEntry(data=ResponseSnapshot.project(data), expires_at=value['expires_at'])
