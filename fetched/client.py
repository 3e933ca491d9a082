import logging
from typing import Optional

import requests

from .cache import Cache, MemoryCache, PathLike
from .delivery import for_request_type
from .executor import RequestExecutor
from .options import normalize


logger = logging.getLogger(__name__)


class Client:
    """
    Owns a response cache and the executor that uses it.

    `request()` accepts a URL string, a mapping or a `RequestOptions`. What it
    returns depends on the request type: nothing for a callback, a future for
    "promise" or a future class, an `Emitter` otherwise.
    """

    def __init__(self, cache: Optional[Cache] = None, session: Optional[requests.Session] = None,
                 max_workers: int = 8) -> None:
        self.cache = cache if cache is not None else MemoryCache()
        self.executor = RequestExecutor(self.cache, session=session, max_workers=max_workers)

    def request(self, options):
        """
        @throws InvalidOptions
          Before any I/O, if `options` is missing or has no resolvable hostname.
        """
        options, request_type, target = normalize(options)
        logger.info('Dispatching {} {} with {} delivery.'.format(options.method, options.hostname,
                                                                  request_type.value))
        return for_request_type(request_type, target).deliver(self.executor, options)

    def set_cache_time(self, ttl: float) -> None:
        self.cache.set_default_ttl(ttl)

    def load_cache(self, path: PathLike) -> None:
        self.cache.load_from(path)

    def write_cache(self, path: PathLike) -> None:
        self.cache.dump_to(path)

    def close(self) -> None:
        self.executor.close()
        self.cache.close()

    def __enter__(self) -> 'Client':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
