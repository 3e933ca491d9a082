from concurrent.futures import Future, ThreadPoolExecutor
import json
import logging
import re
import threading
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict

from .cache import Cache, build_hash
from .model import RequestOptions, ResponseSnapshot
from .util import clamp, dumps


logger = logging.getLogger(__name__)

# application/json, application/vnd.api+json, text/json, etc.
JSON_CONTENT_TYPE = re.compile(r'[+/]json(;|$)')

CHUNK_SIZE = 64 * 1024


class TransportAdapter(HTTPAdapter):
    """
    An `HTTPAdapter` whose connections can be bound to a local address.
    """

    def __init__(self, source_address: Optional[Tuple[str, int]] = None, *args, **kw) -> None:
        self.source_address = source_address
        super().__init__(*args, **kw)

    def init_poolmanager(self, *args, **kw):
        if self.source_address is not None:
            kw['source_address'] = self.source_address
        super().init_poolmanager(*args, **kw)

    def proxy_manager_for(self, *args, **kw):
        if self.source_address is not None:
            kw['source_address'] = self.source_address
        return super().proxy_manager_for(*args, **kw)


def create_session(local_address: Optional[str] = None, pool_size: int = 10) -> requests.Session:
    session = requests.Session()
    source_address = (local_address, 0) if local_address else None
    adapter = TransportAdapter(source_address, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    return session


def build_url(options: RequestOptions) -> str:
    scheme = 'https' if options.protocol == 'https:' else 'http'
    hostname = options.hostname
    if ':' in hostname and not hostname.startswith('['):
        hostname = '[{}]'.format(hostname)
    netloc = hostname if options.port is None else '{}:{}'.format(hostname, options.port)
    path = options.path or '/'
    if not path.startswith('/'):
        path = '/' + path
    return '{}://{}{}'.format(scheme, netloc, path)


def encode_body(body) -> Optional[bytes]:
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode('utf-8')
    if isinstance(body, (dict, list)) or hasattr(body, 'items'):
        return dumps(body).encode('utf-8')
    return str(body).encode('utf-8')


def decode_body(headers, body: bytes) -> Any:
    """
    JSON-decode `body` when the Content-Type says it is JSON.

    A body that claims to be JSON but does not parse becomes `{}`.
    """
    content_type = CaseInsensitiveDict(headers).get('Content-Type') or ''
    if not JSON_CONTENT_TYPE.search(content_type):
        return body
    try:
        return json.loads(body.decode('utf-8'))
    except (ValueError, RecursionError):
        logger.info('Response declared as {} is not valid JSON. Using an empty object.'.format(content_type))
        return {}


def snapshot_response(response: requests.Response, body, method: str) -> ResponseSnapshot:
    raw = response.raw
    version = getattr(raw, 'version', None) or 11
    raw_header_source = getattr(raw, 'headers', None) or response.headers
    raw_headers = []
    for name, value in raw_header_source.items():
        raw_headers.extend((name, value))
    return ResponseSnapshot(
        body=body,
        headers=dict(response.headers),
        http_version='{}.{}'.format(version // 10, version % 10),
        http_version_major=version // 10,
        http_version_minor=version % 10,
        method=method,
        raw_headers=raw_headers,
        raw_trailers=[],
        status_code=response.status_code,
        status_message=response.reason,
        trailers={},
        url=response.url,
    )


class RequestExecutor:
    """
    Issues requests on a thread pool, consulting and filling a cache.
    """

    def __init__(self, cache: Cache, session: Optional[requests.Session] = None, max_workers: int = 8) -> None:
        max_workers = clamp(max_workers, 1, 64)
        self.cache = cache
        self.__session = session or create_session(pool_size=max_workers)
        self.__pool_size = max_workers
        self.__bound_sessions = {}  # type: Dict[str, requests.Session]
        self.__sessions_lock = threading.Lock()
        self.__pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='fetched')

    def execute(self, options: RequestOptions,
                on_success: Callable[[ResponseSnapshot], Any],
                on_error: Callable[[BaseException], Any]) -> Future:
        """
        Run one request in the background.

        Exactly one of `on_success` and `on_error` is called, once, after the whole body has been read or the
        transport failed. An HTTP error status is a success here; classifying it is the caller's business.

        @return
          A future that is done once the continuation has returned.
        """
        future = self.__pool.submit(self._run, options, on_success, on_error)
        future.add_done_callback(_log_continuation_failure)
        return future

    def effective_ttl(self, options: RequestOptions) -> float:
        return options.cache_time if options.cache_time is not None else self.cache.default_ttl

    def _run(self, options: RequestOptions, on_success, on_error) -> None:
        # Continuations run outside the try: a handler's own exception is not an outcome.
        try:
            response, cached = self._fetch(options)
        except requests.RequestException as error:
            logger.warning('Request to {} failed: {}'.format(build_url(options), error))
            on_error(error)
            return
        except Exception as error:
            logger.exception('Request to {} could not be completed'.format(build_url(options)))
            on_error(error)
            return

        if cached:
            logger.info('Serving {} {} from cache.'.format(options.method, build_url(options)))
        on_success(response)

    def _fetch(self, options: RequestOptions) -> Tuple[ResponseSnapshot, bool]:
        """
        Get the response from the cache or the network, caching the latter.

        @return
          The response, and whether it came from the cache.
        """
        ttl = self.effective_ttl(options)
        key = None
        if ttl:
            key = build_hash(options)
            cached = self.cache.lookup(key)
            if cached is not None:
                return cached, True

        response = self.send(options)
        if key is not None:
            self.cache.insert(key, ttl, response)
        return response, False

    def send(self, options: RequestOptions) -> ResponseSnapshot:
        """
        Issue the request and read the whole response.

        @throws requests.RequestException
          On DNS failure, refused connections, timeouts and other transport errors.
        """
        url = build_url(options)
        if options.family is not None:
            logger.warning('The address family option is not supported by the transport. Ignoring it.')
        if options.socket_path is not None:
            logger.warning('The socket path option is not supported by the transport. Ignoring it.')

        kw = {
            'headers': options.headers,
            'data': encode_body(options.body),
            'stream': True,
            'allow_redirects': False,
        }
        # 0 means no timeout.
        if options.timeout:
            kw['timeout'] = options.timeout / 1000
        if options.auth:
            user, _, password = options.auth.partition(':')
            kw['auth'] = (user, password)

        logger.info('Sending {} {}'.format(options.method, url))
        session = self._session_for(options.local_address)
        with session.request(options.method, url, **kw) as response:
            body = b''.join(response.iter_content(CHUNK_SIZE))
            logger.info('Received {} ({} bytes) from {}'.format(response.status_code, len(body), url))
            return snapshot_response(response, decode_body(response.headers, body), options.method)

    def _session_for(self, local_address: Optional[str]) -> requests.Session:
        if not local_address:
            return self.__session
        with self.__sessions_lock:
            session = self.__bound_sessions.get(local_address)
            if session is None:
                session = create_session(local_address, self.__pool_size)
                self.__bound_sessions[local_address] = session
            return session

    def close(self) -> None:
        self.__pool.shutdown(wait=True)
        self.__session.close()
        with self.__sessions_lock:
            for session in self.__bound_sessions.values():
                session.close()
            self.__bound_sessions.clear()


def _log_continuation_failure(future: Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error('Unexpected error while delivering a request outcome', exc_info=error)
