"""
Turns whatever the caller passed into a complete `RequestOptions`.
"""

from concurrent.futures import Future
import dataclasses
import logging
from typing import Any, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from requests.structures import CaseInsensitiveDict

from .model import InvalidOptions, RequestOptions, RequestType


logger = logging.getLogger(__name__)


def normalize(value) -> Tuple[RequestOptions, RequestType, Optional[Any]]:
    """
    Resolve the URL, the host alias, the default headers and the delivery mode.

    @param value
      A `RequestOptions`, a URL string, or a mapping of option names.
    @return
      A tuple containing:
      1. A new, fully resolved `RequestOptions`. The input is left untouched.
      2. The `RequestType` to deliver the outcome with.
      3. The callback for `RequestType.CALLBACK`, the future class for
         `RequestType.PROMISE`, otherwise `None`.
    @throws InvalidOptions
      If there are no options at all, or no hostname can be found.
    """
    if not value:
        raise InvalidOptions('Wrong options')

    options = dataclasses.replace(RequestOptions.from_value(value))
    check_url(options)
    check_headers(options)

    request_type, target = resolve_request_type(options.request_type)
    options.request_type = None
    options.method = (options.method or 'GET').upper()

    logger.debug('Normalized options for {}//{}{}'.format(options.protocol, options.hostname, options.path))
    return options, request_type, target


def check_url(options: RequestOptions) -> None:
    if isinstance(options.url, str):
        parts = urlsplit(options.url)
        try:
            port = parts.port
        except ValueError as e:
            raise InvalidOptions('Wrong port in {}'.format(options.url)) from e
        if options.pathname:
            path = options.pathname
            options.pathname = None
        else:
            path = parts.path or '/'
            if parts.query:
                path += '?' + parts.query
        if parts.scheme:
            options.protocol = parts.scheme + ':'
        options.hostname = parts.hostname
        options.port = port
        options.path = path
        if parts.username is not None:
            options.auth = '{}:{}'.format(parts.username, parts.password or '')
        options.url = None

    if options.host:
        # `hostname` is preferred over `host`.
        if not options.hostname:
            options.hostname = options.host
        options.host = None

    if not options.hostname:
        raise InvalidOptions('Wrong hostname')


def infer_content_type(body) -> Optional[str]:
    if isinstance(body, str):
        return 'text/html; charset=utf-8' if body.startswith('<') else 'text/plain; charset=utf-8'
    if isinstance(body, (Mapping, list)):
        return 'application/json; charset=utf-8'
    return None


def canonical_header_name(name: str) -> str:
    """
    "content-type" and "CONTENT-TYPE" both become "Content-Type".
    """
    return '-'.join(part.capitalize() for part in name.split('-'))


def check_headers(options: RequestOptions) -> None:
    if options.headers is None:
        return

    headers = CaseInsensitiveDict(options.headers)
    if not headers.get('Content-Type') and options.body is not None:
        content_type = infer_content_type(options.body)
        if content_type:
            headers['Content-Type'] = content_type

    if not headers.get('Accept'):
        content_type = headers.get('Content-Type')
        if content_type:
            headers['Accept'] = content_type.split(';')[0].strip()

    options.headers = {canonical_header_name(name): value for name, value in headers.items()}


def is_future_class(value) -> bool:
    """
    Whether `value` is a class whose instances can be settled from a worker
    thread, that is a `concurrent.futures.Future` subclass.
    """
    return isinstance(value, type) and issubclass(value, Future)


def looks_like_future_class(value) -> bool:
    return (isinstance(value, type)
            and callable(getattr(value, 'add_done_callback', None))
            and callable(getattr(value, 'set_result', None)))


def resolve_request_type(value) -> Tuple[RequestType, Optional[Any]]:
    if value is None:
        return RequestType.EVENTS, None
    if isinstance(value, RequestType):
        if value is RequestType.CALLBACK:
            raise InvalidOptions('A callback request type needs the callback itself')
        return value, Future if value is RequestType.PROMISE else None
    if value == 'promise':
        return RequestType.PROMISE, Future
    if value == 'outcome':
        return RequestType.OUTCOME, None
    if is_future_class(value):
        return RequestType.PROMISE, value
    if looks_like_future_class(value):
        # asyncio.Future and the like are bound to an event loop.
        raise InvalidOptions('Futures must be concurrent.futures.Future subclasses, got {}'.format(value.__name__))
    if callable(value):
        return RequestType.CALLBACK, value
    logger.info('Unrecognized request type {!r}, delivering through events.'.format(value))
    return RequestType.EVENTS, None
