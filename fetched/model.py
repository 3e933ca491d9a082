"""
Defines the types passed between the normalizer, the executor, the cache and
the delivery adapters.

These types are as simple as possible in order to most conveniently consume and
produce instances of them.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple


class InvalidOptions(TypeError):
    """
    Raised before any I/O when the options cannot describe a request.
    """


# Names accepted in option mappings besides the field names themselves.
OPTION_ALIASES = {
    'cacheTime': 'cache_time',
    'requestType': 'request_type',
    'localAddress': 'local_address',
    'socketPath': 'socket_path',
}


@dataclass
class RequestOptions:
    """
    Everything needed to issue one request.

    Every field defaults to `None`, which means "not given". Normalization
    fills in the connection fields from `url` and `host`, and consumes
    `request_type`.
    """

    url: Optional[str] = None
    """
    A full URL such as "https://example.com/a?b=c". Cleared by normalization.
    """

    hostname: Optional[str] = None
    host: Optional[str] = None
    """
    Legacy alias of `hostname`. Cleared by normalization.
    """

    pathname: Optional[str] = None
    """
    When given together with `url`, replaces the URL's path and query.
    """

    path: Optional[str] = None
    protocol: Optional[str] = None
    """
    Either "http:" or "https:".
    """

    port: Optional[int] = None
    method: Optional[str] = None
    headers: Optional[Mapping[str, str]] = None
    body: Any = None
    auth: Optional[str] = None
    """
    Basic authentication as "user:password".
    """

    family: Optional[int] = None
    local_address: Optional[str] = None
    socket_path: Optional[str] = None
    timeout: Optional[float] = None
    """
    Socket timeout in milliseconds.
    """

    cache_time: Optional[float] = None
    """
    Cache duration in milliseconds for this request. Overrides the cache's
    default TTL, including with 0.
    """

    request_type: Any = None
    """
    How the outcome is delivered: a callback, "promise", a future class, or
    nothing for events.
    """

    @classmethod
    def from_value(cls, value) -> 'RequestOptions':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(url=value)
        if isinstance(value, Mapping):
            known = {f.name for f in fields(cls)}
            kwargs = {}
            for key, item in value.items():
                name = OPTION_ALIASES.get(key, key)
                if name not in known:
                    raise InvalidOptions('Unknown option: {}'.format(key))
                kwargs[name] = item
            return cls(**kwargs)
        raise InvalidOptions('Wrong options')

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class ResponseSnapshot:
    """
    A finished response, without any bells and whistles.

    This is a fixed projection of the live response so that nothing refers
    back to the connection it came from. The same type is handed to callers
    and stored in the cache.
    """

    body: Any = None
    """
    The decoded JSON value for JSON content types, otherwise the raw bytes.
    """

    headers: Mapping[str, str] = field(default_factory=dict)
    http_version: str = '1.1'
    http_version_major: int = 1
    http_version_minor: int = 1
    method: Optional[str] = None
    raw_headers: List[str] = field(default_factory=list)
    """
    Header names and values as received, flattened: [name, value, name, ...].
    """

    raw_trailers: List[str] = field(default_factory=list)
    status_code: Optional[int] = None
    status_message: Optional[str] = None
    trailers: Mapping[str, str] = field(default_factory=dict)
    url: Optional[str] = None

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def project(cls, source) -> 'ResponseSnapshot':
        """
        Copy the snapshot fields out of `source`, an object or a mapping.

        Anything else `source` carries is dropped.
        """
        if isinstance(source, Mapping):
            values = {name: source[name] for name in cls.field_names() if name in source}
        else:
            values = {name: getattr(source, name) for name in cls.field_names() if hasattr(source, name)}
        return cls(**values)

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.field_names()}


@dataclass
class CacheEntry:
    """
    A cache entry. The key it is stored under lives in the cache's table.
    """

    data: ResponseSnapshot
    expires_at: float
    """
    Absolute expiry in milliseconds since the epoch.
    """

    def is_expired(self, now: float) -> bool:
        return self.expires_at < now

    def to_dict(self) -> dict:
        return {'data': self.data.to_dict(), 'expires_at': self.expires_at}


class OutcomeKind(Enum):
    OK = 'request-ok'
    FAIL = 'request-fail'
    ERROR = 'request-error'


@dataclass(frozen=True)
class Outcome:
    """
    The result of one request attempt.

    OK and FAIL carry a response, ERROR carries the transport exception.
    """

    kind: OutcomeKind
    response: Optional[ResponseSnapshot] = None
    error: Optional[BaseException] = None

    @property
    def payload(self):
        return self.error if self.kind is OutcomeKind.ERROR else self.response

    @property
    def status_code(self) -> Optional[int]:
        if self.kind is OutcomeKind.ERROR or self.response is None:
            return None
        return self.response.status_code


class RequestType(Enum):
    CALLBACK = 'callback'
    EVENTS = 'events'
    PROMISE = 'promise'
    OUTCOME = 'outcome'
