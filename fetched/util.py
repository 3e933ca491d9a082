import base64
import dataclasses
from enum import Enum
import json
from typing import Mapping


BYTES_MARKER = '__bytes__'


def clamp(value, min, max):
    return sorted((min, value, max))[1]


class DataclassJSONEncoder(json.JSONEncoder):
    """
    Encodes dataclasses as objects and `bytes` as a tagged base64 string.

    Anything else that JSON has no spelling for is written as its `str()`, so
    that hashing request options never fails on an odd body or header value.
    """

    def default(self, o):
        if dataclasses.is_dataclass(o) and not isinstance(o, type):
            if hasattr(o, 'to_dict'):
                return o.to_dict()
            return dataclasses.asdict(o)
        if isinstance(o, (bytes, bytearray)):
            return {BYTES_MARKER: base64.b64encode(bytes(o)).decode('ascii')}
        if isinstance(o, Enum):
            return o.value
        if isinstance(o, Mapping):
            return dict(o)
        if isinstance(o, (set, frozenset, tuple)):
            return list(o)
        return str(o)


def dumps(value, **kw) -> str:
    return json.dumps(value, cls=DataclassJSONEncoder, **kw)
