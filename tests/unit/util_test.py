from ddt import ddt, data, unpack
import json
from unittest import TestCase

from fetched import util
from fetched.model import ResponseSnapshot


@ddt
class TestClamp(TestCase):
    @data(
        (-1, 0, 3, 0),
        (0, 0, 3, 0),
        (1, 0, 3, 1),
        (2, 0, 3, 2),
        (3, 0, 3, 3),
        (4, 0, 3, 3),

        (0, -10, 10, 0),
        (-11, -10, 10, -10),
        (11, -10, 10, 10),
    )
    @unpack
    def test_clamp(self, value, min, max, expected):
        actual = util.clamp(value, min, max)
        self.assertEqual(expected, actual, 'The value should be clamped properly')


class TestDataclassJSONEncoder(TestCase):
    def test_bytes_are_tagged_base64(self):
        decoded = json.loads(util.dumps({'body': b'\x00\xffraw'}))

        self.assertEqual({'body': {util.BYTES_MARKER: 'AP9yYXc='}}, decoded)

    def test_snapshots_are_encoded_as_objects(self):
        snapshot = ResponseSnapshot(body={'a': 1}, status_code=200, status_message='OK')

        decoded = json.loads(util.dumps(snapshot))

        self.assertEqual({'a': 1}, decoded['body'])
        self.assertEqual(200, decoded['status_code'])
        self.assertEqual('OK', decoded['status_message'])

    def test_unknown_values_fall_back_to_str(self):
        self.assertEqual('{"value": "1.5"}', util.dumps({'value': _Opaque()}))


class _Opaque:
    def __str__(self):
        return '1.5'
