"""二维码载荷编解码测试"""
import json

import pytest

from mivilla.models.access_schemas import TokenPayload
from mivilla.services.errors import MALFORMED_PAYLOAD, MalformedPayload
from mivilla.services.payload_codec import decode_payload, encode_payload


def test_encode_is_compact_three_field_object():
    raw = encode_payload(TokenPayload(id="abc", tenant_id="t1", version=1))

    assert raw == '{"id":"abc","tenantId":"t1","v":1}'
    assert set(json.loads(raw)) == {"id", "tenantId", "v"}


def test_decode_reads_wire_keys():
    payload = decode_payload('{"id":"abc","tenantId":"t1","v":1}')

    assert payload.id == "abc"
    assert payload.tenant_id == "t1"
    assert payload.version == 1


def test_decode_defaults_missing_version():
    assert decode_payload('{"id":"abc","tenantId":"t1"}').version == 1


@pytest.mark.parametrize(
    "raw",
    [
        "garbage-string",
        "",
        "[1, 2, 3]",
        '"just a string"',
        '{"id":"abc"}',
        '{"tenantId":"t1"}',
        '{"id":"","tenantId":"t1"}',
        '{"id":42,"tenantId":"t1"}',
        '{"id":"abc","tenantId":"t1","v":"latest"}',
        "[" * 5000,
        "[" * 2000,
        r'{"id":"\ud800","tenantId":"t1"}',
        r'{"id":"abc","tenantId":"\udfff"}',
        '{"id":"' + "a" * 5000 + '","tenantId":"t1"}',
    ],
)
def test_decode_rejects_malformed(raw):
    with pytest.raises(MalformedPayload) as exc_info:
        decode_payload(raw)
    assert exc_info.value.code == MALFORMED_PAYLOAD


def test_decode_rejects_non_string_input():
    with pytest.raises(MalformedPayload):
        decode_payload(None)
