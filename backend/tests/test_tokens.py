import json

import pytest

from checkin_portal.services import tokens
from checkin_portal.services.tokens import (
    EncodingError, LegacyToken, StructuredToken, UnrecognizedToken,
    decode_token, encode_student_token,
)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def test_payload_carries_only_the_student_id():
    token = encode_student_token("abc-123")
    assert token.payload == b'{"studentId":"abc-123"}'
    assert json.loads(token.text) == {"studentId": "abc-123"}


def test_image_is_png_and_data_url_embeds_it():
    token = encode_student_token("abc-123")
    assert token.image_png.startswith(PNG_SIGNATURE)
    assert token.data_url.startswith("data:image/png;base64,iVBORw0KGgo")


@pytest.mark.parametrize("student_id", [
    "abc-123",
    "0f8fad5b-d9cb-469f-a165-70867728950e",
    "id with spaces inside",
    "ünïcødé-√",
    'quote"and\\backslash',
])
def test_decode_inverts_encode(student_id):
    assert decode_token(encode_student_token(student_id).payload) == StructuredToken(student_id)


@pytest.mark.parametrize("bad_id", ["", "  padded ", "line\nbreak", None, 42])
def test_unusable_identifiers_raise_encoding_error(bad_id):
    with pytest.raises(EncodingError):
        encode_student_token(bad_id)


def test_rasterization_failure_is_reported_as_encoding_error():
    with pytest.raises(EncodingError):
        encode_student_token("x" * 5000)


def test_render_errors_are_wrapped(monkeypatch):
    class Broken:
        def __init__(self, **kwargs):
            pass

        def add_data(self, data):
            raise ValueError("boom")

    monkeypatch.setattr(tokens.qrcode, "QRCode", Broken)
    with pytest.raises(EncodingError, match="boom"):
        encode_student_token("abc-123")


def test_legacy_pipe_format_decodes_all_five_fields():
    token = decode_token("Asha Rao|Asha@Example.edu|555-0100|Engineering College|CS")
    assert token == LegacyToken(
        name="Asha Rao",
        email="Asha@Example.edu",
        phone="555-0100",
        college="Engineering College",
        department="CS",
    )


def test_scanner_whitespace_is_ignored():
    assert decode_token('  {"studentId":"abc-123"}\n') == StructuredToken("abc-123")


def test_bytes_payload_is_accepted():
    assert decode_token(b'{"studentId":"abc-123"}') == StructuredToken("abc-123")


@pytest.mark.parametrize("scanned", [
    "",
    "   ",
    "hello world",
    "https://example.com/ticket/42",
    "a|b|c",
    "a|b|c|d|e|f",
    "name||phone|college|dept",
    '{"studentId": ""}',
    '{"studentId": 123}',
    '{"name": "Asha", "email": "asha@example.edu"}',
    '["abc-123"]',
    '"a|b@c|d|e|f"',
    "12345",
    "{not json",
    "[" * 200000,
    b"\xff\xfe\x00",
    None,
])
def test_anything_else_is_unrecognized(scanned):
    assert isinstance(decode_token(scanned), UnrecognizedToken)


def test_structured_identifier_is_taken_verbatim():
    assert decode_token('{"studentId":"  abc-123  "}') == StructuredToken("  abc-123  ")
