import json

import pytest

from pcomm.http_util import form_get_field, json_escape, url_decode


def test_url_decode_plus_and_percent():
    assert url_decode("hi+there%21") == "hi there!"


def test_url_decode_utf8_sequence():
    assert url_decode("caf%C3%A9") == "café"


def test_url_decode_lowercase_hex():
    assert url_decode("%2f%2F") == "//"


def test_url_decode_keeps_invalid_escape():
    assert url_decode("100%zz") == "100%zz"


def test_url_decode_keeps_truncated_escape():
    assert url_decode("a%4") == "a%4"
    assert url_decode("a%") == "a%"


def test_url_decode_plain_text_unchanged():
    assert url_decode("plain-text_1.2") == "plain-text_1.2"


def test_form_get_field_finds_values():
    body = "to=pcomm1_ABC&text=hello+world%21"
    assert form_get_field(body, "to") == "pcomm1_ABC"
    assert form_get_field(body, "text") == "hello world!"


def test_form_get_field_missing_key():
    assert form_get_field("to=abc", "text") is None
    assert form_get_field("", "to") is None


def test_form_get_field_requires_exact_name():
    assert form_get_field("tox=1&to=2", "to") == "2"
    assert form_get_field("tox=1", "to") is None


def test_form_get_field_empty_value():
    assert form_get_field("title=&members=a", "title") == ""


def test_form_get_field_skips_segment_without_equals():
    assert form_get_field("flag&conv=7", "conv") == "7"
    assert form_get_field("flag&conv=7", "flag") is None


def test_form_get_field_first_occurrence_wins():
    assert form_get_field("a=1&a=2", "a") == "1"


def test_json_escape_special_characters():
    assert json_escape('say "hi"\n') == 'say \\"hi\\"\\n'
    assert json_escape("a\\b") == "a\\\\b"
    assert json_escape("\t\r\b\f") == "\\t\\r\\b\\f"


def test_json_escape_control_character():
    assert json_escape("\x01") == "\\u0001"


def test_json_escape_leaves_non_ascii():
    assert json_escape("héllo ✓") == "héllo ✓"


@pytest.mark.parametrize(
    "text",
    ["", "plain", 'q"uote', "back\\slash", "multi\nline\r\n", "\x00\x1f ctrl", "ünïcødé ✓"],
)
def test_json_escape_round_trips_through_json(text):
    assert json.loads('"' + json_escape(text) + '"') == text