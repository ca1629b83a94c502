"""Tests for text, hashing and loose JSON helpers."""

from powermem_core.utils.text import (
    extract_first_json_object,
    md5_hex,
    message_contents,
    normalize_input,
    parse_iso,
    parse_json_object_loose,
    parse_messages_for_facts,
    remove_code_blocks,
    to_iso,
)


class TestNormalizeInput:
    def test_explicit_text_wins(self):
        messages = [{"role": "user", "content": "ignored"}]
        assert normalize_input("explicit", messages) == "explicit"

    def test_blank_text_falls_back_to_messages(self):
        messages = [
            {"role": "user", "content": "I like tea"},
            {"role": "assistant", "content": ""},
            {"role": "assistant", "content": "Noted"},
        ]
        assert normalize_input("   ", messages) == "user: I like tea\nassistant: Noted"

    def test_plain_string_messages(self):
        assert normalize_input(None, "hello") == "user: hello"

    def test_nothing_to_normalize(self):
        assert normalize_input(None, None) == ""


class TestParseMessagesForFacts:
    def test_skips_system_and_empty_messages(self):
        messages = [
            {"role": "system", "content": "You are helpful"},
            {"role": "user", "content": "My name is Alice"},
            {"role": "assistant", "content": None},
        ]
        assert parse_messages_for_facts(messages) == "user: My name is Alice\n"


class TestMessageContents:
    def test_drops_roles_and_system_turns(self):
        messages = [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": " User likes tea "},
            {"role": "assistant", "content": None},
        ]
        assert message_contents(messages) == "User likes tea"

    def test_plain_string(self):
        assert message_contents("User likes tea") == "User likes tea"
        assert message_contents(None) == ""


class TestLooseJson:
    def test_strips_code_fence(self):
        assert remove_code_blocks('```json\n{"facts": []}\n```') == '{"facts": []}'

    def test_parses_fenced_object(self):
        assert parse_json_object_loose('```json\n{"facts": ["a"]}\n```') == {"facts": ["a"]}

    def test_parses_object_surrounded_by_chatter(self):
        raw = 'Sure! Here you go: {"memory": [{"id": "0", "text": "x {y}"}]} Hope it helps.'
        assert parse_json_object_loose(raw) == {"memory": [{"id": "0", "text": "x {y}"}]}

    def test_brace_inside_string_does_not_close_object(self):
        raw = 'prefix {"text": "a } b", "n": 1} suffix'
        assert extract_first_json_object(raw) == '{"text": "a } b", "n": 1}'

    def test_unparseable_returns_empty_dict(self):
        assert parse_json_object_loose("no json here") == {}
        assert parse_json_object_loose(None) == {}

    def test_top_level_array_is_not_an_object(self):
        assert parse_json_object_loose("[1, 2, 3]") == {}


class TestHashAndTime:
    def test_md5_hex(self):
        assert md5_hex("hello") == "5d41402abc4b2a76b9719d911017c592"
        assert md5_hex(None) == ""

    def test_iso_round_trip(self):
        parsed = parse_iso("2024-01-01T10:00:00Z")
        assert parsed is not None
        assert parsed.tzinfo is not None
        assert to_iso(parsed) == "2024-01-01T10:00:00+00:00"

    def test_parse_iso_rejects_garbage(self):
        assert parse_iso("yesterday") is None
        assert parse_iso(42) is None
