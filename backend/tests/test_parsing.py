"""Structured data recovered from free-text model replies."""

import pytest

from report_assistant.parsing import as_string_map, parse_json_object


class TestParseJsonObject:
    def test_plain_json(self):
        assert parse_json_object('{"Region": "North"}') == {"Region": "North"}

    def test_fenced_block(self):
        reply = 'Sure!\n```json\n{"Region": "North"}\n```\nAnything else?'
        assert parse_json_object(reply) == {"Region": "North"}

    def test_embedded_object(self):
        reply = 'The values are {"Region": "North", "Year": 2024} as requested.'
        assert parse_json_object(reply) == {"Region": "North", "Year": 2024}

    @pytest.mark.parametrize("wrapper", ["parameters", "values", "result", "data"])
    def test_single_wrapper_is_unwrapped(self, wrapper):
        assert parse_json_object('{"%s": {"Region": "North"}}' % wrapper) == {"Region": "North"}

    def test_key_value_lines(self):
        reply = "- Region: North\n- Year = 2024"
        assert parse_json_object(reply) == {"Region": "North", "Year": "2024"}

    @pytest.mark.parametrize("reply", [None, "", "   ", "{}", "[1, 2]", "I could not find any values."])
    def test_nothing_usable_is_none(self, reply):
        assert parse_json_object(reply) is None

    def test_custom_parser_chain(self):
        def broken(text):
            raise RuntimeError("boom")

        assert parse_json_object('{"a": 1}', parsers=[broken, lambda text: {"b": 2}]) == {"b": 2}


class TestAsStringMap:
    def test_flattens_scalars(self):
        value = {"Region": " North ", "Year": 2024, "Active": True, "Empty": "", "Missing": None, "Nested": {"a": 1}}
        assert as_string_map(value) == {"Region": "North", "Year": "2024", "Active": "true"}

    def test_none_is_empty(self):
        assert as_string_map(None) == {}
