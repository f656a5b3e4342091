"""
Tests for the tolerant response parser.

Run with: pytest tests/test_response_parser.py -v
"""

import json

import pytest

from response_parser import ParseError, TurnResponse, parse
from shapes import Circle, Dot


class TestDirectDecode:
    def test_plain_json(self):
        raw = json.dumps({
            "shapes": [{"type": "dot", "cx": 1, "cy": 2}],
            "intent": "hello",
            "hypothesis": "they see",
            "next_test": "count",
            "notes": "N1"
        })
        response = parse(raw)
        assert response.decode_path == "direct"
        assert response.primitives == [Dot(1, 2)]
        assert response.intent == "hello"
        assert response.hypothesis == "they see"
        assert response.next_test == "count"
        assert response.notes == "N1"

    def test_prose_around_object(self):
        raw = 'Sure! Here is my move:\n```json\n{"shapes": [], "intent": "wait"}\n```\nGood luck.'
        response = parse(raw)
        assert response.intent == "wait"
        assert response.shapes == []

    def test_missing_notes_is_none(self):
        assert parse('{"shapes": [], "intent": "x"}').notes is None

    def test_rationale_accepted_for_intent(self):
        assert parse('{"shapes": [], "rationale": "why"}').intent == "why"


class TestRepairLadder:
    def test_trailing_commas(self):
        raw = '{"shapes": [{"type": "dot", "cx": 1, "cy": 2,},], "intent": "x",}'
        response = parse(raw)
        assert response.decode_path == "cleaned"
        assert response.primitives == [Dot(1, 2)]

    def test_single_quotes_and_bare_keys(self):
        raw = "{shapes: [{type: 'circle', cx: 10, cy: 10, r: 5, filled: true}], intent: 'don\\'t panic'}"
        response = parse(raw)
        assert response.decode_path == "cleaned"
        assert response.primitives == [Circle(10, 10, 5, filled=True)]
        assert response.intent == "don't panic"

    def test_raw_newlines_in_strings(self):
        raw = '{"shapes": [], "intent": "x", "notes": "line one\nline two"}'
        assert parse(raw).notes == "line one\nline two"

    def test_field_extraction_on_truncated_output(self):
        raw = (
            '{"shapes": [{"type": "dot", "cx": 1, "cy": 2}, {"type": "dot", "cx": 3, "cy": 4}], '
            '"intent": "he said \\"hi\\"", "notes": "vocab:\\n- dot = yes", "hypothesis": "trunc'
        )
        response = parse(raw)
        assert response.decode_path == "fields"
        assert response.primitives == [Dot(1, 2), Dot(3, 4)]
        assert response.intent == 'he said "hi"'
        assert response.notes == "vocab:\n- dot = yes"

    def test_field_extraction_recovers_individual_shapes(self):
        raw = (
            '{"shapes": [{"type": "dot", "cx": 1, "cy": 2}, {"type": "dot", "cx": 3, "cy": 4}, '
            '{"type": "circ'
        )
        response = parse(raw)
        assert response.primitives == [Dot(1, 2), Dot(3, 4)]

    def test_no_shapes_field_gives_empty_list(self):
        response = parse('{"intent": "I am thinking" "oops"}')
        assert response.shapes == []
        assert response.intent == "I am thinking"

    def test_trailing_comma_inside_string_is_kept(self):
        raw = '{"shapes": [], "intent": "pairs: (a, ], b)", "notes": "x",}'
        response = parse(raw)
        assert response.decode_path == "cleaned"
        assert response.intent == "pairs: (a, ], b)"
        assert response.notes == "x"

    def test_single_quoted_string_keeps_comma_before_bracket(self):
        raw = "{shapes: [], intent: 'list (a, ]', notes: 'n',}"
        response = parse(raw)
        assert response.intent == "list (a, ]"
        assert response.notes == "n"


class TestNonAsciiText:
    """Bare keys and values outside ASCII must not break quote normalisation."""

    def test_accented_bare_key(self):
        raw = "{shapes: [{type: 'dot', cx: 1, cy: 2}], intent: 'ok', hypothèse: 'x'}"
        response = parse(raw)
        assert response.decode_path == "cleaned"
        assert response.primitives == [Dot(1, 2)]
        assert response.intent == "ok"

    def test_unquoted_accented_value_falls_back_to_fields(self):
        response = parse("{shapes: [], intent: café}")
        assert response.decode_path == "fields"
        assert response.shapes == []
        assert response.intent == ""

    def test_non_latin_bare_key(self):
        response = parse("{shapes: [], intent: 'hi', 形: 'circle'}")
        assert response.intent == "hi"


class TestParseFailure:
    def test_no_object_raises(self):
        with pytest.raises(ParseError) as exc:
            parse("I refuse to draw anything.")
        assert exc.value.raw_text == "I refuse to draw anything."

    def test_empty_text_raises(self):
        with pytest.raises(ParseError):
            parse("")


class TestSerialization:
    def test_to_json_parses_back(self):
        original = TurnResponse(
            shapes=[Dot(1, 2).to_dict(), {"type": "line", "x1": 0, "y1": 0, "x2": 5, "y2": 5}],
            intent="probe",
            notes="my notes",
            hypothesis="h",
            next_test="t"
        )
        again = parse(original.to_json())
        assert again.primitives == original.primitives
        assert again.intent == original.intent
        assert again.notes == original.notes
        assert again.hypothesis == original.hypothesis
        assert again.next_test == original.next_test
