"""
Tests for the loose-text normalizer.
"""

import json

import pytest

from docbridge.codec.normalizer import is_sentinel, normalize, parse_loose, sentinel
from docbridge.exceptions import TextSyntaxError


class TestNormalize:
    """Rewriting loose text into strict JSON text."""

    def test_bare_keys_and_single_quotes(self):
        """Scenario from the shell: bare keys, single quotes and ObjectId."""
        text = "{name: 'Ann', id: ObjectId(\"507f191e810c19729de860ea\")}"
        assert normalize(text) == (
            '{"name":"Ann","id":"##ObjectId(507f191e810c19729de860ea)"}'
        )

    def test_layout_whitespace_is_dropped(self):
        text = "{\n\ta : 1,\r\n\tb : [ 1 , 2 ]\n}"
        assert normalize(text) == '{"a":1,"b":[1,2]}'

    def test_string_content_is_preserved(self):
        text = "{a: 'x y  z', b: \"tab\there\"}"
        assert json.loads(normalize(text)) == {"a": "x y  z", "b": "tab\there"}

    def test_single_quoted_string_with_double_quotes(self):
        text = "{a: 'say \"hi\"', b: 'it\\'s'}"
        assert json.loads(normalize(text)) == {"a": 'say "hi"', "b": "it's"}

    def test_bare_key_with_spaces_and_punctuation(self):
        text = "{first name: 1, a.b-c: 2}"
        assert json.loads(normalize(text)) == {"first name": 1, "a.b-c": 2}

    def test_id_and_dollar_keys_are_trimmed(self):
        text = "{' _id ': 1, \" $set \": {x: 1}}"
        assert json.loads(normalize(text)) == {"_id": 1, "$set": {"x": 1}}

    def test_trailing_commas_are_dropped(self):
        assert normalize("{a: 1, b: [1, 2,],}") == '{"a":1,"b":[1,2]}'

    def test_iso_date_argument_kept_verbatim(self):
        text = "{d: ISODate('2014-01-01T00:00:00.000Z')}"
        assert json.loads(normalize(text)) == {
            "d": "##ISODate(2014-01-01T00:00:00.000Z)"
        }

    def test_iso_date_tuple_argument(self):
        text = "{d: ISODate(2014, 1, 2, 10, 0, 0, 0)}"
        assert json.loads(normalize(text)) == {"d": "##ISODate(2014, 1, 2, 10, 0, 0, 0)"}

    def test_date_aliases(self):
        text = "{a: new Date('2014-01-01'), b: Date(0)}"
        assert json.loads(normalize(text)) == {
            "a": "##ISODate(2014-01-01)",
            "b": "##ISODate(0)",
        }

    def test_uuid_and_luuid(self):
        text = "{u: UUID('0123'), l: LUUID(\"4567\")}"
        assert json.loads(normalize(text)) == {"u": "##UUID(0123)", "l": "##LUUID(4567)"}

    def test_timestamp(self):
        assert json.loads(normalize("{ts: Timestamp(1, 2)}")) == {"ts": "##Timestamp(1, 2)"}

    def test_number_constructors_unwrap(self):
        text = "{a: NumberInt(5), b: NumberLong('9007199254740993'), c: NumberInt(-3)}"
        assert json.loads(normalize(text)) == {"a": 5, "b": 9007199254740993, "c": -3}

    def test_regex_literal(self):
        assert json.loads(normalize("{r: /^ab+c$/i}")) == {"r": "##/^ab+c$/i"}

    def test_regex_with_escaped_slash(self):
        assert json.loads(normalize(r"{r: /a\/b/}")) == {"r": r"##/a\/b/"}

    def test_regex_with_slash_in_class(self):
        assert json.loads(normalize("{r: /[/]x/g}")) == {"r": "##/[/]x/g"}

    def test_constructors_inside_arrays(self):
        text = "[ObjectId('507f191e810c19729de860ea'), Timestamp(3,4)]"
        assert json.loads(normalize(text)) == [
            "##ObjectId(507f191e810c19729de860ea)",
            "##Timestamp(3,4)",
        ]

    def test_unknown_constructor_is_left_for_the_parser(self):
        assert normalize("{a: Foo(1)}") == '{"a":Foo(1)}'

    def test_idempotent_on_own_output(self):
        text = (
            "{name: 'Ann', id: ObjectId(\"507f191e810c19729de860ea\"), "
            "r: /a\\/b/i, d: ISODate('2014-01-01'), ts: Timestamp(1, 2), n: NumberInt(4)}"
        )
        once = normalize(text)
        assert normalize(once) == once

    def test_strict_json_passes_through(self):
        text = '{"a":[1,2,{"b":null}],"c":"d","e":true}'
        assert normalize(text) == text


class TestParseLoose:
    """Parsing normalized text into a generic tree."""

    def test_parse_returns_tree(self):
        assert parse_loose("{a: 1, b: 'x'}") == {"a": 1, "b": "x"}

    def test_key_order_is_preserved(self):
        tree = parse_loose("{z: 1, a: 2, m: 3}")
        assert list(tree) == ["z", "a", "m"]

    def test_malformed_text_raises_syntax_error(self):
        with pytest.raises(TextSyntaxError) as exc_info:
            parse_loose("{a: Foo(1)}")

        error = exc_info.value
        assert error.text == "{a: Foo(1)}"
        assert error.position is not None
        assert error.to_dict()["type"] == "TextSyntaxError"

    def test_unbalanced_text_raises_syntax_error(self):
        with pytest.raises(TextSyntaxError):
            parse_loose("{a: [1, 2}")


class TestSentinels:
    """Sentinel string helpers."""

    def test_sentinel_format(self):
        assert sentinel("ObjectId", "abc") == "##ObjectId(abc)"

    def test_is_sentinel(self):
        assert is_sentinel("##ObjectId(abc)")
        assert is_sentinel("##ObjectId(abc)", "ObjectId")
        assert not is_sentinel("##ObjectId(abc)", "UUID")
        assert not is_sentinel("ObjectId(abc)")
        assert not is_sentinel(5)
