"""Tests for tofu output parsing."""

import pytest

from tofuworkspace.core.outputs import Output, OutputType, parse_output_type, parse_outputs


class TestParseOutputType:
    @pytest.mark.parametrize("raw,expected", [
        ("string", OutputType.STRING),
        ("number", OutputType.NUMBER),
        ("bool", OutputType.BOOL),
        (["tuple", ["string"]], OutputType.TUPLE),
        (["list", "string"], OutputType.TUPLE),
        (["set", "string"], OutputType.TUPLE),
        (["object", {"a": "string"}], OutputType.OBJECT),
        (["map", "string"], OutputType.OBJECT),
        ("dynamic", OutputType.UNKNOWN),
        (None, OutputType.UNKNOWN),
    ])
    def test_types(self, raw, expected):
        assert parse_output_type(raw) == expected


class TestOutputAccessors:
    def test_string_value(self):
        assert Output("a", OutputType.STRING, value="cool").string_value() == "cool"
        assert Output("a", OutputType.NUMBER, value=1).string_value() == ""

    def test_number_value(self):
        assert Output("a", OutputType.NUMBER, value=42).number_value() == 42.0
        assert Output("a", OutputType.BOOL, value=True).number_value() == 0.0

    def test_bool_value(self):
        assert Output("a", OutputType.BOOL, value=True).bool_value() is True
        assert Output("a", OutputType.STRING, value="true").bool_value() is False

    def test_json_value_compact(self):
        output = Output("a", OutputType.OBJECT, value={"b": [1, 2], "c": None})
        assert output.json_value() == b'{"b":[1,2],"c":null}'


class TestParseOutputs:
    def test_sorted_by_name(self):
        stdout = (
            '{"zeta": {"sensitive": false, "type": "string", "value": "z"},'
            ' "alpha": {"sensitive": true, "type": "number", "value": 1}}'
        )
        outputs = parse_outputs(stdout)
        assert [o.name for o in outputs] == ["alpha", "zeta"]
        assert outputs[0].sensitive is True
        assert outputs[0].type == OutputType.NUMBER
        assert outputs[1].value == "z"

    def test_empty(self):
        assert parse_outputs("") == []
        assert parse_outputs("{}\n") == []

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_outputs("nope")

    def test_not_an_object(self):
        with pytest.raises(ValueError):
            parse_outputs("[]")
