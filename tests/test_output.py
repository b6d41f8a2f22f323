import pytest

from keyframecurve.model.geometry_primitives import create_corner
from keyframecurve.model.keyframes import KeyframeEntry, PairValue, SampleValue
from keyframecurve.model.layers import Layer, LayerSet
from keyframecurve.model.output import (
    ExportFormat,
    as_js_offset,
    as_js_value,
    format_entry_value,
    gen_css,
    gen_javascript,
    gen_keyframe_text,
    generate_css_at_rule,
    normalize_at_rule_name,
    normalize_format,
)
from keyframecurve.model.properties import TRANSLATE_PAIR, Units, format_number, get_info


@pytest.fixture
def line_layers() -> LayerSet:
    layer = Layer(prop="translateX", dots=[create_corner(0, 0), create_corner(100, 100)], sample_count=3)
    return LayerSet([layer])


@pytest.mark.parametrize(
    "prop, value, text",
    [
        ("scale", 150, "1.5"),
        ("scaleX", 49.6, "0.5 1"),
        ("scaleY", 100, "1 1"),
        ("translateX", 12.5, "12.5% 0"),
        ("translateY", -3, "0 -3%"),
        ("opacity", 100, "1"),
        ("rotate", 25, "0.25turn"),
    ],
)
def test_property_transforms(prop, value, text):
    assert get_info(prop).transform(value) == text


@pytest.mark.parametrize("value, text", [(0, "0"), (-0.0, "0"), (3.0, "3"), (0.1 + 0.2, "0.3"), (-2.5, "-2.5")])
def test_format_number(value, text):
    assert format_number(value) == text


def test_format_pair_value_uses_units():
    pair = PairValue(
        TRANSLATE_PAIR,
        SampleValue("translateX", 0, 10, Units.PX),
        SampleValue("translateY", 0, 0, Units.PERCENT),
    )
    assert format_entry_value(pair) == ("translate", "10px 0%")


def test_gen_css():
    entries = [
        KeyframeEntry(0, [SampleValue("opacity", 0, 0)]),
        KeyframeEntry(50.5, [SampleValue("opacity", 50.5, 100), SampleValue("rotate", 50.5, 50)]),
    ]
    assert gen_css(entries) == (
        "0% {\n"
        "  opacity: 0;\n"
        "}\n"
        "50.5% {\n"
        "  opacity: 1;\n"
        "  rotate: 0.5turn;\n"
        "}"
    )


@pytest.mark.parametrize("offset, text", [(0, "0"), (100, "1"), (33.33, "0.33"), (50, "0.5")])
def test_as_js_offset(offset, text):
    assert as_js_offset(offset) == text


@pytest.mark.parametrize(
    "value, text",
    [("0.5", "0.5"), ("-3", "-3"), ("50% 0", '"50% 0"'), ("inf", '"inf"'), ("nan", '"nan"'), ("", '""')],
)
def test_as_js_value(value, text):
    assert as_js_value(value) == text


def test_gen_javascript():
    entries = [KeyframeEntry(0, [SampleValue("opacity", 0, 50)]), KeyframeEntry(100, [SampleValue("rotate", 100, 100)])]
    assert gen_javascript(entries) == (
        "[\n"
        "  {\n"
        "    offset: 0,\n"
        "    opacity: 0.5\n"
        "  },\n"
        "  {\n"
        "    offset: 1,\n"
        '    rotate: "1turn"\n'
        "  }\n"
        "]"
    )


def test_gen_keyframe_text_css(line_layers):
    assert gen_keyframe_text(line_layers, ExportFormat.CSS) == (
        "0% {\n  translate: 0% 0%;\n}\n"
        "50% {\n  translate: 50% 0%;\n}\n"
        "100% {\n  translate: 100% 0%;\n}"
    )


def test_gen_keyframe_text_unknown_format_is_css(line_layers):
    assert gen_keyframe_text(line_layers, "yaml") == gen_keyframe_text(line_layers, "css")


@pytest.mark.parametrize("fmt, expected", [("css", ExportFormat.CSS), ("js", ExportFormat.JS), ("xml", ExportFormat.CSS)])
def test_normalize_format(fmt, expected):
    assert normalize_format(fmt) == expected


@pytest.mark.parametrize(
    "name, expected",
    [
        ("my-anim", "my-anim"),
        ("1slide", "-slide"),
        ("my anim!", "my-anim-"),
        ("--x", "-x"),
        ("none", "none-"),
        ("unset", "unset-"),
    ],
)
def test_normalize_at_rule_name(name, expected):
    assert normalize_at_rule_name(name) == expected


def test_generate_css_at_rule_wraps_and_indents():
    text = "0% {\n  opacity: 0;\n}"
    assert generate_css_at_rule(text, "css", "fade in") == (
        "@keyframes fade-in {\n"
        "  0% {\n"
        "    opacity: 0;\n"
        "  }\n"
        "}"
    )


def test_generate_css_at_rule_passthrough():
    text = "0% {\n  opacity: 0;\n}"
    assert generate_css_at_rule(text, "css", "  ") == text
    assert generate_css_at_rule("[]", "js", "name") == "[]"


def test_generate_css_at_rule_from_layer_set(line_layers):
    out = generate_css_at_rule(line_layers, "css", "slide")
    assert out.startswith("@keyframes slide {\n  0% {\n    translate: 0% 0%;")
