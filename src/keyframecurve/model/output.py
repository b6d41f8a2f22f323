"""
Keyframe text output: CSS keyframe lists and JavaScript keyframe arrays.
"""
from __future__ import annotations

import math
import re
from enum import StrEnum
from typing import Sequence, Union

from keyframecurve.model.keyframes import EntryValue, KeyframeEntry, PairValue, gen_keyframe_entries, round_to
from keyframecurve.model.layers import LayerSet
from keyframecurve.model.properties import format_number, get_info


class ExportFormat(StrEnum):
    CSS = "css"
    JS = "js"


_BAD_NAME_CHARS = re.compile(r"(^\d)|([^-_a-zA-Z0-9])")
_LEAD_DOUBLE_DASH = re.compile(r"^--+")
_ILLEGAL_NAMES = frozenset({"none", "inherit", "initial", "unset"})


def format_entry_value(value: EntryValue) -> tuple[str, str]:
    """(name, value text) of one entry value."""
    if isinstance(value, PairValue):
        x, y = value.x, value.y
        return value.name, f"{format_number(x.value)}{x.units} {format_number(y.value)}{y.units}"
    return value.prop, get_info(value.prop).transform(value.value)


def gen_css(entries: Sequence[KeyframeEntry]) -> str:
    lines: list[str] = []
    for entry in entries:
        lines.append(f"{format_number(entry.offset)}% {{")
        for value in entry.values:
            name, text = format_entry_value(value)
            lines.append(f"  {name}: {text};")
        lines.append("}")
    return "\n".join(lines)


def as_js_offset(offset: float) -> str:
    if offset == 0:
        return "0"
    if offset == 100:
        return "1"
    return format_number(round_to(offset / 100, 2))


def as_js_value(value: str) -> str:
    """Numbers pass through unquoted; anything else becomes a double-quoted string."""
    if value.strip():
        try:
            if math.isfinite(float(value)):
                return value
        except ValueError:
            pass
    return f'"{value}"'


def gen_javascript(entries: Sequence[KeyframeEntry]) -> str:
    chunks: list[str] = []
    for entry in entries:
        lines = [f"    offset: {as_js_offset(entry.offset)}"]
        for value in entry.values:
            name, text = format_entry_value(value)
            lines.append(f"    {name}: {as_js_value(text)}")
        chunks.append("  {\n" + ",\n".join(lines) + "\n  }")
    return "[\n" + ",\n".join(chunks) + "\n]"


def normalize_format(fmt: str) -> ExportFormat:
    try:
        return ExportFormat(fmt)
    except ValueError:
        return ExportFormat.CSS


def normalize_at_rule_name(proposed: str) -> str:
    """Turn any user text into a legal keyframes at-rule name."""
    name = _BAD_NAME_CHARS.sub("-", proposed)
    name = _LEAD_DOUBLE_DASH.sub("-", name)
    return name + "-" if name in _ILLEGAL_NAMES else name


def gen_keyframe_text(layer_set: LayerSet, fmt: str = ExportFormat.CSS) -> str:
    entries = gen_keyframe_entries(layer_set)
    match normalize_format(fmt):
        case ExportFormat.JS:
            return gen_javascript(entries)
        case _:
            return gen_css(entries)


def _indent(text: str) -> str:
    return "\n".join("  " + line for line in text.split("\n"))


def generate_css_at_rule(
    keyframes: Union[str, LayerSet],
    fmt: str = ExportFormat.CSS,
    rule_name: str = "",
) -> str:
    """
    Wrap a keyframe list in `@keyframes <name> { ... }`.

    JavaScript output and blank names return the list unchanged.
    """
    fmt = normalize_format(fmt)
    if isinstance(keyframes, LayerSet):
        keyframes = gen_keyframe_text(keyframes, fmt)

    if not rule_name or not rule_name.strip() or fmt == ExportFormat.JS:
        return keyframes
    return f"@keyframes {normalize_at_rule_name(rule_name)} {{\n{_indent(keyframes)}\n}}"
