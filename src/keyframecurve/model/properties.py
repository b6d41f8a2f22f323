"""
Property Registry
=================
Animatable properties a layer can drive, and how their values are written out.

Why is this file needed?
------------------------
1. Every layer is bound to one property id. The layer manager needs to know
   which ids exist, which ones conflict, and which ones accept px units.
2. The keyframe merge needs the paired-property table (X/Y axes of a single
   transform) and the default used when a pair partner has no samples.
3. The output formatter needs each property's value transform.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Optional


class Units(StrEnum):
    PERCENT = "%"
    PX = "px"


def format_number(value: float) -> str:
    """Shortest plain text for a number: integers without a fraction, -0 as 0."""
    value = round(float(value), 6)
    if value == 0:
        return "0"
    if value.is_integer():
        return str(int(value))
    return repr(value)


def _round_percent(v: float) -> str:
    return format_number(math.floor(v + 0.5) / 100)


@dataclass(frozen=True)
class PropertyInfo:
    """
    Attributes:
        name: Property id, also the output name for unpaired values.
        label: Human readable name for the UI.
        color: Preview color (hex).
        transform: Maps a sampled value to its output text.
        supports_px: True if the property accepts px units.
    """
    name: str
    label: str
    color: str
    transform: Callable[[float], str]
    supports_px: bool = False


@dataclass(frozen=True)
class PairPropInfo:
    """Two properties emitted together under one shorthand name."""
    shorthand: str
    x_prop: str
    y_prop: str
    default_value: float
    color: str

    @property
    def members(self) -> tuple[str, str]:
        return self.x_prop, self.y_prop


PROPERTIES: dict[str, PropertyInfo] = {
    info.name: info
    for info in (
        PropertyInfo("scale", "Scale", "#22c55e", _round_percent),
        PropertyInfo("scaleX", "Scale X", "#d946ef", lambda v: f"{_round_percent(v)} 1"),
        PropertyInfo("scaleY", "Scale Y", "#3b82f6", lambda v: f"1 {_round_percent(v)}"),
        PropertyInfo("translateX", "Translate X", "#f97316", lambda v: f"{format_number(v)}% 0", supports_px=True),
        PropertyInfo("translateY", "Translate Y", "#06b6d4", lambda v: f"0 {format_number(v)}%", supports_px=True),
        PropertyInfo("opacity", "Opacity", "#10b981", lambda v: format_number(v / 100)),
        PropertyInfo("rotate", "Rotate", "#eab308", lambda v: f"{format_number(v / 100)}turn"),
    )
}

DEFAULT_PROPERTY = "translateX"
FALLBACK_COLOR = "#9ca3af"

TRANSLATE_PAIR = PairPropInfo("translate", "translateX", "translateY", default_value=0.0, color="#3b82f6")
SCALE_PAIR = PairPropInfo("scale", "scaleX", "scaleY", default_value=100.0, color="#f97316")

PAIRS: dict[str, PairPropInfo] = {
    member: pair for pair in (TRANSLATE_PAIR, SCALE_PAIR) for member in pair.members
}

# Ids that cannot be used together on separate layers
CONFLICTS: dict[str, frozenset[str]] = {
    "scale": frozenset({"scaleX", "scaleY"}),
    "scaleX": frozenset({"scale"}),
    "scaleY": frozenset({"scale"}),
}


def is_known(prop: str) -> bool:
    return prop in PROPERTIES


def get_info(prop: str) -> PropertyInfo:
    """Registry entry for `prop`. Raises KeyError for unknown ids."""
    return PROPERTIES[prop]


def pair_for(prop: str) -> Optional[PairPropInfo]:
    return PAIRS.get(prop)


def color_for(prop: str) -> str:
    info = PROPERTIES.get(prop)
    return info.color if info else FALLBACK_COLOR


def normalize_units(prop: str, units: str) -> Units:
    """Units a layer actually uses: px only where the property supports it."""
    info = PROPERTIES.get(prop)
    if info is None or not info.supports_px:
        return Units.PERCENT
    try:
        return Units(units)
    except ValueError:
        return Units.PERCENT


def remaining_properties(used: set[str] | frozenset[str]) -> list[str]:
    """Property ids, in registry order, that neither are in `used` nor conflict with it."""
    blocked = set(used)
    for prop in used:
        blocked |= CONFLICTS.get(prop, frozenset())
    return [name for name in PROPERTIES if name not in blocked]
