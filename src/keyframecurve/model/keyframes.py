"""
Keyframe Merge Engine
=====================
Combines the samples of every layer into one ordered list of keyframe entries.

Why is this file needed?
------------------------
Layers are sampled independently, so their X values rarely line up. Samples
are bucketed into time slices (X rounded to a fixed precision), the slices
are linked in time order, and paired properties (e.g. translateX and
translateY) that are missing from a slice are interpolated from the nearest
slices that do define them.

The engine is pure: it reads samples and never mutates the layers.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from keyframecurve.config import SLICE_PRECISION
from keyframecurve.model.layers import LayerSet, SampleLayer
from keyframecurve.model.properties import PairPropInfo, Units, pair_for


def round_to(value: float, precision: int = SLICE_PRECISION) -> float:
    """Round half up to `precision` decimal places."""
    scale = 10 ** precision
    return math.floor(value * scale + 0.5) / scale


@dataclass
class SampleValue:
    """One property's value at a slice, already sign-flipped for flipped layers."""
    prop: str
    x: float
    value: float
    units: Units = Units.PERCENT


@dataclass(eq=False)
class TimeSlice:
    """All property values at one point in time, linked to its neighbours."""
    x: float
    prev: Optional[TimeSlice] = field(default=None, repr=False)
    next: Optional[TimeSlice] = field(default=None, repr=False)
    values: dict[str, SampleValue] = field(default_factory=dict)


@dataclass
class PairValue:
    """Both members of a paired property, emitted under the pair's shorthand name."""
    pair: PairPropInfo
    x: SampleValue
    y: SampleValue

    @property
    def name(self) -> str:
        return self.pair.shorthand


EntryValue = Union[SampleValue, PairValue]


@dataclass
class KeyframeEntry:
    offset: float
    values: list[EntryValue] = field(default_factory=list)


def create_time_slices(
    sample_layers: Iterable[SampleLayer],
    precision: int = SLICE_PRECISION,
) -> dict[float, TimeSlice]:
    """
    Bucket every layer's samples into time slices keyed by rounded X.

    Returns:
        Slices sorted by X and linked through `prev`/`next`.
    """
    slices: dict[float, TimeSlice] = {}

    for layer in sample_layers:
        for sample in layer.samples:
            # Near-equal X values from different layers land in the same slice
            x = round_to(sample.x, precision)
            time_slice = slices.get(x)
            if time_slice is None:
                time_slice = slices[x] = TimeSlice(x)

            value = -sample.y if layer.is_flipped else sample.y
            time_slice.values[layer.prop] = SampleValue(
                prop=layer.prop,
                x=x,
                value=round_to(value, precision) + 0.0,
                units=layer.units,
            )

    return sort_and_link(slices)


def sort_and_link(slices: dict[float, TimeSlice]) -> dict[float, TimeSlice]:
    """New dict of the slices in ascending X, with `prev`/`next` set to direct neighbours."""
    linked: dict[float, TimeSlice] = {}
    prev: Optional[TimeSlice] = None

    for x in sorted(slices):
        time_slice = slices[x]
        time_slice.prev = prev
        time_slice.next = None
        if prev is not None:
            prev.next = time_slice
        linked[x] = time_slice
        prev = time_slice

    return linked


def prev_sample(time_slice: TimeSlice, prop: str) -> Optional[SampleValue]:
    """Closest earlier slice value for `prop`."""
    current = time_slice.prev
    while current is not None:
        found = current.values.get(prop)
        if found is not None:
            return found
        current = current.prev
    return None


def next_sample(time_slice: TimeSlice, prop: str) -> Optional[SampleValue]:
    """Closest later slice value for `prop`."""
    current = time_slice.next
    while current is not None:
        found = current.values.get(prop)
        if found is not None:
            return found
        current = current.next
    return None


def interpolate_value(time_slice: TimeSlice, prop: str, precision: int = SLICE_PRECISION) -> SampleValue:
    """
    Value of `prop` at a slice that did not sample it.

    Linear between the nearest samples on both sides; a single side's value
    when only one exists; the pair default when the property has no samples.
    """
    before = prev_sample(time_slice, prop)
    after = next_sample(time_slice, prop)

    if before is None and after is None:
        pair = pair_for(prop)
        default = pair.default_value if pair is not None else 0.0
        return SampleValue(prop=prop, x=time_slice.x, value=default, units=Units.PERCENT)

    if before is None or after is None:
        side = before or after
        return SampleValue(prop=prop, x=time_slice.x, value=side.value, units=side.units)

    span = after.x - before.x
    fraction = (time_slice.x - before.x) / span if span else 0.0
    value = before.value + (after.value - before.value) * fraction
    return SampleValue(prop=prop, x=time_slice.x, value=round_to(value, precision) + 0.0, units=before.units)


def entries_from_slices(slices: dict[float, TimeSlice], precision: int = SLICE_PRECISION) -> list[KeyframeEntry]:
    entries: list[KeyframeEntry] = []

    for x, time_slice in slices.items():
        entry = KeyframeEntry(offset=x)
        handled: set[str] = set()

        for prop, sample in time_slice.values.items():
            pair = pair_for(prop)
            if pair is None:
                entry.values.append(sample)
                continue
            if prop in handled:
                continue
            handled.update(pair.members)

            x_value = time_slice.values.get(pair.x_prop) or interpolate_value(time_slice, pair.x_prop, precision)
            y_value = time_slice.values.get(pair.y_prop) or interpolate_value(time_slice, pair.y_prop, precision)
            entry.values.append(PairValue(pair=pair, x=x_value, y=y_value))

        entries.append(entry)

    return entries


def gen_keyframe_entries(layer_set: LayerSet, precision: int = SLICE_PRECISION) -> list[KeyframeEntry]:
    """Ordered keyframe entries for all layers of `layer_set`. Does not modify the layers."""
    return merge_sample_layers(layer_set.all_layers_with_samples(), precision)


def merge_sample_layers(sample_layers: Iterable[SampleLayer], precision: int = SLICE_PRECISION) -> list[KeyframeEntry]:
    return entries_from_slices(create_time_slices(sample_layers, precision), precision)
