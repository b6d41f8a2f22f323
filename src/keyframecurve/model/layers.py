"""
Layer Manager
=============
Property layers and the single owner of the shared layer state.

Why is this file needed?
------------------------
1. State: Every animatable property is authored on its own layer (its own
   curve, sample density, flip flag and units). Exactly one layer is active
   and is the one the interaction engine edits.
2. Caching: Sampling a curve runs a Newton solve per sample, so each layer
   caches its samples and drops the cache whenever its curve changes.
3. Ownership: The manager is the only writer of the LayerSet. The editor
   mutates dots through `get_active_dots()` and reports back with
   `invalidate_active()`.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from keyframecurve.config import DEFAULT_SAMPLE_COUNT
from keyframecurve.model.geometry_primitives import Dot, Point, create_corner
from keyframecurve.model.properties import (
    DEFAULT_PROPERTY,
    Units,
    is_known,
    normalize_units,
    remaining_properties,
)
from keyframecurve.model.sampler import clamp_sample_count, sample_curve

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


def create_default_dots() -> list[Dot]:
    return [create_corner(0.0, 0.0), create_corner(100.0, 100.0)]


@dataclass
class Layer:
    """
    A single animatable property and its complete state.

    `units` is stored as given; `effective_units` is what output uses.
    """
    prop: str
    dots: list[Dot] = field(default_factory=create_default_dots)
    sample_count: int = DEFAULT_SAMPLE_COUNT
    is_flipped: bool = False
    units: Units = Units.PERCENT
    id: str = field(default_factory=new_id)
    _samples: Optional[list[Point]] = field(default=None, init=False, repr=False, compare=False)

    @property
    def effective_units(self) -> Units:
        return normalize_units(self.prop, self.units)

    @property
    def has_cached_samples(self) -> bool:
        return self._samples is not None

    def invalidate(self) -> None:
        self._samples = None

    def samples(self) -> list[Point]:
        """User-space samples of the curve, computed on first read after an invalidation."""
        if self._samples is None:
            self._samples = sample_curve(self.dots, self.sample_count)
        return self._samples


@dataclass(frozen=True)
class SampleLayer:
    """What the keyframe merge needs from a layer."""
    prop: str
    samples: tuple[Point, ...]
    is_flipped: bool
    units: Units


def create_default_layer(prop: str = DEFAULT_PROPERTY) -> Layer:
    return Layer(prop=prop)


class LayerSet:
    """
    Ordered collection of layers with one active layer.

    The active layer is tracked by id so deleting another layer never shifts it.
    Unknown or missing ids resolve to the first layer.
    """

    def __init__(self, layers: Optional[list[Layer]] = None, active_id: Optional[str] = None):
        if not layers:
            logger.warning("LayerSet created without layers, using the default layer.")
            layers = [create_default_layer()]
        self.layers: list[Layer] = layers
        self.active_id: str = active_id or layers[0].id

    def __len__(self) -> int:
        return len(self.layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)

    def index_of(self, layer_id: str) -> Optional[int]:
        for i, layer in enumerate(self.layers):
            if layer.id == layer_id:
                return i
        return None

    def find(self, layer_id: str) -> Optional[Layer]:
        i = self.index_of(layer_id)
        return None if i is None else self.layers[i]

    @property
    def active_index(self) -> int:
        i = self.index_of(self.active_id)
        if i is None:
            logger.warning(f"Active layer '{self.active_id}' not found, falling back to the first layer.")
            self.active_id = self.layers[0].id
            return 0
        return i

    @property
    def active(self) -> Layer:
        return self.layers[self.active_index]

    def used_properties(self) -> set[str]:
        return {layer.prop for layer in self.layers}

    def all_layers_with_samples(self) -> list[SampleLayer]:
        return [
            SampleLayer(
                prop=layer.prop,
                samples=tuple(layer.samples()),
                is_flipped=layer.is_flipped,
                units=layer.effective_units,
            )
            for layer in self.layers
        ]


class LayerManager:
    """
    Owns the LayerSet and applies every layer-level mutation.

    `on_change` fires after each mutation so hosts can persist or refresh.
    """

    def __init__(
        self,
        layer_set: Optional[LayerSet] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.layer_set = layer_set if layer_set is not None else LayerSet()
        self.on_change = on_change

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    # ------------------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------------------

    @property
    def layers(self) -> list[Layer]:
        return self.layer_set.layers

    @property
    def active_layer(self) -> Layer:
        return self.layer_set.active

    @property
    def active_id(self) -> str:
        return self.active_layer.id

    def get_active_dots(self) -> list[Dot]:
        return self.active_layer.dots

    def get_active_samples(self) -> list[Point]:
        return self.active_layer.samples()

    def get_all_layers_with_samples(self) -> list[SampleLayer]:
        return self.layer_set.all_layers_with_samples()

    def background_layers(self) -> list[Layer]:
        active = self.active_layer
        return [layer for layer in self.layers if layer is not active]

    def remaining_properties(self) -> list[str]:
        return remaining_properties(self.layer_set.used_properties())

    # ------------------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------------------

    def invalidate_active(self) -> None:
        """Drop the active layer's samples after its dots changed."""
        self.active_layer.invalidate()

    def invalidate_all(self) -> None:
        for layer in self.layers:
            layer.invalidate()

    # ------------------------------------------------------------------------------
    # Layer list
    # ------------------------------------------------------------------------------

    def add_layer(self, prop: Optional[str] = None) -> Optional[Layer]:
        """
        Add a layer with default dots and make it active.

        Args:
            prop: Property id. None picks the first property still available.

        Returns:
            The new layer, or None if the property is unknown, in use or conflicts.
        """
        available = self.remaining_properties()
        if prop is None:
            if not available:
                return None
            prop = available[0]
        if not is_known(prop) or prop not in available:
            logger.debug(f"Property '{prop}' is not available for a new layer.")
            return None

        layer = create_default_layer(prop)
        self.layers.append(layer)
        self.layer_set.active_id = layer.id
        logger.info(f"Added layer '{prop}' ({layer.id}).")
        self._changed()
        return layer

    def delete_layer(self, layer_id: str) -> bool:
        """Remove a layer. The last remaining layer is never removed."""
        if len(self.layers) <= 1:
            return False
        i = self.layer_set.index_of(layer_id)
        if i is None:
            logger.warning(f"Cannot delete unknown layer '{layer_id}'.")
            return False

        if layer_id == self.active_id:
            neighbour = self.layers[i + 1] if i + 1 < len(self.layers) else self.layers[i - 1]
            self.set_active(neighbour.id)

        removed = self.layers.pop(i)
        logger.info(f"Deleted layer '{removed.prop}' ({removed.id}).")
        self._changed()
        return True

    def set_active(self, layer_id: str) -> Layer:
        if self.layer_set.index_of(layer_id) is None:
            logger.warning(f"Layer '{layer_id}' not found, activating the first layer.")
            layer_id = self.layers[0].id
        self.layer_set.active_id = layer_id
        self.invalidate_active()
        self._changed()
        return self.active_layer

    def next_layer(self) -> bool:
        i = self.layer_set.active_index
        if i + 1 >= len(self.layers):
            return False
        self.set_active(self.layers[i + 1].id)
        return True

    def prev_layer(self) -> bool:
        i = self.layer_set.active_index
        if i == 0:
            return False
        self.set_active(self.layers[i - 1].id)
        return True

    # ------------------------------------------------------------------------------
    # Active layer settings
    # ------------------------------------------------------------------------------

    def set_property(self, prop: str) -> bool:
        """Rebind the active layer to another property. Refused if another layer uses it."""
        layer = self.active_layer
        if prop == layer.prop:
            return True
        others = {other.prop for other in self.layers if other is not layer}
        if not is_known(prop) or prop not in remaining_properties(others):
            return False
        layer.prop = prop
        self._changed()
        return True

    def set_sample_count(self, n: int) -> int:
        layer = self.active_layer
        layer.sample_count = clamp_sample_count(n)
        layer.invalidate()
        self._changed()
        return layer.sample_count

    def set_flipped(self, flipped: bool) -> None:
        self.active_layer.is_flipped = bool(flipped)
        self._changed()

    def set_units(self, units: str) -> Units:
        layer = self.active_layer
        layer.units = normalize_units(layer.prop, units)
        self._changed()
        return layer.units
