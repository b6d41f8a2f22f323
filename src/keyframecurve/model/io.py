"""
Input/Output Manager (JSON + HDF5)
Converts layers to and from the persisted layout and saves them to disk.

Persisted layer layout:
    {"cssProp": str, "isFlipped": bool, "sampleCount": int, "units": "%" | "px",
     "dots": [{"type": "square" | "round", "x": float, "y": float,
               "h1": {"x", "y"}, "h2": {"x", "y"}}], "id": str (optional)}
"""
import json
import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Optional

import h5py
import numpy as np

from keyframecurve.config import DEFAULT_SAMPLE_COUNT
from keyframecurve.model.geometry_primitives import Dot, DotType, Point
from keyframecurve.model.layers import Layer, LayerSet, create_default_layer, new_id
from keyframecurve.model.properties import Units, is_known
from keyframecurve.model.sampler import clamp_sample_count, samples_to_array

logger = logging.getLogger(__name__)

try:
    APP_VERSION = version("keyframecurve")
except PackageNotFoundError:
    APP_VERSION = "0.0.0-dev"

# HDF5 attributes are limited to 64KB
_ATTR_LIMIT = 60000


class LayerFormatError(ValueError):
    """Persisted layer data does not have the expected shape."""


# ------------------------------------------------------------------------------
# Dict conversion
# ------------------------------------------------------------------------------

def _point_to_dict(p: Point) -> dict[str, float]:
    return {"x": float(p.x), "y": float(p.y)}


def dot_to_dict(dot: Dot) -> dict[str, Any]:
    return {
        "type": str(dot.type),
        "x": float(dot.x),
        "y": float(dot.y),
        "h1": _point_to_dict(dot.h1),
        "h2": _point_to_dict(dot.h2),
    }


def layer_to_dict(layer: Layer) -> dict[str, Any]:
    return {
        "id": layer.id,
        "cssProp": layer.prop,
        "isFlipped": bool(layer.is_flipped),
        "sampleCount": int(layer.sample_count),
        "units": str(layer.units),
        "dots": [dot_to_dict(d) for d in layer.dots],
    }


def layers_to_dict(layer_set: LayerSet) -> dict[str, Any]:
    return {
        "version": APP_VERSION,
        "activeId": layer_set.active.id,
        "layers": [layer_to_dict(layer) for layer in layer_set],
    }


def _number(data: dict, key: str) -> float:
    value = data.get(key)
    # bool is an int subclass, but never a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise LayerFormatError(f"'{key}' must be a number, got {value!r}.")
    return float(value)


def _point_from_dict(data: Any, key: str) -> Point:
    if not isinstance(data, dict):
        raise LayerFormatError(f"Handle '{key}' must be an object, got {data!r}.")
    return Point(_number(data, "x"), _number(data, "y"))


def dot_from_dict(data: Any) -> Dot:
    if not isinstance(data, dict):
        raise LayerFormatError(f"Dot must be an object, got {data!r}.")
    try:
        dot_type = DotType(data.get("type"))
    except ValueError as e:
        raise LayerFormatError(f"Unknown dot type {data.get('type')!r}.") from e

    return Dot(
        x=_number(data, "x"),
        y=_number(data, "y"),
        type=dot_type,
        h1=_point_from_dict(data.get("h1"), "h1"),
        h2=_point_from_dict(data.get("h2"), "h2"),
    )


def layer_from_dict(data: Any) -> Layer:
    """
    Strict parser for one persisted layer.

    Raises:
        LayerFormatError: If a required field is missing or has the wrong type.
    """
    if not isinstance(data, dict):
        raise LayerFormatError(f"Layer must be an object, got {type(data).__name__}.")

    prop = data.get("cssProp")
    if not isinstance(prop, str) or not is_known(prop):
        raise LayerFormatError(f"Unknown property {prop!r}.")

    dots = data.get("dots")
    if not isinstance(dots, list):
        raise LayerFormatError("'dots' must be a list.")

    try:
        units = Units(data.get("units", Units.PERCENT))
    except ValueError as e:
        raise LayerFormatError(f"Unknown units {data.get('units')!r}.") from e

    sample_count = data.get("sampleCount", DEFAULT_SAMPLE_COUNT)
    if isinstance(sample_count, bool) or not isinstance(sample_count, (int, float)):
        raise LayerFormatError(f"'sampleCount' must be a number, got {sample_count!r}.")

    layer_id = data.get("id")
    return Layer(
        prop=prop,
        dots=[dot_from_dict(d) for d in dots],
        sample_count=clamp_sample_count(sample_count),
        is_flipped=bool(data.get("isFlipped", False)),
        units=units,
        id=layer_id if isinstance(layer_id, str) and layer_id else new_id(),
    )


def layers_from_dict(data: Any) -> LayerSet:
    """
    Parse either a bare list of layers or the `layers_to_dict` envelope.

    Raises:
        LayerFormatError: If the data is malformed or holds no layers.
    """
    active_id = None
    if isinstance(data, dict):
        active_id = data.get("activeId")
        data = data.get("layers")
    if not isinstance(data, list) or not data:
        raise LayerFormatError("Expected a non-empty list of layers.")

    layers = [layer_from_dict(d) for d in data]
    props = [layer.prop for layer in layers]
    if len(set(props)) != len(props):
        raise LayerFormatError(f"Property used by more than one layer: {props}.")

    return LayerSet(layers, active_id if isinstance(active_id, str) else None)


def load_layers_or_default(data: Any) -> LayerSet:
    """Tolerant loader: missing or malformed data yields the default layer set."""
    if data is None:
        return LayerSet([create_default_layer()])
    try:
        return layers_from_dict(data)
    except LayerFormatError as e:
        logger.warning(f"Error loading saved layers, using defaults. {e}")
        return LayerSet([create_default_layer()])


# ------------------------------------------------------------------------------
# Files
# ------------------------------------------------------------------------------

class IOManager:

    @staticmethod
    def save_json(layer_set: LayerSet, filepath: str) -> None:
        logger.info(f"Saving layers to: {filepath}")
        try:
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(layers_to_dict(layer_set), f, indent=2)
        except OSError as e:
            logger.exception(f"Failed to save layers: {e}")
            raise e

    @staticmethod
    def load_json(filepath: str) -> LayerSet:
        logger.info(f"Loading layers from: {filepath}")
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.exception(f"Failed to load layers: {e}")
            raise e
        return layers_from_dict(data)

    @staticmethod
    def save_project(layer_set: LayerSet, filepath: str) -> None:
        """
        Write an HDF5 project: the layer JSON, the active id, and each layer's
        current samples as an (N, 2) dataset under `samples/<layer id>`.
        """
        logger.info(f"Saving project to: {filepath}")
        try:
            with h5py.File(filepath, "w") as f:
                f.attrs["version"] = APP_VERSION
                f.attrs["active_id"] = layer_set.active.id

                layers_json = json.dumps(layers_to_dict(layer_set))
                if len(layers_json) > _ATTR_LIMIT:
                    logger.info(f"Layer data is large ({len(layers_json)} bytes), using dataset")
                    f.create_dataset("layers", data=np.void(layers_json.encode("utf-8")))
                else:
                    f.attrs["layers_json"] = layers_json

                grp_samples = f.create_group("samples")
                for layer in layer_set:
                    dset = grp_samples.create_dataset(layer.id, data=samples_to_array(layer.samples()))
                    dset.attrs["cssProp"] = layer.prop
                    dset.attrs["isFlipped"] = layer.is_flipped
                    dset.attrs["units"] = str(layer.effective_units)

            logger.info(f"Project saved to: {filepath}")

        except (OSError, ValueError) as e:
            logger.exception(f"Failed to save project: {e}")
            raise e

    @staticmethod
    def load_project(filepath: str) -> LayerSet:
        logger.info(f"Loading project from: {filepath}")
        if not h5py.is_hdf5(filepath):
            msg = f"File '{filepath}' is not a valid HDF5 file."
            logger.error(msg)
            raise ValueError(msg)

        try:
            with h5py.File(filepath, "r") as f:
                if "layers" in f:
                    layers_json = f["layers"][()].tobytes().decode("utf-8")
                else:
                    layers_json = f.attrs["layers_json"]
                    if isinstance(layers_json, bytes):
                        layers_json = layers_json.decode("utf-8")
                active_id: Optional[str] = f.attrs.get("active_id")
                if isinstance(active_id, bytes):
                    active_id = active_id.decode("utf-8")

            layer_set = layers_from_dict(json.loads(layers_json))
            if active_id:
                layer_set.active_id = active_id

        except (OSError, KeyError, json.JSONDecodeError) as e:
            logger.exception(f"Failed to load project: {e}")
            raise e

        logger.info(f"Project loaded from: {filepath}")
        return layer_set

    @staticmethod
    def load_project_samples(filepath: str) -> dict[str, np.ndarray]:
        """Sample arrays stored in a project, keyed by property id."""
        with h5py.File(filepath, "r") as f:
            out: dict[str, np.ndarray] = {}
            for dset in f["samples"].values():
                prop = dset.attrs["cssProp"]
                if isinstance(prop, bytes):
                    prop = prop.decode("utf-8")
                out[str(prop)] = dset[:]
            return out
