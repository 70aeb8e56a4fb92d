"""Axis remap from the RTV coordinate convention to the SDK convention.

The RTV service reports geometry with its y and z axes swapped relative to
the SDK, and with the opposite sign on one of them:

    sdk_x = rtv_x
    sdk_y = rtv_z
    sdk_z = -rtv_y

Signed quantities (bounds, direction cosines, image positions) follow this
rule exactly. For bounds the negation also swaps min and max, so
sdk min_z = -rtv max_y and sdk max_z = -rtv min_y. Per-axis magnitudes
(resolution, spacing, size, uniform flags) swap y and z without a sign
change. The scalar slice position ``pos`` of images and dose slices is
already measured along the SDK y axis and is left unchanged.
"""

from __future__ import annotations

from typing import Any

_MAGNITUDE_PREFIXES = ("resolution_", "spacing_", "size_", "uniform_")
_VECTOR_PREFIXES = ("u_", "v_")


def _negate(value: Any) -> Any:
    return -value if value is not None else None


def _remap_vector(source: dict[str, Any], target: dict[str, Any], prefix: str) -> None:
    y_key, z_key = f"{prefix}y", f"{prefix}z"
    if y_key not in source and z_key not in source:
        return
    target[y_key] = source.get(z_key)
    target[z_key] = _negate(source.get(y_key))


def _swap_magnitude(source: dict[str, Any], target: dict[str, Any], prefix: str) -> None:
    y_key, z_key = f"{prefix}y", f"{prefix}z"
    if y_key not in source and z_key not in source:
        return
    target[y_key] = source.get(z_key)
    target[z_key] = source.get(y_key)


def remap_bounds(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of data with min/max bounds in SDK axes."""
    result = dict(data)
    result["min_y"] = data.get("min_z")
    result["max_y"] = data.get("max_z")
    result["min_z"] = _negate(data.get("max_y"))
    result["max_z"] = _negate(data.get("min_y"))
    return result


def _remap_volume(data: dict[str, Any]) -> dict[str, Any]:
    result = remap_bounds(data)
    for prefix in _VECTOR_PREFIXES:
        _remap_vector(data, result, prefix)
    for prefix in _MAGNITUDE_PREFIXES:
        _swap_magnitude(data, result, prefix)
    return result


def remap_image(image: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of an RTV image entry with its position in SDK axes."""
    result = dict(image)
    _remap_vector(image, result, "pos_")
    return result


def remap_image_set_data(data: dict[str, Any]) -> dict[str, Any]:
    """Remap RTV image set geometry into SDK axes."""
    result = _remap_volume(data)
    if "images" in data:
        result["images"] = [remap_image(image) for image in data["images"] or []]
    return result


def remap_dose_data(data: dict[str, Any]) -> dict[str, Any]:
    """Remap RTV dose geometry into SDK axes.

    Dose slices carry only a scalar ``pos`` and are copied unchanged.
    """
    result = _remap_volume(data)
    if "slices" in data:
        result["slices"] = [dict(dose_slice) for dose_slice in data["slices"] or []]
    return result
