"""Canonical vertex keys.

A vertex key is the coordinate expressed as an integer multiple of the
rounding precision, so two points are the same vertex exactly when their
rounded components are equal. Integer pairs hash, compare and sort without
any of the formatting ambiguity of joined coordinate strings.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

VertexKey = tuple[int, int]
Coordinate = tuple[float, float]


def _check_precision(precision: float) -> float:
    p = float(precision)
    if not math.isfinite(p) or p <= 0.0:
        raise ValueError(f"coordinate precision must be a positive number, got {precision!r}")
    return p


def _decimals_for(precision: float) -> int:
    # 1e-5 -> 5, 0.25 -> 2, 10 -> 0
    exponent = Decimal(repr(precision)).normalize().as_tuple().exponent
    return max(0, -int(exponent))


def _components(coord: Sequence[Any]) -> tuple[float, float]:
    if isinstance(coord, (str, bytes)) or len(coord) < 2:
        raise ValueError(f"expected an (x, y) coordinate, got {coord!r}")
    x, y = float(coord[0]), float(coord[1])
    if not (math.isfinite(x) and math.isfinite(y)):
        raise ValueError(f"coordinate components must be finite, got {coord!r}")
    return x, y


def coordinate_key(coord: Sequence[Any], precision: float) -> VertexKey:
    p = _check_precision(precision)
    x, y = _components(coord)
    return (int(round(x / p)), int(round(y / p)))


def key_to_coord(key: VertexKey, precision: float) -> Coordinate:
    p = _check_precision(precision)
    decimals = _decimals_for(p)
    return (round(key[0] * p, decimals), round(key[1] * p, decimals))


def round_coord(coord: Sequence[Any], precision: float) -> Coordinate:
    return key_to_coord(coordinate_key(coord, precision), precision)


def key_to_str(key: VertexKey) -> str:
    return f"{key[0]},{key[1]}"


def key_from_str(text: str) -> VertexKey:
    parts = str(text).split(",")
    if len(parts) != 2:
        raise ValueError(f"malformed vertex key {text!r}")
    return (int(parts[0]), int(parts[1]))


def query_coordinate(point: Any) -> Coordinate:
    """Accept an (x, y) pair, a GeoJSON Point geometry or a Point Feature."""
    if isinstance(point, dict):
        geometry = point.get("geometry") if point.get("type") == "Feature" else point
        if not isinstance(geometry, dict) or str(geometry.get("type", "")) != "Point":
            raise ValueError("query point must be a GeoJSON Point or a Feature with Point geometry")
        return _components(geometry.get("coordinates") or ())
    return _components(point)
