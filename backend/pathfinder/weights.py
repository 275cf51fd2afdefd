from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from typing import Any

from .keys import Coordinate

EARTH_RADIUS_M = 6_371_000.0

# A weight is a number (both directions), None (not traversable), or a
# directional pair / {"forward": .., "backward": ..} mapping.
Weight = float | int | None | tuple[Any, Any] | Mapping[str, Any]
WeightFn = Callable[[Coordinate, Coordinate, Mapping[str, Any]], Weight]


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in metres between two (lon, lat) coordinates."""
    lon1, lat1 = a
    lon2, lat2 = b
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    h = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, h))))


def euclidean(a: Coordinate, b: Coordinate) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def _check_weight(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"edge weight must be numeric, got {value!r}")
    w = float(value)
    if not math.isfinite(w) or w < 0.0:
        raise ValueError(f"edge weight must be finite and non-negative, got {value!r}")
    return w


def normalize_weight(value: Weight) -> tuple[float | None, float | None]:
    """Return (forward, backward); None marks a direction that cannot be travelled."""
    if isinstance(value, Mapping):
        return _check_weight(value.get("forward")), _check_weight(value.get("backward"))
    if isinstance(value, (tuple, list)):
        if len(value) != 2:
            raise ValueError(f"directional weight must have two components, got {value!r}")
        return _check_weight(value[0]), _check_weight(value[1])
    w = _check_weight(value)
    return w, w


def haversine_weight(a: Coordinate, b: Coordinate, properties: Mapping[str, Any]) -> Weight:
    return haversine_m(a, b)


def euclidean_weight(a: Coordinate, b: Coordinate, properties: Mapping[str, Any]) -> Weight:
    return euclidean(a, b)


def _oneway_direction(properties: Mapping[str, Any]) -> str:
    raw = str(properties.get("oneway", "")).strip().lower()
    if raw in {"yes", "true", "1", "forward"}:
        return "forward"
    if raw in {"-1", "reverse", "backward"}:
        return "backward"
    return "both"


def oneway_aware_weight(a: Coordinate, b: Coordinate, properties: Mapping[str, Any]) -> Weight:
    d = haversine_m(a, b)
    direction = _oneway_direction(properties)
    if direction == "forward":
        return {"forward": d, "backward": None}
    if direction == "backward":
        return {"forward": None, "backward": d}
    return d


class WeightFunctions:
    haversine: WeightFn = staticmethod(haversine_weight)
    euclidean: WeightFn = staticmethod(euclidean_weight)
    oneway_aware: WeightFn = staticmethod(oneway_aware_weight)

    @classmethod
    def by_name(cls, name: str) -> WeightFn:
        key = str(name or "").strip().lower()
        fn = {
            "haversine": haversine_weight,
            "euclidean": euclidean_weight,
            "oneway_aware": oneway_aware_weight,
        }.get(key)
        if fn is None:
            raise ValueError(f"unknown weight function {name!r}")
        return fn
