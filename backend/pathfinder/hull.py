from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import shapely
from shapely.geometry import MultiPoint, mapping

from .keys import Coordinate


def _multipoint(points: Iterable[Coordinate]) -> MultiPoint | None:
    distinct = list(dict.fromkeys((float(x), float(y)) for x, y in points))
    if len(distinct) < 3:
        return None
    return MultiPoint(distinct)


def convex_hull(points: Iterable[Coordinate]) -> dict[str, Any] | None:
    mp = _multipoint(points)
    if mp is None:
        return None
    return dict(mapping(mp.convex_hull))


def concave_hull(points: Iterable[Coordinate], ratio: float = 0.3) -> dict[str, Any] | None:
    """Concave outline of reached points; ratio 1.0 degenerates to the convex hull."""
    mp = _multipoint(points)
    if mp is None:
        return None
    return dict(mapping(shapely.concave_hull(mp, ratio=max(0.0, min(1.0, float(ratio))))))
