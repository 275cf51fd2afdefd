from __future__ import annotations

import math
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

XY = tuple[float, float]
HullKind = Literal["none", "convex", "concave"]


def _finite_xy(v: XY) -> XY:
    if not all(math.isfinite(c) for c in v):
        raise ValueError("coordinates must be finite")
    return v


class PathRequest(BaseModel):
    start: XY
    finish: XY

    @field_validator("start", "finish")
    @classmethod
    def finite(cls, v: XY) -> XY:
        return _finite_xy(v)


class PathResponse(BaseModel):
    path: list[XY]
    weight: float
    edge_ids: list[str | int] | None = None


class ReachableRequest(BaseModel):
    start: XY
    cost_bound: float = Field(..., ge=0)
    hull: HullKind = "none"

    @field_validator("start")
    @classmethod
    def finite(cls, v: XY) -> XY:
        return _finite_xy(v)


class ReachableResponse(BaseModel):
    points: list[XY]
    hull: dict[str, Any] | None = None


class NearestJunctionRequest(BaseModel):
    point: XY

    @field_validator("point")
    @classmethod
    def finite(cls, v: XY) -> XY:
        return _finite_xy(v)


class NearestJunctionResponse(BaseModel):
    coordinate: XY | None
    distance_m: float | None


class HealthResponse(BaseModel):
    status: str
    graph_loaded: bool
