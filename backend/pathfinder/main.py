from __future__ import annotations

import math
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .engine import PathEngine
from .errors import GraphDataError
from .hull import concave_hull, convex_hull
from .logging_utils import log_event
from .models import (
    HealthResponse,
    NearestJunctionRequest,
    NearestJunctionResponse,
    PathRequest,
    PathResponse,
    ReachableRequest,
    ReachableResponse,
)
from .settings import settings
from .snapshot_store import load_graph_asset


def _load_engine() -> PathEngine | None:
    asset = (settings.graph_asset_path or "").strip()
    if not asset:
        return None
    return PathEngine(load_graph_asset(Path(asset)))


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.engine = _load_engine()
    yield
    app.state.engine = None


app = FastAPI(title="Network Path Engine", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def path_engine(request: Request) -> PathEngine:
    engine: PathEngine | None = getattr(request.app.state, "engine", None)  # type: ignore[attr-defined]
    if engine is None:
        raise HTTPException(status_code=503, detail="no graph loaded")
    return engine


EngineDep = Annotated[PathEngine, Depends(path_engine)]


@app.exception_handler(GraphDataError)
async def graph_data_error_handler(request: Request, exc: GraphDataError) -> JSONResponse:
    log_event("graph_data_error", reason_code=exc.reason_code, detail=str(exc), path=request.url.path)
    return JSONResponse(status_code=422, content={"detail": {"reason_code": exc.reason_code, "message": str(exc)}})


@app.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    loaded = getattr(request.app.state, "engine", None) is not None
    return HealthResponse(status="ok", graph_loaded=loaded)


@app.post("/path", response_model=PathResponse)
def find_path(req: PathRequest, engine: EngineDep) -> PathResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()

    found = engine.find_path(req.start, req.finish)

    log_event(
        "path_request",
        request_id=request_id,
        start=list(req.start),
        finish=list(req.finish),
        found=found is not None,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    if found is None:
        raise HTTPException(status_code=404, detail="no path between the requested points")
    return PathResponse(
        path=list(found.path),
        weight=found.weight,
        edge_ids=list(found.edge_ids) if found.edge_ids is not None else None,
    )


@app.post("/reachable", response_model=ReachableResponse)
def reachable(req: ReachableRequest, engine: EngineDep) -> ReachableResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()

    points = engine.reachable_points(req.start, req.cost_bound)
    if points is None:
        log_event("reachable_request", request_id=request_id, start=list(req.start), found=False)
        raise HTTPException(status_code=404, detail="start point is not a graph vertex")

    hull: dict[str, Any] | None = None
    if req.hull == "convex":
        hull = convex_hull(points)
    elif req.hull == "concave":
        hull = concave_hull(points, settings.concave_hull_ratio)

    log_event(
        "reachable_request",
        request_id=request_id,
        start=list(req.start),
        cost_bound=req.cost_bound,
        hull_kind=req.hull,
        reached=len(points),
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return ReachableResponse(points=points, hull=hull)


@app.post("/nearest-junction", response_model=NearestJunctionResponse)
def nearest_junction(req: NearestJunctionRequest, engine: EngineDep) -> NearestJunctionResponse:
    coordinate, distance = engine.nearest_junction(req.point)
    return NearestJunctionResponse(
        coordinate=coordinate,
        distance_m=distance if math.isfinite(distance) else None,
    )


@app.get("/graph/snapshot")
def graph_snapshot(engine: EngineDep) -> dict[str, Any]:
    return engine.serialize().to_dict()
