from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .errors import graph_error
from .graph import GraphSnapshot, PathGraph
from .logging_utils import log_event
from .preprocessor import preprocess
from .settings import settings
from .weights import WeightFunctions


def snapshot_dir() -> Path:
    p = Path(settings.out_dir) / "graphs"
    p.mkdir(parents=True, exist_ok=True)
    return p


def _snapshot_meta(snapshot: GraphSnapshot, *, source: str) -> dict[str, Any]:
    g = snapshot.graph
    return {
        "source": source,
        "created_at": datetime.now(UTC).isoformat(),
        "precision": g.precision,
        "edge_tracking": g.edge_tracking.value,
        "vertices": len(g.vertices),
        "edges": g.edge_count(),
        "junctions": len(g.compacted_vertices),
    }


def write_snapshot_file(snapshot: GraphSnapshot, path: Path, *, source: str = "") -> tuple[Path, Path]:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(snapshot.to_dict()), encoding="utf-8")
    meta_path = path.with_suffix(".meta.json")
    meta_path.write_text(json.dumps(_snapshot_meta(snapshot, source=source), indent=2), encoding="utf-8")
    log_event("snapshot_written", path=str(path), meta_path=str(meta_path))
    return path, meta_path


def write_snapshot(snapshot: GraphSnapshot, name: str) -> Path:
    path, _ = write_snapshot_file(snapshot, snapshot_dir() / f"{name}.json")
    return path


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise graph_error("graph_asset_unavailable", f"graph asset not found: {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise graph_error("graph_asset_unavailable", f"graph asset unreadable: {path}: {exc}") from exc


def read_snapshot(path: Path) -> GraphSnapshot:
    snapshot = GraphSnapshot.from_dict(_read_json(path))
    log_event("snapshot_loaded", path=str(path), vertex_count=len(snapshot.graph.vertices))
    return snapshot


def load_graph_asset(path: Path) -> PathGraph:
    """Snapshot files load as-is; anything else is treated as raw GeoJSON."""
    payload = _read_json(path)
    if isinstance(payload, dict) and "version" in payload:
        snapshot = GraphSnapshot.from_dict(payload)
        log_event("snapshot_loaded", path=str(path), vertex_count=len(snapshot.graph.vertices))
        return snapshot.graph
    if not isinstance(payload, dict):
        raise graph_error("graph_asset_unavailable", f"graph asset is not a JSON object: {path}")
    return preprocess(
        payload,
        precision=settings.coordinate_precision,
        weight_fn=WeightFunctions.by_name(settings.default_weight_fn),
        track_edges=settings.track_edge_ids,
        edge_id_property=settings.edge_id_property,
    )
