from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from .compactor import EdgeId, compact_graph
from .errors import graph_error
from .graph import PathGraph
from .keys import Coordinate, VertexKey, coordinate_key, key_to_coord
from .logging_utils import log_event
from .weights import WeightFn, haversine_weight, normalize_weight

RawSegment = tuple[Any, Any, Mapping[str, Any], EdgeId]


def _feature_edge_id(feature: Mapping[str, Any], index: int, edge_id_property: str) -> EdgeId:
    fid = feature.get("id")
    if isinstance(fid, (str, int)) and not isinstance(fid, bool):
        return fid
    props = feature.get("properties") or {}
    pid = props.get(edge_id_property) if isinstance(props, Mapping) else None
    if isinstance(pid, (str, int)) and not isinstance(pid, bool):
        return pid
    return index


def _line_parts(geometry: Any) -> list[list[Any]]:
    if not isinstance(geometry, Mapping):
        return []
    kind = str(geometry.get("type", ""))
    coords = geometry.get("coordinates")
    if not isinstance(coords, list):
        return []
    if kind == "LineString":
        return [coords]
    if kind == "MultiLineString":
        return [part for part in coords if isinstance(part, list)]
    return []


def _iter_segments(source: Mapping[str, Any], edge_id_property: str) -> Iterator[RawSegment]:
    if source.get("type") == "FeatureCollection":
        for index, feature in enumerate(source.get("features") or []):
            if not isinstance(feature, Mapping):
                continue
            props = feature.get("properties")
            if not isinstance(props, Mapping):
                props = {}
            edge_id = _feature_edge_id(feature, index, edge_id_property)
            for part in _line_parts(feature.get("geometry")):
                for idx in range(1, len(part)):
                    yield part[idx - 1], part[idx], props, edge_id
    elif "edges" in source:
        # Pre-topologised input: [[a, b, properties], ...]
        for index, raw in enumerate(source.get("edges") or []):
            if not isinstance(raw, (list, tuple)) or len(raw) < 2:
                continue
            props = raw[2] if len(raw) > 2 and isinstance(raw[2], Mapping) else {}
            pid = props.get(edge_id_property)
            edge_id = pid if isinstance(pid, (str, int)) and not isinstance(pid, bool) else index
            yield raw[0], raw[1], props, edge_id
    else:
        raise graph_error("graph_empty", "expected a GeoJSON FeatureCollection or an 'edges' list")


def preprocess(
    source: Mapping[str, Any],
    *,
    precision: float = 1e-5,
    weight_fn: WeightFn | None = None,
    track_edges: bool = False,
    edge_id_property: str = "id",
) -> PathGraph:
    """Build the full adjacency graph from line geometries, then compact it."""
    weight_fn = weight_fn or haversine_weight
    vertices: dict[VertexKey, dict[VertexKey, float]] = {}
    source_vertices: dict[VertexKey, Coordinate] = {}
    edge_data: dict[VertexKey, dict[VertexKey, EdgeId]] | None = {} if track_edges else None
    segments_seen = 0
    segments_kept = 0

    def _connect(u: VertexKey, v: VertexKey, weight: float, edge_id: EdgeId) -> None:
        prior = vertices[u].get(v)
        if prior is not None and prior <= weight:
            return
        vertices[u][v] = weight
        if edge_data is not None:
            edge_data.setdefault(u, {})[v] = edge_id

    for raw_a, raw_b, props, edge_id in _iter_segments(source, edge_id_property):
        segments_seen += 1
        try:
            a = coordinate_key(raw_a, precision)
            b = coordinate_key(raw_b, precision)
        except (TypeError, ValueError):
            continue
        if a == b:
            continue
        ca = source_vertices.setdefault(a, key_to_coord(a, precision))
        cb = source_vertices.setdefault(b, key_to_coord(b, precision))
        forward, backward = normalize_weight(weight_fn(ca, cb, props))
        if forward is None and backward is None:
            continue
        vertices.setdefault(a, {})
        vertices.setdefault(b, {})
        if edge_data is not None:
            edge_data.setdefault(a, {})
            edge_data.setdefault(b, {})
        if forward is not None:
            _connect(a, b, forward, edge_id)
        if backward is not None:
            _connect(b, a, backward, edge_id)
        segments_kept += 1

    if not vertices:
        raise graph_error(
            "graph_empty",
            "No graph vertices/edges were extracted from source input.",
            segments_seen=segments_seen,
        )

    # Coordinates of vertices only met on dropped segments are not part of the graph.
    source_vertices = {k: c for k, c in source_vertices.items() if k in vertices}
    compacted = compact_graph(vertices, source_vertices, edge_data)
    graph = PathGraph(
        precision=precision,
        vertices=vertices,
        source_vertices=source_vertices,
        compacted_vertices=compacted.vertices,
        compacted_coordinates=compacted.coordinates,
        edge_data=edge_data,
        compacted_edges=compacted.edges,
    )
    log_event(
        "graph_preprocessed",
        segments_seen=segments_seen,
        segments_kept=segments_kept,
        vertex_count=len(vertices),
        edge_count=graph.edge_count(),
        junction_count=len(compacted.vertices),
        edge_tracking=graph.edge_tracking.value,
    )
    return graph
