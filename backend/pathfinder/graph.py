from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .compactor import EdgeId, Neighbors, is_junction, undirected_neighbors
from .errors import graph_error
from .keys import Coordinate, VertexKey, key_from_str, key_to_str

SNAPSHOT_VERSION = "path-graph-v1"


class EdgeTracking(str, Enum):
    WITH_EDGE_IDS = "with_edge_ids"
    WITHOUT = "without"


@dataclass
class PathGraph:
    """Full and compacted structures for one network.

    ``vertices`` maps a vertex to its outgoing neighbours and edge weights.
    ``compacted_*`` hold only junctions as top-level keys (plus phantoms while
    a query runs); ``compacted_coordinates[u][v]`` starts with u's coordinate
    and stops before v's.
    """

    precision: float
    vertices: dict[VertexKey, dict[VertexKey, float]]
    source_vertices: dict[VertexKey, Coordinate]
    compacted_vertices: dict[VertexKey, dict[VertexKey, float]]
    compacted_coordinates: dict[VertexKey, dict[VertexKey, list[Coordinate]]]
    edge_data: dict[VertexKey, dict[VertexKey, EdgeId]] | None = None
    compacted_edges: dict[VertexKey, dict[VertexKey, tuple[EdgeId, ...]]] | None = None
    _neighbors: Neighbors | None = field(default=None, init=False, repr=False, compare=False)

    @property
    def edge_tracking(self) -> EdgeTracking:
        if self.edge_data is not None and self.compacted_edges is not None:
            return EdgeTracking.WITH_EDGE_IDS
        return EdgeTracking.WITHOUT

    @property
    def neighbors(self) -> Neighbors:
        if self._neighbors is None:
            self._neighbors = undirected_neighbors(self.vertices)
        return self._neighbors

    def is_junction(self, key: VertexKey) -> bool:
        return is_junction(key, self.neighbors)

    def junction_keys(self) -> list[VertexKey]:
        return [k for k in self.neighbors if self.is_junction(k)]

    def edge_count(self) -> int:
        return sum(len(nbrs) for nbrs in self.vertices.values())

    def snapshot(self) -> GraphSnapshot:
        return GraphSnapshot(graph=copy.deepcopy(self))


def _encode_nested(nested: dict[VertexKey, dict[VertexKey, Any]], value_fn=lambda v: v) -> dict[str, dict[str, Any]]:
    return {
        key_to_str(u): {key_to_str(v): value_fn(val) for v, val in nbrs.items()}
        for u, nbrs in nested.items()
    }


def _decode_nested(raw: Any, value_fn=lambda v: v) -> dict[VertexKey, dict[VertexKey, Any]]:
    if not isinstance(raw, dict):
        raise ValueError("expected a mapping of vertex keys")
    out: dict[VertexKey, dict[VertexKey, Any]] = {}
    for u, nbrs in raw.items():
        if not isinstance(nbrs, dict):
            raise ValueError(f"expected a mapping of neighbours for {u!r}")
        out[key_from_str(u)] = {key_from_str(v): value_fn(val) for v, val in nbrs.items()}
    return out


def _coords(raw: Any) -> list[Coordinate]:
    return [(float(c[0]), float(c[1])) for c in raw]


@dataclass(frozen=True)
class GraphSnapshot:
    """Plain serializable view of a PathGraph; rebuilding never recompacts."""

    graph: PathGraph

    def to_dict(self) -> dict[str, Any]:
        g = self.graph
        tracking = g.edge_tracking
        return {
            "version": SNAPSHOT_VERSION,
            "precision": g.precision,
            "edge_tracking": tracking.value,
            "vertices": _encode_nested(g.vertices),
            "source_vertices": {key_to_str(k): list(c) for k, c in g.source_vertices.items()},
            "compacted_vertices": _encode_nested(g.compacted_vertices),
            "compacted_coordinates": _encode_nested(
                g.compacted_coordinates, lambda cs: [list(c) for c in cs]
            ),
            "edge_data": _encode_nested(g.edge_data) if tracking is EdgeTracking.WITH_EDGE_IDS else None,
            "compacted_edges": (
                _encode_nested(g.compacted_edges, list)
                if tracking is EdgeTracking.WITH_EDGE_IDS
                else None
            ),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> GraphSnapshot:
        if not isinstance(payload, dict):
            raise graph_error("graph_snapshot_invalid", "graph snapshot must be a JSON object")
        version = payload.get("version")
        if version != SNAPSHOT_VERSION:
            raise graph_error(
                "graph_snapshot_version",
                f"unsupported graph snapshot version {version!r}",
                expected=SNAPSHOT_VERSION,
            )
        try:
            tracking = EdgeTracking(payload.get("edge_tracking", EdgeTracking.WITHOUT.value))
            with_ids = tracking is EdgeTracking.WITH_EDGE_IDS
            graph = PathGraph(
                precision=float(payload["precision"]),
                vertices=_decode_nested(payload["vertices"], float),
                source_vertices={
                    key_from_str(k): (float(c[0]), float(c[1]))
                    for k, c in payload["source_vertices"].items()
                },
                compacted_vertices=_decode_nested(payload["compacted_vertices"], float),
                compacted_coordinates=_decode_nested(payload["compacted_coordinates"], _coords),
                edge_data=_decode_nested(payload["edge_data"]) if with_ids else None,
                compacted_edges=_decode_nested(payload["compacted_edges"], tuple) if with_ids else None,
            )
        except (KeyError, TypeError, ValueError, IndexError, AttributeError) as exc:
            raise graph_error("graph_snapshot_invalid", f"malformed graph snapshot: {exc}") from exc
        return cls(graph=graph)
