from __future__ import annotations

import copy
import math
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from itertools import pairwise
from typing import Any, Literal

from .compactor import EdgeId, compact_node
from .errors import graph_error
from .graph import EdgeTracking, GraphSnapshot, PathGraph
from .keys import Coordinate, VertexKey, coordinate_key, query_coordinate
from .logging_utils import log_event, log_warning
from .preprocessor import preprocess
from .search import PathResult, reachable_set, shortest_path
from .settings import settings
from .weights import WeightFn, WeightFunctions, haversine_m

QueryIsolation = Literal["lock", "clone"]
DistanceFn = Callable[[Coordinate, Coordinate], float]


@dataclass(frozen=True)
class PathFound:
    path: tuple[Coordinate, ...]
    weight: float
    # One identifier per traversed segment; None when the graph has no edge ids.
    edge_ids: tuple[EdgeId, ...] | None = None


@dataclass(frozen=True)
class _Phantom:
    key: VertexKey
    incoming: tuple[VertexKey, ...]


class _Workspace:
    """Compacted maps a query reads and splices phantoms into.

    Shared mode works on the engine's own maps (the caller holds the lock).
    Isolated mode copies the outer maps up front and each neighbour map on
    first write, so the persistent graph is never touched.
    """

    def __init__(self, graph: PathGraph, *, isolated: bool, with_edges: bool) -> None:
        self.isolated = isolated
        self._owned: set[VertexKey] = set()
        if isolated:
            self.vertices = dict(graph.compacted_vertices)
            self.coordinates = dict(graph.compacted_coordinates)
            self.edges = dict(graph.compacted_edges) if with_edges and graph.compacted_edges is not None else None
        else:
            self.vertices = graph.compacted_vertices
            self.coordinates = graph.compacted_coordinates
            self.edges = graph.compacted_edges if with_edges else None

    def own(self, key: VertexKey) -> None:
        if not self.isolated or key in self._owned:
            return
        self.vertices[key] = dict(self.vertices[key])
        self.coordinates[key] = dict(self.coordinates[key])
        if self.edges is not None:
            self.edges[key] = dict(self.edges[key])
        self._owned.add(key)


def _as_graph(
    graph: PathGraph | GraphSnapshot | Mapping[str, Any],
    *,
    precision: float | None,
    weight_fn: WeightFn | None,
    track_edges: bool | None,
    edge_id_property: str | None,
) -> PathGraph:
    if isinstance(graph, PathGraph):
        return graph
    if isinstance(graph, GraphSnapshot):
        # The snapshot stays frozen; the engine mutates its own copy during queries.
        return copy.deepcopy(graph.graph)
    if isinstance(graph, Mapping):
        if "version" in graph:
            return GraphSnapshot.from_dict(dict(graph)).graph
        return preprocess(
            graph,
            precision=settings.coordinate_precision if precision is None else precision,
            weight_fn=weight_fn or WeightFunctions.by_name(settings.default_weight_fn),
            track_edges=settings.track_edge_ids if track_edges is None else track_edges,
            edge_id_property=edge_id_property or settings.edge_id_property,
        )
    raise TypeError(f"unsupported graph input {type(graph).__name__}")


class PathEngine:
    """Shortest paths and reachability for arbitrary vertices of a network.

    Queries whose endpoints sit mid-chain splice temporary phantom vertices
    into the compacted graph and always remove them before returning.
    """

    def __init__(
        self,
        graph: PathGraph | GraphSnapshot | Mapping[str, Any],
        *,
        precision: float | None = None,
        weight_fn: WeightFn | None = None,
        track_edges: bool | None = None,
        edge_id_property: str | None = None,
        query_isolation: QueryIsolation | None = None,
        strict_invariants: bool = False,
    ) -> None:
        self._graph = _as_graph(
            graph,
            precision=precision,
            weight_fn=weight_fn,
            track_edges=track_edges,
            edge_id_property=edge_id_property,
        )
        if not self._graph.compacted_vertices:
            raise graph_error(
                "graph_no_junctions",
                "Compacted graph contains no forks (topology has no intersections).",
                vertex_count=len(self._graph.vertices),
            )
        self._tracking = self._graph.edge_tracking
        self._isolation: QueryIsolation = query_isolation or settings.query_isolation
        self._strict_invariants = strict_invariants
        self._lock = threading.Lock()
        log_event(
            "engine_ready",
            vertex_count=len(self._graph.vertices),
            junction_count=len(self._graph.compacted_vertices),
            edge_tracking=self._tracking.value,
            query_isolation=self._isolation,
        )

    @property
    def precision(self) -> float:
        return self._graph.precision

    @property
    def edge_tracking(self) -> EdgeTracking:
        return self._tracking

    def vertex_key(self, point: Any) -> VertexKey:
        return coordinate_key(query_coordinate(point), self._graph.precision)

    # ---------------- queries ----------------

    def find_path(self, start: Any, finish: Any) -> PathFound | None:
        start_key = self.vertex_key(start)
        finish_key = self.vertex_key(finish)
        # Query points must round onto a known vertex; they are never snapped.
        if start_key not in self._graph.vertices or finish_key not in self._graph.vertices:
            log_event("find_path", found=False, reason="endpoint_not_in_graph")
            return None

        t0 = time.perf_counter()
        with self._phantoms(start_key, finish_key) as ws:
            result = shortest_path(ws.vertices, start_key, finish_key)
            found = self._expand(ws, result, finish_key) if result is not None else None

        log_event(
            "find_path",
            found=found is not None,
            weight=found.weight if found is not None else None,
            junction_hops=len(result.nodes) - 1 if result is not None else None,
            duration_ms=round((time.perf_counter() - t0) * 1000, 2),
        )
        return found

    def reachable_costs(self, start: Any, cost_bound: float) -> dict[Coordinate, float] | None:
        start_key = self.vertex_key(start)
        if start_key not in self._graph.vertices:
            return None

        t0 = time.perf_counter()
        with self._phantoms(start_key) as ws:
            costs = reachable_set(ws.vertices, start_key, float(cost_bound))
        coords = self._graph.source_vertices
        log_event(
            "reachable_points",
            cost_bound=float(cost_bound),
            reached=len(costs),
            duration_ms=round((time.perf_counter() - t0) * 1000, 2),
        )
        return {coords[k]: cost for k, cost in costs.items()}

    def reachable_points(self, start: Any, cost_bound: float) -> list[Coordinate] | None:
        costs = self.reachable_costs(start, cost_bound)
        if costs is None:
            return None
        return list(costs)

    def nearest_junction(
        self,
        point: Any,
        distance_fn: DistanceFn = haversine_m,
    ) -> tuple[Coordinate | None, float]:
        target = query_coordinate(point)
        best: Coordinate | None = None
        best_dist = math.inf
        coords = self._graph.source_vertices
        # Strictly-closer replacement: the first junction in graph order wins ties.
        for key in self._graph.junction_keys():
            dist = distance_fn(target, coords[key])
            if dist < best_dist:
                best, best_dist = coords[key], dist
        return best, best_dist

    def serialize(self) -> GraphSnapshot:
        with self._lock:
            return self._graph.snapshot()

    def check_invariants(self) -> None:
        with self._lock:
            self._check_invariants()

    # ---------------- phantom lifecycle ----------------

    @contextmanager
    def _phantoms(self, *keys: VertexKey) -> Iterator[_Workspace]:
        if self._isolation == "clone":
            ws = self._workspace(isolated=True)
            inserted: list[_Phantom | None] = []
            try:
                for key in keys:
                    inserted.append(self._insert_phantom(ws, key))
                yield ws
            finally:
                for phantom in reversed(inserted):
                    self._remove_phantom(ws, phantom)
            return

        with self._lock:
            ws = self._workspace(isolated=False)
            inserted = []
            try:
                for key in keys:
                    inserted.append(self._insert_phantom(ws, key))
                yield ws
            finally:
                for phantom in reversed(inserted):
                    self._remove_phantom(ws, phantom)
                if self._strict_invariants:
                    self._check_invariants()

    def _workspace(self, *, isolated: bool) -> _Workspace:
        return _Workspace(
            self._graph,
            isolated=isolated,
            with_edges=self._tracking is EdgeTracking.WITH_EDGE_IDS,
        )

    def _insert_phantom(self, ws: _Workspace, key: VertexKey) -> _Phantom | None:
        if key in ws.vertices:
            return None
        g = self._graph
        node = compact_node(
            key,
            g.vertices,
            ws.vertices,
            g.source_vertices,
            g.edge_data if ws.edges is not None else None,
            track_incoming=True,
            neighbors=g.neighbors,
        )
        ws.vertices[key] = node.edges
        ws.coordinates[key] = node.coordinates
        if ws.edges is not None:
            ws.edges[key] = node.reduced_edges
        ws.own(key)

        for neighbor, weight in node.incoming_edges.items():
            ws.own(neighbor)
            ws.vertices[neighbor][key] = weight
            ws.coordinates[neighbor][key] = node.incoming_coordinates[neighbor]
            if ws.edges is not None:
                ws.edges[neighbor][key] = node.incoming_reduced_edges[neighbor]
        return _Phantom(key=key, incoming=tuple(node.incoming_edges))

    def _remove_phantom(self, ws: _Workspace, phantom: _Phantom | None) -> None:
        if phantom is None:
            return
        key = phantom.key
        for neighbor in phantom.incoming:
            ws.vertices.get(neighbor, {}).pop(key, None)
            ws.coordinates.get(neighbor, {}).pop(key, None)
            if ws.edges is not None:
                ws.edges.get(neighbor, {}).pop(key, None)
        ws.vertices.pop(key, None)
        ws.coordinates.pop(key, None)
        if ws.edges is not None:
            ws.edges.pop(key, None)

    # ---------------- helpers ----------------

    def _expand(self, ws: _Workspace, result: PathResult[VertexKey], finish_key: VertexKey) -> PathFound:
        path: list[Coordinate] = []
        for u, v in pairwise(result.nodes):
            path.extend(ws.coordinates[u][v])
        path.append(self._graph.source_vertices[finish_key])

        edge_ids: list[EdgeId] | None = None
        if ws.edges is not None:
            edge_ids = []
            for u, v in pairwise(result.nodes):
                edge_ids.extend(ws.edges[u][v])
        return PathFound(
            path=tuple(path),
            weight=result.cost,
            edge_ids=tuple(edge_ids) if edge_ids is not None else None,
        )

    def _check_invariants(self) -> None:
        g = self._graph
        problems: list[str] = []
        keys = set(g.compacted_vertices)
        if set(g.compacted_coordinates) != keys:
            problems.append("compacted coordinates and vertices have different keys")
        if g.compacted_edges is not None and set(g.compacted_edges) != keys:
            problems.append("compacted edges and vertices have different keys")
        for u, nbrs in g.compacted_vertices.items():
            if not g.is_junction(u):
                problems.append(f"non-junction key {u} left in compacted graph")
            dangling = [v for v in nbrs if v not in keys]
            if dangling:
                problems.append(f"{u} points at missing vertices {dangling}")
            if set(g.compacted_coordinates.get(u, {})) != set(nbrs):
                problems.append(f"{u} coordinate traces do not match its edges")
        if problems:
            log_warning("phantom_leak_detected", problems=problems[:10], problem_count=len(problems))
            raise graph_error(
                "phantom_invariant_violation",
                "compacted graph is inconsistent",
                problems=problems,
            )
