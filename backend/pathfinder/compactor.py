"""Collapse chains of degree-2 vertices into direct junction-to-junction edges.

Degree is counted on the undirected neighbour set, so a one-way chain is
still a chain; each direction's weight is accumulated separately and a
direction with a missing hop simply produces no compacted edge.
"""

from __future__ import annotations

from collections.abc import Container, Mapping
from dataclasses import dataclass, field

from .keys import Coordinate, VertexKey
from .logging_utils import log_event

EdgeId = str | int
FullAdjacency = Mapping[VertexKey, Mapping[VertexKey, float]]
EdgeData = Mapping[VertexKey, Mapping[VertexKey, EdgeId]]
Neighbors = dict[VertexKey, tuple[VertexKey, ...]]


@dataclass
class CompactedNode:
    edges: dict[VertexKey, float] = field(default_factory=dict)
    coordinates: dict[VertexKey, list[Coordinate]] = field(default_factory=dict)
    reduced_edges: dict[VertexKey, tuple[EdgeId, ...]] = field(default_factory=dict)
    # Entries oriented neighbour -> node, ready to be spliced into the neighbour's maps.
    incoming_edges: dict[VertexKey, float] = field(default_factory=dict)
    incoming_coordinates: dict[VertexKey, list[Coordinate]] = field(default_factory=dict)
    incoming_reduced_edges: dict[VertexKey, tuple[EdgeId, ...]] = field(default_factory=dict)


@dataclass
class CompactedGraph:
    vertices: dict[VertexKey, dict[VertexKey, float]]
    coordinates: dict[VertexKey, dict[VertexKey, list[Coordinate]]]
    edges: dict[VertexKey, dict[VertexKey, tuple[EdgeId, ...]]] | None


@dataclass(frozen=True)
class _ChainEnd:
    vertex: VertexKey
    weight: float | None
    reverse_weight: float | None
    coordinates: tuple[Coordinate, ...]
    edge_ids: tuple[EdgeId, ...]
    reverse_edge_ids: tuple[EdgeId, ...]


def undirected_neighbors(vertices: FullAdjacency) -> Neighbors:
    ordered: dict[VertexKey, dict[VertexKey, None]] = {}
    for u, nbrs in vertices.items():
        ordered.setdefault(u, {})
        for v in nbrs:
            if v == u:
                continue
            ordered[u][v] = None
            ordered.setdefault(v, {})[u] = None
    return {k: tuple(v) for k, v in ordered.items()}


def is_junction(key: VertexKey, neighbors: Neighbors) -> bool:
    return len(neighbors.get(key, ())) != 2


def _hop(vertices: FullAdjacency, a: VertexKey, b: VertexKey) -> float | None:
    nbrs = vertices.get(a)
    if nbrs is None:
        return None
    return nbrs.get(b)


def _accumulate(total: float | None, hop: float | None) -> float | None:
    if total is None or hop is None:
        return None
    return total + hop


def _edge_id(edge_data: EdgeData | None, a: VertexKey, b: VertexKey) -> EdgeId | None:
    if edge_data is None:
        return None
    return edge_data.get(a, {}).get(b)


def _find_next_end(
    start: VertexKey,
    first: VertexKey,
    vertices: FullAdjacency,
    ends: Container[VertexKey],
    neighbors: Neighbors,
    source_vertices: Mapping[VertexKey, Coordinate],
    edge_data: EdgeData | None,
) -> _ChainEnd:
    prev, v = start, first
    weight = _hop(vertices, prev, v)
    reverse_weight = _hop(vertices, v, prev)
    coordinates: list[Coordinate] = []
    edge_ids = [_edge_id(edge_data, prev, v)]
    reverse_edge_ids = [_edge_id(edge_data, v, prev)]

    while v not in ends and v != start:
        around = neighbors.get(v, ())
        if len(around) != 2:
            break
        nxt = around[1] if around[0] == prev else around[0]
        weight = _accumulate(weight, _hop(vertices, v, nxt))
        reverse_weight = _accumulate(reverse_weight, _hop(vertices, nxt, v))
        coordinates.append(source_vertices[v])
        edge_ids.append(_edge_id(edge_data, v, nxt))
        reverse_edge_ids.append(_edge_id(edge_data, nxt, v))
        prev, v = v, nxt

    return _ChainEnd(
        vertex=v,
        weight=weight,
        reverse_weight=reverse_weight,
        coordinates=tuple(coordinates),
        edge_ids=tuple(edge_ids),
        reverse_edge_ids=tuple(reverse_edge_ids),
    )


def compact_node(
    key: VertexKey,
    vertices: FullAdjacency,
    ends: Container[VertexKey],
    source_vertices: Mapping[VertexKey, Coordinate],
    edge_data: EdgeData | None = None,
    *,
    track_incoming: bool = False,
    neighbors: Neighbors | None = None,
) -> CompactedNode:
    """Walk every chain leaving ``key`` up to the next end.

    ``ends`` holds the keys a walk stops at (junctions, plus phantoms already
    spliced in). With ``track_incoming`` the reverse direction of each chain
    is reported as well, oriented from the far end back to ``key``. Nothing
    passed in is mutated.
    """
    if neighbors is None:
        neighbors = undirected_neighbors(vertices)
    result = CompactedNode()
    origin = source_vertices[key]

    for first in neighbors.get(key, ()):
        end = _find_next_end(key, first, vertices, ends, neighbors, source_vertices, edge_data)
        if end.vertex == key:
            continue

        if end.weight is not None:
            prior = result.edges.get(end.vertex)
            if prior is None or end.weight < prior:
                result.edges[end.vertex] = end.weight
                result.coordinates[end.vertex] = [origin, *end.coordinates]
                if edge_data is not None:
                    result.reduced_edges[end.vertex] = end.edge_ids

        if track_incoming and end.reverse_weight is not None:
            prior = result.incoming_edges.get(end.vertex)
            if prior is None or end.reverse_weight < prior:
                result.incoming_edges[end.vertex] = end.reverse_weight
                result.incoming_coordinates[end.vertex] = [
                    source_vertices[end.vertex],
                    *reversed(end.coordinates),
                ]
                if edge_data is not None:
                    result.incoming_reduced_edges[end.vertex] = tuple(reversed(end.reverse_edge_ids))

    return result


def compact_graph(
    vertices: FullAdjacency,
    source_vertices: Mapping[VertexKey, Coordinate],
    edge_data: EdgeData | None = None,
) -> CompactedGraph:
    neighbors = undirected_neighbors(vertices)
    ends = {k: None for k in neighbors if is_junction(k, neighbors)}

    graph: dict[VertexKey, dict[VertexKey, float]] = {}
    coordinates: dict[VertexKey, dict[VertexKey, list[Coordinate]]] = {}
    reduced: dict[VertexKey, dict[VertexKey, tuple[EdgeId, ...]]] = {}
    for k in ends:
        node = compact_node(k, vertices, ends, source_vertices, edge_data, neighbors=neighbors)
        graph[k] = node.edges
        coordinates[k] = node.coordinates
        reduced[k] = node.reduced_edges

    log_event(
        "graph_compacted",
        vertex_count=len(neighbors),
        junction_count=len(graph),
        compacted_edge_count=sum(len(v) for v in graph.values()),
    )
    return CompactedGraph(
        vertices=graph,
        coordinates=coordinates,
        edges=reduced if edge_data is not None else None,
    )
