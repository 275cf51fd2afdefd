from __future__ import annotations

import copy
import json
import threading
from typing import Any

import pytest

import pathfinder.engine as engine_module
from pathfinder.engine import PathEngine, PathFound
from pathfinder.errors import GraphDataError
from pathfinder.graph import EdgeTracking, GraphSnapshot
from pathfinder.weights import WeightFunctions, euclidean


def _feature(fid: str, coords: list[list[float]], **props: Any) -> dict[str, Any]:
    return {
        "type": "Feature",
        "id": fid,
        "properties": props,
        "geometry": {"type": "LineString", "coordinates": coords},
    }


def _square_network(*, spur: bool = True, island: bool = False) -> dict[str, Any]:
    """Unit square with a midpoint on the south side; the spur makes (1,1) a junction."""
    features = [
        _feature("south", [[0, 0], [0.5, 0], [1, 0]]),
        _feature("east", [[1, 0], [1, 1]]),
        _feature("north", [[1, 1], [0, 1]]),
        _feature("west", [[0, 1], [0, 0]]),
    ]
    if spur:
        features.append(_feature("spur", [[1, 1], [2, 1]]))
    if island:
        features.append(_feature("island", [[5, 5], [6, 5], [7, 5]]))
    return {"type": "FeatureCollection", "features": features}


def _engine(**kwargs: Any) -> PathEngine:
    network = kwargs.pop("network", None) or _square_network()
    kwargs.setdefault("track_edges", True)
    kwargs.setdefault("query_isolation", "lock")
    return PathEngine(network, weight_fn=WeightFunctions.euclidean, precision=1e-5, **kwargs)


def _compacted_state(engine: PathEngine) -> tuple[Any, Any, Any]:
    g = engine._graph
    return copy.deepcopy((g.compacted_vertices, g.compacted_coordinates, g.compacted_edges))


def test_square_corner_to_corner_takes_first_two_edge_route() -> None:
    engine = _engine()

    found = engine.find_path((0, 0), (1, 1))

    assert isinstance(found, PathFound)
    assert found.weight == pytest.approx(2.0)
    # Both routes cost 2; the south chain is walked first so it wins the tie.
    assert found.path == ((0.0, 0.0), (0.5, 0.0), (1.0, 0.0), (1.0, 1.0))
    assert found.edge_ids == ("south", "south", "east")


def test_square_midpoint_start_uses_phantom_vertex() -> None:
    engine = _engine()

    found = engine.find_path((0.5, 0), (1, 1))

    assert found is not None
    assert found.weight == pytest.approx(1.5)
    assert found.path == ((0.5, 0.0), (1.0, 0.0), (1.0, 1.0))
    assert found.edge_ids == ("south", "east")


def test_path_towards_phantom_finish_uses_incoming_trace() -> None:
    engine = _engine()

    found = engine.find_path((1, 1), (0, 0))

    assert found.weight == pytest.approx(2.0)
    assert found.path == ((1.0, 1.0), (1.0, 0.0), (0.5, 0.0), (0.0, 0.0))
    assert found.edge_ids == ("east", "south", "south")


def test_path_between_two_phantoms_on_the_same_chain() -> None:
    engine = _engine()

    found = engine.find_path((0.5, 0), (1, 0))

    assert found.weight == pytest.approx(0.5)
    assert found.path == ((0.5, 0.0), (1.0, 0.0))
    assert found.edge_ids == ("south",)


def test_path_to_same_point_is_single_coordinate() -> None:
    engine = _engine()

    found = engine.find_path((0.5, 0), (0.5, 0))

    assert found == PathFound(path=((0.5, 0.0),), weight=0.0, edge_ids=())


def test_query_points_are_rounded_but_never_snapped() -> None:
    engine = _engine()

    near = engine.find_path((0.500004, 0.000003), (1, 1))
    assert near is not None
    assert near.weight == pytest.approx(1.5)

    assert engine.find_path((0.25, 0), (1, 1)) is None
    assert engine.find_path((0, 0), (1.01, 1)) is None


def test_query_accepts_geojson_points_and_features() -> None:
    engine = _engine()
    start = {"type": "Point", "coordinates": [0.5, 0]}
    finish = {"type": "Feature", "properties": {}, "geometry": {"type": "Point", "coordinates": [1, 1]}}

    assert engine.find_path(start, finish).weight == pytest.approx(1.5)
    with pytest.raises(ValueError):
        engine.find_path({"type": "LineString", "coordinates": [[0, 0], [1, 1]]}, finish)


def test_unreachable_or_unknown_endpoints_return_none_without_mutation() -> None:
    engine = _engine(network=_square_network(island=True))
    before = _compacted_state(engine)

    assert engine.find_path((0, 0), (6, 5)) is None
    assert engine.find_path((0.5, 0), (6, 5)) is None
    assert engine.find_path((9, 9), (1, 1)) is None

    assert _compacted_state(engine) == before
    engine.check_invariants()


def test_phantom_round_trip_restores_compacted_graph_after_success() -> None:
    engine = _engine()
    before = _compacted_state(engine)

    assert engine.find_path((0.5, 0), (0, 1)) is not None
    assert engine.find_path((0, 0), (1, 0)) is not None
    assert engine.reachable_points((0.5, 0), 10.0) is not None

    assert _compacted_state(engine) == before
    engine.check_invariants()


def test_phantom_is_visible_only_inside_the_query_scope() -> None:
    engine = _engine()
    mid = engine.vertex_key((0.5, 0))
    corner = engine.vertex_key((1, 1))

    with engine._phantoms(mid) as ws:
        assert mid in ws.vertices
        assert mid in ws.vertices[corner]
        assert ws.coordinates[corner][mid] == [(1.0, 1.0), (1.0, 0.0)]
        assert ws.edges[corner][mid] == ("east", "south")

    assert mid not in engine._graph.compacted_vertices
    assert mid not in engine._graph.compacted_vertices[corner]


def test_phantom_insert_on_existing_junction_is_a_no_op() -> None:
    engine = _engine()
    corner = engine.vertex_key((1, 1))
    before = _compacted_state(engine)

    with engine._phantoms(corner) as ws:
        assert engine._insert_phantom(ws, corner) is None
        assert (ws.vertices, ws.coordinates, ws.edges) == before
    engine._remove_phantom(engine._workspace(isolated=False), None)

    assert _compacted_state(engine) == before


def test_phantoms_are_removed_when_the_query_raises(monkeypatch) -> None:
    engine = _engine()
    before = _compacted_state(engine)

    def _boom(*_args: Any, **_kwargs: Any) -> None:
        raise RuntimeError("search failed")

    monkeypatch.setattr(engine_module, "shortest_path", _boom)
    with pytest.raises(RuntimeError):
        engine.find_path((0.5, 0), (0, 1))

    assert _compacted_state(engine) == before


def test_check_invariants_reports_leaked_phantom() -> None:
    engine = _engine()
    mid = engine.vertex_key((0.5, 0))
    engine._insert_phantom(engine._workspace(isolated=False), mid)

    with pytest.raises(GraphDataError) as exc_info:
        engine.check_invariants()
    assert exc_info.value.reason_code == "phantom_invariant_violation"


def test_strict_invariants_checks_after_every_query() -> None:
    engine = _engine(strict_invariants=True)

    assert engine.find_path((0.5, 0), (0, 1)) is not None
    assert engine.reachable_points((0, 1), 1.0) is not None


def test_clone_isolation_never_touches_persistent_graph() -> None:
    engine = _engine(query_isolation="clone")
    mid = engine.vertex_key((0.5, 0))
    corner = engine.vertex_key((1, 1))
    before = _compacted_state(engine)

    with engine._phantoms(mid) as ws:
        assert mid in ws.vertices[corner]
        assert mid not in engine._graph.compacted_vertices
        assert mid not in engine._graph.compacted_vertices[corner]

    found = engine.find_path((0.5, 0), (1, 1))
    assert found.weight == pytest.approx(1.5)
    assert _compacted_state(engine) == before


def test_concurrent_queries_are_serialised_by_the_engine_lock() -> None:
    engine = _engine()
    before = _compacted_state(engine)
    queries = [((0.5, 0), (1, 1), 1.5), ((0, 0), (0, 1), 1.0), ((1, 0), (0, 1), 2.0), ((2, 1), (0.5, 0), 2.5)]
    errors: list[str] = []

    def _worker() -> None:
        for _ in range(25):
            for start, finish, expected in queries:
                found = engine.find_path(start, finish)
                if found is None or abs(found.weight - expected) > 1e-9:
                    errors.append(f"{start}->{finish}: {found}")

    threads = [threading.Thread(target=_worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert _compacted_state(engine) == before


def test_reachable_points_report_junctions_within_bound() -> None:
    engine = _engine()

    assert engine.reachable_points((0, 0), 1.0) == [(0.0, 0.0)]
    assert engine.reachable_costs((0, 0), 2.0) == pytest.approx({(0.0, 0.0): 0.0, (1.0, 1.0): 2.0})
    assert set(engine.reachable_points((0, 0), 3.0)) == {(0.0, 0.0), (1.0, 1.0), (2.0, 1.0)}
    assert engine.reachable_points((3, 3), 10.0) is None


def test_nearest_junction_scans_junctions_only() -> None:
    engine = _engine()

    coordinate, distance = engine.nearest_junction((0.1, 0.1), distance_fn=euclidean)
    assert coordinate == (1.0, 1.0)
    assert distance == pytest.approx(euclidean((0.1, 0.1), (1.0, 1.0)))

    # Equidistant from (1,1) and (2,1): the junction met first in graph order wins.
    coordinate, distance = engine.nearest_junction((1.5, 1.0), distance_fn=euclidean)
    assert coordinate == (1.0, 1.0)
    assert distance == pytest.approx(0.5)


def test_nearest_junction_defaults_to_great_circle_metres() -> None:
    engine = _engine()

    coordinate, distance = engine.nearest_junction((2.0, 1.001))
    assert coordinate == (2.0, 1.0)
    assert distance == pytest.approx(111.2, rel=0.01)


def test_graph_without_junctions_is_rejected_at_construction() -> None:
    with pytest.raises(GraphDataError) as exc_info:
        _engine(network=_square_network(spur=False))
    assert exc_info.value.reason_code == "graph_no_junctions"


def test_serialize_rebuilds_equivalent_engine_without_recompacting(monkeypatch) -> None:
    engine = _engine()
    engine.find_path((0.5, 0), (0, 1))
    snapshot = engine.serialize()
    payload = json.loads(json.dumps(snapshot.to_dict()))

    def _unexpected(*_args: Any, **_kwargs: Any) -> None:
        raise AssertionError("snapshot load must not preprocess")

    monkeypatch.setattr(engine_module, "preprocess", _unexpected)
    from_snapshot = PathEngine(snapshot, query_isolation="lock")
    from_payload = PathEngine(payload, query_isolation="lock")

    for restored in (from_snapshot, from_payload):
        assert restored.edge_tracking is EdgeTracking.WITH_EDGE_IDS
        assert restored.find_path((0.5, 0), (1, 1)) == engine.find_path((0.5, 0), (1, 1))
        assert restored.find_path((1, 1), (0, 0)) == engine.find_path((1, 1), (0, 0))
    assert GraphSnapshot.from_dict(payload).to_dict() == snapshot.to_dict()


def test_serialize_snapshot_is_detached_from_engine_state() -> None:
    engine = _engine()
    snapshot = engine.serialize()
    corner = engine.vertex_key((1, 1))

    engine._graph.compacted_vertices[corner][(0, 0)] = 99.0
    try:
        assert (0, 0) not in snapshot.graph.compacted_vertices[corner]
    finally:
        del engine._graph.compacted_vertices[corner][(0, 0)]


def test_graph_without_edge_ids_returns_no_edge_ids() -> None:
    engine = _engine(track_edges=False)

    found = engine.find_path((0.5, 0), (1, 1))

    assert engine.edge_tracking is EdgeTracking.WITHOUT
    assert found.edge_ids is None
    assert engine.serialize().to_dict()["compacted_edges"] is None
