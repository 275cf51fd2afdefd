from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from pathfinder.engine import PathEngine
from pathfinder.settings import WEIGHT_FN_NAMES, settings
from pathfinder.snapshot_store import write_snapshot_file
from pathfinder.weights import WeightFunctions


def build(
    *,
    source: Path,
    output: Path,
    precision: float = 1e-5,
    weight_fn: str = "haversine",
    track_edges: bool = True,
    edge_id_property: str = "id",
) -> dict[str, Any]:
    payload = json.loads(source.read_text(encoding="utf-8"))
    # Building the engine runs preprocessing + compaction and rejects graphs without junctions.
    engine = PathEngine(
        payload,
        precision=precision,
        weight_fn=WeightFunctions.by_name(weight_fn),
        track_edges=track_edges,
        edge_id_property=edge_id_property,
    )
    snapshot = engine.serialize()
    path, meta_path = write_snapshot_file(snapshot, output, source=str(source))
    g = snapshot.graph
    return {
        "vertices": len(g.vertices),
        "edges": g.edge_count(),
        "junctions": len(g.compacted_vertices),
        "edge_tracking": g.edge_tracking.value,
        "source": str(source),
        "output": str(path),
        "meta": str(meta_path),
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Preprocess a GeoJSON line network into a compacted graph snapshot.")
    parser.add_argument(
        "--source",
        type=Path,
        required=True,
        help="GeoJSON FeatureCollection of LineString/MultiLineString features.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path(settings.out_dir) / "graphs" / "path_graph.json",
        help="Output snapshot JSON path.",
    )
    parser.add_argument("--precision", type=float, default=settings.coordinate_precision)
    parser.add_argument("--weight-fn", choices=WEIGHT_FN_NAMES, default=settings.default_weight_fn)
    parser.add_argument("--edge-id-property", default=settings.edge_id_property)
    parser.add_argument(
        "--no-edge-ids",
        action="store_true",
        help="Do not track original edge identifiers in the snapshot.",
    )
    args = parser.parse_args()
    report = build(
        source=args.source,
        output=args.output,
        precision=args.precision,
        weight_fn=args.weight_fn,
        track_edges=not args.no_edge_ids,
        edge_id_property=args.edge_id_property,
    )
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
