from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

WEIGHT_FN_NAMES: tuple[str, ...] = ("haversine", "euclidean", "oneway_aware")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    coordinate_precision: float = Field(default=1e-5, gt=0.0, alias="PATHFINDER_PRECISION")
    default_weight_fn: str = Field(default="haversine", alias="PATHFINDER_WEIGHT_FN")
    track_edge_ids: bool = Field(default=True, alias="PATHFINDER_TRACK_EDGE_IDS")
    edge_id_property: str = Field(default="id", alias="PATHFINDER_EDGE_ID_PROPERTY")

    # Snapshot JSON or raw GeoJSON; empty means the service starts without a graph.
    graph_asset_path: str = Field(default="", alias="PATHFINDER_GRAPH_ASSET_PATH")

    out_dir: str = Field(default="out", alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    concave_hull_ratio: float = Field(default=0.3, ge=0.0, le=1.0, alias="PATHFINDER_CONCAVE_HULL_RATIO")
    query_isolation: Literal["lock", "clone"] = Field(default="lock", alias="PATHFINDER_QUERY_ISOLATION")

    @field_validator("default_weight_fn")
    @classmethod
    def _known_weight_fn(cls, v: str) -> str:
        name = str(v or "").strip().lower()
        if name not in WEIGHT_FN_NAMES:
            raise ValueError(f"unknown weight function {v!r}; expected one of {', '.join(WEIGHT_FN_NAMES)}")
        return name


settings = Settings()
