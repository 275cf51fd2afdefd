from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "graph_no_junctions",
        "graph_empty",
        "graph_snapshot_invalid",
        "graph_snapshot_version",
        "graph_asset_unavailable",
        "phantom_invariant_violation",
    }
)


@dataclass
class GraphDataError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


def normalize_reason_code(reason_code: str, *, default: str = "graph_asset_unavailable") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default


def graph_error(reason_code: str, message: str, **details: Any) -> GraphDataError:
    return GraphDataError(
        reason_code=normalize_reason_code(reason_code),
        message=message,
        details=details or None,
    )
