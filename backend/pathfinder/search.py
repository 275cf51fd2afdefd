"""Dijkstra shortest path and bounded-cost reachability over a compacted graph.

Weights are expected to be non-negative. The heap is ordered by
``(cost, push sequence)``: among equal-cost entries the one pushed first
settles first, and a tentative distance is only replaced by a strictly
smaller one, so results are deterministic for a given adjacency mapping.
"""

from __future__ import annotations

import heapq
from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from itertools import count
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)

Adjacency = Mapping[K, Mapping[K, float]]


@dataclass(frozen=True)
class PathResult(Generic[K]):
    nodes: tuple[K, ...]
    cost: float


def shortest_path(adjacency: Adjacency[K], start: K, finish: K) -> PathResult[K] | None:
    if start not in adjacency:
        return None
    if start == finish:
        return PathResult(nodes=(start,), cost=0.0)

    seq = count()
    best: dict[K, float] = {start: 0.0}
    parent: dict[K, K] = {}
    settled: set[K] = set()
    heap: list[tuple[float, int, K]] = [(0.0, next(seq), start)]

    while heap:
        cost, _, node = heapq.heappop(heap)
        if node in settled:
            continue
        settled.add(node)
        if node == finish:
            nodes = [finish]
            while nodes[-1] != start:
                nodes.append(parent[nodes[-1]])
            return PathResult(nodes=tuple(reversed(nodes)), cost=cost)
        for nxt, edge_cost in adjacency.get(node, {}).items():
            if nxt in settled:
                continue
            new_cost = cost + edge_cost
            prior = best.get(nxt)
            if prior is not None and new_cost >= prior:
                continue
            best[nxt] = new_cost
            parent[nxt] = node
            heapq.heappush(heap, (new_cost, next(seq), nxt))
    return None


def reachable_set(adjacency: Adjacency[K], start: K, cost_bound: float) -> dict[K, float]:
    """Every vertex whose cheapest cost from ``start`` is within ``cost_bound``.

    The start vertex is always reported with cost 0. A vertex is only pushed
    when its tentative cost is within the bound, so raising the bound can add
    vertices but never changes a reported cost.
    """
    if start not in adjacency or cost_bound < 0:
        return {}

    seq = count()
    costs: dict[K, float] = {start: 0.0}
    settled: set[K] = set()
    heap: list[tuple[float, int, K]] = [(0.0, next(seq), start)]

    while heap:
        cost, _, node = heapq.heappop(heap)
        if node in settled:
            continue
        settled.add(node)
        for nxt, edge_cost in adjacency.get(node, {}).items():
            if nxt in settled:
                continue
            new_cost = cost + edge_cost
            if new_cost > cost_bound:
                continue
            prior = costs.get(nxt)
            if prior is not None and new_cost >= prior:
                continue
            costs[nxt] = new_cost
            heapq.heappush(heap, (new_cost, next(seq), nxt))
    return costs
