from .engine import PathEngine, PathFound
from .errors import GraphDataError
from .graph import EdgeTracking, GraphSnapshot, PathGraph
from .preprocessor import preprocess
from .weights import WeightFunctions

__all__ = [
    "EdgeTracking",
    "GraphDataError",
    "GraphSnapshot",
    "PathEngine",
    "PathFound",
    "PathGraph",
    "WeightFunctions",
    "preprocess",
]
