"""Point-set loading, stratified splitting and batching."""

from .loaders import DEFAULT_FIXTURE, PointSet, PointSplit, load_points, stratified_split

__all__ = ["DEFAULT_FIXTURE", "PointSet", "PointSplit", "load_points", "stratified_split"]
