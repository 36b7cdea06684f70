"""
Region catalog package

Catalog ingestion, bounding box resolution, hierarchy construction and
snapshot queries.
"""

from .bounds import BoundsTiers, resolve_bounds
from .hierarchy import build as build_hierarchy
from .ingester import normalize, parse_catalog, seed_features
from .queries import bounds_feature, catalog_stats, search_regions

__all__ = [
    'BoundsTiers',
    'resolve_bounds',
    'build_hierarchy',
    'normalize',
    'parse_catalog',
    'seed_features',
    'bounds_feature',
    'catalog_stats',
    'search_regions'
]
