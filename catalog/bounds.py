"""
Region Bounding Boxes

Resolves the bounding box of a catalog region from, in order of preference:
its own geometry, the static fallback table, its parent's box, and finally
the whole world.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from shapely.errors import ShapelyError
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

from config import POINT_BOUNDS_PAD_DEGREES
from shared_schema import BoundingBox

logger = logging.getLogger(__name__)


class BoundsTiers:
    """Which source produced a resolved bounding box"""
    GEOMETRY = "geometry"
    FALLBACK = "fallback"
    PARENT = "parent"
    WORLD = "world"


# Known extents (min_lat, min_lon, max_lat, max_lon) for regions whose catalog
# entry carries no usable geometry
FALLBACK_BOUNDS: Dict[str, Tuple[float, float, float, float]] = {
    "world": (-90.0, -180.0, 90.0, 180.0),
    "africa": (-35.0, -20.0, 38.0, 55.0),
    "antarctica": (-90.0, -180.0, -60.0, 180.0),
    "asia": (-11.0, 25.0, 82.0, 180.0),
    "australia-oceania": (-55.0, 110.0, 0.0, 180.0),
    "europe": (35.0, -25.0, 72.0, 45.0),
    "north-america": (15.0, -180.0, 85.0, -50.0),
    "south-america": (-60.0, -85.0, 15.0, -30.0),
    "germany": (47.2, 5.8, 55.1, 15.0),
    "france": (41.3, -5.5, 51.1, 9.6),
    "spain": (35.9, -9.3, 43.8, 4.3),
    "italy": (36.6, 6.6, 47.1, 18.5),
    "united-kingdom": (49.9, -8.6, 60.9, 1.8),
    "poland": (49.0, 14.1, 54.8, 24.1),
    "austria": (46.4, 9.5, 49.0, 17.2),
    "switzerland": (45.8, 5.9, 47.8, 10.5),
    "liechtenstein": (47.048, 9.471, 47.270, 9.636),
    "germany-baden-wuerttemberg": (47.5, 7.5, 49.8, 10.5),
    "germany-bayern": (47.3, 8.9, 50.6, 13.8),
    "germany-berlin": (52.3, 13.1, 52.7, 13.8),
    "germany-brandenburg": (51.4, 11.2, 53.6, 14.8),
    "germany-hamburg": (53.4, 9.7, 53.8, 10.3),
}

FALLBACK_POPULATION: Dict[str, int] = {
    "germany": 83_200_000,
    "france": 67_800_000,
    "spain": 47_400_000,
    "italy": 59_100_000,
    "united-kingdom": 67_500_000,
    "poland": 38_000_000,
    "austria": 9_000_000,
    "switzerland": 8_700_000,
    "liechtenstein": 39_000,
}


def _box_from_bounds(bounds: Tuple[float, float, float, float]) -> BoundingBox:
    # shapely bounds are (minx, miny, maxx, maxy) = (lon, lat, lon, lat)
    min_lon, min_lat, max_lon, max_lat = bounds
    return BoundingBox(min_lat, min_lon, max_lat, max_lon)


def geometry_bounds(geometry: Optional[Dict[str, Any]],
                    pad: float = POINT_BOUNDS_PAD_DEGREES) -> Optional[BoundingBox]:
    """
    Bounding box of a GeoJSON geometry.

    Polygons use their outer ring, MultiPolygons the union of their members'
    outer rings and Points a small padded box. Other geometry types yield None.

    Raises:
        ValueError: geometry is malformed (propagated from shapely or the box)
    """
    if not geometry:
        return None

    geom_type = geometry.get("type")
    if geom_type not in ("Polygon", "MultiPolygon", "Point"):
        return None

    try:
        geom: BaseGeometry = shape(geometry)
    except (KeyError, IndexError, TypeError, AttributeError, ShapelyError) as e:
        raise ValueError(f"Malformed {geom_type} geometry: {e}") from e

    if geom.is_empty:
        return None

    if geom_type == "Point":
        return BoundingBox.around_point(geom.y, geom.x, pad)

    if geom_type == "Polygon":
        return _box_from_bounds(geom.exterior.bounds)

    box = None
    for polygon in geom.geoms:
        if polygon.is_empty:
            continue
        member = _box_from_bounds(polygon.exterior.bounds)
        box = member if box is None else box.union(member)
    return box


def fallback_bounds(region_id: str) -> Optional[BoundingBox]:
    extent = FALLBACK_BOUNDS.get(region_id)
    return BoundingBox(*extent) if extent else None


def resolve_bounds(region_id: str, geometry: Optional[Dict[str, Any]] = None,
                   parent_box: Optional[BoundingBox] = None) -> Tuple[BoundingBox, str]:
    """
    Resolve the bounding box for a region.

    Args:
        region_id: Catalog id of the region
        geometry: GeoJSON geometry of the catalog feature, if any
        parent_box: Already resolved box of the parent region, if any

    Returns:
        Tuple of (box, tier) where tier is one of BoundsTiers

    Raises:
        ValueError: geometry is present but malformed; callers record a
            warning and retry without it
    """
    box = geometry_bounds(geometry)
    if box is not None:
        return box, BoundsTiers.GEOMETRY

    box = fallback_bounds(region_id)
    if box is not None:
        return box, BoundsTiers.FALLBACK

    if parent_box is not None:
        return parent_box, BoundsTiers.PARENT

    logger.debug(f"No bounds source for {region_id}, using world extent")
    return BoundingBox.world(), BoundsTiers.WORLD
