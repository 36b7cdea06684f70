"""
Catalog queries over a region snapshot: filtering, dataset statistics and
GeoJSON export of region extents.
"""

from typing import Any, Dict, List, Optional

from shared_schema import AdminLevel, Region

LEVEL_STAT_KEYS = {
    AdminLevel.WORLD: "world",
    AdminLevel.CONTINENT: "continents",
    AdminLevel.COUNTRY: "countries",
    AdminLevel.REGION: "regions",
    AdminLevel.SUBREGION: "subregions",
}


def search_regions(regions: List[Region], q: Optional[str] = None,
                   admin_level: Optional[int] = None,
                   parent_id: Optional[str] = None) -> List[Region]:
    """
    Filter regions by case-insensitive name substring, admin level and parent.

    All given filters must match; snapshot order is preserved.
    """
    needle = q.lower() if q else None
    matches = []
    for region in regions:
        if needle and needle not in region.name.lower():
            continue
        if admin_level is not None and int(region.admin_level) != int(admin_level):
            continue
        if parent_id is not None and region.parent_id != parent_id:
            continue
        matches.append(region)
    return matches


def catalog_stats(regions: List[Region]) -> Dict[str, Any]:
    by_level: Dict[str, int] = {}
    for region in regions:
        key = LEVEL_STAT_KEYS[region.admin_level]
        by_level[key] = by_level.get(key, 0) + 1

    return {
        "total_regions": len(regions),
        "by_level": by_level,
        "total_area_km2": sum(r.area_km2 for r in regions if r.area_km2 is not None),
        "total_population": sum(r.population for r in regions if r.population is not None),
    }


def bounds_feature(region: Region) -> Dict[str, Any]:
    """GeoJSON Polygon feature tracing the region's bounding box"""
    box = region.bounding_box
    return {
        "type": "Feature",
        "properties": {
            "id": region.id,
            "name": region.name,
            "admin_level": int(region.admin_level),
            "area_km2": region.area_km2,
            "population": region.population,
        },
        "geometry": {
            "type": "Polygon",
            "coordinates": [[
                [box.min_lon, box.min_lat],
                [box.max_lon, box.min_lat],
                [box.max_lon, box.max_lat],
                [box.min_lon, box.max_lat],
                [box.min_lon, box.min_lat],
            ]],
        },
    }
