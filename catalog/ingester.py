"""
Region Catalog Ingester

Normalizes a raw hierarchical feature catalog (Geofabrik ``index-v1.json``
style) into typed Region records. Administrative levels are inferred from
the parent chain, bounding boxes are resolved per region, and structural
defects (dangling parents, cycles, duplicate or malformed features) are
reported as warnings instead of aborting the whole feed.
"""

import logging
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from catalog.bounds import FALLBACK_POPULATION, resolve_bounds
from config import ROOT_ADMIN_LEVEL
from errors import ParseFailure
from shared_schema import (
    AdminLevel,
    BoundingBox,
    Region,
    StructuralWarning,
    WarningKinds,
    utc_now,
)

logger = logging.getLogger(__name__)

WORLD_REGION_ID = "world"


class CatalogProperties(BaseModel):
    """Properties block of a catalog feature"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1, description="Stable region identifier", examples=["germany-bayern"])
    name: str = Field(min_length=1, description="Display name", examples=["Bayern"])
    parent: Optional[str] = Field(default=None, description="Identifier of the containing region")
    urls: Dict[str, Any] = Field(default_factory=dict, description="Download links keyed by format")
    iso3166_1: Optional[Union[str, List[str]]] = Field(default=None, alias="iso3166-1:alpha2")
    iso3166_2: Optional[Union[str, List[str]]] = Field(default=None, alias="iso3166-2")

    @field_validator("id", "name")
    @classmethod
    def strip_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("parent")
    @classmethod
    def blank_parent_is_root(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v

    def country_code(self) -> Optional[str]:
        """First ISO 3166-1 alpha-2 code, else the country prefix of an ISO 3166-2 code"""
        alpha2 = _first(self.iso3166_1)
        if alpha2:
            return alpha2.upper()
        subdivision = _first(self.iso3166_2)
        if subdivision:
            return subdivision.split("-", 1)[0].upper()
        return None

    def service_url(self) -> Optional[str]:
        url = self.urls.get("pbf")
        return url if isinstance(url, str) and url else None


class CatalogFeature(BaseModel):
    """A single GeoJSON feature of the region catalog"""
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = Field(default="Feature")
    properties: CatalogProperties
    geometry: Optional[Dict[str, Any]] = Field(default=None)


def _first(value: Optional[Union[str, List[str]]]) -> Optional[str]:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _raw_feature_id(raw: Any) -> Optional[str]:
    if isinstance(raw, dict) and isinstance(raw.get("properties"), dict):
        feature_id = raw["properties"].get("id")
        return feature_id if isinstance(feature_id, str) else None
    return None


def parse_catalog(payload: Any) -> List[Dict[str, Any]]:
    """
    Extract the feature list from a decoded catalog document.

    Args:
        payload: Decoded JSON, either a FeatureCollection or a bare list of features

    Returns:
        List of raw feature dictionaries

    Raises:
        ParseFailure: payload has neither shape
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("features"), list):
        return payload["features"]
    raise ParseFailure(
        f"Catalog must be a FeatureCollection or a list of features, got {type(payload).__name__}"
    )


def _root_level(region_id: str) -> AdminLevel:
    if region_id == WORLD_REGION_ID:
        return AdminLevel.WORLD
    return AdminLevel(ROOT_ADMIN_LEVEL)


def _child_level(parent_level: AdminLevel) -> AdminLevel:
    return AdminLevel(min(int(parent_level) + 1, int(AdminLevel.deepest())))


def normalize(features: List[Any], now: Optional[datetime] = None
              ) -> Tuple[List[Region], List[StructuralWarning]]:
    """
    Normalize raw catalog features into regions.

    Args:
        features: Raw feature dictionaries in catalog order
        now: Timestamp stamped on every region (current UTC time when None)

    Returns:
        Tuple of (regions in input order, warnings in discovery order)
    """
    now = now or utc_now()
    warnings: List[StructuralWarning] = []

    # Shape validation and duplicate detection
    accepted: List[CatalogFeature] = []
    seen_ids = set()
    for index, raw in enumerate(features):
        try:
            feature = CatalogFeature.model_validate(raw)
        except ValidationError as e:
            feature_id = _raw_feature_id(raw)
            logger.warning(f"Skipping invalid catalog feature #{index} ({feature_id}): "
                           f"{e.error_count()} validation error(s)")
            warnings.append(StructuralWarning(
                feature_id, WarningKinds.INVALID_FEATURE,
                f"Feature #{index} failed validation: {e.errors()[0]['msg']}", fatal=True
            ))
            continue

        feature_id = feature.properties.id
        if feature_id in seen_ids:
            logger.warning(f"Duplicate catalog id {feature_id} at feature #{index}, keeping the first")
            warnings.append(StructuralWarning(
                feature_id, WarningKinds.DUPLICATE_ID,
                f"Duplicate id {feature_id}; later occurrence skipped", fatal=True
            ))
            continue
        seen_ids.add(feature_id)
        accepted.append(feature)

    # Parent resolution
    parents: Dict[str, Optional[str]] = {}
    children: Dict[str, List[str]] = {}
    roots: List[str] = []
    for feature in accepted:
        feature_id = feature.properties.id
        parent_id = feature.properties.parent
        if parent_id is not None and parent_id not in seen_ids:
            logger.warning(f"Region {feature_id} references missing parent {parent_id}")
            warnings.append(StructuralWarning(
                feature_id, WarningKinds.DANGLING_PARENT,
                f"Parent {parent_id} not present in catalog; treated as root"
            ))
            parent_id = None
        parents[feature_id] = parent_id
        if parent_id is None:
            roots.append(feature_id)
        else:
            children.setdefault(parent_id, []).append(feature_id)

    # Breadth-first level inference from the roots
    levels: Dict[str, AdminLevel] = {}
    order: List[str] = []
    queue: Deque[str] = deque()
    for root_id in roots:
        levels[root_id] = _root_level(root_id)
        queue.append(root_id)
    while queue:
        current = queue.popleft()
        order.append(current)
        for child_id in children.get(current, []):
            if child_id in levels:
                continue
            levels[child_id] = _child_level(levels[current])
            queue.append(child_id)

    for feature in accepted:
        feature_id = feature.properties.id
        if feature_id not in levels:
            logger.warning(f"Region {feature_id} cannot reach a root (parent cycle)")
            warnings.append(StructuralWarning(
                feature_id, WarningKinds.CYCLE,
                f"Parent chain of {feature_id} never reaches a root", fatal=True
            ))

    # Bounds are resolved top-down so a child can inherit its parent's box
    by_id = {feature.properties.id: feature for feature in accepted}
    boxes: Dict[str, BoundingBox] = {}
    for feature_id in order:
        feature = by_id[feature_id]
        parent_id = parents[feature_id]
        parent_box = boxes.get(parent_id) if parent_id else None
        try:
            box, tier = resolve_bounds(feature_id, feature.geometry, parent_box)
        except ValueError as e:
            warnings.append(StructuralWarning(
                feature_id, WarningKinds.INVALID_GEOMETRY, str(e)
            ))
            box, tier = resolve_bounds(feature_id, None, parent_box)
        logger.debug(f"Bounds for {feature_id} resolved from {tier}")
        boxes[feature_id] = box

    ingested = [feature for feature in accepted if feature.properties.id in levels]
    parent_ids = {parents[f.properties.id] for f in ingested if parents[f.properties.id]}

    regions = []
    for feature in ingested:
        props = feature.properties
        box = boxes[props.id]
        regions.append(Region(
            id=props.id,
            name=props.name,
            admin_level=levels[props.id],
            bounding_box=box,
            parent_id=parents[props.id],
            area_km2=box.area_km2(),
            population=FALLBACK_POPULATION.get(props.id),
            country_code=props.country_code(),
            service_url=props.service_url(),
            has_children=props.id in parent_ids,
            created_at=now,
            updated_at=now,
        ))

    logger.info(f"Normalized {len(regions)} regions from {len(features)} features "
                f"({len(warnings)} warnings)")
    return regions, warnings


# Built-in hierarchy used when the remote catalog is unavailable
_SEED_CONTINENTS = [
    ("africa", "Africa"),
    ("antarctica", "Antarctica"),
    ("asia", "Asia"),
    ("australia-oceania", "Australia and Oceania"),
    ("europe", "Europe"),
    ("north-america", "North America"),
    ("south-america", "South America"),
]

_SEED_COUNTRIES = [
    ("germany", "Germany", "DE"),
    ("france", "France", "FR"),
    ("spain", "Spain", "ES"),
    ("italy", "Italy", "IT"),
    ("united-kingdom", "United Kingdom", "GB"),
    ("poland", "Poland", "PL"),
    ("austria", "Austria", "AT"),
    ("switzerland", "Switzerland", "CH"),
    ("liechtenstein", "Liechtenstein", "LI"),
]

_SEED_GERMAN_STATES = [
    ("baden-wuerttemberg", "Baden-Württemberg", "DE-BW"),
    ("bayern", "Bayern", "DE-BY"),
    ("berlin", "Berlin", "DE-BE"),
    ("brandenburg", "Brandenburg", "DE-BB"),
    ("hamburg", "Hamburg", "DE-HH"),
]

GEOFABRIK_DOWNLOAD_BASE = "https://download.geofabrik.de"


def seed_features() -> List[Dict[str, Any]]:
    """Static World → continents → European countries → German states catalog"""
    features = [{"type": "Feature", "properties": {"id": WORLD_REGION_ID, "name": "World"}}]

    for region_id, name in _SEED_CONTINENTS:
        features.append({
            "type": "Feature",
            "properties": {"id": region_id, "name": name, "parent": WORLD_REGION_ID},
        })

    for region_id, name, iso in _SEED_COUNTRIES:
        features.append({
            "type": "Feature",
            "properties": {
                "id": region_id,
                "name": name,
                "parent": "europe",
                "iso3166-1:alpha2": [iso],
                "urls": {"pbf": f"{GEOFABRIK_DOWNLOAD_BASE}/europe/{region_id}-latest.osm.pbf"},
            },
        })

    for short_id, name, iso in _SEED_GERMAN_STATES:
        features.append({
            "type": "Feature",
            "properties": {
                "id": f"germany-{short_id}",
                "name": name,
                "parent": "germany",
                "iso3166-2": [iso],
                "urls": {"pbf": f"{GEOFABRIK_DOWNLOAD_BASE}/europe/germany/{short_id}-latest.osm.pbf"},
            },
        })

    return features
