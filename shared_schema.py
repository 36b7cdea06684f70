"""
Shared Data Schema for the Region Extract Quality Pipeline

This module defines the standardized records exchanged between the catalog
ingester, the hierarchy resolver, the stream analyzer, the quality scorer and
the persistence layer. Every record serializes to plain JSON-compatible
dictionaries through ``to_dict`` and is rebuilt through ``from_dict``.

Regions, metrics, issues and reports are immutable once constructed: reports
are never updated, only superseded by a newer report for the same region.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple

# Mean radius of the authalic sphere, used for bounding box areas
EARTH_AUTHALIC_RADIUS_KM = 6371.0072


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AdminLevel(IntEnum):
    """Position of a region in the containment hierarchy (World most general)"""
    WORLD = 0
    CONTINENT = 1
    COUNTRY = 2
    REGION = 3
    SUBREGION = 4

    @classmethod
    def deepest(cls) -> "AdminLevel":
        return cls.SUBREGION


class IssueSeverity(IntEnum):
    """Severity of a quality issue (Critical most severe)"""
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned latitude/longitude rectangle"""
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    def __post_init__(self):
        if self.min_lat > self.max_lat:
            raise ValueError(f"min_lat {self.min_lat} is greater than max_lat {self.max_lat}")
        if self.min_lon > self.max_lon:
            raise ValueError(f"min_lon {self.min_lon} is greater than max_lon {self.max_lon}")

    @classmethod
    def world(cls) -> "BoundingBox":
        return cls(-90.0, -180.0, 90.0, 180.0)

    @classmethod
    def around_point(cls, lat: float, lon: float, pad: float) -> "BoundingBox":
        """Box of half-width ``pad`` degrees around a point, clamped to the world"""
        return cls(
            max(-90.0, lat - pad),
            max(-180.0, lon - pad),
            min(90.0, lat + pad),
            min(180.0, lon + pad),
        )

    def union(self, other: "BoundingBox") -> "BoundingBox":
        return BoundingBox(
            min(self.min_lat, other.min_lat),
            min(self.min_lon, other.min_lon),
            max(self.max_lat, other.max_lat),
            max(self.max_lon, other.max_lon),
        )

    def center(self) -> Tuple[float, float]:
        return ((self.min_lat + self.max_lat) / 2.0, (self.min_lon + self.max_lon) / 2.0)

    def contains(self, lat: float, lon: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lon <= lon <= self.max_lon

    def area_km2(self) -> float:
        """Area of the lat/lon rectangle on the authalic sphere"""
        lon_span = math.radians(self.max_lon - self.min_lon)
        zone = math.sin(math.radians(self.max_lat)) - math.sin(math.radians(self.min_lat))
        return EARTH_AUTHALIC_RADIUS_KM ** 2 * lon_span * zone

    def to_dict(self) -> Dict[str, float]:
        return {
            "min_lat": self.min_lat,
            "min_lon": self.min_lon,
            "max_lat": self.max_lat,
            "max_lon": self.max_lon,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoundingBox":
        return cls(
            float(data["min_lat"]),
            float(data["min_lon"]),
            float(data["max_lat"]),
            float(data["max_lon"]),
        )


@dataclass(frozen=True)
class Region:
    """A node of the region catalog"""
    id: str
    name: str
    admin_level: AdminLevel
    bounding_box: BoundingBox
    parent_id: Optional[str] = None
    area_km2: Optional[float] = None
    population: Optional[int] = None
    country_code: Optional[str] = None
    service_url: Optional[str] = None
    has_children: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "admin_level": int(self.admin_level),
            "parent_id": self.parent_id,
            "bounding_box": self.bounding_box.to_dict(),
            "area_km2": self.area_km2,
            "population": self.population,
            "country_code": self.country_code,
            "service_url": self.service_url,
            "has_children": self.has_children,
            "created_at": _format_time(self.created_at),
            "updated_at": _format_time(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Region":
        return cls(
            id=data["id"],
            name=data["name"],
            admin_level=AdminLevel(data["admin_level"]),
            bounding_box=BoundingBox.from_dict(data["bounding_box"]),
            parent_id=data.get("parent_id"),
            area_km2=data.get("area_km2"),
            population=data.get("population"),
            country_code=data.get("country_code"),
            service_url=data.get("service_url"),
            has_children=bool(data.get("has_children", False)),
            created_at=_parse_time(data.get("created_at")) or utc_now(),
            updated_at=_parse_time(data.get("updated_at")) or utc_now(),
        )


@dataclass(frozen=True)
class StructuralWarning:
    """Non-fatal defect recorded while normalizing the catalog"""
    feature_id: Optional[str]
    kind: str
    message: str
    fatal: bool = False  # True when the feature was excluded from the output

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feature_id": self.feature_id,
            "kind": self.kind,
            "message": self.message,
            "fatal": self.fatal,
        }


class WarningKinds:
    """Standardized structural warning identifiers"""
    DANGLING_PARENT = "dangling_parent"
    CYCLE = "cycle"
    DUPLICATE_ID = "duplicate_id"
    INVALID_FEATURE = "invalid_feature"
    INVALID_GEOMETRY = "invalid_geometry"


@dataclass(frozen=True)
class FeatureDistribution:
    """Counts of tagged elements per feature category"""
    highways: int = 0
    buildings: int = 0
    natural_features: int = 0
    amenities: int = 0
    water_features: int = 0
    boundaries: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureDistribution":
        return cls(**{k: int(v) for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class QualityMetrics:
    """Aggregate structural metrics of one extract, produced once per analysis run"""
    total_nodes: int = 0
    total_ways: int = 0
    total_relations: int = 0
    tagged_nodes: int = 0
    tagged_ways: int = 0
    tagged_relations: int = 0
    geometry_errors: int = 0
    topology_errors: int = 0
    tag_errors: int = 0
    completeness_score: float = 0.0
    feature_distribution: FeatureDistribution = field(default_factory=FeatureDistribution)

    @property
    def total_elements(self) -> int:
        return self.total_nodes + self.total_ways + self.total_relations

    @property
    def tagged_elements(self) -> int:
        return self.tagged_nodes + self.tagged_ways + self.tagged_relations

    @property
    def total_errors(self) -> int:
        return self.geometry_errors + self.topology_errors + self.tag_errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_nodes": self.total_nodes,
            "total_ways": self.total_ways,
            "total_relations": self.total_relations,
            "tagged_nodes": self.tagged_nodes,
            "tagged_ways": self.tagged_ways,
            "tagged_relations": self.tagged_relations,
            "geometry_errors": self.geometry_errors,
            "topology_errors": self.topology_errors,
            "tag_errors": self.tag_errors,
            "completeness_score": self.completeness_score,
            "feature_distribution": self.feature_distribution.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QualityMetrics":
        counters = {k: int(data.get(k, 0)) for k in (
            "total_nodes", "total_ways", "total_relations",
            "tagged_nodes", "tagged_ways", "tagged_relations",
            "geometry_errors", "topology_errors", "tag_errors",
        )}
        return cls(
            completeness_score=float(data.get("completeness_score", 0.0)),
            feature_distribution=FeatureDistribution.from_dict(data.get("feature_distribution", {})),
            **counters,
        )


@dataclass(frozen=True)
class QualityIssue:
    """A specific defect found in an extract"""
    issue_type: str
    severity: IssueSeverity
    description: str
    location: Optional[Tuple[float, float]] = None  # (lat, lon)
    element_id: Optional[int] = None
    element_type: Optional[str] = None
    fix_suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issue_type": self.issue_type,
            "severity": self.severity.label,
            "description": self.description,
            "location": list(self.location) if self.location else None,
            "element_id": self.element_id,
            "element_type": self.element_type,
            "fix_suggestion": self.fix_suggestion,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QualityIssue":
        location = data.get("location")
        return cls(
            issue_type=data["issue_type"],
            severity=IssueSeverity[data["severity"].upper()],
            description=data["description"],
            location=tuple(location) if location else None,
            element_id=data.get("element_id"),
            element_type=data.get("element_type"),
            fix_suggestion=data.get("fix_suggestion"),
        )


class IssueTypes:
    """Standardized quality issue identifiers"""
    FILE_MISSING = "file_missing"
    EMPTY_FILE = "empty_file"
    FILE_UNREADABLE = "file_unreadable"
    PARSING_ERROR = "parsing_error"
    LOW_TAGGING_RATE = "low_tagging_rate"
    LOW_WAY_DENSITY = "low_way_density"
    HIGH_RELATION_RATIO = "high_relation_ratio"
    GEOMETRY_ERRORS = "geometry_errors"
    TOPOLOGY_ERRORS = "topology_errors"


@dataclass(frozen=True)
class QualityReport:
    """Quality assessment of one extract at one point in time"""
    id: str
    data_file_id: str
    region_id: str
    created_at: datetime
    metrics: QualityMetrics
    issues: Tuple[QualityIssue, ...]
    summary: str
    recommendations: Tuple[str, ...]
    quality_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "data_file_id": self.data_file_id,
            "region_id": self.region_id,
            "created_at": _format_time(self.created_at),
            "metrics": self.metrics.to_dict(),
            "issues": [issue.to_dict() for issue in self.issues],
            "summary": self.summary,
            "recommendations": list(self.recommendations),
            "quality_score": self.quality_score,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QualityReport":
        return cls(
            id=data["id"],
            data_file_id=data["data_file_id"],
            region_id=data["region_id"],
            created_at=_parse_time(data["created_at"]),
            metrics=QualityMetrics.from_dict(data["metrics"]),
            issues=tuple(QualityIssue.from_dict(i) for i in data.get("issues", [])),
            summary=data.get("summary", ""),
            recommendations=tuple(data.get("recommendations", [])),
            quality_score=float(data.get("quality_score", 0.0)),
        )


@dataclass(frozen=True)
class QualityMetricsDiff:
    """Change in metrics between two versions of a region's extract"""
    nodes_diff: int
    ways_diff: int
    relations_diff: int
    completeness_diff: float
    errors_diff: int
    feature_changes: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes_diff": self.nodes_diff,
            "ways_diff": self.ways_diff,
            "relations_diff": self.relations_diff,
            "completeness_diff": self.completeness_diff,
            "errors_diff": self.errors_diff,
            "feature_changes": dict(self.feature_changes),
        }


@dataclass(frozen=True)
class FileRef:
    """A stored extract of a region"""
    region_id: str
    version: str       # YYYY-MM-DD token from the file name, or "unknown"
    size_bytes: int
    created_at: datetime
    key: str

    @property
    def file_id(self) -> str:
        return f"{self.region_id}_{self.version}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.file_id,
            "region_id": self.region_id,
            "version": self.version,
            "size_bytes": self.size_bytes,
            "created_at": _format_time(self.created_at),
            "key": self.key,
        }


@dataclass(frozen=True)
class DownloadStats:
    """Aggregate of the extracts stored for one region"""
    file_count: int = 0
    total_size_bytes: int = 0
    last_updated: Optional[datetime] = None

    @property
    def total_size_mb(self) -> float:
        return self.total_size_bytes / 1_048_576.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_count": self.file_count,
            "total_size_bytes": self.total_size_bytes,
            "total_size_mb": round(self.total_size_mb, 3),
            "last_updated": _format_time(self.last_updated),
        }


@dataclass
class RegionNode:
    """A region with its ordered children and stored extracts"""
    region: Region
    children: List["RegionNode"] = field(default_factory=list)
    data_files: List[FileRef] = field(default_factory=list)
    download_stats: DownloadStats = field(default_factory=DownloadStats)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        # Iterative so arbitrarily deep trees serialize without recursion limits
        root = self._shallow_dict(self)
        stack = [(self, root)]
        while stack:
            node, out = stack.pop()
            for child in node.children:
                child_out = self._shallow_dict(child)
                out["children"].append(child_out)
                stack.append((child, child_out))
        return root

    @staticmethod
    def _shallow_dict(node: "RegionNode") -> Dict[str, Any]:
        return {
            "region": node.region.to_dict(),
            "children": [],
            "data_files": [f.to_dict() for f in node.data_files],
            "download_stats": node.download_stats.to_dict(),
            "error": node.error,
        }


@dataclass(frozen=True)
class SubtreeError:
    """A part of the hierarchy that could not be built"""
    region_id: str
    category: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"region_id": self.region_id, "category": self.category, "message": self.message}


@dataclass
class Forest:
    """Ordered region trees plus the subtrees that failed to build"""
    nodes: List[RegionNode] = field(default_factory=list)
    errors: List[SubtreeError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "errors": [error.to_dict() for error in self.errors],
        }


@dataclass(frozen=True)
class BlobInfo:
    """Listing entry of a stored blob"""
    key: str
    size: int
    modified: datetime
