"""
OSM PBF element decoding

Thin adapter over pyosmium that turns the entities of an extract into small
immutable records. Elements are yielded one at a time; nothing beyond the
current element is held in memory.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

import osmium

from errors import ParseFailure

logger = logging.getLogger(__name__)


class ElementKinds:
    """OSM primitive identifiers"""
    NODE = "node"
    WAY = "way"
    RELATION = "relation"


@dataclass(frozen=True)
class OsmElement:
    """A decoded OSM primitive"""
    kind: str
    id: int
    tags: Dict[str, str] = field(default_factory=dict)
    lat: Optional[float] = None    # nodes only
    lon: Optional[float] = None    # nodes only
    ref_count: int = 0             # node references of a way, members of a relation


def _to_element(obj) -> Optional[OsmElement]:
    tags = {tag.k: tag.v for tag in obj.tags}
    if obj.is_node():
        location = obj.location
        return OsmElement(
            ElementKinds.NODE, obj.id, tags,
            lat=location.lat_without_check(),
            lon=location.lon_without_check(),
        )
    if obj.is_way():
        return OsmElement(ElementKinds.WAY, obj.id, tags, ref_count=len(obj.nodes))
    if obj.is_relation():
        return OsmElement(ElementKinds.RELATION, obj.id, tags, ref_count=len(obj.members))
    return None


def read_elements(path: Union[str, Path]) -> Iterator[OsmElement]:
    """
    Stream the nodes, ways and relations of an OSM file.

    Dense nodes are delivered as ordinary nodes.

    Args:
        path: Location of a .osm.pbf (or any libosmium-readable) file

    Yields:
        OsmElement records in file order

    Raises:
        ParseFailure: libosmium rejected the file contents
    """
    entities = osmium.osm.NODE | osmium.osm.WAY | osmium.osm.RELATION
    try:
        for obj in osmium.FileProcessor(str(path), entities):
            element = _to_element(obj)
            if element is not None:
                yield element
    except (RuntimeError, ValueError) as e:
        logger.debug(f"Decode failure in {path}: {e}")
        raise ParseFailure(f"Failed to decode OSM data: {e}", path=path, cause=e) from e
