"""
Region Hierarchy Resolver

Builds an ordered forest of RegionNode trees from a flat region snapshot.
Construction is iterative with an explicit depth counter, so catalogs of any
depth are handled without recursion, and a failure in one subtree never
discards the rest of the forest.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from config import HIERARCHY_MAX_DEPTH
from errors import NotFoundError, StructuralInconsistency
from shared_schema import DownloadStats, FileRef, Forest, Region, RegionNode, SubtreeError

logger = logging.getLogger(__name__)

DEPTH_LIMIT_CATEGORY = "depth_limit"


def sibling_key(region: Region) -> Tuple[int, bytes, str]:
    """Total order used for siblings: admin level, then name bytes, then id"""
    return (int(region.admin_level), region.name.encode("utf-8"), region.id)


def download_stats(region: Region, files: Iterable[FileRef]) -> DownloadStats:
    files = list(files)
    if not files:
        return DownloadStats(file_count=0, total_size_bytes=0, last_updated=region.updated_at)
    return DownloadStats(
        file_count=len(files),
        total_size_bytes=sum(f.size_bytes for f in files),
        last_updated=max(f.created_at for f in files),
    )


def _sorted_files(files: Iterable[FileRef]) -> List[FileRef]:
    return sorted(files, key=lambda f: (f.created_at, f.version, f.key), reverse=True)


def build(regions: List[Region], root: Optional[str] = None,
          data_files: Optional[Dict[str, List[FileRef]]] = None,
          max_depth: int = HIERARCHY_MAX_DEPTH) -> Forest:
    """
    Build the region forest.

    Args:
        regions: Snapshot of all regions
        root: Build only the subtree of this region id (all roots when None)
        data_files: Stored extracts keyed by region id
        max_depth: Deepest level expanded; deeper subtrees are cut and reported

    Returns:
        Forest with sorted roots and any subtree errors

    Raises:
        NotFoundError: root is given but not present in the snapshot
    """
    data_files = data_files or {}
    by_id: Dict[str, Region] = {}
    for region in regions:
        by_id.setdefault(region.id, region)

    children: Dict[str, List[Region]] = {}
    roots: List[Region] = []
    for region in by_id.values():
        if region.parent_id is None or region.parent_id not in by_id:
            roots.append(region)
        else:
            children.setdefault(region.parent_id, []).append(region)
    for siblings in children.values():
        siblings.sort(key=sibling_key)

    if root is not None:
        if root not in by_id:
            raise NotFoundError(f"Region {root} not found", region_id=root)
        starts = [by_id[root]]
    else:
        starts = sorted(roots, key=sibling_key)

    def make_node(region: Region) -> RegionNode:
        files = _sorted_files(data_files.get(region.id, []))
        return RegionNode(region=region, data_files=files,
                          download_stats=download_stats(region, files))

    forest = Forest()
    visited = set()
    stack: List[Tuple[RegionNode, int]] = []
    for region in starts:
        node = make_node(region)
        forest.nodes.append(node)
        visited.add(region.id)
        stack.append((node, 0))

    while stack:
        node, depth = stack.pop()
        kids = [child for child in children.get(node.region.id, []) if child.id not in visited]
        if not kids:
            continue
        if depth + 1 > max_depth:
            message = f"Hierarchy deeper than {max_depth} levels below {node.region.id}; children omitted"
            logger.error(message)
            node.error = message
            forest.errors.append(SubtreeError(node.region.id, DEPTH_LIMIT_CATEGORY, message))
            continue
        for child in kids:
            visited.add(child.id)
            child_node = make_node(child)
            node.children.append(child_node)
            stack.append((child_node, depth + 1))

    if root is None:
        for region in sorted(by_id.values(), key=sibling_key):
            if region.id not in visited and not _below_visited(region, by_id, visited):
                message = f"Region {region.id} is not reachable from any root"
                logger.warning(message)
                forest.errors.append(SubtreeError(
                    region.id, StructuralInconsistency.category, message
                ))

    return forest


def _below_visited(region: Region, by_id: Dict[str, Region], visited: set) -> bool:
    # True when the parent chain reaches a built node (subtree cut by the depth bound)
    current = region
    for _ in range(len(by_id)):
        parent = by_id.get(current.parent_id) if current.parent_id else None
        if parent is None:
            return False
        if parent.id in visited:
            return True
        current = parent
    return False
