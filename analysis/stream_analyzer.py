"""
Stream Analyzer

Single forward pass over an OSM extract producing aggregate structural
metrics. Only scalar counters and one feature-category counter are kept, so
memory use is independent of file size.

Two entry points with different failure contracts:
- ``analyze`` is fail-hard: any problem with the file raises and no partial
  metrics are ever returned.
- ``validate`` is fail-soft: problems are reported as quality issues.
"""

import logging
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from itertools import islice
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Union

from analysis.decoder import ElementKinds, OsmElement, read_elements
from config import MAX_WORKERS, VALIDATION_PREFIX_ELEMENTS
from errors import InternalError, NotFoundError, ParseFailure, PipelineError
from shared_schema import (
    FeatureDistribution,
    IssueSeverity,
    IssueTypes,
    QualityIssue,
    QualityMetrics,
)
from validation.lookup_tables import FIX_SUGGESTIONS, ISSUE_DESCRIPTIONS

logger = logging.getLogger(__name__)

ElementReader = Callable[[Path], Iterable[OsmElement]]
PathLike = Union[str, Path]


def feature_categories(tags: Dict[str, str]) -> List[str]:
    """Feature distribution categories an element's tags fall into"""
    categories = []
    if "highway" in tags:
        categories.append("highways")
    if "building" in tags:
        categories.append("buildings")
    natural = tags.get("natural")
    if natural is not None and natural != "water":
        categories.append("natural_features")
    if "amenity" in tags:
        categories.append("amenities")
    if "waterway" in tags or natural == "water":
        categories.append("water_features")
    if "boundary" in tags:
        categories.append("boundaries")
    return categories


def has_tag_error(tags: Dict[str, str]) -> bool:
    return any(not key or not value for key, value in tags.items())


def completeness(tagged: int, total: int) -> float:
    if total == 0:
        return 0.0
    return tagged / total * 100.0


def _issue(issue_type: str, severity: IssueSeverity, **values) -> QualityIssue:
    return QualityIssue(
        issue_type=issue_type,
        severity=severity,
        description=ISSUE_DESCRIPTIONS[issue_type].format(**values),
        fix_suggestion=FIX_SUGGESTIONS[issue_type],
    )


class StreamAnalyzer:
    """
    Streaming OSM extract analyzer

    Args:
        reader: Element decode primitive (pyosmium-backed by default)
        validation_prefix: Number of elements decoded by ``validate``
    """

    def __init__(self, reader: ElementReader = read_elements,
                 validation_prefix: int = VALIDATION_PREFIX_ELEMENTS):
        self.reader = reader
        self.validation_prefix = validation_prefix

    def _file_size(self, path: Path) -> int:
        try:
            if not path.is_file():
                raise NotFoundError("OSM data file does not exist", path=path)
            return path.stat().st_size
        except FileNotFoundError as e:
            raise NotFoundError("OSM data file does not exist", path=path, cause=e) from e
        except OSError as e:
            raise InternalError("Cannot stat OSM data file", path=path, cause=e) from e

    def analyze(self, path: PathLike) -> QualityMetrics:
        """
        Compute structural metrics for one extract.

        Raises:
            NotFoundError: file does not exist
            ParseFailure: file is empty or cannot be decoded
            InternalError: any other I/O failure
        """
        path = Path(path)
        if self._file_size(path) == 0:
            raise ParseFailure("empty file", path=path)

        start = time.time()
        logger.info(f"Analyzing OSM file: {path}")

        total_nodes = total_ways = total_relations = 0
        tagged_nodes = tagged_ways = tagged_relations = 0
        geometry_errors = topology_errors = tag_errors = 0
        features: Counter = Counter()

        try:
            for element in self.reader(path):
                tags = element.tags
                tagged = bool(tags)
                if element.kind == ElementKinds.NODE:
                    total_nodes += 1
                    tagged_nodes += tagged
                    if abs(element.lat) > 90.0 or abs(element.lon) > 180.0:
                        geometry_errors += 1
                elif element.kind == ElementKinds.WAY:
                    total_ways += 1
                    tagged_ways += tagged
                    if element.ref_count < 2:
                        topology_errors += 1
                elif element.kind == ElementKinds.RELATION:
                    total_relations += 1
                    tagged_relations += tagged
                else:
                    continue

                if tagged:
                    if has_tag_error(tags):
                        tag_errors += 1
                    features.update(feature_categories(tags))
        except PipelineError:
            raise
        except OSError as e:
            raise InternalError("I/O failure while reading OSM data", path=path, cause=e) from e

        total = total_nodes + total_ways + total_relations
        tagged_total = tagged_nodes + tagged_ways + tagged_relations
        metrics = QualityMetrics(
            total_nodes=total_nodes,
            total_ways=total_ways,
            total_relations=total_relations,
            tagged_nodes=tagged_nodes,
            tagged_ways=tagged_ways,
            tagged_relations=tagged_relations,
            geometry_errors=geometry_errors,
            topology_errors=topology_errors,
            tag_errors=tag_errors,
            completeness_score=completeness(tagged_total, total),
            feature_distribution=FeatureDistribution(**features),
        )

        duration_ms = int((time.time() - start) * 1000)
        logger.info(
            f"Processing complete. Nodes: {total_nodes}, Ways: {total_ways}, Relations: {total_relations}",
            extra={"file_path": str(path), "duration_ms": duration_ms},
        )
        return metrics

    def validate(self, path: PathLike) -> List[QualityIssue]:
        """
        Cheap integrity check of an extract; never raises for file problems.

        Returns:
            Issues found: one Critical issue for a missing, empty or unreadable
            file, or a High parsing issue when the first elements cannot be decoded
        """
        path = Path(path)
        logger.info(f"Validating OSM file: {path}")

        if not path.exists():
            return [_issue(IssueTypes.FILE_MISSING, IssueSeverity.CRITICAL)]

        try:
            size = path.stat().st_size
        except OSError as e:
            return [_issue(IssueTypes.FILE_UNREADABLE, IssueSeverity.CRITICAL, error=e)]
        if size == 0:
            return [_issue(IssueTypes.EMPTY_FILE, IssueSeverity.CRITICAL)]

        try:
            for _ in islice(self.reader(path), self.validation_prefix):
                pass
        except ParseFailure as e:
            return [_issue(IssueTypes.PARSING_ERROR, IssueSeverity.HIGH, error=e.message)]
        except OSError as e:
            return [_issue(IssueTypes.FILE_UNREADABLE, IssueSeverity.CRITICAL, error=e)]

        return []

    def analyze_many(self, paths: Iterable[PathLike], max_workers: int = MAX_WORKERS
                     ) -> Dict[str, Union[QualityMetrics, PipelineError]]:
        """
        Analyze independent files in parallel.

        Returns:
            Mapping of path string to metrics, or to the error that file raised
        """
        paths = [str(p) for p in paths]
        results: Dict[str, Union[QualityMetrics, PipelineError]] = {}

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(self.analyze, p): p for p in paths}
            for future in as_completed(futures):
                path = futures[future]
                try:
                    results[path] = future.result()
                except PipelineError as e:
                    logger.error(f"Analysis failed for {path}: {e}")
                    results[path] = e

        return {p: results[p] for p in paths}
