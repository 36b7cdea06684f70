"""
Main Region Extract Quality Pipeline

Coordinates catalog ingestion, hierarchy construction, extract downloads and
quality assessment of stored extracts.

Uses modular service architecture: the catalog, analysis and validation
packages hold the pure logic, the services package the network and storage
collaborators.
"""

import logging
import tempfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from analysis import StreamAnalyzer
from catalog import (
    bounds_feature,
    build_hierarchy,
    catalog_stats,
    normalize,
    parse_catalog,
    search_regions,
    seed_features,
)
from config import CATALOG_TIMEOUT_SECONDS, CATALOG_URL, LOG_FORMAT, LOG_LEVEL, MAX_WORKERS
from errors import NetworkFailure, NotFoundError, PipelineError
from logging_config import configure_logging
from services import HttpFetcher, RegionStore, create_store
from shared_schema import (
    FileRef,
    Forest,
    IssueSeverity,
    IssueTypes,
    QualityMetrics,
    QualityMetricsDiff,
    QualityReport,
    Region,
)
from validation import QualityScorer, validate_admin_level, validate_region_id, validate_version
from validation.quality_scorer import compare_metrics

# Initialize logging system
configure_logging(LOG_LEVEL, structured=LOG_FORMAT == "json")
logger = logging.getLogger(__name__)

# Validation outcomes that make a full analysis pointless
BLOCKING_ISSUES = {
    IssueTypes.FILE_MISSING,
    IssueTypes.EMPTY_FILE,
    IssueTypes.FILE_UNREADABLE,
    IssueTypes.PARSING_ERROR,
}


class RegionQualityPipeline:
    """
    Region extract quality pipeline

    Keeps the region catalog current, downloads regional extracts and turns
    each stored extract into a persisted quality report.
    """

    def __init__(self, store: Optional[RegionStore] = None, fetcher: Optional[HttpFetcher] = None,
                 analyzer: Optional[StreamAnalyzer] = None, scorer: Optional[QualityScorer] = None):
        """
        Initialize the pipeline with its collaborators.

        Args:
            store: Region/report/extract persistence (configured backend if None)
            fetcher: Network access (requests session if None)
            analyzer: Extract analyzer (pyosmium-backed if None)
            scorer: Quality scorer (config weights if None)
        """
        self.store = store or create_store()
        self.fetcher = fetcher or HttpFetcher()
        self.analyzer = analyzer or StreamAnalyzer()
        self.scorer = scorer or QualityScorer()

        logger.info(f"Pipeline initialized - storage: {type(self.store.backend).__name__}")

    # Catalog

    def _ingest(self, features: List[Any], source: str) -> Dict[str, Any]:
        regions, warnings = normalize(features)
        self.store.replace_regions(regions)
        return {
            'source': source,
            'region_count': len(regions),
            'warnings': [w.to_dict() for w in warnings],
        }

    def refresh_catalog(self, url: str = CATALOG_URL,
                        timeout: float = CATALOG_TIMEOUT_SECONDS) -> Dict[str, Any]:
        """
        Fetch, normalize and store the remote region catalog.

        Nothing is written unless the whole feed was fetched and parsed.

        Raises:
            NetworkFailure: catalog could not be fetched
            ParseFailure: catalog is not a feature collection
        """
        logger.info(f"Refreshing region catalog from {url}")
        features = parse_catalog(self.fetcher.get_json(url, timeout=timeout))
        return self._ingest(features, url)

    def initialize_from_seed(self) -> Dict[str, Any]:
        logger.info("Initializing region catalog from built-in hierarchy")
        return self._ingest(seed_features(), "seed")

    def refresh_or_seed(self, url: str = CATALOG_URL) -> Dict[str, Any]:
        """
        Refresh the catalog, falling back when the network is unavailable.

        On NetworkFailure an already stored catalog is kept as is; an empty
        store is initialized from the built-in hierarchy.
        """
        try:
            return self.refresh_catalog(url)
        except NetworkFailure as e:
            logger.warning(f"Catalog refresh failed, falling back: {e}")
            stored = self.store.list_regions()
            if stored:
                return {'source': 'stored', 'region_count': len(stored), 'warnings': []}
            return self.initialize_from_seed()

    def region_tree(self, root: Optional[str] = None) -> Forest:
        regions = self.store.list_regions()
        return build_hierarchy(regions, root=root, data_files=self.store.all_data_files())

    def search_regions(self, q: Optional[str] = None, admin_level: Optional[int] = None,
                       parent_id: Optional[str] = None) -> List[Region]:
        validation = validate_admin_level(admin_level)
        if not validation['valid']:
            raise ValueError(f"Invalid admin level: {'; '.join(validation['errors'])}")
        return search_regions(self.store.list_regions(), q=q, admin_level=admin_level,
                              parent_id=parent_id)

    def catalog_stats(self) -> Dict[str, Any]:
        return catalog_stats(self.store.list_regions())

    def region_bounds(self, region_id: str) -> Dict[str, Any]:
        """GeoJSON feature of the region's bounding box"""
        return bounds_feature(self.store.get_region(region_id))

    # Extracts

    def download_extract(self, region_id: str, version: Optional[str] = None) -> FileRef:
        """
        Download the region's extract from its service URL and store it.

        Args:
            region_id: Region to download
            version: Version token to store under (today's UTC date if None)

        Raises:
            NotFoundError: unknown region or region without a download URL
            NetworkFailure: download failed after all retries
        """
        region = self.store.get_region(region_id)
        if not region.service_url:
            raise NotFoundError(f"No download URL configured for region: {region_id}",
                                region_id=region_id)

        version = version or datetime.now(timezone.utc).strftime('%Y-%m-%d')
        validation = validate_version(version, allow_latest=False)
        if not validation['valid']:
            raise ValueError(f"Invalid version: {'; '.join(validation['errors'])}")

        logger.info(f"Downloading OSM data for region: {region.name}", extra={"region_id": region_id})
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / f"{version}.osm.pbf"
            self.fetcher.download_to(region.service_url, target)
            return self.store.put_data_file(region_id, version, target)

    # Quality assessment

    def assess_file(self, region_id: str, version: str = "latest") -> QualityReport:
        """
        Validate, analyze and score one stored extract, then persist the report.

        A file that fails validation (missing, empty, unreadable or undecodable)
        is not analyzed; its report carries the validation issues and empty metrics.

        Raises:
            NotFoundError: no such stored extract
        """
        validation = validate_region_id(region_id)
        if not validation['valid']:
            raise ValueError(f"Invalid region id: {'; '.join(validation['errors'])}")

        file_ref = self.store.resolve_file(region_id, version)
        path = self.store.local_path(region_id, file_ref.version)
        logger.info(f"Assessing extract {file_ref.key}", extra={"region_id": region_id})

        issues = self.analyzer.validate(path)
        if any(issue.issue_type in BLOCKING_ISSUES for issue in issues):
            critical = sum(1 for i in issues if i.severity == IssueSeverity.CRITICAL)
            logger.error(f"Extract {file_ref.key} failed validation ({critical} critical issues)",
                         extra={"region_id": region_id})
            metrics = QualityMetrics()
        else:
            metrics = self.analyzer.analyze(path)

        report = self.scorer.generate_report(file_ref.file_id, region_id, metrics, issues)
        self.store.put_report(report)
        logger.info(f"Quality score for {file_ref.key}: {report.quality_score:.1f}",
                    extra={"region_id": region_id})
        return report

    def assess_many(self, region_ids: Iterable[str], version: str = "latest",
                    max_workers: int = MAX_WORKERS) -> Dict[str, Union[QualityReport, PipelineError]]:
        """
        Assess several regions' extracts in parallel.

        Returns:
            Mapping of region id to its report, or to the error that stopped it
        """
        region_ids = list(dict.fromkeys(region_ids))
        results: Dict[str, Union[QualityReport, PipelineError]] = {}

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(self.assess_file, region_id, version): region_id
                for region_id in region_ids
            }
            for i, future in enumerate(as_completed(futures), 1):
                region_id = futures[future]
                try:
                    results[region_id] = future.result()
                except PipelineError as e:
                    logger.error(f"Assessment failed for {region_id}: {e}",
                                 extra={"region_id": region_id})
                    results[region_id] = e
                logger.info(f"Progress: {i}/{len(region_ids)} regions assessed")

        return {region_id: results[region_id] for region_id in region_ids}

    def latest_report(self, region_id: str, version: str) -> QualityReport:
        """Newest report produced for a given extract version"""
        data_file_id = f"{region_id}_{version}"
        for report in self.store.list_reports(region_id):
            if report.data_file_id == data_file_id:
                return report
        raise NotFoundError(f"No quality report for {data_file_id}", region_id=region_id)

    def compare_versions(self, region_id: str, from_version: str,
                         to_version: str) -> QualityMetricsDiff:
        """
        Metric changes between the reports of two extract versions.

        Raises:
            NotFoundError: either version has no report
        """
        old = self.latest_report(region_id, from_version)
        new = self.latest_report(region_id, to_version)
        return compare_metrics(old.metrics, new.metrics)


def example_usage():
    """Demonstrate the pipeline with the built-in region hierarchy."""

    print("Region Extract Quality Pipeline - Example Usage")
    print("=" * 50)

    pipeline = RegionQualityPipeline()
    result = pipeline.refresh_or_seed()

    stats = pipeline.catalog_stats()
    forest = pipeline.region_tree()

    print(f"\nCatalog source: {result['source']}")
    print(f"  Regions: {stats['total_regions']}")
    print(f"  By level: {stats['by_level']}")
    print(f"  Root nodes: {len(forest.nodes)}")
    print(f"  Structural warnings: {len(result['warnings'])}")

    return stats


if __name__ == "__main__":
    # Execute demonstration workflow
    example_stats = example_usage()
