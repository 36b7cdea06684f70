"""
Region Storage Service

Persistence for the region catalog, quality reports and downloaded extracts
on top of a minimal blob backend (get / put / list / local path).

Blob layout:
    regions.json                              whole region list, replaced atomically
    reports/<report_id>.json                  one immutable report per file
    extracts/<region_id>/<YYYY-MM-DD>.osm.pbf one extract version per file
"""

import json
import logging
import os
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Dict, Iterable, List, Optional, Union

from config import DATA_DIR, S3_BUCKET, S3_PREFIX, STORAGE_BACKEND
from errors import InternalError, NotFoundError, ParseFailure
from services.s3_service import S3BlobStore
from shared_schema import BlobInfo, FileRef, QualityReport, Region
from validation.input_validation import (
    LATEST_VERSION,
    extract_version_from_filename,
    validate_region_id,
    validate_version,
)

logger = logging.getLogger(__name__)

REGIONS_KEY = "regions.json"
REPORTS_PREFIX = "reports/"
EXTRACTS_PREFIX = "extracts/"
EXTRACT_SUFFIX = ".osm.pbf"


class FilesystemBlobStore:
    """Blob backend rooted in a local directory; every write is an atomic rename"""

    def __init__(self, root: Union[str, Path] = DATA_DIR):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid blob key: {key}")
        return self.root.joinpath(*relative.parts)

    def _temp_path(self, target: Path) -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)
        return target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")

    def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(f"Blob {key} not found", path=path, cause=e) from e
        except OSError as e:
            raise InternalError(f"Cannot read blob {key}", path=path, cause=e) from e

    def put(self, key: str, data: bytes) -> None:
        target = self._path(key)
        temp = self._temp_path(target)
        try:
            temp.write_bytes(data)
            os.replace(temp, target)
        except OSError as e:
            temp.unlink(missing_ok=True)
            raise InternalError(f"Cannot write blob {key}", path=target, cause=e) from e

    def put_file(self, key: str, source: Union[str, Path]) -> None:
        target = self._path(key)
        temp = self._temp_path(target)
        try:
            shutil.copyfile(source, temp)
            os.replace(temp, target)
        except OSError as e:
            temp.unlink(missing_ok=True)
            raise InternalError(f"Cannot store {source} as {key}", path=target, cause=e) from e

    def list(self, prefix: str = "") -> List[BlobInfo]:
        base = self._path(prefix.rstrip("/")) if prefix.rstrip("/") else self.root
        if not base.is_dir():
            return []

        blobs = []
        for path in base.rglob("*"):
            if not path.is_file() or path.name.startswith("."):
                continue
            stat = path.stat()
            blobs.append(BlobInfo(
                key=path.relative_to(self.root).as_posix(),
                size=stat.st_size,
                modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            ))
        return sorted(blobs, key=lambda b: b.key)

    def local_path(self, key: str) -> Path:
        path = self._path(key)
        if not path.is_file():
            raise NotFoundError(f"Blob {key} not found", path=path)
        return path


def _require(result: dict) -> None:
    if not result["valid"]:
        raise ValueError("; ".join(result["errors"]))


class RegionStore:
    """
    Region catalog, report and extract persistence

    Args:
        backend: Blob backend (FilesystemBlobStore or S3BlobStore)
    """

    def __init__(self, backend):
        self.backend = backend

    # Regions

    def list_regions(self) -> List[Region]:
        try:
            raw = self.backend.get(REGIONS_KEY)
        except NotFoundError:
            return []
        try:
            return [Region.from_dict(item) for item in json.loads(raw)]
        except (ValueError, KeyError, TypeError) as e:
            raise ParseFailure(f"Stored region list is corrupt: {e}", path=REGIONS_KEY, cause=e) from e

    def replace_regions(self, regions: Iterable[Region]) -> int:
        """Overwrite the whole region list in one atomic write"""
        payload = [region.to_dict() for region in regions]
        self.backend.put(REGIONS_KEY, json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8"))
        logger.info(f"Saved {len(payload)} regions")
        return len(payload)

    def get_region(self, region_id: str) -> Region:
        for region in self.list_regions():
            if region.id == region_id:
                return region
        raise NotFoundError(f"Region {region_id} not found", region_id=region_id)

    # Reports

    def get_report(self, report_id: str) -> Optional[QualityReport]:
        """Stored report, or None when no report has that id"""
        key = f"{REPORTS_PREFIX}{report_id}.json"
        try:
            raw = self.backend.get(key)
        except NotFoundError:
            return None
        try:
            return QualityReport.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise ParseFailure(f"Stored report {report_id} is corrupt: {e}", path=key, cause=e) from e

    def put_report(self, report: QualityReport) -> None:
        key = f"{REPORTS_PREFIX}{report.id}.json"
        self.backend.put(key, json.dumps(report.to_dict(), indent=2).encode("utf-8"))
        logger.info(f"Saved quality report {report.id}", extra={"region_id": report.region_id})

    def list_reports(self, region_id: Optional[str] = None) -> List[QualityReport]:
        """Reports newest first, optionally restricted to one region"""
        reports = []
        for blob in self.backend.list(REPORTS_PREFIX):
            if not blob.key.endswith(".json"):
                continue
            report_id = PurePosixPath(blob.key).stem
            report = self.get_report(report_id)
            if report is None:
                continue
            if region_id is None or report.region_id == region_id:
                reports.append(report)
        return sorted(reports, key=lambda r: (r.created_at, r.id), reverse=True)

    # Extracts

    def _file_ref(self, region_id: str, blob: BlobInfo) -> FileRef:
        name = PurePosixPath(blob.key).name
        return FileRef(
            region_id=region_id,
            version=extract_version_from_filename(name),
            size_bytes=blob.size,
            created_at=blob.modified,
            key=blob.key,
        )

    def list_data_files(self, region_id: str) -> List[FileRef]:
        """Stored extracts of a region, newest first"""
        prefix = f"{EXTRACTS_PREFIX}{region_id}/"
        files = [
            self._file_ref(region_id, blob)
            for blob in self.backend.list(prefix)
            if blob.key.endswith(EXTRACT_SUFFIX) and PurePosixPath(blob.key).parent.name == region_id
        ]
        return sorted(files, key=lambda f: (f.created_at, f.version), reverse=True)

    def all_data_files(self) -> Dict[str, List[FileRef]]:
        """Stored extracts of every region in one listing, newest first per region"""
        grouped: Dict[str, List[FileRef]] = {}
        for blob in self.backend.list(EXTRACTS_PREFIX):
            parts = PurePosixPath(blob.key).parts
            if len(parts) != 3 or not blob.key.endswith(EXTRACT_SUFFIX):
                continue
            grouped.setdefault(parts[1], []).append(self._file_ref(parts[1], blob))
        for files in grouped.values():
            files.sort(key=lambda f: (f.created_at, f.version), reverse=True)
        return grouped

    def resolve_file(self, region_id: str, version: str = LATEST_VERSION) -> FileRef:
        """
        Find a stored extract.

        Args:
            region_id: Region whose extract is wanted
            version: "YYYY-MM-DD" token, or "latest" for the newest stored file

        Raises:
            NotFoundError: no matching extract
        """
        _require(validate_version(version))
        files = self.list_data_files(region_id)
        if version == LATEST_VERSION:
            if files:
                return files[0]
        else:
            for file_ref in files:
                if file_ref.version == version:
                    return file_ref
        raise NotFoundError(f"No {version} extract stored for {region_id}", region_id=region_id)

    def local_path(self, region_id: str, version: str = LATEST_VERSION) -> Path:
        return self.backend.local_path(self.resolve_file(region_id, version).key)

    def open_file(self, region_id: str, version: str = LATEST_VERSION) -> BinaryIO:
        path = self.local_path(region_id, version)
        try:
            return open(path, "rb")
        except OSError as e:
            raise InternalError("Cannot open extract", region_id=region_id, path=path, cause=e) from e

    def put_data_file(self, region_id: str, version: str, source: Union[str, Path]) -> FileRef:
        """Store a local extract as the given version of a region"""
        _require(validate_region_id(region_id))
        _require(validate_version(version, allow_latest=False))

        key = f"{EXTRACTS_PREFIX}{region_id}/{version}{EXTRACT_SUFFIX}"
        self.backend.put_file(key, source)
        logger.info(f"Stored extract {key}", extra={"region_id": region_id})
        return self.resolve_file(region_id, version)


def create_store(backend: Optional[str] = None) -> RegionStore:
    """RegionStore for the configured STORAGE_BACKEND ("filesystem" or "s3")"""
    backend = backend or STORAGE_BACKEND
    if backend == "filesystem":
        return RegionStore(FilesystemBlobStore(DATA_DIR))
    if backend == "s3":
        return RegionStore(S3BlobStore(S3_BUCKET, S3_PREFIX))
    raise ValueError(f"Unknown storage backend: {backend}")
