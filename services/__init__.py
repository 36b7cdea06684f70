"""
Services package for the region extract quality pipeline

Contains the external collaborators of the pipeline:
- HTTP fetching of the region catalog and extract files
- Region, report and extract persistence over a blob backend
- S3-compatible blob storage
"""

from .http_service import HttpFetcher
from .s3_service import S3BlobStore
from .storage_service import FilesystemBlobStore, RegionStore, create_store

__all__ = [
    'HttpFetcher',
    'S3BlobStore',
    'FilesystemBlobStore',
    'RegionStore',
    'create_store'
]
