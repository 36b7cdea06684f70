"""
S3 Blob Storage

boto3 blob backend for RegionStore. Works against AWS S3 and S3-compatible
stores (R2, MinIO) through S3_ENDPOINT_URL. Extracts are downloaded into a
local cache directory before analysis, since the analyzer reads from disk.
"""

import logging
import os
from pathlib import Path, PurePosixPath
from typing import List, Optional, Union

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import (
    DATA_DIR,
    S3_ENDPOINT_URL,
    aws_access_key_id,
    aws_region,
    aws_secret_access_key,
)
from errors import InternalError, NetworkFailure, NotFoundError
from shared_schema import BlobInfo

logger = logging.getLogger(__name__)

MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


def create_s3_client():
    """S3 client from the configured credentials and endpoint"""
    return boto3.client(
        's3',
        endpoint_url=S3_ENDPOINT_URL,
        aws_access_key_id=aws_access_key_id,
        aws_secret_access_key=aws_secret_access_key,
        region_name=aws_region
    )


class S3BlobStore:
    """
    Blob backend over an S3 bucket

    Args:
        bucket: Bucket name
        prefix: Key prefix all blobs live under
        client: boto3 S3 client (created from config when None)
        cache_dir: Local directory for downloaded extracts
    """

    def __init__(self, bucket: str, prefix: str = "", client=None,
                 cache_dir: Optional[Union[str, Path]] = None):
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.client = client or create_s3_client()
        self.cache_dir = Path(cache_dir) if cache_dir else Path(DATA_DIR) / "s3-cache"

    def _key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def _strip(self, full_key: str) -> str:
        if self.prefix and full_key.startswith(self.prefix + "/"):
            return full_key[len(self.prefix) + 1:]
        return full_key

    def _translate(self, error: Exception, key: str, action: str):
        if isinstance(error, ClientError):
            code = str(error.response.get("Error", {}).get("Code", ""))
            if code in MISSING_KEY_CODES:
                return NotFoundError(f"Blob {key} not found in s3://{self.bucket}", path=key, cause=error)
            return InternalError(f"S3 {action} failed for {key} ({code})", path=key, cause=error)
        return NetworkFailure(f"S3 {action} failed for {key}", path=key, cause=error)

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self._key(key))
            return response['Body'].read()
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key, "get") from e

    def put(self, key: str, data: bytes) -> None:
        # A single PUT replaces the object atomically
        try:
            self.client.put_object(Bucket=self.bucket, Key=self._key(key), Body=data)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key, "put") from e

    def put_file(self, key: str, source: Union[str, Path]) -> None:
        logger.info(f"Uploading {source} to s3://{self.bucket}/{self._key(key)}")
        try:
            self.client.upload_file(str(source), self.bucket, self._key(key))
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key, "upload") from e

    def list(self, prefix: str = "") -> List[BlobInfo]:
        blobs = []
        request = {"Bucket": self.bucket, "Prefix": self._key(prefix)}
        try:
            while True:
                response = self.client.list_objects_v2(**request)
                for obj in response.get('Contents', []):
                    blobs.append(BlobInfo(
                        key=self._strip(obj['Key']),
                        size=int(obj['Size']),
                        modified=obj['LastModified'],
                    ))
                if not response.get('IsTruncated'):
                    break
                request["ContinuationToken"] = response['NextContinuationToken']
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, prefix, "list") from e
        return sorted(blobs, key=lambda b: b.key)

    def local_path(self, key: str) -> Path:
        """Download the blob into the cache directory (once) and return its path"""
        target = self.cache_dir.joinpath(*PurePosixPath(key).parts)
        if target.is_file():
            return target

        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + ".part")
        logger.info(f"Downloading s3://{self.bucket}/{self._key(key)} to {target}")
        try:
            self.client.download_file(self.bucket, self._key(key), str(partial))
            os.replace(partial, target)
        except (ClientError, BotoCoreError) as e:
            partial.unlink(missing_ok=True)
            raise self._translate(e, key, "download") from e
        return target
