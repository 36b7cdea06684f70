"""
HTTP Fetch Service

Network access for the catalog feed and extract downloads. All transport
problems surface as NetworkFailure and undecodable payloads as ParseFailure,
so callers never handle requests exceptions directly.
"""

import logging
import os
import time
from pathlib import Path
from typing import Any, Optional, Union

import requests

from config import (
    CATALOG_TIMEOUT_SECONDS,
    DOWNLOAD_CHUNK_BYTES,
    DOWNLOAD_MAX_RETRIES,
    DOWNLOAD_TIMEOUT_SECONDS,
    RETRY_DELAY_SECONDS,
)
from errors import InternalError, NetworkFailure, ParseFailure

logger = logging.getLogger(__name__)

USER_AGENT = "region-quality-pipeline/1.0"


class HttpFetcher:
    """
    requests-backed fetcher for catalog documents and extract files

    Args:
        session: Pre-configured session (a new one when None)
        max_retries: Attempts per download
        retry_delay: Seconds between download attempts
    """

    def __init__(self, session: Optional[requests.Session] = None,
                 max_retries: int = DOWNLOAD_MAX_RETRIES,
                 retry_delay: float = RETRY_DELAY_SECONDS):
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

    def _get(self, url: str, timeout: float, stream: bool = False) -> requests.Response:
        try:
            response = self.session.get(url, timeout=timeout, stream=stream)
            response.raise_for_status()
            return response
        except requests.exceptions.Timeout as e:
            raise NetworkFailure(f"Request timed out after {timeout}s: {url}", cause=e) from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "unknown"
            raise NetworkFailure(f"HTTP {status} from {url}", cause=e) from e
        except requests.exceptions.RequestException as e:
            raise NetworkFailure(f"Request failed: {url}", cause=e) from e

    def get_json(self, url: str, timeout: float = CATALOG_TIMEOUT_SECONDS) -> Any:
        """
        Fetch and decode a JSON document with a single bounded request.

        Raises:
            NetworkFailure: timeout, connection error or non-2xx status
            ParseFailure: body is not valid JSON
        """
        logger.info(f"Fetching JSON from: {url}")
        response = self._get(url, timeout)
        try:
            return response.json()
        except ValueError as e:
            raise ParseFailure(f"Response from {url} is not valid JSON", cause=e) from e

    def get_bytes(self, url: str, timeout: float = CATALOG_TIMEOUT_SECONDS) -> bytes:
        response = self._get(url, timeout)
        return response.content

    def download_to(self, url: str, path: Union[str, Path],
                    timeout: float = DOWNLOAD_TIMEOUT_SECONDS) -> int:
        """
        Stream a remote file to ``path`` in chunks, retrying on network failure.

        The target only appears once the transfer has completed.

        Returns:
            Number of bytes written

        Raises:
            NetworkFailure: every attempt failed
            InternalError: the file could not be written locally (not retried)
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        partial = path.with_name(path.name + ".part")

        for attempt in range(self.max_retries):
            try:
                logger.info(f"Downloading: {url}")
                response = self._get(url, timeout, stream=True)
                written = 0
                try:
                    with open(partial, "wb") as f:
                        for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                            if chunk:
                                f.write(chunk)
                                written += len(chunk)
                    os.replace(partial, path)
                # RequestException subclasses OSError; keep this clause first
                except requests.exceptions.RequestException as e:
                    raise NetworkFailure(f"Transfer interrupted: {url}", cause=e) from e
                except OSError as e:
                    partial.unlink(missing_ok=True)
                    raise InternalError(f"Cannot write download of {url}", path=path, cause=e) from e
                finally:
                    response.close()

                logger.info(f"Saved {written} bytes to {path}")
                return written

            except NetworkFailure as e:
                if partial.exists():
                    partial.unlink()
                logger.warning(f"Download attempt {attempt + 1}/{self.max_retries} failed: {e}")
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_delay)
                else:
                    logger.error(f"Failed to download: {url}")
                    raise

        raise NetworkFailure(f"Failed to download: {url}")
