"""
Error Types

Standardized error taxonomy shared by the catalog, analysis, scoring and
storage layers. Each error carries enough context (region id, file path,
underlying cause) for a presentation layer to map it to a response.
"""

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base class for all pipeline errors"""

    category = "internal"
    http_status = 500

    def __init__(self, message: str, region_id: Optional[str] = None,
                 path: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.region_id = region_id
        self.path = str(path) if path is not None else None
        self.cause = cause

    @property
    def context(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "message": self.message,
            "region_id": self.region_id,
            "path": self.path,
            "cause": repr(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.region_id:
            parts.append(f"region={self.region_id}")
        if self.path:
            parts.append(f"path={self.path}")
        if self.cause:
            parts.append(f"cause={self.cause}")
        return " | ".join(parts)


class NotFoundError(PipelineError):
    """Region, report or data file is absent"""
    category = "not_found"
    http_status = 404


class NetworkFailure(PipelineError):
    """Fetch timed out or returned a non-success status"""
    category = "network_failure"
    http_status = 502


class ParseFailure(PipelineError):
    """Malformed catalog JSON or binary frame"""
    category = "parse_failure"
    http_status = 500


class StructuralInconsistency(PipelineError):
    """Cycle or dangling parent reference in the region graph"""
    category = "structural_inconsistency"
    http_status = 409


class InternalError(PipelineError):
    """Unexpected I/O failure"""
    category = "internal"
    http_status = 500
