"""
Logging Setup

Plain text logging for local runs and structured JSON lines for log
aggregation. Every module logs through ``logging.getLogger(__name__)``;
this module only decides how the root logger renders records.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

SERVICE_NAME = "region-quality-pipeline"
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class StructuredFormatter(logging.Formatter):
    """
    Structured JSON logging formatter for infrastructure integration.
    Provides consistent log format for aggregation and analysis.
    """

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        # Work-unit context passed through ``extra=``
        for key in ("region_id", "file_path", "duration_ms"):
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def configure_logging(level: str = "INFO", structured: bool = False,
                      stream: Optional[object] = None) -> logging.Handler:
    """
    Install a single handler on the root logger.

    Args:
        level: Level name such as "DEBUG" or "INFO"
        structured: Emit JSON lines instead of plain text
        stream: Target stream (stderr when None)

    Returns:
        The installed handler
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Replace handlers installed by a previous call
    for existing in list(root.handlers):
        if getattr(existing, "_region_pipeline", False):
            root.removeHandler(existing)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter() if structured else logging.Formatter(TEXT_FORMAT))
    handler._region_pipeline = True
    root.addHandler(handler)
    return handler
