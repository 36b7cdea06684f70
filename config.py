"""
Region Extract Quality Pipeline Configuration

This file contains all configuration settings for the region catalog and
extract quality pipeline. Modify these settings to customize data sources,
storage and scoring behavior.
"""

import os
from dotenv import load_dotenv

# Load environment variables from a .env file if present (project root or parents)
# This enables local development without exporting variables globally.
load_dotenv()

# Region Catalog Source
# Geofabrik publishes its region hierarchy as a GeoJSON feature collection
CATALOG_URL = os.getenv("CATALOG_URL", "https://download.geofabrik.de/index-v1.json")
CATALOG_TIMEOUT_SECONDS = 60      # Single bounded request; failure aborts the whole ingestion
DOWNLOAD_TIMEOUT_SECONDS = 600    # Per-request timeout for extract downloads
DOWNLOAD_CHUNK_BYTES = 1024 * 1024
DOWNLOAD_MAX_RETRIES = 3          # Attempts per extract download
RETRY_DELAY_SECONDS = 5

# Catalog Normalization
# Catalog roots are continents; an explicit "world" feature is always World
ROOT_ADMIN_LEVEL = 1              # AdminLevel.CONTINENT
POINT_BOUNDS_PAD_DEGREES = 0.001  # Half-width of the box built around Point geometries

# Hierarchy Construction
HIERARCHY_MAX_DEPTH = int(os.getenv("HIERARCHY_MAX_DEPTH", "64"))

# Stream Analysis
VALIDATION_PREFIX_ELEMENTS = 1000  # Elements decoded by the cheap validation pass
MAX_WORKERS = int(os.getenv("MAX_WORKERS", "2"))  # Files analysed in parallel

# Storage Configuration
# STORAGE_BACKEND is "filesystem" (DATA_DIR) or "s3" (S3_BUCKET / S3_PREFIX)
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "filesystem")
DATA_DIR = os.getenv("DATA_DIR", "./data")
S3_BUCKET = os.getenv("S3_BUCKET", "region-extracts")
S3_PREFIX = os.getenv("S3_PREFIX", "")
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")  # Set for S3-compatible stores such as R2 or MinIO

# Get AWS credentials from environment variables
aws_access_key_id = os.getenv('AWS_ACCESS_KEY_ID')
aws_secret_access_key = os.getenv('AWS_SECRET_ACCESS_KEY')
aws_region = os.getenv('AWS_REGION', 'us-east-1')  # Default to us-east-1 if not specified

# Quality Scoring Weights
GEOMETRY_ERROR_WEIGHT = 2.0
TOPOLOGY_ERROR_WEIGHT = 1.5
TAG_ERROR_WEIGHT = 1.0
COMPLETENESS_BONUS_WEIGHT = 0.3
SEVERITY_PENALTIES = {
    "critical": 20.0,
    "high": 10.0,
    "medium": 5.0,
    "low": 1.0,
}

# Quality Heuristic Thresholds
LOW_TAGGING_RATE_THRESHOLD = 0.10        # Fraction of tagged elements
WAY_DENSITY_DIVISOR = 100                # Expect at least one way per 100 nodes
COMPLETENESS_RECOMMENDATION_THRESHOLD = 50.0

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")   # DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
