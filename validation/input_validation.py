"""
Input Validation Module

Validates region identifiers, extract versions and query parameters for the
Region Extract Quality Pipeline. Keeps malformed input away from storage keys
and file paths.
"""

import re

from shared_schema import AdminLevel

REGION_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
VERSION_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")
LATEST_VERSION = "latest"
UNKNOWN_VERSION = "unknown"


def validate_region_id(region_id: str) -> dict:
    """
    Validate a region identifier.

    Identifiers double as storage key segments, so only lower-case letters,
    digits, hyphens and underscores are accepted.

    Args:
        region_id: Catalog id such as "germany-bayern"

    Returns:
        Dictionary with validation results and any errors
    """
    errors = []

    if not isinstance(region_id, str) or not region_id:
        errors.append("Region id must be a non-empty string")
    elif not REGION_ID_PATTERN.match(region_id):
        errors.append("Region id may only contain lower-case letters, digits, '-' and '_'")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "region_id": region_id
    }


def validate_version(version: str, allow_latest: bool = True) -> dict:
    """
    Validate an extract version token.

    Args:
        version: "YYYY-MM-DD" date token, or "latest" when allowed
        allow_latest: Accept the "latest" alias

    Returns:
        Dictionary with validation results and any errors
    """
    errors = []

    if allow_latest and version == LATEST_VERSION:
        pass
    elif not isinstance(version, str) or not VERSION_PATTERN.fullmatch(version):
        errors.append("Version must be a YYYY-MM-DD date" + (" or 'latest'" if allow_latest else ""))

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "version": version
    }


def validate_admin_level(admin_level) -> dict:
    errors = []

    if admin_level is not None:
        if isinstance(admin_level, bool) or not isinstance(admin_level, int):
            errors.append("Admin level must be an integer")
        elif admin_level not in {int(level) for level in AdminLevel}:
            errors.append(f"Admin level must be between {int(AdminLevel.WORLD)} and {int(AdminLevel.SUBREGION)}")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "admin_level": admin_level
    }


def extract_version_from_filename(filename: str) -> str:
    """
    Date token embedded in an extract file name.

    Returns:
        The first "YYYY-MM-DD" substring, or "unknown" when there is none
    """
    match = VERSION_PATTERN.search(filename)
    return match.group(0) if match else UNKNOWN_VERSION
