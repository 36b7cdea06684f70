"""
Lookup Tables Module

Standardized issue descriptions, fix suggestions and recommendation texts
shared by the stream analyzer and the quality scorer, plus consistency
checks over those tables.
"""

from typing import Any, Dict

from shared_schema import IssueTypes


def build_fix_suggestions() -> Dict[str, str]:
    """
    Build the fix suggestion attached to each issue type.

    Returns:
        Dictionary mapping issue type identifiers to suggestion text
    """
    return {
        IssueTypes.FILE_MISSING: "Ensure the OSM data file has been downloaded properly",
        IssueTypes.EMPTY_FILE: "Re-download the OSM data file",
        IssueTypes.FILE_UNREADABLE: "Check file permissions and storage health, then re-download if necessary",
        IssueTypes.PARSING_ERROR: "Check if the OSM file is corrupted and re-download if necessary",
        IssueTypes.LOW_TAGGING_RATE: "Add more descriptive tags to features to improve data usability",
        IssueTypes.LOW_WAY_DENSITY: "Verify that linear features (roads, paths) are properly mapped",
        IssueTypes.HIGH_RELATION_RATIO: "Review relation usage and ensure they are necessary",
        IssueTypes.GEOMETRY_ERRORS: "Review and fix geometry errors, particularly invalid coordinates",
        IssueTypes.TOPOLOGY_ERRORS: "Check way topology - ensure ways have at least 2 nodes",
    }


FIX_SUGGESTIONS = build_fix_suggestions()

# Issue descriptions; formatted with the offending values where a placeholder is present
ISSUE_DESCRIPTIONS = {
    IssueTypes.FILE_MISSING: "OSM data file does not exist",
    IssueTypes.EMPTY_FILE: "OSM data file is empty",
    IssueTypes.FILE_UNREADABLE: "Cannot read OSM data file: {error}",
    IssueTypes.PARSING_ERROR: "Error parsing OSM data: {error}",
    IssueTypes.LOW_TAGGING_RATE: "Very low tagging rate: {rate:.1f}%",
    IssueTypes.LOW_WAY_DENSITY: "Unusually low number of ways compared to nodes",
    IssueTypes.HIGH_RELATION_RATIO: "More relations than ways, which is unusual",
    IssueTypes.GEOMETRY_ERRORS: "{count} geometry errors found",
    IssueTypes.TOPOLOGY_ERRORS: "{count} topology errors found",
}

# Recommendation texts
RECOMMEND_COMPLETENESS = "Consider improving tagging completeness by adding more descriptive tags to features"
RECOMMEND_GEOMETRY = FIX_SUGGESTIONS[IssueTypes.GEOMETRY_ERRORS]
RECOMMEND_TOPOLOGY = FIX_SUGGESTIONS[IssueTypes.TOPOLOGY_ERRORS]
RECOMMEND_TAGGING = "Increase feature tagging to improve data usability"
RECOMMEND_WAY_DENSITY = FIX_SUGGESTIONS[IssueTypes.LOW_WAY_DENSITY]
RECOMMEND_ALL_GOOD = "Data quality looks good! Continue maintaining current standards."

# Per-issue recommendations, applied in issue order
ISSUE_RECOMMENDATIONS = {
    IssueTypes.LOW_TAGGING_RATE: RECOMMEND_TAGGING,
    IssueTypes.LOW_WAY_DENSITY: RECOMMEND_WAY_DENSITY,
}

SUMMARY_TEMPLATE = (
    "Data contains {total} elements ({nodes} nodes, {ways} ways, {relations} relations) "
    "with {completeness:.1f}% completeness. {critical} critical issues found."
)


def validate_lookup_table_completeness() -> Dict[str, Any]:
    """
    Validate that every issue type has a description and a fix suggestion.

    Returns:
        Dictionary with completeness validation results
    """
    issue_types = [
        value for name, value in vars(IssueTypes).items()
        if not name.startswith("_") and isinstance(value, str)
    ]
    missing_descriptions = [t for t in issue_types if t not in ISSUE_DESCRIPTIONS]
    missing_suggestions = [t for t in issue_types if t not in FIX_SUGGESTIONS]

    return {
        "valid": not missing_descriptions and not missing_suggestions,
        "issue_types": len(issue_types),
        "missing_descriptions": missing_descriptions,
        "missing_suggestions": missing_suggestions
    }
