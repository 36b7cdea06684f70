"""
Validation and Quality Assurance

Input validation, lookup tables and quality scoring for region extracts.
"""

from .input_validation import validate_admin_level, validate_region_id, validate_version
from .quality_scorer import QualityScorer, ScoringWeights

__all__ = [
    'validate_admin_level',
    'validate_region_id',
    'validate_version',
    'QualityScorer',
    'ScoringWeights'
]
