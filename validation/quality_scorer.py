"""
Quality Scoring Module

Turns structural metrics of an extract into quality issues, a bounded
0-100 score, ranked issues, recommendations and finally a QualityReport.
Everything here is deterministic apart from the report id and timestamp,
and nothing performs I/O.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from config import (
    COMPLETENESS_BONUS_WEIGHT,
    COMPLETENESS_RECOMMENDATION_THRESHOLD,
    GEOMETRY_ERROR_WEIGHT,
    LOW_TAGGING_RATE_THRESHOLD,
    SEVERITY_PENALTIES,
    TAG_ERROR_WEIGHT,
    TOPOLOGY_ERROR_WEIGHT,
    WAY_DENSITY_DIVISOR,
)
from shared_schema import (
    IssueSeverity,
    IssueTypes,
    QualityIssue,
    QualityMetrics,
    QualityMetricsDiff,
    QualityReport,
    utc_now,
)
from validation.lookup_tables import (
    FIX_SUGGESTIONS,
    ISSUE_DESCRIPTIONS,
    ISSUE_RECOMMENDATIONS,
    RECOMMEND_ALL_GOOD,
    RECOMMEND_COMPLETENESS,
    RECOMMEND_GEOMETRY,
    RECOMMEND_TOPOLOGY,
    SUMMARY_TEMPLATE,
)

logger = logging.getLogger(__name__)

FEATURE_FIELDS = (
    "highways", "buildings", "natural_features", "amenities", "water_features", "boundaries"
)


@dataclass(frozen=True)
class ScoringWeights:
    """Weights and thresholds of the quality score"""
    geometry_error: float = GEOMETRY_ERROR_WEIGHT
    topology_error: float = TOPOLOGY_ERROR_WEIGHT
    tag_error: float = TAG_ERROR_WEIGHT
    completeness_bonus: float = COMPLETENESS_BONUS_WEIGHT
    severity_penalties: Dict[str, float] = field(default_factory=lambda: dict(SEVERITY_PENALTIES))
    low_tagging_rate: float = LOW_TAGGING_RATE_THRESHOLD
    way_density_divisor: int = WAY_DENSITY_DIVISOR
    completeness_recommendation: float = COMPLETENESS_RECOMMENDATION_THRESHOLD

    def penalty(self, severity: IssueSeverity) -> float:
        return self.severity_penalties.get(severity.label, 0.0)


def _issue(issue_type: str, severity: IssueSeverity, **values) -> QualityIssue:
    return QualityIssue(
        issue_type=issue_type,
        severity=severity,
        description=ISSUE_DESCRIPTIONS[issue_type].format(**values),
        fix_suggestion=FIX_SUGGESTIONS[issue_type],
    )


class QualityScorer:
    """
    Deterministic quality assessment of extract metrics

    Args:
        weights: Score weights and heuristic thresholds (config defaults when None)
    """

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()

    def analyze_completeness(self, metrics: QualityMetrics) -> List[QualityIssue]:
        """Tagging rate and way density heuristics"""
        issues = []

        total = metrics.total_elements
        if total > 0:
            tagging_rate = metrics.tagged_elements / total
            if tagging_rate < self.weights.low_tagging_rate:
                issues.append(_issue(IssueTypes.LOW_TAGGING_RATE, IssueSeverity.HIGH,
                                     rate=tagging_rate * 100.0))

        if metrics.total_ways < metrics.total_nodes // self.weights.way_density_divisor:
            issues.append(_issue(IssueTypes.LOW_WAY_DENSITY, IssueSeverity.MEDIUM))

        return issues

    def analyze_patterns(self, metrics: QualityMetrics) -> List[QualityIssue]:
        """Relation ratio and error counter heuristics"""
        issues = []

        if metrics.total_relations > metrics.total_ways:
            issues.append(_issue(IssueTypes.HIGH_RELATION_RATIO, IssueSeverity.MEDIUM))

        if metrics.geometry_errors > 0:
            issues.append(_issue(IssueTypes.GEOMETRY_ERRORS, IssueSeverity.HIGH,
                                 count=metrics.geometry_errors))

        if metrics.topology_errors > 0:
            issues.append(_issue(IssueTypes.TOPOLOGY_ERRORS, IssueSeverity.HIGH,
                                 count=metrics.topology_errors))

        return issues

    def calculate_score(self, metrics: QualityMetrics, issues: Iterable[QualityIssue]) -> float:
        """
        Quality score in [0, 100].

        Error counters and issue severities deduct points; completeness adds a
        bonus. The result is clamped.
        """
        w = self.weights
        score = 100.0
        score -= metrics.geometry_errors * w.geometry_error
        score -= metrics.topology_errors * w.topology_error
        score -= metrics.tag_errors * w.tag_error
        for issue in issues:
            score -= w.penalty(issue.severity)
        score += metrics.completeness_score * w.completeness_bonus

        return max(0.0, min(100.0, score))

    @staticmethod
    def rank_issues(issues: Iterable[QualityIssue]) -> List[QualityIssue]:
        """Most severe first; issues of equal severity keep their order"""
        return sorted(issues, key=lambda issue: -int(issue.severity))

    def generate_recommendations(self, metrics: QualityMetrics,
                                 issues: Iterable[QualityIssue]) -> List[str]:
        """
        Actionable recommendations, in first-seen order without repeats.

        Issues without a mapped recommendation (such as high_relation_ratio)
        contribute nothing, so the "all good" text is returned whenever no
        recommendation was produced, even if such issues exist.
        """
        candidates = []

        if metrics.completeness_score < self.weights.completeness_recommendation:
            candidates.append(RECOMMEND_COMPLETENESS)
        if metrics.geometry_errors > 0:
            candidates.append(RECOMMEND_GEOMETRY)
        if metrics.topology_errors > 0:
            candidates.append(RECOMMEND_TOPOLOGY)
        for issue in issues:
            recommendation = ISSUE_RECOMMENDATIONS.get(issue.issue_type)
            if recommendation:
                candidates.append(recommendation)

        # First-seen order, no repeats
        recommendations = list(dict.fromkeys(candidates))
        return recommendations or [RECOMMEND_ALL_GOOD]

    def score(self, metrics: QualityMetrics, issues: Iterable[QualityIssue] = ()
              ) -> Tuple[float, List[QualityIssue], List[str]]:
        """
        Full assessment of one extract.

        Args:
            metrics: Output of the stream analyzer
            issues: Issues found before scoring (for example by file validation)

        Returns:
            Tuple of (score, ranked issues, recommendations)
        """
        all_issues = list(issues)
        all_issues.extend(self.analyze_completeness(metrics))
        all_issues.extend(self.analyze_patterns(metrics))

        ranked = self.rank_issues(all_issues)
        quality_score = self.calculate_score(metrics, ranked)
        recommendations = self.generate_recommendations(metrics, ranked)
        return quality_score, ranked, recommendations

    def generate_report(self, data_file_id: str, region_id: str, metrics: QualityMetrics,
                        issues: Iterable[QualityIssue] = ()) -> QualityReport:
        logger.info(f"Generating quality report for file: {data_file_id}",
                    extra={"region_id": region_id})

        quality_score, ranked, recommendations = self.score(metrics, issues)
        return QualityReport(
            id=str(uuid.uuid4()),
            data_file_id=data_file_id,
            region_id=region_id,
            created_at=utc_now(),
            metrics=metrics,
            issues=tuple(ranked),
            summary=report_summary(metrics, ranked),
            recommendations=tuple(recommendations),
            quality_score=quality_score,
        )


def report_summary(metrics: QualityMetrics, issues: Iterable[QualityIssue]) -> str:
    critical = sum(1 for issue in issues if issue.severity == IssueSeverity.CRITICAL)
    return SUMMARY_TEMPLATE.format(
        total=metrics.total_elements,
        nodes=metrics.total_nodes,
        ways=metrics.total_ways,
        relations=metrics.total_relations,
        completeness=metrics.completeness_score,
        critical=critical,
    )


def compare_metrics(old: QualityMetrics, new: QualityMetrics) -> QualityMetricsDiff:
    """Change from ``old`` to ``new`` (positive values mean growth)"""
    old_features = old.feature_distribution.to_dict()
    new_features = new.feature_distribution.to_dict()
    return QualityMetricsDiff(
        nodes_diff=new.total_nodes - old.total_nodes,
        ways_diff=new.total_ways - old.total_ways,
        relations_diff=new.total_relations - old.total_relations,
        completeness_diff=new.completeness_score - old.completeness_score,
        errors_diff=new.total_errors - old.total_errors,
        feature_changes={name: new_features[name] - old_features[name] for name in FEATURE_FIELDS},
    )


def categorize_issues(issues: Iterable[QualityIssue]) -> Dict[str, int]:
    """Issue counts keyed by severity label; absent severities are omitted"""
    categories: Dict[str, int] = {}
    for issue in issues:
        label = issue.severity.label
        categories[label] = categories.get(label, 0) + 1
    return categories


def issue_summary(issues: Iterable[QualityIssue]) -> str:
    issues = list(issues)
    if not issues:
        return "No issues found"

    categories = categorize_issues(issues)
    parts = [
        f"{categories[severity.label]} {severity.label}"
        for severity in sorted(IssueSeverity, reverse=True)
        if categories.get(severity.label)
    ]
    return f"{len(issues)} issues found: {', '.join(parts)}"
