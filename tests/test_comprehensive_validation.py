#!/usr/bin/env python3
"""
Comprehensive Validation Tests

Quality scoring heuristics, score bounds, recommendations, report assembly,
lookup table consistency and input validation.
"""

import pytest

from conftest import make_metrics
from shared_schema import FeatureDistribution, IssueSeverity, IssueTypes, QualityIssue, QualityReport
from validation import QualityScorer, ScoringWeights, validate_admin_level, validate_region_id, validate_version
from validation.input_validation import extract_version_from_filename
from validation.lookup_tables import (
    FIX_SUGGESTIONS,
    ISSUE_DESCRIPTIONS,
    RECOMMEND_ALL_GOOD,
    RECOMMEND_COMPLETENESS,
    RECOMMEND_GEOMETRY,
    RECOMMEND_TAGGING,
    RECOMMEND_TOPOLOGY,
    RECOMMEND_WAY_DENSITY,
    validate_lookup_table_completeness,
)
from validation.quality_scorer import compare_metrics, categorize_issues, issue_summary, report_summary


def issue(issue_type, severity, description="test"):
    return QualityIssue(issue_type=issue_type, severity=severity, description=description)


@pytest.fixture
def scorer():
    return QualityScorer()


class TestHeuristics:

    def test_healthy_extract_has_no_issues(self, scorer):
        metrics = make_metrics()
        assert scorer.analyze_completeness(metrics) == []
        assert scorer.analyze_patterns(metrics) == []

    def test_sparse_node_only_extract(self, scorer):
        metrics = make_metrics(total_nodes=1000, tagged_nodes=50, total_ways=0, tagged_ways=0,
                               total_relations=0, tagged_relations=0)
        quality_score, ranked, recommendations = scorer.score(metrics)

        assert [(i.issue_type, i.severity) for i in ranked] == [
            (IssueTypes.LOW_TAGGING_RATE, IssueSeverity.HIGH),
            (IssueTypes.LOW_WAY_DENSITY, IssueSeverity.MEDIUM),
        ]
        assert ranked[0].description == "Very low tagging rate: 5.0%"
        # 100 - 10 (high) - 5 (medium) + 5.0 * 0.3
        assert quality_score == pytest.approx(86.5)
        assert recommendations == [RECOMMEND_COMPLETENESS, RECOMMEND_TAGGING, RECOMMEND_WAY_DENSITY]

    def test_tagging_rate_threshold_is_strict(self, scorer):
        metrics = make_metrics(total_nodes=100, tagged_nodes=10, total_ways=1, tagged_ways=0,
                               total_relations=0, tagged_relations=0)
        # 10 of 101 elements is below 10%
        assert [i.issue_type for i in scorer.analyze_completeness(metrics)] == [IssueTypes.LOW_TAGGING_RATE]
        metrics = make_metrics(total_nodes=99, tagged_nodes=10, total_ways=1, tagged_ways=0,
                               total_relations=0, tagged_relations=0)
        assert scorer.analyze_completeness(metrics) == []

    def test_way_density_uses_integer_division(self, scorer):
        just_enough = make_metrics(total_nodes=199, tagged_nodes=199, total_ways=1, tagged_ways=1)
        too_few = make_metrics(total_nodes=200, tagged_nodes=200, total_ways=1, tagged_ways=1)
        assert scorer.analyze_completeness(just_enough) == []
        assert [i.issue_type for i in scorer.analyze_completeness(too_few)] == [IssueTypes.LOW_WAY_DENSITY]

    def test_empty_metrics(self, scorer):
        quality_score, ranked, recommendations = scorer.score(make_metrics(
            total_nodes=0, total_ways=0, total_relations=0,
            tagged_nodes=0, tagged_ways=0, tagged_relations=0))
        assert ranked == []
        assert quality_score == 100.0
        assert recommendations == [RECOMMEND_COMPLETENESS]

    def test_relation_ratio_and_error_counters(self, scorer):
        metrics = make_metrics(total_relations=101, tagged_relations=101,
                               geometry_errors=3, topology_errors=2)
        issues = scorer.analyze_patterns(metrics)
        assert [(i.issue_type, i.severity) for i in issues] == [
            (IssueTypes.HIGH_RELATION_RATIO, IssueSeverity.MEDIUM),
            (IssueTypes.GEOMETRY_ERRORS, IssueSeverity.HIGH),
            (IssueTypes.TOPOLOGY_ERRORS, IssueSeverity.HIGH),
        ]
        assert issues[1].description == "3 geometry errors found"
        assert issues[2].fix_suggestion == FIX_SUGGESTIONS[IssueTypes.TOPOLOGY_ERRORS]

    def test_custom_weights(self):
        scorer = QualityScorer(ScoringWeights(low_tagging_rate=0.9))
        issues = scorer.analyze_completeness(make_metrics())
        assert [i.issue_type for i in issues] == [IssueTypes.LOW_TAGGING_RATE]


class TestScore:

    @pytest.mark.parametrize("overrides", [
        {},
        {"geometry_errors": 10_000},
        {"topology_errors": 500, "tag_errors": 500},
        {"tagged_nodes": 0, "tagged_ways": 0, "tagged_relations": 0},
        {"completeness_score": 100.0},
    ])
    def test_score_always_bounded(self, scorer, overrides):
        quality_score, _, _ = scorer.score(make_metrics(**overrides))
        assert 0.0 <= quality_score <= 100.0

    def test_many_errors_clamp_to_zero(self, scorer):
        quality_score, _, _ = scorer.score(make_metrics(geometry_errors=60))
        assert quality_score == 0.0

    def test_higher_completeness_never_lowers_score(self, scorer):
        scores = [
            scorer.calculate_score(make_metrics(geometry_errors=20, completeness_score=c), [])
            for c in (0.0, 25.0, 50.0, 75.0, 100.0)
        ]
        assert scores == sorted(scores)
        assert scores[0] == pytest.approx(60.0)
        assert scores[-1] == pytest.approx(90.0)

    def test_perfect_extract_scores_exactly_100(self, scorer):
        quality_score, ranked, _ = scorer.score(make_metrics(completeness_score=100.0), [])
        assert ranked == []
        assert quality_score == 100.0

    def test_prior_issues_are_penalized(self, scorer):
        metrics = make_metrics(geometry_errors=20, completeness_score=0.0)
        critical = issue(IssueTypes.FILE_UNREADABLE, IssueSeverity.CRITICAL)
        assert scorer.calculate_score(metrics, [critical]) == pytest.approx(40.0)


class TestRankingAndRecommendations:

    def test_rank_stable_within_severity(self):
        issues = [
            issue("a", IssueSeverity.MEDIUM),
            issue("b", IssueSeverity.CRITICAL),
            issue("c", IssueSeverity.MEDIUM),
            issue("d", IssueSeverity.LOW),
            issue("e", IssueSeverity.CRITICAL),
        ]
        ranked = QualityScorer.rank_issues(issues)
        assert [i.issue_type for i in ranked] == ["b", "e", "a", "c", "d"]

    def test_all_good(self, scorer):
        assert scorer.generate_recommendations(make_metrics(), []) == [RECOMMEND_ALL_GOOD]

    def test_all_good_despite_unmapped_issue(self, scorer):
        metrics = make_metrics(total_relations=101, tagged_relations=101)
        assert metrics.completeness_score >= 50.0
        _, ranked, recommendations = scorer.score(metrics)
        assert [i.issue_type for i in ranked] == [IssueTypes.HIGH_RELATION_RATIO]
        assert recommendations == [RECOMMEND_ALL_GOOD]

    def test_recommendations_deduplicated(self, scorer):
        metrics = make_metrics(total_nodes=5000, tagged_nodes=5000, total_ways=10, tagged_ways=10)
        prior = [issue(IssueTypes.LOW_WAY_DENSITY, IssueSeverity.MEDIUM)] * 2
        _, ranked, recommendations = scorer.score(metrics, prior)
        assert len(ranked) == 3
        assert recommendations == [RECOMMEND_WAY_DENSITY]

    def test_error_recommendations(self, scorer):
        metrics = make_metrics(geometry_errors=1, topology_errors=1, completeness_score=10.0)
        assert scorer.generate_recommendations(metrics, []) == [
            RECOMMEND_COMPLETENESS, RECOMMEND_GEOMETRY, RECOMMEND_TOPOLOGY
        ]


class TestReports:

    def test_generate_report(self, scorer):
        metrics = make_metrics(geometry_errors=2)
        report = scorer.generate_report("germany_2024-01-01", "germany", metrics)

        assert report.data_file_id == "germany_2024-01-01"
        assert report.region_id == "germany"
        assert report.metrics == metrics
        assert [i.issue_type for i in report.issues] == [IssueTypes.GEOMETRY_ERRORS]
        assert report.recommendations == (RECOMMEND_GEOMETRY,)
        assert 0.0 <= report.quality_score <= 100.0
        assert QualityReport.from_dict(report.to_dict()) == report

    def test_report_ids_unique(self, scorer):
        first = scorer.generate_report("f", "r", make_metrics())
        second = scorer.generate_report("f", "r", make_metrics())
        assert first.id != second.id

    def test_summary_text(self):
        summary = report_summary(make_metrics(), [issue("x", IssueSeverity.CRITICAL)])
        assert summary == (
            "Data contains 1110 elements (1000 nodes, 100 ways, 10 relations) "
            "with 54.1% completeness. 1 critical issues found."
        )

    def test_issue_summary(self):
        issues = [
            issue("a", IssueSeverity.HIGH),
            issue("b", IssueSeverity.CRITICAL),
            issue("c", IssueSeverity.HIGH),
        ]
        assert categorize_issues(issues) == {"high": 2, "critical": 1}
        assert issue_summary(issues) == "3 issues found: 1 critical, 2 high"
        assert issue_summary([]) == "No issues found"


class TestCompareMetrics:

    def test_diff_is_new_minus_old(self):
        old = make_metrics(geometry_errors=5, feature_distribution=FeatureDistribution(highways=10))
        new = make_metrics(total_nodes=1200, tagged_nodes=600, topology_errors=1,
                           feature_distribution=FeatureDistribution(highways=7, buildings=4))
        diff = compare_metrics(old, new)

        assert diff.nodes_diff == 200
        assert diff.ways_diff == 0
        assert diff.relations_diff == 0
        assert diff.errors_diff == -4
        assert diff.completeness_diff == pytest.approx(new.completeness_score - old.completeness_score)
        assert diff.feature_changes["highways"] == -3
        assert diff.feature_changes["buildings"] == 4
        assert diff.feature_changes["boundaries"] == 0

    def test_identical_metrics(self):
        diff = compare_metrics(make_metrics(), make_metrics())
        assert diff.to_dict()["errors_diff"] == 0
        assert set(diff.feature_changes.values()) == {0}


class TestLookupTables:

    def test_tables_cover_every_issue_type(self):
        result = validate_lookup_table_completeness()
        assert result["valid"], result
        assert result["issue_types"] == 9

    def test_descriptions_format(self):
        assert ISSUE_DESCRIPTIONS[IssueTypes.PARSING_ERROR].format(error="bad blob") == \
            "Error parsing OSM data: bad blob"


class TestInputValidation:

    @pytest.mark.parametrize("region_id", ["germany", "germany-bayern", "us_west", "9a"])
    def test_valid_region_ids(self, region_id):
        assert validate_region_id(region_id)["valid"]

    @pytest.mark.parametrize("region_id", ["", None, "Germany", "../etc", "-lead", "a/b", "a b"])
    def test_invalid_region_ids(self, region_id):
        result = validate_region_id(region_id)
        assert not result["valid"]
        assert result["errors"]

    def test_versions(self):
        assert validate_version("2024-03-01")["valid"]
        assert validate_version("latest")["valid"]
        assert not validate_version("latest", allow_latest=False)["valid"]
        assert not validate_version("2024-3-1")["valid"]
        assert not validate_version("2024-03-01.osm.pbf")["valid"]

    def test_admin_levels(self):
        assert validate_admin_level(None)["valid"]
        assert validate_admin_level(0)["valid"]
        assert validate_admin_level(4)["valid"]
        assert not validate_admin_level(5)["valid"]
        assert not validate_admin_level(True)["valid"]
        assert not validate_admin_level("2")["valid"]

    def test_version_from_filename(self):
        assert extract_version_from_filename("germany-2024-03-01.osm.pbf") == "2024-03-01"
        assert extract_version_from_filename("germany-latest.osm.pbf") == "unknown"
