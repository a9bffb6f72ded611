from __future__ import annotations

import pytest

from services.analytics import correlation, data_quality
from services.analytics.field_rules import DEFAULT_RULE_TABLE, classify_value, parse_date
from services.analytics.records import numeric_columns


def test_empty_record_set_scores_zero() -> None:
    metrics = data_quality.score([])
    assert metrics == data_quality.DataQualityMetrics()
    assert metrics.as_dict()["missingValues"] == 0


def test_half_missing_values_gives_fifty_percent_completeness() -> None:
    records = [{"a": 1, "b": None}, {"a": None, "b": 2}]
    metrics = data_quality.score(records)

    assert metrics.completeness == pytest.approx(50.0)
    assert metrics.missing_values == 2
    assert metrics.duplicates == 0


def test_field_rules_drive_accuracy() -> None:
    records = [
        {"email": "ana@example.com", "amount": 10},
        {"email": "not-an-email", "amount": "ten"},
    ]
    metrics = data_quality.score(records)

    assert metrics.accuracy == pytest.approx(50.0)
    assert metrics.completeness == pytest.approx(100.0)


def test_duplicates_are_counted_after_first_occurrence() -> None:
    records = [{"a": 1, "b": 2}, {"b": 2, "a": 1}, {"a": 1, "b": 2}, {"a": 3, "b": 4}]
    assert data_quality.score(records).duplicates == 2


def test_consistency_tracks_dominant_type_share() -> None:
    records = [{"v": 1}, {"v": 2}, {"v": "x"}, {"v": 4}]
    assert data_quality.score(records).consistency == pytest.approx(75.0)


def test_quality_report_includes_recommendations() -> None:
    metrics = data_quality.DataQualityMetrics(completeness=50.0, accuracy=50.0, consistency=100.0, duplicates=1)
    report = data_quality.build_quality_report(metrics, row_count=10)

    assert "Completeness: 50.00% (poor)" in report
    assert "Remove duplicate records" in report
    assert data_quality.quality_grade(96) == "excellent"


def test_date_rule_accepts_common_formats() -> None:
    assert parse_date("2024-03-01T10:00:00Z") is not None
    assert parse_date("01/03/2024") is not None
    assert parse_date("yesterday") is None
    assert DEFAULT_RULE_TABLE.is_valid("order_date", "2024-03-01")
    assert not DEFAULT_RULE_TABLE.is_valid("order_date", "soon")
    assert classify_value("2024-03-01") == "date_string"
    assert classify_value(True) == "boolean"


def test_numeric_columns_require_majority_of_numbers() -> None:
    records = [{"n": 1, "s": "a"}, {"n": 2, "s": 3}, {"n": None, "s": "b"}]
    assert numeric_columns(records) == {"n": [1.0, 2.0]}


def test_correlations_are_ranked_and_thresholded() -> None:
    records = [
        {"x": index, "y": 2 * index + 1, "z": (-1) ** index, "w": 10 - index}
        for index in range(8)
    ]
    found = correlation.find_correlations(records)

    assert found
    assert all(abs(item.correlation) >= correlation.MIN_ABS_CORRELATION for item in found)
    assert abs(found[0].correlation) == pytest.approx(1.0)
    assert len(found) <= correlation.MAX_RESULTS
    assert found[0].strength == "strong"
    pairs = {(item.field1, item.field2) for item in found}
    assert ("x", "z") not in pairs


def test_correlation_needs_four_paired_rows() -> None:
    records = [{"x": 1, "y": 2}, {"x": 2, "y": 4}, {"x": 3, "y": 6}]
    assert correlation.find_correlations(records) == []


def test_numeric_rule_matches_whole_words_only() -> None:
    assert DEFAULT_RULE_TABLE.is_valid("country", "Spain")
    assert DEFAULT_RULE_TABLE.is_valid("account", "ACME-42")
    assert not DEFAULT_RULE_TABLE.is_valid("itemCount", "many")
    assert not DEFAULT_RULE_TABLE.is_valid("unit_price", "free")
    assert not DEFAULT_RULE_TABLE.is_valid("order_amounts", "lots")
    assert DEFAULT_RULE_TABLE.is_valid("emailAddress", "ana@example.com")
    assert not DEFAULT_RULE_TABLE.is_valid("emailAddress", "ana")


def test_text_columns_named_like_counts_do_not_lower_accuracy() -> None:
    records = [{"country": "ES", "account": "a-1"}, {"country": "FR", "account": "a-2"}]
    assert data_quality.score(records).accuracy == pytest.approx(100.0)
