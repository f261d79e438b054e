"""Tests for threshold levels, priority scores and variance."""

from __future__ import annotations

import pytest
from ledgercheck_core import (
    calculate_priority_score,
    calculate_variance_insight,
    determine_threshold_level,
    score_account,
)
from ledgercheck_core.scoring import parse_manual_severity
from ledgercheck_schemas import (
    ClassificationSource,
    FlagStatus,
    ReviewStatus,
    ThresholdLevel,
)


@pytest.mark.parametrize(
    ("balance", "mistakes", "status", "expected"),
    [
        (6_000_000, 0, ReviewStatus.PENDING, ThresholdLevel.CRITICAL),
        (-6_000_000, 0, ReviewStatus.PENDING, ThresholdLevel.CRITICAL),
        (999, 4, ReviewStatus.PENDING, ThresholdLevel.CRITICAL),
        (999, 0, ReviewStatus.MISMATCH, ThresholdLevel.CRITICAL),
        (1_000_000, 0, ReviewStatus.PENDING, ThresholdLevel.MEDIUM),
        (10, 2, ReviewStatus.PENDING, ThresholdLevel.MEDIUM),
        (10, 3, ReviewStatus.APPROVED, ThresholdLevel.MEDIUM),
        (10, 1, ReviewStatus.PENDING, ThresholdLevel.LOW),
    ],
)
def test_threshold_level(
    balance: float, mistakes: int, status: ReviewStatus, expected: ThresholdLevel
) -> None:
    assert determine_threshold_level(balance, mistakes, status) == expected


def test_priority_score_formula() -> None:
    score = calculate_priority_score(
        -2_000_000, 1, ClassificationSource.FALLBACK, 0.35, ThresholdLevel.MEDIUM
    )

    assert score == pytest.approx(3.0)


def test_priority_score_without_fallback_penalty() -> None:
    score = calculate_priority_score(
        6_000_000, 0, ClassificationSource.HISTORICAL, 0.96, ThresholdLevel.CRITICAL
    )

    assert score == pytest.approx(8.44)


@pytest.mark.parametrize(
    ("current", "previous", "percent", "flag"),
    [
        (110, 100, 10.0, FlagStatus.GREEN),
        (111, 100, 11.0, FlagStatus.RED),
        (80, 100, -20.0, FlagStatus.RED),
        (50, 0, 100.0, FlagStatus.RED),
        (0, 0, 0.0, FlagStatus.GREEN),
    ],
)
def test_variance_insight(
    current: float, previous: float, percent: float, flag: FlagStatus
) -> None:
    insight = calculate_variance_insight(current, previous)

    assert insight.percent_variance == percent
    assert insight.flag_status == flag
    assert insight.previous_balance == previous


def test_variance_with_unknown_previous() -> None:
    insight = calculate_variance_insight(100, None)

    assert insight.note == "previous unknown"
    assert insight.flag_status is None
    assert insight.percent_variance is None


def test_variance_threshold_is_configurable() -> None:
    assert calculate_variance_insight(120, 100, threshold=0.5).flag_status == FlagStatus.GREEN


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        ("C", ThresholdLevel.CRITICAL),
        (" m ", ThresholdLevel.MEDIUM),
        ("l", ThresholdLevel.LOW),
        ("Medium", ThresholdLevel.MEDIUM),
        ("x", None),
        ("", None),
        (None, None),
    ],
)
def test_manual_severity_codes(code: str | None, expected: ThresholdLevel | None) -> None:
    assert parse_manual_severity(code) == expected


def test_score_account_uses_substitute_balance(make_account) -> None:
    account = make_account(normalized_balance=10.0)

    rescored = score_account(account, balance=5_500_000)

    assert rescored.threshold_level == ThresholdLevel.CRITICAL
    assert rescored.normalized_balance == 10.0
    assert rescored.priority_score == pytest.approx(7.74)
