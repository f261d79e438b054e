"""Risk scoring: threshold levels, priority scores and variance flags."""

from __future__ import annotations

from typing import Optional

from ledgercheck_schemas import (
    Account,
    ClassificationSource,
    FlagStatus,
    ReviewStatus,
    ThresholdLevel,
    VarianceInsight,
)

from .config import DEFAULT_VARIANCE_THRESHOLD

CRITICAL_BALANCE = 5_000_000
MEDIUM_BALANCE = 1_000_000

SEVERITY_WEIGHTS: dict[ThresholdLevel, float] = {
    ThresholdLevel.CRITICAL: 1.4,
    ThresholdLevel.MEDIUM: 1.1,
    ThresholdLevel.LOW: 0.7,
}

_MANUAL_SEVERITY_CODES: dict[str, ThresholdLevel] = {
    "C": ThresholdLevel.CRITICAL,
    "M": ThresholdLevel.MEDIUM,
    "L": ThresholdLevel.LOW,
}


def _severity_from_mistakes(mistake_count: int) -> ThresholdLevel:
    if mistake_count >= 3:
        return ThresholdLevel.CRITICAL
    if mistake_count == 2:
        return ThresholdLevel.MEDIUM
    return ThresholdLevel.LOW


def determine_threshold_level(
    balance: float, mistake_count: int, review_status: ReviewStatus
) -> ThresholdLevel:
    amount = abs(balance)
    if (
        amount >= CRITICAL_BALANCE
        or mistake_count >= 4
        or review_status == ReviewStatus.MISMATCH
    ):
        return ThresholdLevel.CRITICAL
    if amount >= MEDIUM_BALANCE or mistake_count >= 2:
        return ThresholdLevel.MEDIUM
    # Only reached with fewer than two mistakes.
    return _severity_from_mistakes(mistake_count)


def calculate_priority_score(
    balance: float,
    mistake_count: int,
    classification_source: ClassificationSource,
    classification_confidence: float,
    level: ThresholdLevel,
) -> float:
    amount = abs(balance)
    source_weight = 0.1 if classification_source == ClassificationSource.FALLBACK else 0.0
    score = (
        (amount / MEDIUM_BALANCE) * SEVERITY_WEIGHTS[level]
        + mistake_count * 0.05
        + source_weight
        + (1 - classification_confidence)
    )
    return round(score, 2)


def parse_manual_severity(code: Optional[str]) -> Optional[ThresholdLevel]:
    """Map a C/M/L cell (or a full level name) to a threshold level."""
    if not code:
        return None
    text = code.strip()
    for level in ThresholdLevel:
        if text.lower() == level.value.lower():
            return level
    return _MANUAL_SEVERITY_CODES.get(text.upper())


def calculate_variance_insight(
    current: float,
    previous: Optional[float],
    threshold: float = DEFAULT_VARIANCE_THRESHOLD,
) -> VarianceInsight:
    if previous is None:
        return VarianceInsight(note="previous unknown")
    if previous == 0:
        baseline = abs(current) if current != 0 else 1.0
    else:
        baseline = previous
    percent = round((current - previous) / baseline * 100, 2)
    return VarianceInsight(
        percent_variance=percent,
        flag_status=flag_for_percent(percent, threshold),
        previous_balance=previous,
    )


def flag_for_percent(
    percent: float, threshold: float = DEFAULT_VARIANCE_THRESHOLD
) -> FlagStatus:
    return FlagStatus.RED if abs(percent) > threshold * 100 else FlagStatus.GREEN


def score_account(account: Account, balance: Optional[float] = None) -> Account:
    """Recompute level and priority, optionally for a substitute balance."""
    amount = account.normalized_balance if balance is None else balance
    level = determine_threshold_level(
        amount, account.mistake_count, account.review_status
    )
    priority = calculate_priority_score(
        amount,
        account.mistake_count,
        account.classification_source,
        account.classification_confidence,
        level,
    )
    return account.model_copy(
        update={"threshold_level": level, "priority_score": priority}
    )


__all__ = [
    "CRITICAL_BALANCE",
    "MEDIUM_BALANCE",
    "SEVERITY_WEIGHTS",
    "calculate_priority_score",
    "calculate_variance_insight",
    "determine_threshold_level",
    "flag_for_percent",
    "parse_manual_severity",
    "score_account",
]
