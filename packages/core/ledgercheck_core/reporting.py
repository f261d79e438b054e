"""Read-only rollups over an account snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Sequence

from ledgercheck_schemas import (
    Account,
    BalanceSheetSummary,
    CorrectionLogEntry,
    NumberIssue,
    ReportBundle,
    SeverityCounts,
    ThresholdLevel,
    ThresholdMetric,
    UploadSession,
)

from .scoring import determine_threshold_level
from .workflow import stage_label

logger = logging.getLogger(__name__)

_BALANCED_TOLERANCE = 1.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class _DepartmentTotals:
    department_name: str
    critical: int = 0
    medium: int = 0
    low: int = 0
    confidence_sum: float = 0.0
    total: int = 0
    critical_value: float = 0.0
    medium_value: float = 0.0
    low_value: float = 0.0

    def register(self, account: Account) -> None:
        amount = abs(account.normalized_balance)
        level = account.threshold_level
        if level == ThresholdLevel.CRITICAL:
            self.critical += 1
            self.critical_value += amount
        elif level == ThresholdLevel.MEDIUM:
            self.medium += 1
            self.medium_value += amount
        elif level == ThresholdLevel.LOW:
            self.low += 1
            self.low_value += amount
        else:
            raise ValueError(f"Unknown threshold level: {level!r}")
        self.total += 1
        self.confidence_sum += account.classification_confidence


def compute_threshold_metrics(accounts: Iterable[Account]) -> list[ThresholdMetric]:
    """Severity counts, mean confidence and absolute balance per department."""
    by_department: dict[str, _DepartmentTotals] = {}
    for account in accounts:
        totals = by_department.get(account.department_id)
        if totals is None:
            totals = _DepartmentTotals(department_name=account.department_name)
            by_department[account.department_id] = totals
        totals.register(account)

    return [
        ThresholdMetric(
            department_id=department_id,
            department_name=totals.department_name,
            counts=SeverityCounts(
                critical=totals.critical, medium=totals.medium, low=totals.low
            ),
            average_confidence=(
                totals.confidence_sum / totals.total if totals.total else 0.0
            ),
            total_accounts=totals.total,
            critical_value=totals.critical_value,
            medium_value=totals.medium_value,
            low_value=totals.low_value,
        )
        for department_id, totals in by_department.items()
    ]


def _sum_category(accounts: Sequence[Account], category: str) -> float:
    target = category.lower()
    return sum(
        account.normalized_balance
        for account in accounts
        if account.status_category.lower() == target
    )


def build_balance_sheet_summary(
    accounts: Iterable[Account], now: Optional[datetime] = None
) -> BalanceSheetSummary:
    snapshot = list(accounts)
    assets = _sum_category(snapshot, "Assets")
    liabilities = _sum_category(snapshot, "Liabilities")
    equity = _sum_category(snapshot, "Equity")
    delta = round(assets - (liabilities + equity), 2)
    balanced = abs(delta) < _BALANCED_TOLERANCE

    suggestions: list[str] = []
    if not balanced:
        if assets < liabilities + equity:
            suggestions.append(
                "Review liability accruals: liabilities exceed assets."
            )
        else:
            suggestions.append(
                "Validate asset valuations: assets exceed liabilities + equity."
            )

    return BalanceSheetSummary(
        total_assets=assets,
        total_liabilities=liabilities,
        total_equity=equity,
        delta=delta,
        status="Balanced" if balanced else "Mismatch",
        suggestions=suggestions,
        generated_at=now or _utc_now(),
    )


def collect_number_issues(
    accounts: Iterable[Account], now: Optional[datetime] = None
) -> list[NumberIssue]:
    timestamp = now or _utc_now()
    issues: list[NumberIssue] = []
    for account in accounts:
        for message in account.balance_issues:
            issues.append(
                NumberIssue(
                    id=f"{account.id}-{len(issues) + 1}",
                    account_id=account.id,
                    account_number=account.account_number,
                    message=message,
                    severity=determine_threshold_level(
                        account.normalized_balance,
                        account.mistake_count,
                        account.review_status,
                    ),
                    stage=stage_label(account.current_stage),
                    timestamp=timestamp,
                )
            )
    return issues


def build_report_bundle(
    accounts: Sequence[Account],
    corrections: Sequence[CorrectionLogEntry] = (),
    uploads: Sequence[UploadSession] = (),
    now: Optional[datetime] = None,
) -> ReportBundle:
    """Assemble the data an export needs from one consistent snapshot."""
    timestamp = now or _utc_now()
    snapshot = list(accounts)
    return ReportBundle(
        accounts=snapshot,
        threshold_metrics=compute_threshold_metrics(snapshot),
        balance_summary=build_balance_sheet_summary(snapshot, timestamp),
        corrections=list(corrections),
        uploads=list(uploads),
        generated_at=timestamp,
    )


def write_report_json(bundle: ReportBundle, directory: Path) -> str:
    """Persist the bundle as JSON and return the report file name."""
    directory.mkdir(parents=True, exist_ok=True)
    name = f"gl_review_report_{bundle.generated_at.strftime('%Y%m%d-%H%M%S-%f')}.json"
    (directory / name).write_text(bundle.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Report %s written to %s", name, directory)
    return name


__all__ = [
    "build_balance_sheet_summary",
    "build_report_bundle",
    "collect_number_issues",
    "compute_threshold_metrics",
    "write_report_json",
]
