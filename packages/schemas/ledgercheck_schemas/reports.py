"""Read-only rollups and report scheduling schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import Field

from .accounts import Account, CorrectionLogEntry, FrozenModel, ThresholdLevel
from .uploads import UploadSession


class SeverityCounts(FrozenModel):
    critical: int = 0
    medium: int = 0
    low: int = 0


class ThresholdMetric(FrozenModel):
    """Per-department severity rollup."""

    department_id: str
    department_name: str
    counts: SeverityCounts
    average_confidence: float
    total_accounts: int
    critical_value: float
    medium_value: float
    low_value: float


class BalanceSheetSummary(FrozenModel):
    """Assets versus liabilities plus equity for the current snapshot."""

    total_assets: float
    total_liabilities: float
    total_equity: float
    delta: float
    status: Literal["Balanced", "Mismatch"]
    suggestions: list[str] = Field(default_factory=list)
    generated_at: datetime


class NumberIssue(FrozenModel):
    """Balance normalisation warning surfaced for reviewers."""

    id: str
    account_id: int
    account_number: str
    message: str
    severity: ThresholdLevel
    stage: Optional[str] = None
    timestamp: datetime
    source: str = "Normalization"


class ReportBundle(FrozenModel):
    """Everything a report writer needs to render an export."""

    accounts: list[Account]
    threshold_metrics: list[ThresholdMetric]
    balance_summary: BalanceSheetSummary
    corrections: list[CorrectionLogEntry]
    uploads: list[UploadSession]
    generated_at: datetime


class ReportFrequency(str, Enum):
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    HALF_YEARLY = "Half-Yearly"


class ReportSchedule(FrozenModel):
    """Recurring report definition."""

    id: str
    frequency: ReportFrequency
    next_run: datetime
    recipients: list[str] = Field(default_factory=list)
    active: bool = True
    last_run: Optional[datetime] = None


class ReportJob(FrozenModel):
    """Result of one report generation run."""

    id: str
    generated_at: datetime
    report_name: str
    status: Literal["Success", "Failed"]
    schedule_id: Optional[str] = None
    notes: Optional[str] = None


__all__ = [
    "BalanceSheetSummary",
    "NumberIssue",
    "ReportBundle",
    "ReportFrequency",
    "ReportJob",
    "ReportSchedule",
    "SeverityCounts",
    "ThresholdMetric",
]
