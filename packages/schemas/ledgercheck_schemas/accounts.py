"""Typed schemas for GL accounts under review."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FrozenModel(BaseModel):
    """Base model with shared configuration settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class Stage(str, Enum):
    """Reviewer stage an account is waiting on."""

    CHECKER1 = "Checker1"
    CHECKER2 = "Checker2"
    CHECKER3 = "Checker3"
    CHECKER4 = "Checker4"
    CFO = "CFO"


class ReviewStatus(str, Enum):
    """Lifecycle state for an account in the review workflow."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    MISMATCH = "Mismatch"
    FINALIZED = "Finalized"


class ThresholdLevel(str, Enum):
    """Severity bucket used to prioritise review work."""

    CRITICAL = "Critical"
    MEDIUM = "Medium"
    LOW = "Low"


class ClassificationSource(str, Enum):
    HISTORICAL = "historical"
    RULE = "rule"
    MANUAL = "manual"
    FALLBACK = "fallback"


class EvidenceKind(str, Enum):
    HISTORICAL = "historical"
    PATTERN = "pattern"
    KEYWORD = "keyword"
    PROVIDED = "provided"
    FALLBACK = "fallback"


class FlagStatus(str, Enum):
    GREEN = "Green"
    RED = "Red"


class Actor(FrozenModel):
    """A signed-in reviewer acting on an account."""

    name: str
    role: Stage


class Evidence(FrozenModel):
    """One signal that contributed to a classification decision."""

    kind: EvidenceKind
    description: str
    weight: float
    confidence: float


class Classification(FrozenModel):
    """Department assignment produced by the classification engine."""

    department_name: str
    department_id: str
    logic_id: str
    confidence: float = Field(ge=0.2, le=0.99)
    source: ClassificationSource
    evidence: list[Evidence] = Field(default_factory=list)
    notes: Optional[str] = None
    keywords_matched: list[str] = Field(default_factory=list)
    patterns_matched: list[str] = Field(default_factory=list)


class NormalizationResult(FrozenModel):
    """Signed numeric view of a free-form balance string."""

    normalized: float
    currency: str
    issues: list[str] = Field(default_factory=list)
    cleaned_value: str


class VarianceInsight(FrozenModel):
    """Movement of a balance against its previous value."""

    percent_variance: Optional[float] = None
    flag_status: Optional[FlagStatus] = None
    previous_balance: Optional[float] = None
    note: Optional[str] = None


class AuditEntry(FrozenModel):
    """Append-only record of an action taken on an account."""

    timestamp: datetime
    actor: str
    role: Stage
    action: str
    from_stage: str
    to_stage: str
    reason: Optional[str] = None


class Account(FrozenModel):
    """A general-ledger account and its review state."""

    id: int
    account_number: str
    account_name: str

    department_name: str
    department_id: str
    logic_id: str
    input_department: Optional[str] = None
    classification_confidence: float = Field(ge=0.2, le=0.99)
    classification_source: ClassificationSource
    evidence: list[Evidence] = Field(default_factory=list)
    classification_notes: Optional[str] = None
    matched_keywords: list[str] = Field(default_factory=list)
    matched_patterns: list[str] = Field(default_factory=list)

    main_head: str = "N/A"
    sub_head: str = "N/A"
    bs_pl: str = "BS"
    status_category: str = "Assets"
    spoc: str = "N/A"
    reviewer: str = "N/A"
    department_reviewer: str = ""

    balance_raw: Optional[str] = None
    normalized_balance: float = 0.0
    currency: str
    balance_issues: list[str] = Field(default_factory=list)
    balance_date: Optional[date] = None

    threshold_level: ThresholdLevel
    priority_score: float
    frequency_bucket: Optional[ThresholdLevel] = None
    percent_variance: Optional[float] = None
    previous_balance: Optional[float] = None
    flag_status: Optional[FlagStatus] = None

    recon_status: str = "Recon"
    confirmation_source: str = "Internal"
    type_of_report: str = ""
    analysis_required: str = "No"
    working_needed: str = ""
    query_type: str = ""
    review_checkpoint: str = ""
    report_url: str = ""

    review_status: ReviewStatus = ReviewStatus.PENDING
    current_stage: Optional[Stage] = Stage.CHECKER1
    mistake_count: int = Field(default=0, ge=0)
    audit_log: list[AuditEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_stage_matches_status(self) -> "Account":
        finalized = self.review_status == ReviewStatus.FINALIZED
        if finalized != (self.current_stage is None):
            msg = (
                f"Account {self.account_number}: stage {self.current_stage} "
                f"is inconsistent with status {self.review_status.value}"
            )
            raise ValueError(msg)
        return self


class AccountEdit(FrozenModel):
    """Non-financial fields a reviewer may update in place."""

    account_name: Optional[str] = None
    main_head: Optional[str] = None
    sub_head: Optional[str] = None
    bs_pl: Optional[str] = None
    status_category: Optional[str] = None
    spoc: Optional[str] = None
    reviewer: Optional[str] = None
    department_reviewer: Optional[str] = None
    recon_status: Optional[str] = None
    confirmation_source: Optional[str] = None
    type_of_report: Optional[str] = None
    analysis_required: Optional[str] = None
    working_needed: Optional[str] = None
    query_type: Optional[str] = None
    review_checkpoint: Optional[str] = None
    report_url: Optional[str] = None
    classification_notes: Optional[str] = None


class CorrectionLogEntry(FrozenModel):
    """Balance correction recorded independently of the audit log."""

    change_id: str
    account_id: int
    account_number: str
    department_id: str
    amount_before: float
    amount_after: float
    impact: float
    actor: str
    reason: str
    timestamp: datetime


class CorrectionResult(FrozenModel):
    """Updated account plus the correction entry it produced."""

    account: Account
    correction: CorrectionLogEntry


__all__ = [
    "Account",
    "AccountEdit",
    "Actor",
    "AuditEntry",
    "Classification",
    "ClassificationSource",
    "CorrectionLogEntry",
    "CorrectionResult",
    "Evidence",
    "EvidenceKind",
    "FlagStatus",
    "FrozenModel",
    "NormalizationResult",
    "ReviewStatus",
    "Stage",
    "ThresholdLevel",
    "VarianceInsight",
]
