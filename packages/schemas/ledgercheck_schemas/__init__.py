"""Shared Pydantic schemas for LedgerCheck."""

from .accounts import (
    Account,
    AccountEdit,
    Actor,
    AuditEntry,
    Classification,
    ClassificationSource,
    CorrectionLogEntry,
    CorrectionResult,
    Evidence,
    EvidenceKind,
    FrozenModel,
    FlagStatus,
    NormalizationResult,
    ReviewStatus,
    Stage,
    ThresholdLevel,
    VarianceInsight,
)
from .api import (
    AccountListResponse,
    CorrectionRequest,
    EditRequest,
    RejectRequest,
    ScheduleCreateRequest,
    UploadedFilePayload,
    UploadRequest,
    UploadResponse,
)
from .reports import (
    BalanceSheetSummary,
    NumberIssue,
    ReportBundle,
    ReportFrequency,
    ReportJob,
    ReportSchedule,
    SeverityCounts,
    ThresholdMetric,
)
from .uploads import (
    FileSummary,
    IssueKind,
    UploadBatch,
    UploadIssue,
    UploadSession,
    UploadStatus,
)

__all__ = [
    "Account",
    "AccountEdit",
    "AccountListResponse",
    "Actor",
    "AuditEntry",
    "BalanceSheetSummary",
    "Classification",
    "ClassificationSource",
    "CorrectionLogEntry",
    "CorrectionRequest",
    "CorrectionResult",
    "EditRequest",
    "Evidence",
    "EvidenceKind",
    "FileSummary",
    "FlagStatus",
    "FrozenModel",
    "IssueKind",
    "NormalizationResult",
    "NumberIssue",
    "RejectRequest",
    "ReportBundle",
    "ReportFrequency",
    "ReportJob",
    "ReportSchedule",
    "ReviewStatus",
    "ScheduleCreateRequest",
    "SeverityCounts",
    "Stage",
    "ThresholdLevel",
    "ThresholdMetric",
    "UploadBatch",
    "UploadIssue",
    "UploadRequest",
    "UploadResponse",
    "UploadSession",
    "UploadStatus",
    "UploadedFilePayload",
    "VarianceInsight",
]
