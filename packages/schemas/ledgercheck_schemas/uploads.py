"""Schemas produced while reconciling uploaded extracts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from .accounts import Account, FrozenModel


class IssueKind(str, Enum):
    """Category of a problem found while ingesting a file."""

    VALIDATION = "validation"
    PARSE = "parse"
    WARNING = "warning"


class UploadIssue(FrozenModel):
    """A row- or file-scoped problem; row 0 means the whole file."""

    file_name: str
    row: int = 0
    kind: IssueKind
    message: str
    account_number: Optional[str] = None


class FileSummary(FrozenModel):
    """Outcome of reconciling a single uploaded file."""

    name: str
    size: int
    sheet_name: str
    header_row: Optional[int] = None
    header_mapping: dict[str, str] = Field(default_factory=dict)
    records_scanned: int = 0
    records_imported: int = 0
    rejected: bool = False
    issues: list[UploadIssue] = Field(default_factory=list)


class UploadBatch(FrozenModel):
    """Proposed set of new accounts awaiting an atomic commit."""

    accounts: list[Account]
    files: list[FileSummary]
    issues: list[UploadIssue] = Field(default_factory=list)
    clear_existing: bool = True


class UploadStatus(str, Enum):
    ACTIVE = "Active"
    ARCHIVED = "Archived"


class UploadSession(FrozenModel):
    """History record of a committed upload batch."""

    upload_id: str
    timestamp: datetime
    uploaded_by: Optional[str] = None
    files: list[FileSummary] = Field(default_factory=list)
    records_count: int
    status: UploadStatus = UploadStatus.ACTIVE
    message: Optional[str] = None


__all__ = [
    "FileSummary",
    "IssueKind",
    "UploadBatch",
    "UploadIssue",
    "UploadSession",
    "UploadStatus",
]
