"""Request and response envelopes for the HTTP engine."""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from .accounts import Account, AccountEdit, Actor, FrozenModel
from .reports import ReportFrequency
from .uploads import UploadBatch, UploadSession


class UploadedFilePayload(FrozenModel):
    """A single spreadsheet or CSV file encoded as base64."""

    name: str
    content_base64: str


class UploadRequest(FrozenModel):
    files: list[UploadedFilePayload]
    clear_existing: bool = True
    uploaded_by: Optional[str] = None


class UploadResponse(FrozenModel):
    batch: UploadBatch
    session: Optional[UploadSession] = None


class AccountListResponse(FrozenModel):
    accounts: list[Account]


class RejectRequest(FrozenModel):
    actor: Actor
    reason: str


class CorrectionRequest(FrozenModel):
    actor: Actor
    amount: float
    reason: str


class EditRequest(FrozenModel):
    actor: Actor
    updates: AccountEdit


class ScheduleCreateRequest(FrozenModel):
    frequency: ReportFrequency
    recipients: list[str] = Field(default_factory=list)


__all__ = [
    "AccountListResponse",
    "CorrectionRequest",
    "EditRequest",
    "RejectRequest",
    "ScheduleCreateRequest",
    "UploadRequest",
    "UploadResponse",
    "UploadedFilePayload",
]
