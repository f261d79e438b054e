"""Review workflow state machine.

The transition functions are pure: they validate the action against the
account's current state and return a new ``Account`` (never mutating the
input). Any failure raises before anything is built, so a rejected action
leaves no partial audit entry or score behind. The ``*_account`` helpers run
the same transitions inside ``AccountStore.apply_transition`` so each one is
an atomic read-modify-write on a single account. Corrections go through
``AccountStore.apply_correction``, which stores the account and its log entry
together.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from ledgercheck_schemas import (
    Account,
    AccountEdit,
    Actor,
    AuditEntry,
    CorrectionLogEntry,
    CorrectionResult,
    ReviewStatus,
    Stage,
)

from .config import DEFAULT_VARIANCE_THRESHOLD
from .errors import AlreadyFinalized, MissingReason, Unauthorized
from .scoring import calculate_variance_insight, score_account

if TYPE_CHECKING:
    from .store import AccountStore

logger = logging.getLogger(__name__)

WORKFLOW_SEQUENCE: tuple[Stage, ...] = (
    Stage.CHECKER1,
    Stage.CHECKER2,
    Stage.CHECKER3,
    Stage.CHECKER4,
    Stage.CFO,
)
FINALIZED_LABEL = "Finalized"
FINAL_AUTHORITY = Stage.CFO


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def stage_label(stage: Optional[Stage]) -> str:
    return stage.value if stage is not None else FINALIZED_LABEL


def next_stage(stage: Stage) -> Optional[Stage]:
    """Stage after ``stage``; ``None`` once the CFO has signed off."""
    if stage == Stage.CHECKER1:
        return Stage.CHECKER2
    if stage == Stage.CHECKER2:
        return Stage.CHECKER3
    if stage == Stage.CHECKER3:
        return Stage.CHECKER4
    if stage == Stage.CHECKER4:
        return Stage.CFO
    if stage == Stage.CFO:
        return None
    raise ValueError(f"Unknown workflow stage: {stage!r}")


def _status_after_approval(upcoming: Optional[Stage]) -> ReviewStatus:
    if upcoming is None:
        return ReviewStatus.FINALIZED
    if upcoming == Stage.CFO:
        return ReviewStatus.APPROVED
    return ReviewStatus.PENDING


def _ensure_open(account: Account) -> Stage:
    if account.review_status == ReviewStatus.FINALIZED or account.current_stage is None:
        raise AlreadyFinalized(
            f"Account {account.account_number} has already been finalized"
        )
    return account.current_stage


def _ensure_assigned(account: Account, actor: Actor) -> Stage:
    stage = _ensure_open(account)
    if actor.role != stage:
        raise Unauthorized(
            f"{actor.name} ({actor.role.value}) is not assigned to review "
            f"account {account.account_number} at stage {stage.value}"
        )
    return stage


def _ensure_authority(account: Account, actor: Actor, action: str) -> None:
    if actor.role != FINAL_AUTHORITY:
        raise Unauthorized(
            f"Only {FINAL_AUTHORITY.value} may {action} account "
            f"{account.account_number}; {actor.name} is {actor.role.value}"
        )


def _ensure_reason(account: Account, reason: Optional[str], action: str) -> str:
    if reason is None or not reason.strip():
        raise MissingReason(
            f"A reason is required to {action} account {account.account_number}"
        )
    return reason.strip()


def approve(account: Account, actor: Actor, now: Optional[datetime] = None) -> Account:
    """Advance the account one stage; CFO approval finalizes it."""
    stage = _ensure_assigned(account, actor)
    upcoming = next_stage(stage)
    entry = AuditEntry(
        timestamp=now or _utc_now(),
        actor=actor.name,
        role=actor.role,
        action=f"Approved by {actor.role.value}",
        from_stage=stage.value,
        to_stage=stage_label(upcoming),
    )
    return account.model_copy(
        update={
            "review_status": _status_after_approval(upcoming),
            "current_stage": upcoming,
            "audit_log": [*account.audit_log, entry],
        }
    )


def reject(
    account: Account,
    actor: Actor,
    reason: Optional[str],
    now: Optional[datetime] = None,
) -> Account:
    """Flag a mismatch and send the account back to Checker1."""
    stage = _ensure_assigned(account, actor)
    cleaned_reason = _ensure_reason(account, reason, "reject")
    entry = AuditEntry(
        timestamp=now or _utc_now(),
        actor=actor.name,
        role=actor.role,
        action=f"Rejected by {actor.role.value}",
        from_stage=stage.value,
        to_stage=Stage.CHECKER1.value,
        reason=cleaned_reason,
    )
    return account.model_copy(
        update={
            "review_status": ReviewStatus.MISMATCH,
            "current_stage": Stage.CHECKER1,
            "mistake_count": account.mistake_count + 1,
            "audit_log": [*account.audit_log, entry],
        }
    )


def correct(
    account: Account,
    actor: Actor,
    new_amount: float,
    reason: Optional[str],
    now: Optional[datetime] = None,
    variance_threshold: float = DEFAULT_VARIANCE_THRESHOLD,
) -> CorrectionResult:
    """Replace the balance, rescore the account and log the change.

    Level and priority are computed for the new amount with the mistake
    count as it stood before this correction; the count is then increased.
    """
    _ensure_authority(account, actor, "correct")
    cleaned_reason = _ensure_reason(account, reason, "correct")
    timestamp = now or _utc_now()
    before = account.normalized_balance

    rescored = score_account(account, balance=new_amount)
    variance = calculate_variance_insight(new_amount, before, variance_threshold)
    label = stage_label(account.current_stage)
    entry = AuditEntry(
        timestamp=timestamp,
        actor=actor.name,
        role=actor.role,
        action="Balance adjusted",
        from_stage=label,
        to_stage=label,
        reason=cleaned_reason,
    )
    corrected = rescored.model_copy(
        update={
            "normalized_balance": new_amount,
            "balance_issues": [],
            "previous_balance": before,
            "percent_variance": variance.percent_variance,
            "flag_status": variance.flag_status,
            "frequency_bucket": rescored.threshold_level,
            "mistake_count": account.mistake_count + 1,
            "audit_log": [*account.audit_log, entry],
        }
    )
    correction = CorrectionLogEntry(
        change_id=f"COR-{uuid.uuid4().hex[:10].upper()}",
        account_id=account.id,
        account_number=account.account_number,
        department_id=account.department_id,
        amount_before=before,
        amount_after=new_amount,
        impact=round(abs(before - new_amount), 2),
        actor=actor.name,
        reason=cleaned_reason,
        timestamp=timestamp,
    )
    return CorrectionResult(account=corrected, correction=correction)


def edit(
    account: Account,
    actor: Actor,
    updates: AccountEdit,
    now: Optional[datetime] = None,
) -> Account:
    """Merge non-financial field updates and record who made them."""
    _ensure_authority(account, actor, "edit")
    changes = updates.model_dump(exclude_none=True)
    label = stage_label(account.current_stage)
    entry = AuditEntry(
        timestamp=now or _utc_now(),
        actor=actor.name,
        role=actor.role,
        action=f"Details updated by {actor.role.value}",
        from_stage=label,
        to_stage=label,
        reason=", ".join(sorted(changes)) or None,
    )
    return account.model_copy(
        update={**changes, "audit_log": [*account.audit_log, entry]}
    )


def approve_account(store: "AccountStore", account_id: int, actor: Actor) -> Account:
    updated = store.apply_transition(account_id, lambda acc: approve(acc, actor))
    logger.info(
        "Account %s approved by %s, now at %s",
        updated.account_number,
        actor.role.value,
        stage_label(updated.current_stage),
    )
    return updated


def reject_account(
    store: "AccountStore", account_id: int, actor: Actor, reason: str
) -> Account:
    updated = store.apply_transition(
        account_id, lambda acc: reject(acc, actor, reason)
    )
    logger.info(
        "Account %s rejected by %s (mistakes=%d)",
        updated.account_number,
        actor.role.value,
        updated.mistake_count,
    )
    return updated


def correct_account(
    store: "AccountStore",
    account_id: int,
    actor: Actor,
    new_amount: float,
    reason: str,
    variance_threshold: float = DEFAULT_VARIANCE_THRESHOLD,
) -> CorrectionResult:
    result = store.apply_correction(
        account_id,
        lambda acc: correct(
            acc, actor, new_amount, reason, variance_threshold=variance_threshold
        ),
    )
    logger.info(
        "Account %s corrected from %.2f to %.2f by %s",
        result.account.account_number,
        result.correction.amount_before,
        result.correction.amount_after,
        actor.name,
    )
    return result


def edit_account(
    store: "AccountStore", account_id: int, actor: Actor, updates: AccountEdit
) -> Account:
    return store.apply_transition(account_id, lambda acc: edit(acc, actor, updates))


__all__ = [
    "FINALIZED_LABEL",
    "WORKFLOW_SEQUENCE",
    "approve",
    "approve_account",
    "correct",
    "correct_account",
    "edit",
    "edit_account",
    "next_stage",
    "reject",
    "reject_account",
    "stage_label",
]
