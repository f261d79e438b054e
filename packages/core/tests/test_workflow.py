"""Tests for the review workflow transitions."""

from __future__ import annotations

import pytest
from ledgercheck_core import (
    AlreadyFinalized,
    MissingReason,
    Unauthorized,
    approve,
    correct,
    edit,
    reject,
)
from ledgercheck_core.workflow import WORKFLOW_SEQUENCE, next_stage, stage_label
from ledgercheck_schemas import (
    AccountEdit,
    Actor,
    FlagStatus,
    ReviewStatus,
    Stage,
    ThresholdLevel,
)

CFO = Actor(name="Meera", role=Stage.CFO)


def _actor(stage: Stage) -> Actor:
    return Actor(name=f"{stage.value} reviewer", role=stage)


def test_approval_chain_finalizes(make_account) -> None:
    account = make_account()

    for stage in WORKFLOW_SEQUENCE[:-1]:
        account = approve(account, _actor(stage))
    assert account.review_status == ReviewStatus.APPROVED
    assert account.current_stage == Stage.CFO

    account = approve(account, CFO)

    assert account.review_status == ReviewStatus.FINALIZED
    assert account.current_stage is None
    assert [entry.action for entry in account.audit_log] == [
        "Approved by Checker1",
        "Approved by Checker2",
        "Approved by Checker3",
        "Approved by Checker4",
        "Approved by CFO",
    ]
    assert account.audit_log[-1].from_stage == "CFO"
    assert account.audit_log[-1].to_stage == "Finalized"


def test_intermediate_approval_stays_pending(make_account) -> None:
    updated = approve(make_account(), _actor(Stage.CHECKER1))

    assert updated.review_status == ReviewStatus.PENDING
    assert updated.current_stage == Stage.CHECKER2


def test_approve_requires_assigned_role(make_account) -> None:
    account = make_account()

    with pytest.raises(Unauthorized):
        approve(account, _actor(Stage.CHECKER2))

    assert account.audit_log == []
    assert account.current_stage == Stage.CHECKER1


def test_finalized_account_rejects_further_actions(make_account) -> None:
    account = make_account(review_status=ReviewStatus.FINALIZED, current_stage=None)

    with pytest.raises(AlreadyFinalized):
        approve(account, CFO)
    with pytest.raises(AlreadyFinalized):
        reject(account, CFO, "late change")


def test_reject_resets_to_first_checker(make_account) -> None:
    account = make_account(current_stage=Stage.CHECKER2, mistake_count=1)

    updated = reject(account, _actor(Stage.CHECKER2), "wrong balance")

    assert updated.review_status == ReviewStatus.MISMATCH
    assert updated.current_stage == Stage.CHECKER1
    assert updated.mistake_count == 2
    entry = updated.audit_log[-1]
    assert entry.reason == "wrong balance"
    assert entry.from_stage == "Checker2"
    assert entry.to_stage == "Checker1"


@pytest.mark.parametrize("reason", ["", "   ", None])
def test_reject_requires_reason(make_account, reason: str | None) -> None:
    with pytest.raises(MissingReason):
        reject(make_account(), _actor(Stage.CHECKER1), reason)


def test_reject_requires_assigned_role(make_account) -> None:
    with pytest.raises(Unauthorized):
        reject(make_account(), _actor(Stage.CHECKER3), "wrong balance")


def test_correction_rescores_and_logs(make_account) -> None:
    account = make_account(
        current_stage=Stage.CHECKER3, balance_issues=["Detected decimal precision"]
    )

    result = correct(account, CFO, 6_000_000, "Restated after bank confirmation")
    updated = result.account

    assert updated.normalized_balance == 6_000_000
    assert updated.threshold_level == ThresholdLevel.CRITICAL
    assert updated.frequency_bucket == ThresholdLevel.CRITICAL
    assert updated.priority_score == pytest.approx(8.44)
    assert updated.mistake_count == 1
    assert updated.balance_issues == []
    assert updated.previous_balance == 1000.0
    assert updated.percent_variance == pytest.approx(599900.0)
    assert updated.flag_status == FlagStatus.RED
    assert updated.current_stage == Stage.CHECKER3
    assert updated.audit_log[-1].action == "Balance adjusted"

    correction = result.correction
    assert correction.amount_before == 1000.0
    assert correction.amount_after == 6_000_000
    assert correction.impact == 5_999_000
    assert correction.reason == "Restated after bank confirmation"
    assert correction.change_id.startswith("COR-")


def test_correction_is_reserved_for_cfo(make_account) -> None:
    with pytest.raises(Unauthorized):
        correct(make_account(), _actor(Stage.CHECKER1), 10, "fix")


def test_correction_requires_reason(make_account) -> None:
    with pytest.raises(MissingReason):
        correct(make_account(), CFO, 10, " ")


def test_edit_merges_metadata_only(make_account) -> None:
    account = make_account(current_stage=Stage.CHECKER2)

    updated = edit(
        account, CFO, AccountEdit(spoc="Asha", recon_status="Non Recon")
    )

    assert updated.spoc == "Asha"
    assert updated.recon_status == "Non Recon"
    assert updated.current_stage == Stage.CHECKER2
    assert updated.review_status == account.review_status
    assert updated.threshold_level == account.threshold_level
    assert updated.audit_log[-1].reason == "recon_status, spoc"


def test_edit_is_reserved_for_cfo(make_account) -> None:
    with pytest.raises(Unauthorized):
        edit(make_account(), _actor(Stage.CHECKER1), AccountEdit(spoc="Asha"))


def test_stage_sequence_helpers() -> None:
    assert [next_stage(stage) for stage in WORKFLOW_SEQUENCE] == [
        Stage.CHECKER2,
        Stage.CHECKER3,
        Stage.CHECKER4,
        Stage.CFO,
        None,
    ]
    assert stage_label(None) == "Finalized"
    assert stage_label(Stage.CHECKER4) == "Checker4"
