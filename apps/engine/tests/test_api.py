"""Integration tests for engine endpoints."""

from __future__ import annotations

import base64
import csv
import io
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from ledgercheck_core import Settings
from ledgercheck_engine.main import create_app

SESSION = "/sessions/q1-close"
HEADERS = [
    "G/L Account Number",
    "G/L Acct",
    "Responsible Department",
    "Balance",
    "Status",
]


def _encoded_csv(rows: list[list[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(HEADERS)
    writer.writerows(rows)
    return base64.b64encode(buffer.getvalue().encode("utf-8")).decode("ascii")


def _upload_payload(rows: list[list[str]], **extra: object) -> dict[str, object]:
    return {
        "files": [{"name": "extract.csv", "content_base64": _encoded_csv(rows)}],
        "uploaded_by": "Ravi",
        **extra,
    }


def _actor(role: str) -> dict[str, str]:
    return {"name": f"{role} reviewer", "role": role}


@pytest.fixture
def client(tmp_path: Path) -> TestClient:
    return TestClient(create_app(Settings(data_root=tmp_path)))


@pytest.fixture
def account_ids(client: TestClient) -> dict[str, int]:
    response = client.post(
        f"{SESSION}/uploads",
        json=_upload_payload(
            [
                ["101000", "Cash operating account", "Finance", "100", "Assets"],
                ["201000", "Payable ledger", "Procurement", "60", "Liabilities"],
                ["301000", "Share capital", "Finance", "40.5", "Equity"],
            ]
        ),
    )
    assert response.status_code == 200
    accounts = response.json()["batch"]["accounts"]
    return {acc["account_number"]: acc["id"] for acc in accounts}


def test_upload_commits_batch_and_session(client: TestClient, account_ids) -> None:
    listing = client.get(f"{SESSION}/accounts").json()["accounts"]
    uploads = client.get(f"{SESSION}/uploads").json()

    assert sorted(acc["account_number"] for acc in listing) == [
        "101000",
        "201000",
        "301000",
    ]
    assert len(uploads) == 1
    assert uploads[0]["records_count"] == 3
    assert uploads[0]["status"] == "Active"
    assert uploads[0]["uploaded_by"] == "Ravi"


def test_preview_does_not_commit(client: TestClient) -> None:
    response = client.post(
        f"{SESSION}/uploads/preview",
        json=_upload_payload([["101000", "Cash", "Finance", "1", "Assets"]]),
    )

    assert response.status_code == 200
    assert response.json()["session"] is None
    assert len(response.json()["batch"]["accounts"]) == 1
    assert client.get(f"{SESSION}/accounts").json()["accounts"] == []


def test_upload_without_importable_rows_is_rejected(client: TestClient) -> None:
    payload = {
        "files": [
            {
                "name": "notes.csv",
                "content_base64": base64.b64encode(b"Foo,Bar,Baz\n1,2,3\n").decode(),
            }
        ]
    }

    response = client.post(f"{SESSION}/uploads", json=payload)

    assert response.status_code == 400
    assert response.json()["detail"]["issues"][0]["kind"] == "parse"


def test_invalid_base64_is_rejected(client: TestClient) -> None:
    payload = {"files": [{"name": "extract.csv", "content_base64": "***"}]}

    response = client.post(f"{SESSION}/uploads", json=payload)

    assert response.status_code == 400


def test_approval_chain_over_http(client: TestClient, account_ids) -> None:
    account_id = account_ids["101000"]
    url = f"{SESSION}/accounts/{account_id}/approve"

    for role in ("Checker1", "Checker2", "Checker3", "Checker4"):
        assert client.post(url, json=_actor(role)).status_code == 200
    assert client.get(f"{SESSION}/accounts/{account_id}").json()["review_status"] == "Approved"

    final = client.post(url, json=_actor("CFO"))
    assert final.status_code == 200
    assert final.json()["review_status"] == "Finalized"
    assert final.json()["current_stage"] is None

    again = client.post(url, json=_actor("CFO"))
    assert again.status_code == 409


def test_wrong_reviewer_is_forbidden(client: TestClient, account_ids) -> None:
    account_id = account_ids["201000"]

    response = client.post(
        f"{SESSION}/accounts/{account_id}/approve", json=_actor("Checker2")
    )

    assert response.status_code == 403
    account = client.get(f"{SESSION}/accounts/{account_id}").json()
    assert len(account["audit_log"]) == 1
    assert account["current_stage"] == "Checker1"


def test_reject_requires_reason(client: TestClient, account_ids) -> None:
    url = f"{SESSION}/accounts/{account_ids['101000']}/reject"

    missing = client.post(url, json={"actor": _actor("Checker1"), "reason": " "})
    rejected = client.post(
        url, json={"actor": _actor("Checker1"), "reason": "wrong balance"}
    )

    assert missing.status_code == 422
    assert rejected.status_code == 200
    assert rejected.json()["review_status"] == "Mismatch"
    assert rejected.json()["mistake_count"] == 1


def test_correction_and_edit_are_cfo_only(client: TestClient, account_ids) -> None:
    account_id = account_ids["101000"]
    corrections_url = f"{SESSION}/accounts/{account_id}/corrections"

    forbidden = client.post(
        corrections_url,
        json={"actor": _actor("Checker1"), "amount": 6_000_000, "reason": "restated"},
    )
    corrected = client.post(
        corrections_url,
        json={"actor": _actor("CFO"), "amount": 6_000_000, "reason": "restated"},
    )
    edit_forbidden = client.patch(
        f"{SESSION}/accounts/{account_id}",
        json={"actor": _actor("Checker1"), "updates": {"spoc": "Asha"}},
    )
    edited = client.patch(
        f"{SESSION}/accounts/{account_id}",
        json={"actor": _actor("CFO"), "updates": {"spoc": "Asha"}},
    )

    assert forbidden.status_code == 403
    assert corrected.status_code == 200
    assert corrected.json()["account"]["threshold_level"] == "Critical"
    assert corrected.json()["correction"]["impact"] == 5_999_900
    assert edit_forbidden.status_code == 403
    assert edited.json()["spoc"] == "Asha"
    [entry] = client.get(f"{SESSION}/corrections").json()
    assert entry["amount_after"] == 6_000_000


def test_unknown_account_is_not_found(client: TestClient, account_ids) -> None:
    response = client.get(f"{SESSION}/accounts/999")

    assert response.status_code == 404
    assert response.json()["detail"] == "Account 999 not found in review store"


def test_report_endpoints(client: TestClient, account_ids, tmp_path: Path) -> None:
    balance = client.get(f"{SESSION}/reports/balance-sheet").json()
    metrics = client.get(f"{SESSION}/reports/threshold-metrics").json()
    issues = client.get(f"{SESSION}/reports/number-issues").json()

    assert balance["status"] == "Balanced"
    assert balance["delta"] == -0.5
    assert {m["department_id"] for m in metrics} == {"FIN001", "PUR001"}
    assert [issue["account_number"] for issue in issues] == ["301000"]


def test_manual_and_scheduled_reports(
    client: TestClient, account_ids, tmp_path: Path
) -> None:
    job = client.post(f"{SESSION}/reports").json()
    schedule = client.post(
        f"{SESSION}/reports/schedules",
        json={"frequency": "Quarterly", "recipients": ["cfo@example.com"]},
    ).json()

    assert job["status"] == "Success"
    assert (tmp_path / "q1-close" / "reports" / job["report_name"]).exists()
    assert schedule["frequency"] == "Quarterly"
    assert [s["id"] for s in client.get(f"{SESSION}/reports/schedules").json()] == [
        schedule["id"]
    ]
    assert client.post(f"{SESSION}/reports/schedules/run-due").json() == []
    assert [j["id"] for j in client.get(f"{SESSION}/reports/jobs").json()] == [job["id"]]


def test_shutdown_stops_session_schedulers(tmp_path: Path) -> None:
    app = create_app(Settings(data_root=tmp_path), run_scheduler_thread=True)

    with TestClient(app) as client:
        client.post(f"{SESSION}/reports")
        client.post("/sessions/q2-close/reports")
        schedulers = dict(app.state.schedulers)
        assert sorted(schedulers) == ["q1-close", "q2-close"]
        assert all(scheduler.running for scheduler in schedulers.values())

    assert app.state.schedulers == {}
    assert not any(scheduler.running for scheduler in schedulers.values())
