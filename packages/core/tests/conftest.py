"""Shared builders for the core test-suite."""

from __future__ import annotations

import csv
import io
from typing import Any, Callable

import pytest
from ledgercheck_core import UploadedFile
from ledgercheck_schemas import Account, ClassificationSource, ThresholdLevel

BASE_HEADERS = [
    "G/L Account Number",
    "G/L Acct",
    "Responsible Department",
    "Balance",
    "Status",
]


def build_account(**overrides: Any) -> Account:
    values: dict[str, Any] = {
        "id": 1,
        "account_number": "101000",
        "account_name": "Cash operating account",
        "department_name": "Finance",
        "department_id": "FIN001",
        "logic_id": "FIN-CORE-0001",
        "classification_confidence": 0.96,
        "classification_source": ClassificationSource.HISTORICAL,
        "normalized_balance": 1000.0,
        "currency": "INR",
        "threshold_level": ThresholdLevel.LOW,
        "priority_score": 0.04,
    }
    values.update(overrides)
    return Account(**values)


def build_csv(name: str, rows: list[list[str]], headers: list[str] | None = None) -> UploadedFile:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers if headers is not None else BASE_HEADERS)
    writer.writerows(rows)
    return UploadedFile(name=name, content=buffer.getvalue().encode("utf-8"))


@pytest.fixture
def make_account() -> Callable[..., Account]:
    return build_account


@pytest.fixture
def make_csv() -> Callable[..., UploadedFile]:
    return build_csv
