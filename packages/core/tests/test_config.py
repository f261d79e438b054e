"""Tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

import pytest
from ledgercheck_core import load_settings, reconcile_uploads
from ledgercheck_core.config import DEFAULT_CURRENCY, DEFAULT_VARIANCE_THRESHOLD

ENV_VARS = (
    "LEDGERCHECK_DATA_ROOT",
    "LEDGERCHECK_DEFAULT_CURRENCY",
    "LEDGERCHECK_VARIANCE_THRESHOLD",
    "LEDGERCHECK_REFERENCE_PATH",
    "LEDGERCHECK_HEADER_SCAN_ROWS",
    "LEDGERCHECK_SCHEDULER_POLL_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        # setenv first so teardown also removes values written by dotenv
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def test_defaults_without_environment() -> None:
    settings = load_settings()

    assert settings.data_root == Path("data/sessions")
    assert settings.default_currency == DEFAULT_CURRENCY
    assert settings.variance_threshold == DEFAULT_VARIANCE_THRESHOLD
    assert settings.reference_path is None
    assert settings.header_scan_rows == 10


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LEDGERCHECK_DATA_ROOT", str(tmp_path / "sessions"))
    monkeypatch.setenv("LEDGERCHECK_DEFAULT_CURRENCY", "USD")
    monkeypatch.setenv("LEDGERCHECK_VARIANCE_THRESHOLD", "0.25")
    monkeypatch.setenv("LEDGERCHECK_SCHEDULER_POLL_SECONDS", "5")

    settings = load_settings()

    assert settings.data_root == tmp_path / "sessions"
    assert settings.default_currency == "USD"
    assert settings.variance_threshold == 0.25
    assert settings.scheduler_poll_seconds == 5.0


def test_dotenv_file_is_read(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("LEDGERCHECK_DEFAULT_CURRENCY=GBP\n", encoding="utf-8")

    assert load_settings().default_currency == "GBP"


def test_environment_wins_over_dotenv(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    env_file = tmp_path / "custom.env"
    env_file.write_text("LEDGERCHECK_HEADER_SCAN_ROWS=3\n", encoding="utf-8")
    monkeypatch.setenv("LEDGERCHECK_HEADER_SCAN_ROWS", "7")

    assert load_settings(env_file).header_scan_rows == 7


def test_default_currency_reaches_reconciliation(
    monkeypatch: pytest.MonkeyPatch, make_csv
) -> None:
    monkeypatch.setenv("LEDGERCHECK_DEFAULT_CURRENCY", "USD")
    upload = make_csv("a.csv", [["121000", "Receivable", "Sales", "10", "Assets"]])

    batch = reconcile_uploads([upload], settings=load_settings())

    assert batch.accounts[0].currency == "USD"
