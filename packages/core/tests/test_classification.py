"""Tests for department classification."""

from __future__ import annotations

from pathlib import Path

import pytest
from ledgercheck_core import classify_account, classify_many, load_reference_tables
from ledgercheck_schemas import ClassificationSource, EvidenceKind


def test_historical_match_wins() -> None:
    result = classify_account("101000", "Cash operating account")

    assert result.department_id == "FIN001"
    assert result.source == ClassificationSource.HISTORICAL
    assert result.confidence == 0.96
    assert result.logic_id == "FIN-CORE-0001"
    assert result.evidence[0].kind == EvidenceKind.HISTORICAL
    assert result.notes == "Cash cluster"


def test_historical_lookup_ignores_surrounding_whitespace() -> None:
    result = classify_account("  401000 ", "Revenue direct")

    assert result.department_id == "SAL001"
    assert result.logic_id == "SAL-REV-0401"


def test_history_beats_department_hint() -> None:
    result = classify_account("101000", "Cash operating account", "Payroll")

    assert result.source == ClassificationSource.HISTORICAL
    assert result.department_id == "FIN001"


def test_department_hint_resolves_through_synonyms() -> None:
    result = classify_account("999001", "Misc suspense", "Payroll")

    assert result.department_id == "HR001"
    assert result.source == ClassificationSource.MANUAL
    assert result.confidence == 0.88
    assert result.logic_id == "HR-EXP-0001"


def test_department_hint_matches_directory_name() -> None:
    result = classify_account("999001", "Misc suspense", "  information technology ")

    assert result.department_id == "IT001"
    assert result.source == ClassificationSource.MANUAL


def test_rule_with_pattern_and_keyword() -> None:
    result = classify_account("110500", "Bank charges")

    assert result.department_id == "FIN001"
    assert result.source == ClassificationSource.RULE
    assert result.logic_id == "FIN-CORE-0002"
    assert result.keywords_matched == ["bank"]
    assert result.patterns_matched == [r"^1(0|1)\d{4}$"]
    assert result.confidence == pytest.approx(0.85)


def test_keyword_only_rule_match() -> None:
    result = classify_account("999100", "Software subscriptions", "Galactic Ops")

    assert result.department_id == "IT001"
    assert result.source == ClassificationSource.RULE
    assert 0.62 < result.confidence <= 0.87


def test_unassigned_hint_falls_through_to_fallback() -> None:
    result = classify_account("999999", "Misc suspense", "Unassigned")

    assert result.department_id == "UNCLASS"
    assert result.source == ClassificationSource.FALLBACK
    assert result.confidence == 0.35
    assert result.logic_id == "GEN-UNCL-0000"
    assert result.evidence[0].kind == EvidenceKind.FALLBACK


def test_classify_many_preserves_order() -> None:
    results = classify_many(
        [
            ("101000", "Cash", None),
            ("999999", "Misc suspense", None),
        ]
    )

    assert [r.department_id for r in results] == ["FIN001", "UNCLASS"]


def test_earlier_rule_wins_ties(tmp_path: Path) -> None:
    reference = tmp_path / "reference.yaml"
    reference.write_text(
        """
departments:
  FIRST: {department_id: D1, name: First, default_logic_id: L1}
  SECOND: {department_id: D2, name: Second, default_logic_id: L2}
  UNASSIGNED: {department_id: UNCLASS, name: Unassigned, default_logic_id: L0}
rules:
  - department: FIRST
    keywords: [cash]
  - department: SECOND
    keywords: [cash]
""",
        encoding="utf-8",
    )
    tables = load_reference_tables(reference)

    result = classify_account("1", "Petty cash", tables=tables)

    assert result.department_id == "D1"
    assert result.logic_id == "L1"


def test_reference_tables_reject_unknown_departments(tmp_path: Path) -> None:
    reference = tmp_path / "reference.yaml"
    reference.write_text(
        """
departments:
  UNASSIGNED: {department_id: UNCLASS, name: Unassigned, default_logic_id: L0}
synonyms:
  ops: OPERATIONS
""",
        encoding="utf-8",
    )

    with pytest.raises(ValueError, match="OPERATIONS"):
        load_reference_tables(reference)
