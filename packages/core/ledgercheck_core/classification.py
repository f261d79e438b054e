"""Department classification for GL accounts."""

from __future__ import annotations

from typing import Optional, Sequence

from ledgercheck_schemas import (
    Classification,
    ClassificationSource,
    Evidence,
    EvidenceKind,
)

from .reference import (
    ClassificationRule,
    ReferenceTables,
    UNASSIGNED_KEY,
    default_reference_tables,
)

_HISTORICAL_DEFAULT_CONFIDENCE = 0.95
_MANUAL_CONFIDENCE = 0.88
_FALLBACK_CONFIDENCE = 0.35
_PATTERN_WEIGHT = 0.2
_KEYWORD_WEIGHT = 0.18
_COMBINED_BONUS = 0.15
_RULE_BASE_CONFIDENCE = 0.62
_RULE_MAX_UPLIFT = 0.25


def clamp_confidence(value: float) -> float:
    return min(0.99, max(0.2, round(value, 2)))


def _evidence(
    kind: EvidenceKind, description: str, weight: float, confidence: float
) -> Evidence:
    return Evidence(
        kind=kind, description=description, weight=weight, confidence=confidence
    )


def _score_rule(
    rule: ClassificationRule, account_number: str, name_lower: str
) -> tuple[float, list[Evidence], list[str], list[str]]:
    score = rule.weight
    evidence: list[Evidence] = []
    patterns: list[str] = []
    keywords: list[str] = []

    for pattern in rule.patterns:
        if pattern.search(account_number):
            score += _PATTERN_WEIGHT
            patterns.append(pattern.pattern)
            evidence.append(
                _evidence(
                    EvidenceKind.PATTERN,
                    f"Pattern {pattern.pattern}",
                    _PATTERN_WEIGHT,
                    0.75,
                )
            )

    for keyword in rule.keywords:
        if keyword in name_lower:
            score += _KEYWORD_WEIGHT
            keywords.append(keyword)
            evidence.append(
                _evidence(
                    EvidenceKind.KEYWORD, f"Keyword {keyword}", _KEYWORD_WEIGHT, 0.72
                )
            )

    if patterns and keywords:
        score += _COMBINED_BONUS
    return score, evidence, keywords, patterns


def classify_account(
    account_number: str,
    account_name: str,
    provided_department: Optional[str] = None,
    tables: Optional[ReferenceTables] = None,
) -> Classification:
    """Assign a department using history, the hint, then rule scoring.

    The first source that produces an answer wins:

    1. exact account number match in the historical table;
    2. a department hint that resolves through the synonym table or the
       directory names (anything but ``Unassigned``);
    3. the highest scoring rule, where earlier rules win ties;
    4. the ``Unassigned`` fallback.
    """
    tables = tables or default_reference_tables()
    cleaned_number = account_number.strip()
    name_lower = account_name.lower()

    historical = tables.historical.get(cleaned_number)
    if historical is not None:
        department = tables.department(historical.department)
        confidence = (
            historical.confidence
            if historical.confidence is not None
            else _HISTORICAL_DEFAULT_CONFIDENCE
        )
        evidence = [
            _evidence(
                EvidenceKind.HISTORICAL,
                f"Historical match: {cleaned_number}",
                1.0,
                confidence,
            )
        ]
        if historical.notes:
            evidence.append(
                _evidence(
                    EvidenceKind.KEYWORD, historical.notes, 0.4, confidence * 0.8
                )
            )
        return Classification(
            department_name=department.name,
            department_id=department.department_id,
            logic_id=historical.logic_id or department.default_logic_id,
            confidence=clamp_confidence(confidence),
            source=ClassificationSource.HISTORICAL,
            evidence=evidence,
            notes=historical.notes,
        )

    provided_key = tables.resolve_department(provided_department)
    if provided_key is not None and provided_key != UNASSIGNED_KEY:
        department = tables.department(provided_key)
        return Classification(
            department_name=department.name,
            department_id=department.department_id,
            logic_id=department.default_logic_id,
            confidence=clamp_confidence(_MANUAL_CONFIDENCE),
            source=ClassificationSource.MANUAL,
            evidence=[
                _evidence(
                    EvidenceKind.PROVIDED,
                    f"Provided department: {provided_department}",
                    0.8,
                    _MANUAL_CONFIDENCE,
                )
            ],
            notes="Resolved using supplied department hint.",
        )

    best_rule: Optional[ClassificationRule] = None
    best_score = 0.0
    best_evidence: list[Evidence] = []
    best_keywords: list[str] = []
    best_patterns: list[str] = []
    for rule in tables.rules:
        score, evidence, keywords, patterns = _score_rule(
            rule, cleaned_number, name_lower
        )
        if not evidence:
            continue
        if score > best_score:
            best_rule = rule
            best_score = score
            best_evidence = evidence
            best_keywords = keywords
            best_patterns = patterns

    if best_rule is not None:
        department = tables.department(best_rule.department)
        confidence = _RULE_BASE_CONFIDENCE + min(_RULE_MAX_UPLIFT, best_score / 4)
        return Classification(
            department_name=department.name,
            department_id=department.department_id,
            logic_id=best_rule.logic_id or department.default_logic_id,
            confidence=clamp_confidence(confidence),
            source=ClassificationSource.RULE,
            evidence=best_evidence,
            notes=best_rule.notes,
            keywords_matched=best_keywords,
            patterns_matched=best_patterns,
        )

    fallback = tables.department(UNASSIGNED_KEY)
    return Classification(
        department_name=fallback.name,
        department_id=fallback.department_id,
        logic_id=fallback.default_logic_id,
        confidence=clamp_confidence(_FALLBACK_CONFIDENCE),
        source=ClassificationSource.FALLBACK,
        evidence=[
            _evidence(
                EvidenceKind.FALLBACK,
                "No matching rule or history",
                0.3,
                _FALLBACK_CONFIDENCE,
            )
        ],
        notes="Consider manual review to assign department.",
    )


def classify_many(
    rows: Sequence[tuple[str, str, Optional[str]]],
    tables: Optional[ReferenceTables] = None,
) -> list[Classification]:
    """Convenience helper for batch classification."""
    return [
        classify_account(number, name, provided, tables)
        for number, name, provided in rows
    ]


__all__ = ["clamp_confidence", "classify_account", "classify_many"]
