"""Static reference tables used by the classification engine."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

DEFAULT_REFERENCE_PATH = Path(__file__).resolve().parent / "data" / "reference.yaml"
UNASSIGNED_KEY = "UNASSIGNED"
DEFAULT_RULE_WEIGHT = 0.4


@dataclass(frozen=True, slots=True)
class Department:
    key: str
    department_id: str
    name: str
    default_logic_id: str


@dataclass(frozen=True, slots=True)
class HistoricalMapping:
    department: str
    logic_id: Optional[str] = None
    confidence: Optional[float] = None
    notes: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    department: str
    logic_id: Optional[str] = None
    patterns: tuple[re.Pattern[str], ...] = ()
    keywords: tuple[str, ...] = ()
    weight: float = DEFAULT_RULE_WEIGHT
    notes: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ReferenceTables:
    """Department directory, synonyms, history and the ordered rule list."""

    departments: Mapping[str, Department]
    synonyms: Mapping[str, str] = field(default_factory=dict)
    historical: Mapping[str, HistoricalMapping] = field(default_factory=dict)
    rules: tuple[ClassificationRule, ...] = ()

    def department(self, key: str) -> Department:
        return self.departments[key]

    def resolve_department(self, provided: Optional[str]) -> Optional[str]:
        """Map a free-text department hint to a directory key."""
        if not provided:
            return None
        normalised = provided.strip().lower()
        if normalised in self.synonyms:
            return self.synonyms[normalised]
        for key, entry in self.departments.items():
            if entry.name.lower() == normalised:
                return key
        return None


def _parse_tables(raw: Mapping[str, Any]) -> ReferenceTables:
    departments = {
        key: Department(
            key=key,
            department_id=str(entry["department_id"]),
            name=str(entry["name"]),
            default_logic_id=str(entry["default_logic_id"]),
        )
        for key, entry in (raw.get("departments") or {}).items()
    }
    if UNASSIGNED_KEY not in departments:
        raise ValueError(f"Reference tables must define the {UNASSIGNED_KEY} department")

    synonyms = {
        str(name).strip().lower(): str(key)
        for name, key in (raw.get("synonyms") or {}).items()
    }
    historical = {
        str(number).strip(): HistoricalMapping(
            department=str(entry["department"]),
            logic_id=entry.get("logic_id"),
            confidence=entry.get("confidence"),
            notes=entry.get("notes"),
        )
        for number, entry in (raw.get("historical") or {}).items()
    }
    rules = tuple(
        ClassificationRule(
            department=str(entry["department"]),
            logic_id=entry.get("logic_id"),
            patterns=tuple(re.compile(p) for p in entry.get("patterns") or ()),
            keywords=tuple(str(k).lower() for k in entry.get("keywords") or ()),
            weight=float(entry.get("weight", DEFAULT_RULE_WEIGHT)),
            notes=entry.get("notes"),
        )
        for entry in raw.get("rules") or ()
    )

    known = set(departments)
    referenced = (
        set(synonyms.values())
        | {mapping.department for mapping in historical.values()}
        | {rule.department for rule in rules}
    )
    unknown = referenced - known
    if unknown:
        raise ValueError(f"Unknown departments in reference tables: {sorted(unknown)}")

    return ReferenceTables(
        departments=departments,
        synonyms=synonyms,
        historical=historical,
        rules=rules,
    )


def load_reference_tables(path: Optional[Path] = None) -> ReferenceTables:
    source = path or DEFAULT_REFERENCE_PATH
    raw = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
    return _parse_tables(raw)


@lru_cache(maxsize=1)
def default_reference_tables() -> ReferenceTables:
    return load_reference_tables()


__all__ = [
    "ClassificationRule",
    "Department",
    "HistoricalMapping",
    "ReferenceTables",
    "UNASSIGNED_KEY",
    "default_reference_tables",
    "load_reference_tables",
]
