"""Balance text normalisation helpers."""

from __future__ import annotations

import re
from typing import Optional

from ledgercheck_schemas import NormalizationResult

from .config import DEFAULT_CURRENCY

CURRENCY_SIGNS: dict[str, str] = {
    "$": "USD",
    "₹": "INR",
    "£": "GBP",
    "€": "EUR",
    "¥": "JPY",
}

MISSING_AMOUNT = "Missing amount"
UNPARSEABLE_AMOUNT = "Unable to parse numeric value"
DECIMAL_PRECISION = "Detected decimal precision"

_CURRENCY_CODE_RE = re.compile(r"^[A-Z]{3}")
_NON_NUMERIC_RE = re.compile(r"[^\d.,()\-]")
_PARENTHESISED_RE = re.compile(r"^\(.*\)$")
_LEADING_NUMBER_RE = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)")
_TWO_DECIMALS_RE = re.compile(r"\.\d{2}$")


def clean_numeric_text(value: str) -> str:
    """Keep digits, points, parentheses and minus signs; drop thousands commas."""
    return _NON_NUMERIC_RE.sub("", value).replace(",", "").strip()


def detect_currency(
    value: str, currency_hint: Optional[str] = None, default: str = DEFAULT_CURRENCY
) -> str:
    # Accounting negatives put the sign or parenthesis before the symbol.
    lead = value.strip().lstrip("(-+ ")
    if lead and lead[0] in CURRENCY_SIGNS:
        return CURRENCY_SIGNS[lead[0]]
    if _CURRENCY_CODE_RE.match(lead):
        return lead[:3]
    return currency_hint or default


def normalize_amount(
    raw: Optional[str],
    currency_hint: Optional[str] = None,
    default_currency: str = DEFAULT_CURRENCY,
) -> NormalizationResult:
    """Turn free-form balance text into a signed float.

    Parenthesised values are negative. Failures never raise: the result
    carries ``normalized=0`` and an issue string instead.
    """
    if raw is None or raw.strip() == "":
        return NormalizationResult(
            normalized=0.0,
            currency=currency_hint or default_currency,
            issues=[MISSING_AMOUNT],
            cleaned_value="0",
        )

    currency = detect_currency(raw, currency_hint, default_currency)
    cleaned = clean_numeric_text(raw)
    negative = _PARENTHESISED_RE.match(cleaned) is not None
    numeric = cleaned.replace("(", "").replace(")", "")

    match = _LEADING_NUMBER_RE.match(numeric)
    if match is None:
        return NormalizationResult(
            normalized=0.0,
            currency=currency,
            issues=[UNPARSEABLE_AMOUNT],
            cleaned_value=cleaned,
        )

    number_text = match.group(0)
    parsed = float(number_text)
    normalized = -parsed if negative else parsed

    issues: list[str] = []
    if not normalized.is_integer() and not _TWO_DECIMALS_RE.search(number_text):
        issues.append(DECIMAL_PRECISION)

    return NormalizationResult(
        normalized=normalized,
        currency=currency,
        issues=issues,
        cleaned_value=cleaned,
    )


__all__ = [
    "CURRENCY_SIGNS",
    "DECIMAL_PRECISION",
    "MISSING_AMOUNT",
    "UNPARSEABLE_AMOUNT",
    "clean_numeric_text",
    "detect_currency",
    "normalize_amount",
]
