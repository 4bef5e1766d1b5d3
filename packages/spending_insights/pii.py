"""PII detection and redaction for free-text transaction fields.

Entity classes are scanned in a fixed priority order over the *original*
text: emails, card numbers, SSNs, bank account numbers, phone numbers and
street addresses. A match that overlaps a span already claimed by an earlier
class is ignored. Digits inside an email are redacted with the whole address,
and a 16-digit run is always a card number and never an account number.
Offsets in :class:`RedactedField` refer to the original text.

Replacement formats:

====================  ===========================
card                  ``****-****-****-<last4>``
account               ``****<last4>``
ssn                   ``***-**-XXXX``
phone                 ``<first3>-***-****``
email                 ``[EMAIL_REDACTED]``
address               ``[ADDRESS_REDACTED]``
====================  ===========================

No replacement contains a digit run the patterns can match again, so running
:func:`sanitize` on its own output is a no-op.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Literal

from .logging_setup import get_logger

type PiiType = Literal["card", "ssn", "account", "phone", "email", "address"]

_logger = get_logger("spending_insights.pii")


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value)


_ADDRESS_SUFFIXES = "Street|St|Avenue|Ave|Road|Rd|Drive|Dr|Lane|Ln|Boulevard|Blvd|Way|Court|Ct"

# (type, patterns, replacement) in priority order.
_RULES: tuple[tuple[PiiType, tuple[re.Pattern[str], ...], Callable[[str], str]], ...] = (
    (
        "email",
        (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),),
        lambda v: "[EMAIL_REDACTED]",
    ),
    (
        "card",
        (
            re.compile(r"\b\d{4}[\s\-.]?\d{4}[\s\-.]?\d{4}[\s\-.]?\d{4}\b"),
            # Amex 4-6-5 grouping
            re.compile(r"\b\d{4}[\s\-.]?\d{6}[\s\-.]?\d{5}\b"),
        ),
        lambda v: f"****-****-****-{_digits(v)[-4:]}",
    ),
    (
        "ssn",
        (re.compile(r"\b\d{3}[\s\-]\d{2}[\s\-]\d{4}\b"),),
        lambda v: "***-**-XXXX",
    ),
    (
        "account",
        (re.compile(r"\b\d{8,17}\b"),),
        lambda v: f"****{_digits(v)[-4:]}",
    ),
    (
        "phone",
        (
            re.compile(r"\b\d{3}[\s\-.]?\d{3}[\s\-.]?\d{4}\b"),
            re.compile(r"\(\d{3}\)[\s\-]?\d{3}[\s\-]?\d{4}"),
        ),
        lambda v: f"{_digits(v)[:3]}-***-****",
    ),
    (
        "address",
        (
            # The house number must not continue a masked or grouped digit run.
            re.compile(
                rf"(?<![\d*\-])\b\d+(?:\s+[A-Za-z]+)*\s+(?:{_ADDRESS_SUFFIXES})\b",
                re.IGNORECASE,
            ),
        ),
        lambda v: "[ADDRESS_REDACTED]",
    ),
)


@dataclass(frozen=True, slots=True)
class RedactedField:
    type: PiiType
    original_value: str
    redacted_value: str
    start: int
    end: int


@dataclass(frozen=True, slots=True)
class RedactionResult:
    original_text: str
    redacted_text: str
    redacted_fields: tuple[RedactedField, ...] = ()


@dataclass(frozen=True, slots=True)
class RedactionCheck:
    is_valid: bool
    issues: tuple[str, ...] = ()


def _overlaps(start: int, end: int, claimed: list[tuple[int, int]]) -> bool:
    return any(start < c_end and c_start < end for c_start, c_end in claimed)


def _scan(text: str) -> list[RedactedField]:
    claimed: list[tuple[int, int]] = []
    fields: list[RedactedField] = []
    for pii_type, patterns, replace in _RULES:
        for pattern in patterns:
            for m in pattern.finditer(text):
                if _overlaps(m.start(), m.end(), claimed):
                    continue
                claimed.append((m.start(), m.end()))
                fields.append(
                    RedactedField(
                        type=pii_type,
                        original_value=m.group(0),
                        redacted_value=replace(m.group(0)),
                        start=m.start(),
                        end=m.end(),
                    )
                )
    fields.sort(key=lambda f: f.start)
    return fields


def sanitize(text: str | None) -> RedactionResult:
    """Redact every recognized PII entity in ``text``.

    ``original_text`` is the input verbatim; ``redacted_fields`` are ordered by
    their start offset in it.
    """

    if not text:
        return RedactionResult(original_text=text or "", redacted_text=text or "")

    fields = _scan(text)
    if not fields:
        return RedactionResult(original_text=text, redacted_text=text)

    parts: list[str] = []
    cursor = 0
    for f in fields:
        parts.append(text[cursor : f.start])
        parts.append(f.redacted_value)
        cursor = f.end
    parts.append(text[cursor:])

    _logger.debug(
        "pii:redacted fields=%d types=%s",
        len(fields),
        ",".join(sorted({f.type for f in fields})),
    )
    return RedactionResult(
        original_text=text, redacted_text="".join(parts), redacted_fields=tuple(fields)
    )


def sanitize_many(texts: Iterable[str | None]) -> list[RedactionResult]:
    return [sanitize(t) for t in texts]


def contains_pii(text: str | None) -> bool:
    return bool(text) and bool(_scan(text or ""))


def pii_risk_score(text: str | None) -> float:
    """Return a PII risk score in ``[0, 1]``.

    Density is the number of detected entities per 100 characters (texts under
    100 characters count as one block). Any detection adds a fixed 0.3.
    """

    if not text:
        return 0.0
    matches = len(_scan(text))
    if matches == 0:
        return 0.0
    density = matches / max(len(text) / 100, 1)
    return min(density * 0.5 + 0.3, 1.0)


def validate_redaction(original: str, redacted: str) -> RedactionCheck:
    """Re-scan ``redacted`` and report any raw entity that survived.

    A self-check for callers; it never raises.
    """

    issues: list[str] = []
    for pii_type, patterns, _replace in _RULES:
        if any(p.search(redacted) for p in patterns):
            issues.append(f"Unredacted {pii_type} detected")
    if redacted == original and contains_pii(original):
        issues.append("No redaction applied despite PII presence")
    return RedactionCheck(is_valid=not issues, issues=tuple(issues))


__all__ = [
    "PiiType",
    "RedactedField",
    "RedactionCheck",
    "RedactionResult",
    "contains_pii",
    "pii_risk_score",
    "sanitize",
    "sanitize_many",
    "validate_redaction",
]
