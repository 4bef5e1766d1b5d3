from __future__ import annotations

import pytest
from spending_insights.pii import (
    contains_pii,
    pii_risk_score,
    sanitize,
    sanitize_many,
    validate_redaction,
)


@pytest.mark.parametrize(
    ("text", "redacted", "pii_type"),
    [
        ("Card 4111-1111-1111-1234 used", "Card ****-****-****-1234 used", "card"),
        ("Amex 3782 822463 10005", "Amex ****-****-****-0005", "card"),
        ("Card 4111.1111.1111.1234", "Card ****-****-****-1234", "card"),
        ("SSN 123-45-6789", "SSN ***-**-XXXX", "ssn"),
        ("Transfer to 123456789012", "Transfer to ****9012", "account"),
        ("Call 555-123-4567", "Call 555-***-****", "phone"),
        ("Call (555) 123-4567", "Call 555-***-****", "phone"),
        ("Contact john.doe@example.com", "Contact [EMAIL_REDACTED]", "email"),
        ("Paid at 123 Main Street today", "Paid at [ADDRESS_REDACTED] today", "address"),
    ],
)
def test_sanitize_each_entity(text: str, redacted: str, pii_type: str) -> None:
    result = sanitize(text)
    assert result.original_text == text
    assert result.redacted_text == redacted
    assert [f.type for f in result.redacted_fields] == [pii_type]


def test_field_offsets_refer_to_original_text() -> None:
    text = "Card 4111-1111-1111-1234 used"
    (field,) = sanitize(text).redacted_fields
    assert (field.start, field.end) == (5, 24)
    assert text[field.start : field.end] == field.original_value
    assert field.redacted_value == "****-****-****-1234"


def test_sixteen_digit_run_is_a_card_not_an_account() -> None:
    result = sanitize("REF 4111111111111111")
    assert result.redacted_text == "REF ****-****-****-1111"
    assert [f.type for f in result.redacted_fields] == ["card"]


def test_fields_are_ordered_by_position() -> None:
    result = sanitize("a@b.co paid with 4111 1111 1111 1111")
    assert [f.type for f in result.redacted_fields] == ["email", "card"]
    assert result.redacted_text == "[EMAIL_REDACTED] paid with ****-****-****-1111"


def test_text_without_pii_is_unchanged() -> None:
    result = sanitize("STARBUCKS COFFEE #42")
    assert result.redacted_text == "STARBUCKS COFFEE #42"
    assert result.redacted_fields == ()


@pytest.mark.parametrize("text", [None, ""])
def test_empty_input(text: str | None) -> None:
    result = sanitize(text)
    assert result.redacted_text == ""
    assert result.redacted_fields == ()


def test_sanitize_is_idempotent() -> None:
    once = sanitize("Card 4111111111111111 call 555-123-4567 mail a@b.co, 9 Elm St")
    twice = sanitize(once.redacted_text)
    assert twice.redacted_text == once.redacted_text
    assert twice.redacted_fields == ()


def test_sanitize_many_preserves_order() -> None:
    out = sanitize_many(["SSN 123-45-6789", "plain", None])
    assert [r.redacted_text for r in out] == ["SSN ***-**-XXXX", "plain", ""]


def test_contains_pii() -> None:
    assert contains_pii("email me at x@y.org")
    assert not contains_pii("GROCERY OUTLET")
    assert not contains_pii(None)


def test_pii_risk_score() -> None:
    assert pii_risk_score(None) == 0.0
    assert pii_risk_score("no personal data here") == 0.0
    # One entity in a short text: 1 * 0.5 + 0.3
    assert pii_risk_score("SSN 123-45-6789") == pytest.approx(0.8)
    # Two entities in a short text saturate at 1.0
    assert pii_risk_score("SSN 123-45-6789 x@y.org") == 1.0
    # Long text dilutes density: 1 entity over 200 chars -> 0.5 * 0.5 + 0.3
    long_text = "SSN 123-45-6789 " + "a" * 184
    assert len(long_text) == 200
    assert pii_risk_score(long_text) == pytest.approx(0.55)


def test_validate_redaction_reports_leaks() -> None:
    check = validate_redaction("SSN 123-45-6789", "SSN 123-45-6789")
    assert not check.is_valid
    assert check.issues == (
        "Unredacted ssn detected",
        "No redaction applied despite PII presence",
    )


def test_validate_redaction_accepts_sanitized_output() -> None:
    text = "Card 4111-1111-1111-1234 at 123 Main Street"
    check = validate_redaction(text, sanitize(text).redacted_text)
    assert check.is_valid
    assert check.issues == ()


@pytest.mark.parametrize(
    ("text", "redacted"),
    [
        ("Refund jdoe.12345678@gmail.com", "Refund [EMAIL_REDACTED]"),
        ("Text 5551234567@vtext.com", "Text [EMAIL_REDACTED]"),
    ],
)
def test_email_with_digit_run_is_redacted_whole(text: str, redacted: str) -> None:
    result = sanitize(text)
    assert result.redacted_text == redacted
    assert [f.type for f in result.redacted_fields] == ["email"]
    assert validate_redaction(text, result.redacted_text).is_valid
    assert sanitize(result.redacted_text).redacted_text == redacted


def test_dotted_card_fails_validation_when_left_raw() -> None:
    check = validate_redaction("4111.1111.1111.1111", "4111.1111.1111.1111")
    assert "Unredacted card detected" in check.issues


def test_address_takes_the_last_street_suffix() -> None:
    result = sanitize("Ship 123 Dr Pepper Way")
    assert result.redacted_text == "Ship [ADDRESS_REDACTED]"
    assert [f.type for f in result.redacted_fields] == ["address"]
