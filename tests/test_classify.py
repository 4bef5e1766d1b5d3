# ruff: noqa: E402, I001
from __future__ import annotations

import datetime as dt
from decimal import Decimal
from types import SimpleNamespace
from typing import Any

import pytest
from pydantic import ValidationError

import spending_insights.classify as classify_mod
from spending_insights.categorization import (
    PolicyBlockedError,
    extract_response_json_mapping,
    parse_decision,
)
from spending_insights.classify import (
    CATEGORIES,
    KEYWORD_CONFIDENCE,
    KEYWORD_REASONING,
    KeywordClassifier,
    OpenAIClassifier,
    apply_classification,
    build_classifier,
    classify_transactions,
)
from spending_insights.config import Settings
from spending_insights.models import Transaction
from tests.helpers.openai_stub import BEGIN, END, HttpStatusError, OpenAIStub, decision


def _tx(description: str, *, original: str | None = None, tx_id: str = "t1") -> Transaction:
    return Transaction(
        id=tx_id,
        user_id="u1",
        amount=Decimal("12.34"),
        description=description,
        original_description=original or description,
        date=dt.date(2024, 1, 15),
        merchant_name=description,
        transaction_type="debit",
    )


def _install(monkeypatch: pytest.MonkeyPatch, decide) -> OpenAIStub:
    stub = OpenAIStub(decide)
    monkeypatch.setattr(classify_mod, "OpenAI", stub.factory)
    return stub


def _no_backoff(**kwargs: Any) -> OpenAIClassifier:
    return OpenAIClassifier(backoff_schedule=(0.0,), **kwargs)


# ---- Keyword strategy -----------------------------------------------------------------


@pytest.mark.parametrize(
    ("description", "category", "subcategory", "recurring"),
    [
        ("WHOLE FOODS MARKET", "Groceries", "Supermarket", False),
        ("SHELL OIL 12/03", "Transportation", "Gas", False),
        ("JOE'S RESTAURANT", "Dining", "Restaurant", False),
        ("NETFLIX.COM", "Entertainment", "Streaming", True),
        ("WALMART SUPERCENTER", "Shopping", "Retail", False),
        ("CITY ELECTRIC CO", "Utilities", None, True),
        ("OVERDRAFT FEE", "Fees", "Bank Fee", False),
        ("RANDOM SHOP XYZ", "Other", None, False),
        # First matching rule wins.
        ("AMAZON FRESH GROCERY", "Groceries", "Supermarket", False),
    ],
)
def test_keyword_rules(
    description: str, category: str, subcategory: str | None, recurring: bool
) -> None:
    result = KeywordClassifier().classify(_tx(description))
    assert result.category == category
    assert result.subcategory == subcategory
    assert result.is_recurring is recurring
    assert result.confidence == KEYWORD_CONFIDENCE
    assert result.reasoning == KEYWORD_REASONING
    assert result.source == "keyword"
    assert result.merchant_name == description


def test_keyword_categories_are_in_allow_list() -> None:
    for desc in ("grocery", "fuel", "dining", "spotify", "target", "water", "bank", "zzz"):
        assert KeywordClassifier().classify(_tx(desc)).category in CATEGORIES


def test_apply_classification_copies_decision() -> None:
    tx = _tx("SPOTIFY USA")
    out = apply_classification(tx, KeywordClassifier())
    assert out is not tx
    assert (out.category, out.subcategory, out.is_recurring) == (
        "Entertainment",
        "Streaming",
        True,
    )
    assert out.confidence == KEYWORD_CONFIDENCE
    assert tx.category == "Uncategorized"


def test_classify_transactions_preserves_order() -> None:
    txs = [_tx(d, tx_id=str(i)) for i, d in enumerate(["WATER BILL", "SHELL", "FOO", "HULU"])]
    out = classify_transactions(txs, KeywordClassifier(), concurrency=3)
    assert [t.id for t in out] == ["0", "1", "2", "3"]
    assert [t.category for t in out] == ["Utilities", "Transportation", "Other", "Other"]
    assert classify_transactions([], KeywordClassifier()) == []


# ---- OpenAI strategy ----------------------------------------------------------------


def test_openai_success_uses_structured_output(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(
        monkeypatch,
        lambda item: decision(
            "Dining", subcategory="Coffee", confidence=0.92, reasoning="Coffee shop purchase"
        ),
    )
    clf = _no_backoff(model="gpt-test", timeout_s=3.0)
    result = clf.classify(_tx("BLUE BOTTLE COFFEE"))

    assert result.source == "openai"
    assert (result.category, result.subcategory) == ("Dining", "Coffee")
    assert result.confidence == pytest.approx(0.92)
    assert result.reasoning == "Coffee shop purchase"
    assert result.merchant_name == "BLUE BOTTLE COFFEE"

    (call,) = stub.calls
    assert call["model"] == "gpt-test"
    fmt = call["text"]["format"]
    assert fmt["type"] == "json_schema"
    assert fmt["name"] == "transaction_category"
    assert fmt["strict"] is True
    assert fmt["schema"]["properties"]["category"]["enum"] == list(CATEGORIES)
    assert BEGIN in call["input"] and END in call["input"]
    # SDK retries are disabled; the client gets the configured timeout.
    assert stub.init_kwargs == [{"timeout": 3.0, "max_retries": 0}]


def test_prompt_carries_only_redacted_text(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[dict[str, Any]] = []

    def decide(item: dict[str, Any]) -> dict[str, Any]:
        seen.append(item)
        return decision("Other")

    stub = _install(monkeypatch, decide)
    tx = _tx("PAYMENT ****-****-****-1111", original="PAYMENT 4111111111111111")
    _no_backoff().classify(tx)

    assert seen[0]["description"] == "PAYMENT ****-****-****-1111"
    assert "4111111111111111" not in stub.calls[0]["input"]
    assert "original_description" not in seen[0]


@pytest.mark.parametrize(
    "answer",
    [
        decision("Crypto"),  # outside the allow-list
        decision("Dining", confidence=1.5),
        decision("Dining", reasoning=""),
        "not json at all",
        "[1, 2, 3]",
    ],
)
def test_invalid_answers_fall_back_to_keywords(
    monkeypatch: pytest.MonkeyPatch, answer: Any
) -> None:
    stub = _install(monkeypatch, lambda item: answer)
    result = _no_backoff().classify(_tx("WHOLE FOODS"))

    assert len(stub.calls) == 1
    assert result.source == "keyword"
    assert result.category == "Groceries"


def test_retryable_error_is_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    answers: list[Any] = [HttpStatusError(503), decision("Shopping")]
    stub = _install(monkeypatch, lambda item: answers.pop(0))

    result = _no_backoff(max_attempts=3).classify(_tx("TARGET"))

    assert len(stub.calls) == 2
    assert result.source == "openai"
    assert result.category == "Shopping"


def test_non_retryable_error_falls_back_immediately(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(monkeypatch, lambda item: HttpStatusError(400))
    result = _no_backoff(max_attempts=3).classify(_tx("SHELL"))

    assert len(stub.calls) == 1
    assert result.source == "keyword"
    assert result.category == "Transportation"


def test_attempts_are_bounded(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(monkeypatch, lambda item: HttpStatusError(429))
    result = _no_backoff(max_attempts=3).classify(_tx("NETFLIX"))

    assert len(stub.calls) == 3
    assert result.source == "keyword"
    assert result.is_recurring is True


def test_custom_fallback_is_used(monkeypatch: pytest.MonkeyPatch) -> None:
    class _Fixed:
        def classify(self, transaction: Transaction):
            return KeywordClassifier().classify(transaction).model_copy(
                update={"category": "Other", "reasoning": "fixed"}
            )

    _install(monkeypatch, lambda item: HttpStatusError(500))
    clf = OpenAIClassifier(_Fixed(), max_attempts=1)
    assert clf.classify(_tx("WHOLE FOODS")).reasoning == "fixed"


def test_max_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        OpenAIClassifier(max_attempts=0)


def test_build_classifier_from_settings() -> None:
    assert isinstance(build_classifier(Settings()), KeywordClassifier)

    clf = build_classifier(
        Settings(
            classifier_mode="openai",
            openai_model="gpt-x",
            ai_timeout_seconds=2.5,
            ai_max_attempts=2,
        )
    )
    assert isinstance(clf, OpenAIClassifier)
    assert (clf.model, clf.timeout_s, clf.max_attempts) == ("gpt-x", 2.5, 2)
    assert isinstance(clf.fallback, KeywordClassifier)


# ---- Response decoding --------------------------------------------------------------


def test_extract_prefers_output_text() -> None:
    resp = SimpleNamespace(output_text='{"a": 1}', output=[])
    assert extract_response_json_mapping(resp) == {"a": 1}


def test_extract_falls_back_to_output_parts() -> None:
    part = SimpleNamespace(type="output_text", text='{"category": "Other"}')
    resp = SimpleNamespace(output_text="", output=[SimpleNamespace(content=[part])])
    assert extract_response_json_mapping(resp) == {"category": "Other"}


def test_extract_refusal_and_incomplete_are_policy_blocks() -> None:
    refusal = SimpleNamespace(type="refusal", refusal="cannot help")
    with pytest.raises(PolicyBlockedError):
        extract_response_json_mapping(
            SimpleNamespace(output_text=None, output=[SimpleNamespace(content=[refusal])])
        )
    with pytest.raises(PolicyBlockedError):
        extract_response_json_mapping(SimpleNamespace(status="incomplete", output_text="{}"))


def test_extract_without_text_raises_value_error() -> None:
    with pytest.raises(ValueError):
        extract_response_json_mapping(SimpleNamespace(output_text=None, output=None))


def test_parse_decision_normalizes_blank_subcategory() -> None:
    d = parse_decision(decision("Fees", subcategory="  "), allowed_categories=CATEGORIES)
    assert d.subcategory is None
    assert d.category == "Fees"


def test_parse_decision_rejects_unknown_category() -> None:
    with pytest.raises(ValidationError):
        parse_decision(decision("Travel"), allowed_categories=CATEGORIES)
