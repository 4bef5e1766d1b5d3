"""Transaction classification strategies.

- :class:`KeywordClassifier` is the deterministic, offline strategy. It is
  always available and is the fallback for every other strategy.
- :class:`OpenAIClassifier` asks the OpenAI Responses API for a structured
  decision, bounded by a client timeout and a small retry budget. Any failure
  (timeout, HTTP error, malformed or refused output) is logged and answered by
  the fallback strategy, so callers never see an exception from ``classify``.

:func:`build_classifier` picks the strategy from :class:`~.config.Settings`.
"""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Sequence
from typing import Any, Protocol

from openai import APIConnectionError, OpenAI

from . import prompting
from .categorization import extract_response_json_mapping, parse_decision
from .config import Settings
from .logging_setup import get_logger
from .models import ClassificationResult, Transaction
from .pmap import p_map

CATEGORIES: tuple[str, ...] = (
    "Groceries",
    "Transportation",
    "Dining",
    "Entertainment",
    "Shopping",
    "Utilities",
    "Fees",
    "Other",
)

KEYWORD_CONFIDENCE = 0.75
KEYWORD_REASONING = "Keyword categorization based on description keywords"

_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

_logger = get_logger("spending_insights.classify")


class Classifier(Protocol):
    def classify(self, transaction: Transaction) -> ClassificationResult: ...


# (keywords, category, subcategory, recurring); first match wins.
_KEYWORD_RULES: tuple[tuple[tuple[str, ...], str, str | None, bool], ...] = (
    (("grocery", "supermarket", "whole foods"), "Groceries", "Supermarket", False),
    (("gas", "fuel", "shell", "exxon"), "Transportation", "Gas", False),
    (("restaurant", "food", "dining"), "Dining", "Restaurant", False),
    (("netflix", "spotify", "subscription"), "Entertainment", "Streaming", True),
    (("amazon", "target", "walmart"), "Shopping", "Retail", False),
    (("utility", "electric", "water"), "Utilities", None, True),
    (("bank", "fee", "charge"), "Fees", "Bank Fee", False),
)


class KeywordClassifier:
    """Substring rules over the lower-cased (redacted) description."""

    def classify(self, transaction: Transaction) -> ClassificationResult:
        desc = transaction.description.lower()
        category, subcategory, recurring = "Other", None, False
        for keywords, cat, sub, rec in _KEYWORD_RULES:
            if any(k in desc for k in keywords):
                category, subcategory, recurring = cat, sub, rec
                break
        return ClassificationResult(
            category=category,
            subcategory=subcategory,
            confidence=KEYWORD_CONFIDENCE,
            is_recurring=recurring,
            merchant_name=transaction.merchant_name,
            reasoning=KEYWORD_REASONING,
            source="keyword",
        )


def _is_retryable(exc: BaseException) -> bool:
    """HTTP 429/5xx plus transport-level timeouts and connection errors."""

    if isinstance(exc, APIConnectionError):
        return True
    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


class OpenAIClassifier:
    """Remote classification with a mandatory deterministic fallback."""

    def __init__(
        self,
        fallback: Classifier | None = None,
        *,
        model: str = "gpt-5",
        timeout_s: float = 10.0,
        max_attempts: int = 3,
        backoff_schedule: Sequence[float] = _BACKOFF_SCHEDULE_SEC,
        categories: Sequence[str] = CATEGORIES,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.fallback: Classifier = fallback or KeywordClassifier()
        self.model = model
        self.timeout_s = timeout_s
        self.max_attempts = max_attempts
        self.backoff_schedule = tuple(backoff_schedule) or (0.0,)
        self.categories = tuple(categories)
        self._client: Any = None
        self._client_lock = threading.Lock()

    def _get_client(self) -> Any:
        with self._client_lock:
            if self._client is None:
                # Retries are handled here, not by the SDK.
                self._client = OpenAI(timeout=self.timeout_s, max_retries=0)
            return self._client

    def _sleep_backoff(self, attempt_no: int) -> None:
        idx = min(attempt_no - 1, len(self.backoff_schedule) - 1)
        base = self.backoff_schedule[idx]
        jitter = base * _JITTER_PCT
        time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))

    def _request(self, tx: Transaction) -> ClassificationResult:
        client = self._get_client()
        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                resp = client.responses.create(
                    model=self.model,
                    instructions=prompting.build_system_instructions(),
                    input=prompting.build_user_content(tx, self.categories),
                    text=prompting.build_text_config(self.categories),
                )
                break
            except Exception as e:  # noqa: BLE001
                if attempt >= self.max_attempts or not _is_retryable(e):
                    raise
                _logger.warning(
                    "classify:retry id=%s attempt=%d latency_ms=%.2f error=%s",
                    tx.id,
                    attempt,
                    (time.perf_counter() - t0) * 1000.0,
                    e.__class__.__name__,
                )
                self._sleep_backoff(attempt)
                attempt += 1

        decision = parse_decision(
            extract_response_json_mapping(resp), allowed_categories=self.categories
        )
        return ClassificationResult(
            category=decision.category,
            subcategory=decision.subcategory,
            confidence=decision.confidence,
            is_recurring=decision.is_recurring,
            merchant_name=tx.merchant_name,
            reasoning=decision.reasoning,
            source="openai",
        )

    def classify(self, transaction: Transaction) -> ClassificationResult:
        try:
            return self._request(transaction)
        except Exception as e:  # noqa: BLE001 - every failure falls back
            _logger.warning(
                "classify:fallback id=%s error=%s", transaction.id, e.__class__.__name__
            )
            return self.fallback.classify(transaction)


def build_classifier(settings: Settings) -> Classifier:
    keyword = KeywordClassifier()
    if settings.classifier_mode == "openai":
        return OpenAIClassifier(
            keyword,
            model=settings.openai_model,
            timeout_s=settings.ai_timeout_seconds,
            max_attempts=settings.ai_max_attempts,
        )
    return keyword


def apply_classification(transaction: Transaction, classifier: Classifier) -> Transaction:
    """Return a copy of ``transaction`` carrying the classifier's decision."""

    result = classifier.classify(transaction)
    return transaction.model_copy(
        update={
            "category": result.category,
            "subcategory": result.subcategory,
            "confidence": result.confidence,
            "is_recurring": result.is_recurring,
        }
    )


def classify_transactions(
    transactions: Sequence[Transaction],
    classifier: Classifier,
    *,
    concurrency: int = 4,
) -> list[Transaction]:
    """Classify ``transactions`` with bounded concurrency, preserving order."""

    if not transactions:
        return []
    out = p_map(
        transactions,
        lambda tx: apply_classification(tx, classifier),
        concurrency=max(1, min(concurrency, len(transactions))),
    )
    _logger.info(
        "classify:done count=%d categories=%d",
        len(out),
        len({tx.category for tx in out}),
    )
    return out


__all__ = [
    "CATEGORIES",
    "Classifier",
    "KeywordClassifier",
    "OpenAIClassifier",
    "apply_classification",
    "build_classifier",
    "classify_transactions",
]
