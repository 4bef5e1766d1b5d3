"""CSV ingestion: parse, classify, screen charges and persist.

Public API:
    - :func:`ingest_csv`
    - :func:`ingest_csv_file`

Parsing never raises for content problems; the envelope carries the per-row
errors. Persistence writes each transaction on its own, so one failed write is
reported without affecting the rest. Store errors other than per-record write
failures propagate.
"""

from __future__ import annotations

from os import PathLike
from pathlib import Path

from ..classify import Classifier, classify_transactions
from ..logging_setup import get_logger
from ..models import DetectedCharge, IngestionResult, Transaction
from ..opportunities import screen_charge
from ..stores import TransactionStore
from .csv_parser import CSVParser

MSG_NO_VALID_TRANSACTIONS = "No valid transactions found in CSV"

_logger = get_logger("spending_insights.ingest.service")


def _screen(transactions: list[Transaction]) -> tuple[list[Transaction], list[DetectedCharge]]:
    screened: list[Transaction] = []
    detected: list[DetectedCharge] = []
    for tx in transactions:
        s = screen_charge(tx)
        if s.is_subscription and not tx.is_recurring:
            tx = tx.model_copy(update={"is_recurring": True})
        screened.append(tx)
        if s.flagged:
            detected.append(
                DetectedCharge(
                    transaction_id=tx.id,
                    description=tx.description,
                    amount=tx.amount,
                    annual_cost=s.annual_cost,
                    is_fee=s.is_fee,
                    is_subscription=s.is_subscription,
                )
            )
    return screened, detected


def ingest_csv(
    content: str,
    user_id: str,
    *,
    classifier: Classifier,
    store: TransactionStore,
    concurrency: int = 4,
) -> IngestionResult:
    """Ingest one CSV statement for ``user_id``.

    Raises ``ValueError`` when ``user_id`` is blank, before any parsing or I/O.
    """

    if not user_id or not user_id.strip():
        raise ValueError("userId is required")

    parsed = CSVParser(user_id).parse(content)
    if not parsed.transactions:
        _logger.info("ingest:empty user=%s errors=%d", user_id, len(parsed.errors))
        return IngestionResult(
            success=False,
            message=MSG_NO_VALID_TRANSACTIONS,
            processed_count=0,
            errors=parsed.errors,
        )

    classified = classify_transactions(
        parsed.transactions, classifier, concurrency=concurrency
    )
    screened, detected = _screen(classified)

    written = store.batch_put(screened, concurrency=concurrency)
    failed_ids = [f.transaction_id for f in written.failures]

    _logger.info(
        "ingest:done user=%s processed=%d written=%d failed=%d row_errors=%d flagged=%d",
        user_id,
        len(screened),
        len(written.written),
        len(failed_ids),
        len(parsed.errors),
        len(detected),
    )
    return IngestionResult(
        success=True,
        message=f"Processed {len(screened)} transactions",
        processed_count=len(screened),
        errors=parsed.errors,
        detected_fees=detected,
        write_failures=failed_ids,
    )


def ingest_csv_file(
    path: str | PathLike[str],
    user_id: str,
    *,
    classifier: Classifier,
    store: TransactionStore,
    concurrency: int = 4,
) -> IngestionResult:
    content = Path(path).read_text(encoding="utf-8")
    return ingest_csv(
        content, user_id, classifier=classifier, store=store, concurrency=concurrency
    )


__all__ = ["MSG_NO_VALID_TRANSACTIONS", "ingest_csv", "ingest_csv_file"]
