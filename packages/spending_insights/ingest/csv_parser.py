"""Parser and row validator for bank-export CSV text.

Header contract
---------------
Columns are resolved by case-insensitive substring match, checked per header
in this order (first rule that matches wins for that header; a later header
matching the same field replaces an earlier one):

- ``date``                         -> date
- ``description`` / ``memo``       -> description
- ``amount`` / ``debit`` / ``credit`` -> amount
- ``account``                      -> account
- ``category``                     -> category
- ``type``                         -> transaction type hint

``date``, ``description`` and ``amount`` are required. An empty input or an
unresolvable header aborts with a single error and no transactions.

Rows
----
Row numbers are 1-based line numbers (the header is row 1). Each data row is
validated on its own; every failing field yields one :class:`ParseError` and
the row is skipped. A line the CSV tokenizer rejects (e.g. an unterminated
quote) yields one ``Failed to parse row`` error.
"""

from __future__ import annotations

import csv
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation

from ..logging_setup import get_logger
from ..models import ParseError, ParseResult, Transaction, TransactionType
from ..pii import sanitize

_logger = get_logger("spending_insights.ingest.csv_parser")

MSG_EMPTY = "CSV file is empty"
MSG_MISSING_HEADERS = "Missing required headers. Expected: date, description, amount"
MSG_DATE_REQUIRED = "Date is required"
MSG_DATE_INVALID = "Invalid date format. Expected MM/DD/YYYY or YYYY-MM-DD"
MSG_DESCRIPTION_REQUIRED = "Description is required"
MSG_AMOUNT_REQUIRED = "Amount is required"
MSG_AMOUNT_INVALID = "Invalid amount format. Expected numeric value"

_DATE_MDY_RE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})$")
_DATE_YMD_RE = re.compile(r"^(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})$")
_AMOUNT_STRIP_RE = re.compile(r"[$€£¥,\s]")
_AMOUNT_RE = re.compile(r"^-?\d+(\.\d{1,2})?$")

_METHOD_PREFIX_RE = re.compile(r"^(DEBIT|CREDIT|ACH|CHECK|ATM|POS)\s+", re.IGNORECASE)
_TRAILING_DATE_RE = re.compile(r"\s+\d{1,2}/\d{1,2}(?:/\d{2,4})?$")
_LOCATION_SPLIT_RE = re.compile(r"\s+(?:IN|AT|ON)\s+", re.IGNORECASE)


@dataclass(slots=True)
class _ColumnMap:
    date: int | None = None
    description: int | None = None
    amount: int | None = None
    account: int | None = None
    category: int | None = None
    type: int | None = None

    @property
    def complete(self) -> bool:
        return None not in (self.date, self.description, self.amount)


@dataclass(frozen=True, slots=True)
class _RawRow:
    date: str
    description: str
    amount: str
    account: str
    category: str
    type: str


def _tokenize(line: str) -> list[str]:
    """Split one CSV line, honoring quotes, ``""`` escapes and quoted commas.

    Raises ``csv.Error`` for malformed quoting.
    """

    fields = next(csv.reader([line], strict=True), [])
    return [f.strip() for f in fields]


def _map_headers(headers: list[str]) -> _ColumnMap:
    cols = _ColumnMap()
    for i, header in enumerate(headers):
        h = header.lower().strip()
        if "date" in h:
            cols.date = i
        elif "description" in h or "memo" in h:
            cols.description = i
        elif "amount" in h or "debit" in h or "credit" in h:
            cols.amount = i
        elif "account" in h:
            cols.account = i
        elif "category" in h:
            cols.category = i
        elif "type" in h:
            cols.type = i
    return cols


def _cell(row: list[str], idx: int | None) -> str:
    if idx is None or idx >= len(row):
        return ""
    return row[idx]


def parse_date(value: str) -> date | None:
    """Parse ``M/D/YYYY``, ``M-D-YYYY``, ``YYYY-M-D`` or ``YYYY/M/D``.

    Returns ``None`` when the text has none of those shapes or names an
    impossible calendar date.
    """

    s = value.strip()
    m = _DATE_MDY_RE.match(s)
    if m:
        month, day, year = (int(g) for g in m.groups())
    else:
        m = _DATE_YMD_RE.match(s)
        if not m:
            return None
        year, month, day = (int(g) for g in m.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_amount(value: str) -> Decimal | None:
    """Parse a signed amount, ignoring currency symbols, commas and spaces."""

    cleaned = _AMOUNT_STRIP_RE.sub("", value)
    if not _AMOUNT_RE.match(cleaned):
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def infer_transaction_type(amount: Decimal, type_hint: str | None = None) -> TransactionType:
    if type_hint:
        hint = type_hint.lower()
        if "credit" in hint or "deposit" in hint:
            return "credit"
        if "debit" in hint or "withdrawal" in hint:
            return "debit"
    return "debit" if amount < 0 else "credit"


def extract_merchant_name(description: str) -> str:
    """Best-effort merchant name from a (redacted) description.

    ``"POS STARBUCKS STORE #1234"`` -> ``"STARBUCKS STORE #1234"``;
    ``"SHELL OIL 12/03"`` -> ``"SHELL OIL"``; ``"UBER AT SFO"`` -> ``"UBER"``.
    """

    name = _METHOD_PREFIX_RE.sub("", description.strip())
    name = _TRAILING_DATE_RE.sub("", name).strip()
    head = _LOCATION_SPLIT_RE.split(name, maxsplit=1)[0].strip()
    return head or description.strip()


def _validate(raw: _RawRow, row_no: int) -> list[ParseError]:
    errors: list[ParseError] = []
    if not raw.date:
        errors.append(
            ParseError(row=row_no, field="date", value=raw.date, error=MSG_DATE_REQUIRED)
        )
    elif parse_date(raw.date) is None:
        errors.append(
            ParseError(row=row_no, field="date", value=raw.date, error=MSG_DATE_INVALID)
        )

    if not raw.description:
        errors.append(
            ParseError(
                row=row_no,
                field="description",
                value=raw.description,
                error=MSG_DESCRIPTION_REQUIRED,
            )
        )

    if not raw.amount:
        errors.append(
            ParseError(row=row_no, field="amount", value=raw.amount, error=MSG_AMOUNT_REQUIRED)
        )
    elif parse_amount(raw.amount) is None:
        errors.append(
            ParseError(row=row_no, field="amount", value=raw.amount, error=MSG_AMOUNT_INVALID)
        )
    return errors


class CSVParser:
    """Parse CSV text into redacted :class:`Transaction` records for one user."""

    def __init__(
        self,
        user_id: str,
        *,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.user_id = user_id
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

    def parse(self, content: str) -> ParseResult:
        result = ParseResult()
        text = (content or "").strip()
        if not text:
            result.errors.append(ParseError(row=0, error=MSG_EMPTY))
            return result

        lines = text.splitlines()
        try:
            headers = _tokenize(lines[0])
        except csv.Error as e:
            result.errors.append(ParseError(row=1, error=f"{MSG_MISSING_HEADERS} ({e})"))
            return result

        cols = _map_headers(headers)
        if not cols.complete:
            result.errors.append(ParseError(row=1, error=MSG_MISSING_HEADERS))
            return result

        result.total_rows = len(lines) - 1
        for idx in range(1, len(lines)):
            row_no = idx + 1
            try:
                row = _tokenize(lines[idx])
                raw = _RawRow(
                    date=_cell(row, cols.date),
                    description=_cell(row, cols.description),
                    amount=_cell(row, cols.amount),
                    account=_cell(row, cols.account),
                    category=_cell(row, cols.category),
                    type=_cell(row, cols.type),
                )
                row_errors = _validate(raw, row_no)
                if row_errors:
                    result.errors.extend(row_errors)
                    for err in row_errors:
                        _logger.debug("parse:row_invalid row=%d field=%s", row_no, err.field)
                    continue
                result.transactions.append(self._to_transaction(raw))
                result.successful_rows += 1
            except (csv.Error, ValueError, ArithmeticError) as e:
                _logger.debug("parse:row_failed row=%d error=%s", row_no, e.__class__.__name__)
                result.errors.append(ParseError(row=row_no, error=f"Failed to parse row: {e}"))

        _logger.info(
            "parse:done total_rows=%d successful_rows=%d errors=%d",
            result.total_rows,
            result.successful_rows,
            len(result.errors),
        )
        return result

    def _to_transaction(self, raw: _RawRow) -> Transaction:
        amount = parse_amount(raw.amount)
        day = parse_date(raw.date)
        if amount is None or day is None:
            raise ValueError("row passed validation but could not be converted")
        redaction = sanitize(raw.description)
        return Transaction(
            id=self._new_id(),
            user_id=self.user_id,
            amount=abs(amount),
            description=redaction.redacted_text,
            original_description=redaction.original_text,
            category=raw.category or "Uncategorized",
            date=day,
            account=raw.account or "Unknown",
            is_recurring=False,
            confidence=0.0,
            merchant_name=extract_merchant_name(redaction.redacted_text),
            transaction_type=infer_transaction_type(amount, raw.type),
        )


def parse(content: str, user_id: str) -> ParseResult:
    """Parse ``content`` for ``user_id``; see :class:`CSVParser`."""

    return CSVParser(user_id).parse(content)


__all__ = [
    "CSVParser",
    "extract_merchant_name",
    "infer_transaction_type",
    "parse",
    "parse_amount",
    "parse_date",
]
