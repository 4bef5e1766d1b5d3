"""Prompt construction for single-transaction classification.

Builds:
- the system instructions,
- the user content embedding one redacted transaction as JSON,
- the strict ``text.format`` JSON Schema object for the OpenAI Responses API.

Only redacted fields are ever placed in a prompt; ``original_description``
never leaves the process.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from openai.types.responses import ResponseTextConfigParam

from .models import Transaction

BEGIN = "BEGIN_TRANSACTION_JSON\n"
END = "\nEND_TRANSACTION_JSON"


def serialize_transaction(tx: Transaction) -> str:
    payload = {
        "description": tx.description,
        "merchant_name": tx.merchant_name,
        "amount": f"{tx.amount:.2f}",
        "transaction_type": tx.transaction_type,
        "date": tx.date.isoformat(),
        "account": tx.account,
    }
    return json.dumps(payload, ensure_ascii=False)


def build_system_instructions() -> str:
    return (
        "You categorize personal bank transactions for a spending-insights report. "
        "Choose exactly one category from the allowed list, optionally a short "
        "subcategory, decide whether the charge is likely to recur monthly, and give "
        "a one-sentence reasoning. Never invent categories. Output JSON only that "
        "conforms to the specified schema."
    )


def build_user_content(tx: Transaction, categories: Sequence[str]) -> str:
    allowed = ", ".join(categories)
    return (
        f"Allowed categories: {allowed}\n"
        "Use 'Other' when nothing fits. Confidence is a number between 0 and 1.\n\n"
        f"{BEGIN}{serialize_transaction(tx)}{END}"
    )


def build_text_config(categories: Sequence[str]) -> ResponseTextConfigParam:
    return {
        "format": {
            "type": "json_schema",
            "name": "transaction_category",
            "strict": True,
            "schema": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "category": {"type": "string", "enum": list(categories)},
                    "subcategory": {"type": ["string", "null"]},
                    "confidence": {"type": "number"},
                    "is_recurring": {"type": "boolean"},
                    "reasoning": {"type": "string"},
                },
                "required": [
                    "category",
                    "subcategory",
                    "confidence",
                    "is_recurring",
                    "reasoning",
                ],
            },
        }
    }


__all__ = [
    "BEGIN",
    "END",
    "build_system_instructions",
    "build_text_config",
    "build_user_content",
    "serialize_transaction",
]
