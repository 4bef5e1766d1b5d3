"""Response decoding and validation for remote classification.

The Responses API result is decoded to a JSON mapping and validated with
pydantic. The allow-list of categories is threaded through the validation
context so an out-of-vocabulary answer is rejected rather than stored.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator


class PolicyBlockedError(RuntimeError):
    """The upstream service refused or truncated the answer."""


def extract_response_json_mapping(resp: Any) -> Mapping[str, Any]:
    """Decode the JSON mapping from an OpenAI Responses SDK result.

    Prefers ``resp.output_text`` and falls back to
    ``resp.output[0].content[0].text``. Raises ``ValueError`` when no text is
    found or it is not valid JSON, and :class:`PolicyBlockedError` for refused
    or incomplete responses.
    """

    if getattr(resp, "status", None) == "incomplete":
        raise PolicyBlockedError("response incomplete")

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        output = getattr(resp, "output", None) or []
        for item in output:
            for part in getattr(item, "content", None) or []:
                if getattr(part, "type", None) == "refusal":
                    raise PolicyBlockedError(str(getattr(part, "refusal", "refused")))
                candidate = getattr(part, "text", None)
                if isinstance(candidate, str) and candidate:
                    text = candidate
                    break
            if text:
                break
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON per the requested schema") from e
    if not isinstance(decoded, Mapping):
        raise ValueError("Model output must be a JSON object")
    return decoded


class AiDecision(BaseModel):
    """Validated classification decision returned by the model.

    Expects ``allowed_categories`` in the validation context.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    category: str
    subcategory: str | None = None
    confidence: float
    is_recurring: bool = False
    reasoning: str

    @field_validator("category")
    @classmethod
    def _category_in_allowlist(cls, v: str, info: ValidationInfo) -> str:
        allowed = info.context.get("allowed_categories") if info.context else None
        if allowed and v not in allowed:
            raise ValueError(f"category not in allow-list: {v!r}")
        return v

    @field_validator("subcategory")
    @classmethod
    def _blank_subcategory_is_none(cls, v: str | None) -> str | None:
        return v or None

    @field_validator("confidence")
    @classmethod
    def _confidence_in_unit_interval(cls, v: float) -> float:
        if 0.0 <= float(v) <= 1.0:
            return float(v)
        raise ValueError("confidence must be within [0,1]")

    @field_validator("reasoning")
    @classmethod
    def _reasoning_non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("reasoning must be a non-empty string")
        return v


def parse_decision(body: Mapping[str, Any], *, allowed_categories: Sequence[str]) -> AiDecision:
    """Validate ``body``; raises ``pydantic.ValidationError`` (a ``ValueError``)."""

    return AiDecision.model_validate(
        body, context={"allowed_categories": frozenset(allowed_categories)}
    )


__all__ = ["AiDecision", "PolicyBlockedError", "extract_response_json_mapping", "parse_decision"]
