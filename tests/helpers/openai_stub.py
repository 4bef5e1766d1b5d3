"""Test helpers to stub the OpenAI Responses client used by classify.py.

The stub parses the user-content payload to extract the embedded transaction
JSON and hands it to a ``decide`` callable. Whatever ``decide`` returns becomes
the response: a mapping is JSON-encoded into ``output_text``, a string is used
verbatim, and an exception instance is raised from ``responses.create``.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

BEGIN = "BEGIN_TRANSACTION_JSON\n"
END = "\nEND_TRANSACTION_JSON"


def extract_transaction_from_user_content(user_content: str) -> dict[str, Any]:
    b = user_content.find(BEGIN)
    e = user_content.rfind(END)
    if b == -1 or e == -1 or e <= b:
        raise AssertionError("classify: user content missing embedded transaction JSON block")
    return json.loads(user_content[b + len(BEGIN) : e])


class HttpStatusError(Exception):
    """Exception carrying a ``status_code`` like the SDK's ``APIStatusError``."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def decision(
    category: str,
    *,
    subcategory: str | None = None,
    confidence: float = 0.9,
    is_recurring: bool = False,
    reasoning: str = "Stubbed decision",
) -> dict[str, Any]:
    return {
        "category": category,
        "subcategory": subcategory,
        "confidence": confidence,
        "is_recurring": is_recurring,
        "reasoning": reasoning,
    }


class OpenAIStub:
    """Minimal stub matching the ``openai.OpenAI`` shape used by ``classify.py``.

    Parameters
    ----------
    decide:
        Receives the embedded transaction mapping and returns a mapping,
        a raw string, or an exception instance to raise.
    calls_out:
        A list appended with each call's kwargs for lightweight assertions.

    Use :meth:`factory` as the monkeypatched ``OpenAI`` symbol; it records
    the constructor kwargs in :attr:`init_kwargs`.
    """

    def __init__(
        self,
        decide: Callable[[dict[str, Any]], Any],
        calls_out: list[dict[str, Any]] | None = None,
    ) -> None:
        self._decide = decide
        self._calls = calls_out if calls_out is not None else []
        self.init_kwargs: list[dict[str, Any]] = []

        class _Responses:
            def __init__(self, outer: OpenAIStub) -> None:
                self._outer = outer

            def create(self, **kwargs):
                self._outer._calls.append(kwargs)
                item = extract_transaction_from_user_content(kwargs["input"])
                out = self._outer._decide(item)
                if isinstance(out, BaseException):
                    raise out

                class _Resp:
                    output_text: str

                resp = _Resp()
                resp.output_text = out if isinstance(out, str) else json.dumps(out)
                return resp

        self.responses = _Responses(self)

    def factory(self, *args: Any, **kwargs: Any) -> OpenAIStub:
        self.init_kwargs.append(kwargs)
        return self

    @property
    def calls(self) -> list[dict[str, Any]]:
        return self._calls
