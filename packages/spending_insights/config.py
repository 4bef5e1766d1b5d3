"""Runtime settings for the insights pipeline.

Settings are resolved once at an entrypoint (``Settings.from_env``) and then
passed explicitly to factories such as
:func:`spending_insights.classify.build_classifier`. Pipeline stages never read
the environment themselves.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

type ClassifierMode = Literal["keyword", "openai"]

_ENV_CLASSIFIER = "SPENDING_INSIGHTS_CLASSIFIER"
_ENV_MODEL = "SPENDING_INSIGHTS_OPENAI_MODEL"
_ENV_TIMEOUT = "SPENDING_INSIGHTS_AI_TIMEOUT"
_ENV_ATTEMPTS = "SPENDING_INSIGHTS_AI_MAX_ATTEMPTS"
_ENV_CONCURRENCY = "SPENDING_INSIGHTS_CONCURRENCY"
_ENV_DATABASE_URL = "DATABASE_URL"
_ENV_LOG_LEVEL = "SPENDING_INSIGHTS_LOG_LEVEL"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    classifier_mode: ClassifierMode = "keyword"
    openai_model: str = "gpt-5"
    ai_timeout_seconds: float = Field(default=10.0, gt=0)
    ai_max_attempts: int = Field(default=3, ge=1, le=10)
    classify_concurrency: int = Field(default=4, ge=1, le=32)
    database_url: str | None = None
    log_level: str = "INFO"

    @field_validator("classifier_mode", mode="before")
    @classmethod
    def _lower_mode(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("database_url")
    @classmethod
    def _blank_url_is_none(cls, v: str | None) -> str | None:
        return v or None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Unset variables keep their defaults. Invalid values raise ``ValueError``
        naming the offending variable.
        """

        env = os.environ if environ is None else environ
        mapping = {
            "classifier_mode": _ENV_CLASSIFIER,
            "openai_model": _ENV_MODEL,
            "ai_timeout_seconds": _ENV_TIMEOUT,
            "ai_max_attempts": _ENV_ATTEMPTS,
            "classify_concurrency": _ENV_CONCURRENCY,
            "database_url": _ENV_DATABASE_URL,
            "log_level": _ENV_LOG_LEVEL,
        }
        values: dict[str, str] = {}
        for field, var in mapping.items():
            raw = env.get(var)
            if raw is not None and raw.strip() != "":
                values[field] = raw

        try:
            # Environment values are strings; lax mode coerces numerics.
            return cls.model_validate(values)
        except ValidationError as e:
            bad = sorted({mapping[str(err["loc"][0])] for err in e.errors() if err["loc"]})
            where = ", ".join(bad) or "environment"
            raise ValueError(f"Invalid configuration in {where}: {e}") from e


__all__ = ["ClassifierMode", "Settings"]
