from __future__ import annotations

import pytest
from spending_insights.config import Settings


def test_defaults() -> None:
    s = Settings.from_env({})
    assert s.classifier_mode == "keyword"
    assert s.openai_model == "gpt-5"
    assert s.ai_timeout_seconds == 10.0
    assert s.ai_max_attempts == 3
    assert s.classify_concurrency == 4
    assert s.database_url is None
    assert s.log_level == "INFO"


def test_values_from_environment() -> None:
    s = Settings.from_env(
        {
            "SPENDING_INSIGHTS_CLASSIFIER": " OpenAI ",
            "SPENDING_INSIGHTS_OPENAI_MODEL": "gpt-4.1-mini",
            "SPENDING_INSIGHTS_AI_TIMEOUT": "2.5",
            "SPENDING_INSIGHTS_AI_MAX_ATTEMPTS": "5",
            "SPENDING_INSIGHTS_CONCURRENCY": "8",
            "DATABASE_URL": "sqlite:///x.db",
            "SPENDING_INSIGHTS_LOG_LEVEL": "DEBUG",
        }
    )
    assert s.classifier_mode == "openai"
    assert s.openai_model == "gpt-4.1-mini"
    assert s.ai_timeout_seconds == 2.5
    assert s.ai_max_attempts == 5
    assert s.classify_concurrency == 8
    assert s.database_url == "sqlite:///x.db"
    assert s.log_level == "DEBUG"


def test_blank_values_keep_defaults() -> None:
    s = Settings.from_env({"DATABASE_URL": "  ", "SPENDING_INSIGHTS_CONCURRENCY": ""})
    assert s.database_url is None
    assert s.classify_concurrency == 4


def test_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SPENDING_INSIGHTS_AI_MAX_ATTEMPTS", "2")
    assert Settings.from_env().ai_max_attempts == 2


@pytest.mark.parametrize(
    ("var", "value"),
    [
        ("SPENDING_INSIGHTS_CONCURRENCY", "0"),
        ("SPENDING_INSIGHTS_AI_TIMEOUT", "-1"),
        ("SPENDING_INSIGHTS_AI_MAX_ATTEMPTS", "many"),
        ("SPENDING_INSIGHTS_CLASSIFIER", "magic"),
    ],
)
def test_invalid_values_name_the_variable(var: str, value: str) -> None:
    with pytest.raises(ValueError, match=var):
        Settings.from_env({var: value})


def test_settings_are_frozen() -> None:
    s = Settings()
    with pytest.raises(ValueError):
        s.classify_concurrency = 2  # type: ignore[misc]
