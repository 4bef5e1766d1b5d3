"""CLI for the ``spending_insights`` package.

Exposes callable command handlers (``cmd_*``) that return process exit codes
and a Typer-based console interface around them. Environment variables are
loaded from a local ``.env`` with ``python-dotenv`` (never overriding values
already set) before :class:`~spending_insights.config.Settings` is built.
Business logic lives in :mod:`spending_insights.ingest` and
:mod:`spending_insights.insights`.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .config import Settings
from .logging_setup import configure_logging
from .stores import InsightStore, TransactionStore


def _load_settings(database_url: str | None) -> Settings:
    settings = Settings.from_env()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    return settings


def _build_stores(settings: Settings) -> tuple[TransactionStore, InsightStore]:
    """Open the SQL repository named by ``settings.database_url``."""

    # Local imports keep CLI startup fast
    from db.client import create_engine_for, init_schema, make_session_factory

    from .persistence import SqlRepository

    engine = create_engine_for(settings.database_url)
    init_schema(engine)
    repo = SqlRepository(make_session_factory(engine))
    return TransactionStore(repo), InsightStore(repo)


def cmd_ingest_csv(csv_path: str, user_id: str, *, database_url: str | None = None) -> int:
    """Ingest ``csv_path`` for ``user_id`` and print the result envelope as JSON.

    Returns ``0`` when at least one transaction was processed, ``1`` otherwise.
    """

    from .classify import build_classifier
    from .ingest.service import ingest_csv

    try:
        settings = _load_settings(database_url)
        content = Path(csv_path).read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: File not found: {csv_path}", file=sys.stderr)
        return 1
    except (OSError, UnicodeDecodeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        transactions, _insights = _build_stores(settings)
        result = ingest_csv(
            content,
            user_id,
            classifier=build_classifier(settings),
            store=transactions,
            concurrency=settings.classify_concurrency,
        )
    except Exception as e:
        print(f"Error: ingestion failed: {e}", file=sys.stderr)
        return 1

    print(result.model_dump_json(indent=2))
    return 0 if result.success else 1


def cmd_generate_insights(
    user_id: str,
    *,
    period_of: str | None = None,
    daily: bool = False,
    force: bool = False,
    database_url: str | None = None,
) -> int:
    """Generate (or fetch) the insight for one period and print it as JSON."""

    from .classify import build_classifier
    from .insights import InsightService

    try:
        settings = _load_settings(database_url)
        transactions, insights = _build_stores(settings)
        service = InsightService(
            transactions=transactions,
            insights=insights,
            classifier=build_classifier(settings),
            classify_concurrency=settings.classify_concurrency,
        )
        result = service.generate(
            user_id, period_of, force_regenerate=force, kind="day" if daily else "week"
        )
    except Exception as e:
        print(f"Error: insight generation failed: {e}", file=sys.stderr)
        return 1

    print(result.model_dump_json(indent=2))
    return 0 if result.success else 1


def cmd_mark_implemented(
    user_id: str,
    period_of: str,
    recommendation_id: str,
    *,
    daily: bool = False,
    database_url: str | None = None,
) -> int:
    from .insights import InsightService

    try:
        settings = _load_settings(database_url)
        transactions, insights = _build_stores(settings)
        service = InsightService(transactions=transactions, insights=insights)
        insight = service.mark_action_implemented(
            user_id, period_of, recommendation_id, kind="day" if daily else "week"
        )
    except Exception as e:
        print(f"Error: could not mark recommendation implemented: {e}", file=sys.stderr)
        return 1

    print(insight.model_dump_json(indent=2))
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Ingest bank CSV exports and generate weekly or daily spending insights. "
        "Loads settings (DATABASE_URL, OPENAI_API_KEY, ...) from a local .env."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--csv-path",
    help="Path to a bank CSV export (date, description, amount columns)",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files
)
USER_ID_OPTION: OptionInfo = typer.Option(..., "--user-id", help="Owner of the data")


def _exit(code: int) -> None:
    if code != 0:
        raise typer.Exit(code)


@app.command("ingest-csv")
def ingest_csv_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    user_id: Annotated[str, USER_ID_OPTION],
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Parse, redact, classify and store a CSV statement."""

    _exit(cmd_ingest_csv(str(csv_path), user_id, database_url=database_url))


@app.command("generate-insights")
def generate_insights_cmd(
    user_id: Annotated[str, USER_ID_OPTION],
    period_of: str | None = typer.Option(
        None,
        "--period-of",
        help="ISO week key (2024-W03) or a date inside the period; defaults to today.",
    ),
    daily: bool = typer.Option(False, "--daily", help="Analyze a single day, not a week."),
    force: bool = typer.Option(False, "--force", help="Recompute even if an insight exists."),
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Generate the insight for a period (or return the stored one)."""

    _exit(
        cmd_generate_insights(
            user_id, period_of=period_of, daily=daily, force=force, database_url=database_url
        )
    )


@app.command("mark-implemented")
def mark_implemented_cmd(
    user_id: Annotated[str, USER_ID_OPTION],
    period_of: str = typer.Option(..., "--period-of", help="Week key or date of the insight."),
    recommendation_id: str = typer.Option(..., "--recommendation-id"),
    daily: bool = typer.Option(False, "--daily", help="The insight is a daily one."),
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Record that the user acted on a recommendation."""

    _exit(
        cmd_mark_implemented(
            user_id, period_of, recommendation_id, daily=daily, database_url=database_url
        )
    )


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
