"""Public interface for the ``spending_insights`` package.

Re-exports the entry points of the pipeline (ingestion, classification,
insight generation) and the public models. No runtime logic lives here.
"""

from .classify import KeywordClassifier, OpenAIClassifier, build_classifier
from .config import Settings
from .ingest import CSVParser, ingest_csv, ingest_csv_file
from .insights import InsightService, run_trigger
from .models import (
    CategorySpending,
    ClassificationResult,
    GenerationResult,
    IngestionResult,
    Insight,
    Opportunity,
    ParseError,
    ParseResult,
    Recommendation,
    Transaction,
)
from .pii import sanitize

__all__ = [
    # Entry points
    "CSVParser",
    "InsightService",
    "KeywordClassifier",
    "OpenAIClassifier",
    "Settings",
    "build_classifier",
    "ingest_csv",
    "ingest_csv_file",
    "run_trigger",
    "sanitize",
    # Models
    "CategorySpending",
    "ClassificationResult",
    "GenerationResult",
    "IngestionResult",
    "Insight",
    "Opportunity",
    "ParseError",
    "ParseResult",
    "Recommendation",
    "Transaction",
]
