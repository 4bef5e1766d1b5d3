"""CSV ingestion: parsing/validation and the ingestion service."""

from .csv_parser import CSVParser, parse
from .service import ingest_csv, ingest_csv_file

__all__ = ["CSVParser", "ingest_csv", "ingest_csv_file", "parse"]
