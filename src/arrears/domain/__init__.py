"""Domain layer for arrears application."""

from arrears.domain.calculator import ArrearsCalculator, validate_result
from arrears.domain.classifier import classify_description
from arrears.domain.column_mapper import analyze_headers
from arrears.domain.ledger_import import LedgerImportService
from arrears.domain.row_tokenizer import RowTokenizer

__all__ = [
    "ArrearsCalculator",
    "LedgerImportService",
    "RowTokenizer",
    "analyze_headers",
    "classify_description",
    "validate_result",
]
