"""
Statement Import

Bank statement CSV parsing, column mapping, normalization and duplicate
detection.
"""

__version__ = "0.1.0"

from .parser import parse_csv, validate_csv_content
from .column_mapper import auto_detect_mapping, column_mappings_to_mapping, validate_mapping
from .transactions import (
    parse_transactions,
    select_for_commit,
    summarize_preview,
    transactions_to_frame,
)
from .duplicate_detector import check_for_duplicates, mark_duplicates
from .data_source import (
    InMemoryTransactionSource,
    SupabaseTransactionSource,
    TransactionDataSource,
)

__all__ = [
    "parse_csv",
    "validate_csv_content",
    "auto_detect_mapping",
    "column_mappings_to_mapping",
    "validate_mapping",
    "parse_transactions",
    "select_for_commit",
    "summarize_preview",
    "transactions_to_frame",
    "check_for_duplicates",
    "mark_duplicates",
    "InMemoryTransactionSource",
    "SupabaseTransactionSource",
    "TransactionDataSource",
]
