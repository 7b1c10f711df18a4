"""Row transformation - applies a validated ColumnMapping to CSV rows.

Every row becomes a ParsedTransaction. Bad cells never abort the batch:
they are recorded as ValidationErrors and the transaction is flagged
invalid so the caller can leave it out of the commit.
"""

import uuid
from typing import Iterable, Optional

import pandas as pd
import structlog

from .column_mapper import validate_mapping
from .errors import MappingValidationError
from .normalizers import parse_amount, parse_date, sanitize_description
from .schemas import (
    AmountFormat,
    ColumnMapping,
    DateRange,
    ErrorField,
    ParsedTransaction,
    PreviewSummary,
    ValidationError,
)

logger = structlog.get_logger()

FRAME_COLUMNS = [
    "temp_id",
    "date",
    "amount",
    "description",
    "reference",
    "memo",
    "row_index",
    "is_valid",
    "is_duplicate",
    "duplicate_confidence",
]


def _cell(row: list[str], index: Optional[int]) -> str:
    if index is None or index < 0 or index >= len(row):
        return ""
    return row[index]


def _parse_split_amount(
    debit_value: str, credit_value: str, errors: list[ValidationError]
) -> float:
    debit = parse_amount(debit_value)
    credit = parse_amount(credit_value)

    if debit is not None and debit != 0:
        return -abs(debit)
    if credit is not None and credit != 0:
        return abs(credit)

    if debit_value.strip() == "" and credit_value.strip() == "":
        errors.append(
            ValidationError(field=ErrorField.AMOUNT, message="Both debit and credit columns are empty")
        )
    else:
        errors.append(
            ValidationError(
                field=ErrorField.AMOUNT,
                message=f'Invalid debit/credit values: "{debit_value}" / "{credit_value}"',
                value=f"{debit_value}/{credit_value}",
            )
        )
    return 0.0


def transform_row(row: list[str], row_index: int, mapping: ColumnMapping) -> ParsedTransaction:
    """Turn one CSV row into a candidate transaction."""
    errors: list[ValidationError] = []
    occurred_at = ""
    amount = 0.0

    date_value = _cell(row, mapping.date_column_index)
    parsed_date = parse_date(date_value, mapping.date_format)
    if parsed_date is None:
        errors.append(
            ValidationError(
                field=ErrorField.DATE,
                message=f'Invalid date format: "{date_value}"',
                value=date_value,
            )
        )
    else:
        occurred_at = parsed_date

    if mapping.amount_format == AmountFormat.SPLIT:
        amount = _parse_split_amount(
            _cell(row, mapping.debit_column_index),
            _cell(row, mapping.credit_column_index),
            errors,
        )
    else:
        amount_value = _cell(row, mapping.amount_column_index)
        parsed_amount = parse_amount(amount_value)
        if parsed_amount is None:
            errors.append(
                ValidationError(
                    field=ErrorField.AMOUNT,
                    message=f'Invalid amount: "{amount_value}"',
                    value=amount_value,
                )
            )
        else:
            amount = parsed_amount

    description_value = _cell(row, mapping.description_column_index)
    description = sanitize_description(description_value)
    if not description:
        errors.append(
            ValidationError(
                field=ErrorField.DESCRIPTION,
                message="Description is empty",
                value=description_value,
            )
        )

    reference = sanitize_description(_cell(row, mapping.reference_column_index)) or None
    memo = sanitize_description(_cell(row, mapping.memo_column_index)) or None

    return ParsedTransaction(
        temp_id=uuid.uuid4().hex,
        occurred_at=occurred_at,
        amount=amount,
        description=description,
        reference=reference,
        memo=memo,
        row_index=row_index,
        raw_row=list(row),
        is_valid=not errors,
        errors=errors,
    )


def parse_transactions(rows: list[list[str]], mapping: ColumnMapping) -> list[ParsedTransaction]:
    """Transform all rows, preserving order.

    Raises:
        MappingValidationError: if the mapping is missing a required field.
    """
    validation = validate_mapping(mapping)
    if not validation.valid:
        raise MappingValidationError(validation.errors)

    transactions = [transform_row(row, i, mapping) for i, row in enumerate(rows)]

    logger.info(
        "transactions_parsed",
        total=len(transactions),
        invalid=sum(1 for t in transactions if not t.is_valid),
    )
    return transactions


def transactions_to_frame(transactions: list[ParsedTransaction]) -> pd.DataFrame:
    """Flatten a batch into a DataFrame for ledger-insert preparation."""
    records = [
        {
            "temp_id": t.temp_id,
            "date": t.occurred_at,
            "amount": t.amount,
            "description": t.description,
            "reference": t.reference,
            "memo": t.memo,
            "row_index": t.row_index,
            "is_valid": t.is_valid,
            "is_duplicate": t.is_duplicate,
            "duplicate_confidence": t.duplicate_match.confidence if t.duplicate_match else None,
        }
        for t in transactions
    ]
    return pd.DataFrame(records, columns=FRAME_COLUMNS)


def summarize_preview(transactions: list[ParsedTransaction]) -> PreviewSummary:
    """Counts, net amount and date range of a previewed batch."""
    if not transactions:
        return PreviewSummary()

    df = transactions_to_frame(transactions)
    valid = df[df["is_valid"]]

    date_range = DateRange()
    if not valid.empty:
        dates = pd.to_datetime(valid["date"], format="%Y-%m-%d", errors="coerce").dropna()
        if not dates.empty:
            date_range = DateRange(
                earliest=dates.min().strftime("%Y-%m-%d"),
                latest=dates.max().strftime("%Y-%m-%d"),
            )

    return PreviewSummary(
        transactions=transactions,
        valid_count=int(df["is_valid"].sum()),
        duplicate_count=int(df["is_duplicate"].sum()),
        error_count=int((~df["is_valid"]).sum()),
        total_amount=round(float(valid["amount"].sum()), 2),
        date_range=date_range,
    )


def select_for_commit(
    transactions: list[ParsedTransaction],
    skip_duplicates: bool = True,
    duplicates_to_import: Iterable[str] = (),
) -> list[ParsedTransaction]:
    """Pick the transactions a caller should persist.

    Invalid rows are always left out. Flagged duplicates are left out when
    skip_duplicates is set, unless their temp_id is in duplicates_to_import.
    """
    force_import = set(duplicates_to_import)
    selected = []

    for transaction in transactions:
        if not transaction.is_valid:
            continue
        if transaction.is_duplicate and skip_duplicates and transaction.temp_id not in force_import:
            continue
        selected.append(transaction)

    return selected
