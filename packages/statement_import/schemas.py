"""Pydantic schemas for the statement import pipeline."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DateFormat(str, Enum):
    """Day/month/year orderings a bank export may use."""

    DD_MM_YYYY = "DD/MM/YYYY"
    MM_DD_YYYY = "MM/DD/YYYY"
    YYYY_MM_DD = "YYYY-MM-DD"
    DD_MM_YYYY_DASH = "DD-MM-YYYY"
    D_M_YYYY = "D/M/YYYY"
    M_D_YYYY = "M/D/YYYY"


class AmountFormat(str, Enum):
    """How a bank represents the transaction amount."""

    SIGNED = "signed"  # one column, negative = money out
    SPLIT = "split"  # separate debit / credit columns


class MappableField(str, Enum):
    DATE = "date"
    AMOUNT = "amount"
    DEBIT = "debit"
    CREDIT = "credit"
    DESCRIPTION = "description"
    REFERENCE = "reference"
    MEMO = "memo"
    IGNORE = "ignore"


class ErrorField(str, Enum):
    DATE = "date"
    AMOUNT = "amount"
    DESCRIPTION = "description"
    REFERENCE = "reference"
    MEMO = "memo"
    GENERAL = "general"


class ParsedCSV(BaseModel):
    """Headers and rows tokenized from raw delimited text."""

    headers: list[str] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)
    delimiter: str = ","
    row_count: int = 0
    file_size: int = 0
    truncated: bool = False


class ContentCheck(BaseModel):
    """Outcome of the cheap pre-parse sniff of an upload."""

    valid: bool
    errors: list[str] = Field(default_factory=list)


class BankPreset(BaseModel):
    """Known CSV column layout of one bank."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    date_column: str
    date_format: DateFormat
    amount_format: AmountFormat
    amount_column: Optional[str] = None
    debit_column: Optional[str] = None
    credit_column: Optional[str] = None
    description_column: str
    reference_column: Optional[str] = None
    memo_column: Optional[str] = None
    # Every one of these must appear in the header row for the preset to match
    identifying_columns: tuple[str, ...] = ()


class ColumnMapping(BaseModel):
    """Zero-based column indices for each logical field.

    Required indices that could not be resolved are -1. A split mapping
    never carries an amount index.
    """

    date_column_index: int = -1
    date_format: DateFormat = DateFormat.DD_MM_YYYY
    amount_format: AmountFormat = AmountFormat.SIGNED
    amount_column_index: Optional[int] = None
    debit_column_index: Optional[int] = None
    credit_column_index: Optional[int] = None
    description_column_index: int = -1
    reference_column_index: Optional[int] = None
    memo_column_index: Optional[int] = None


class ColumnMappingEntry(BaseModel):
    """One physical column as shown in a manual-mapping editor."""

    header: str
    index: int
    mapped_to: MappableField = MappableField.IGNORE
    sample_values: list[str] = Field(default_factory=list)


class AutoDetectResult(BaseModel):
    preset_id: Optional[str] = None
    mapping: ColumnMapping
    column_mappings: list[ColumnMappingEntry] = Field(default_factory=list)
    confidence: int = 0
    warnings: list[str] = Field(default_factory=list)


class MappingValidation(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


class ValidationError(BaseModel):
    """A field-level problem found while transforming one CSV row."""

    field: ErrorField
    message: str
    value: Optional[str] = None


class DuplicateMatch(BaseModel):
    """The existing ledger record a candidate most likely duplicates."""

    existing_transaction_id: str
    existing_description: str
    existing_amount: float
    existing_date: str
    confidence: int = Field(ge=0, le=100)
    match_reasons: list[str] = Field(default_factory=list)


class ParsedTransaction(BaseModel):
    """A candidate ledger record built from one CSV row."""

    temp_id: str
    occurred_at: str = ""
    amount: float = 0.0  # positive = money in
    description: str = ""
    reference: Optional[str] = None
    memo: Optional[str] = None
    row_index: int
    raw_row: list[str] = Field(default_factory=list)
    is_valid: bool = True
    errors: list[ValidationError] = Field(default_factory=list)
    is_duplicate: bool = False
    duplicate_match: Optional[DuplicateMatch] = None


class ExistingTransaction(BaseModel):
    """A committed ledger record as returned by a TransactionDataSource."""

    model_config = ConfigDict(frozen=True)

    id: str
    description: str = ""
    amount: float
    date: str  # YYYY-MM-DD

    @field_validator("date", mode="before")
    @classmethod
    def to_calendar_date(cls, value):
        """Accept dates, datetimes and ISO timestamps; keep only the day."""
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        text = str(value).strip()[:10]
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            raise ValueError(f"not an ISO date: {value!r}")


class DuplicateEntry(BaseModel):
    temp_id: str
    match: DuplicateMatch


class DuplicateCheckResult(BaseModel):
    duplicates: list[DuplicateEntry] = Field(default_factory=list)
    checked_count: int = 0
    duplicate_count: int = 0


class DateRange(BaseModel):
    earliest: str = ""
    latest: str = ""


class PreviewSummary(BaseModel):
    """Totals shown before the user confirms an import."""

    transactions: list[ParsedTransaction] = Field(default_factory=list)
    valid_count: int = 0
    duplicate_count: int = 0
    error_count: int = 0
    total_amount: float = 0.0
    date_range: DateRange = Field(default_factory=DateRange)
