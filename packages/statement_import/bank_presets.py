"""
Bank Format Registry - known New Zealand bank CSV layouts.

Presets are matched exactly against the header row: every identifying
column of a preset must be present (case and surrounding whitespace
ignored). Presets are tried in declaration order, so layouts with more
specific column sets come before the generic Date/Amount/Description
layout shared by several smaller banks.

For unknown layouts, fuzzy_match_column maps single headers to fields with
a fixed synonym dictionary.
"""

import re
from types import MappingProxyType
from typing import Optional

import structlog

from .schemas import AmountFormat, BankPreset, DateFormat, MappableField

logger = structlog.get_logger()


_PRESETS = (
    # ASB internet banking export
    BankPreset(
        id="asb",
        name="ASB Bank",
        date_column="Date",
        date_format=DateFormat.DD_MM_YYYY,
        amount_format=AmountFormat.SIGNED,
        amount_column="Amount",
        description_column="Payee",
        reference_column="Reference",
        memo_column="Memo",
        identifying_columns=("Date", "Amount", "Payee", "Reference"),
    ),
    # ANZ uses separate debit/credit columns
    BankPreset(
        id="anz",
        name="ANZ Bank",
        date_column="Date",
        date_format=DateFormat.DD_MM_YYYY,
        amount_format=AmountFormat.SPLIT,
        debit_column="Debit Amount",
        credit_column="Credit Amount",
        description_column="Details",
        reference_column="Reference",
        identifying_columns=("Date", "Debit Amount", "Credit Amount", "Details"),
    ),
    BankPreset(
        id="bnz",
        name="BNZ",
        date_column="Date",
        date_format=DateFormat.DD_MM_YYYY,
        amount_format=AmountFormat.SIGNED,
        amount_column="Amount",
        description_column="Payee",
        reference_column="Reference",
        memo_column="Particulars",
        identifying_columns=("Date", "Amount", "Payee", "Particulars"),
    ),
    BankPreset(
        id="westpac",
        name="Westpac",
        date_column="Date",
        date_format=DateFormat.DD_MM_YYYY,
        amount_format=AmountFormat.SIGNED,
        amount_column="Amount",
        description_column="Description",
        reference_column="Reference",
        memo_column="Other Party",
        identifying_columns=("Date", "Amount", "Description", "Other Party"),
    ),
    BankPreset(
        id="kiwibank",
        name="Kiwibank",
        date_column="Date",
        date_format=DateFormat.DD_MM_YYYY,
        amount_format=AmountFormat.SIGNED,
        amount_column="Amount",
        description_column="Description",
        reference_column="Reference",
        memo_column="Particulars",
        identifying_columns=("Date", "Amount", "Description", "Particulars"),
    ),
    # The remaining banks share one generic layout; detection resolves it
    # to the first of them, the others are available for manual selection.
    BankPreset(
        id="tsb",
        name="TSB Bank",
        date_column="Date",
        date_format=DateFormat.DD_MM_YYYY,
        amount_format=AmountFormat.SIGNED,
        amount_column="Amount",
        description_column="Description",
        reference_column="Reference",
        identifying_columns=("Date", "Amount", "Description"),
    ),
    BankPreset(
        id="rabobank",
        name="Rabobank",
        date_column="Date",
        date_format=DateFormat.DD_MM_YYYY,
        amount_format=AmountFormat.SIGNED,
        amount_column="Amount",
        description_column="Description",
        reference_column="Reference",
        identifying_columns=("Date", "Amount", "Description"),
    ),
    BankPreset(
        id="sbs",
        name="SBS Bank",
        date_column="Date",
        date_format=DateFormat.DD_MM_YYYY,
        amount_format=AmountFormat.SIGNED,
        amount_column="Amount",
        description_column="Description",
        reference_column="Reference",
        identifying_columns=("Date", "Amount", "Description"),
    ),
    BankPreset(
        id="coop",
        name="Co-operative Bank",
        date_column="Date",
        date_format=DateFormat.DD_MM_YYYY,
        amount_format=AmountFormat.SIGNED,
        amount_column="Amount",
        description_column="Description",
        reference_column="Reference",
        identifying_columns=("Date", "Amount", "Description"),
    ),
    BankPreset(
        id="heartland",
        name="Heartland Bank",
        date_column="Date",
        date_format=DateFormat.DD_MM_YYYY,
        amount_format=AmountFormat.SIGNED,
        amount_column="Amount",
        description_column="Description",
        reference_column="Reference",
        identifying_columns=("Date", "Amount", "Description"),
    ),
)

# Read-only, keyed by preset id, iteration order = detection priority
BANK_PRESETS = MappingProxyType({preset.id: preset for preset in _PRESETS})


# Synonyms per field. Fields are tried top to bottom, synonyms left to
# right. Debit and credit come before amount so "Debit Amount" is a debit
# column, and description before memo so "Particulars" is a description.
COLUMN_PATTERNS: tuple[tuple[MappableField, tuple[str, ...]], ...] = (
    (
        MappableField.DATE,
        ("date", "transaction date", "trans date", "posted date", "value date", "effective date"),
    ),
    (
        MappableField.DEBIT,
        ("debit", "debit amount", "withdrawal", "withdrawals", "money out", "dr"),
    ),
    (
        MappableField.CREDIT,
        ("credit", "credit amount", "deposit", "deposits", "money in", "cr"),
    ),
    (
        MappableField.AMOUNT,
        ("amount", "transaction amount", "trans amount", "value", "sum"),
    ),
    (
        MappableField.DESCRIPTION,
        (
            "description",
            "details",
            "payee",
            "merchant",
            "narrative",
            "transaction description",
            "particulars",
            "name",
        ),
    ),
    (
        MappableField.REFERENCE,
        ("reference", "ref", "reference number", "trans ref", "transaction reference", "code"),
    ),
    (
        MappableField.MEMO,
        ("memo", "notes", "other party", "analysis"),
    ),
)


def normalize_header(header: str) -> str:
    """Lowercase, treat _ and - as spaces, collapse whitespace."""
    return " ".join(re.sub(r"[_\-]", " ", str(header or "")).lower().split())


def get_bank_preset(preset_id: str) -> Optional[BankPreset]:
    """Get a bank preset by ID."""
    return BANK_PRESETS.get(preset_id)


def get_all_bank_presets() -> list[BankPreset]:
    """All presets in detection priority order."""
    return list(BANK_PRESETS.values())


def detect_bank_preset(headers: list[str]) -> Optional[str]:
    """Return the id of the first preset whose identifying columns all appear in headers."""
    header_set = {normalize_header(h) for h in headers}

    for preset in BANK_PRESETS.values():
        if not preset.identifying_columns:
            continue
        required = {normalize_header(c) for c in preset.identifying_columns}
        if required <= header_set:
            logger.debug("bank_preset_detected", preset_id=preset.id)
            return preset.id

    return None


# Synonyms shorter than this only match as whole words ("cr" in "description")
MIN_SUBSTRING_LENGTH = 3


def _contains_word(text: str, phrase: str) -> bool:
    return re.search(rf"(?<![a-z0-9]){re.escape(phrase)}(?![a-z0-9])", text) is not None


def _contains_synonym(normalized: str, pattern: str) -> bool:
    if len(pattern) < MIN_SUBSTRING_LENGTH:
        return _contains_word(normalized, pattern)
    # Spaces are dropped so "DebitAmount" and "Other Party" both hit
    return pattern.replace(" ", "") in normalized.replace(" ", "")


def fuzzy_match_column(header: str) -> Optional[MappableField]:
    """Map a column header to a field using COLUMN_PATTERNS.

    An exact synonym match anywhere in the dictionary wins first. Otherwise
    the first field (in COLUMN_PATTERNS order) with a synonym contained in
    the header wins, so "TransactionDate" is a date column. Synonyms shorter
    than MIN_SUBSTRING_LENGTH must appear as whole words, which keeps
    "Description" from hitting the "cr" synonym of credit.
    """
    normalized = normalize_header(header)
    if not normalized:
        return None

    for field, patterns in COLUMN_PATTERNS:
        if normalized in patterns:
            return field

    for field, patterns in COLUMN_PATTERNS:
        for pattern in patterns:
            if _contains_synonym(normalized, pattern):
                return field

    return None
