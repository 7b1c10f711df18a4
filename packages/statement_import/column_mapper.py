"""
Column Mapping Engine - derives which CSV column holds which field.

Known bank layouts are mapped straight from their preset. Unknown layouts
fall back to fuzzy header matching, which also yields warnings for every
required field it could not find. Manual edits made on the per-column
entries are turned back into a ColumnMapping by column_mappings_to_mapping.
"""

from typing import Optional

import structlog

from .bank_presets import detect_bank_preset, fuzzy_match_column, get_bank_preset, normalize_header
from .config import settings
from .parser import get_column_samples
from .schemas import (
    AmountFormat,
    AutoDetectResult,
    BankPreset,
    ColumnMapping,
    ColumnMappingEntry,
    DateFormat,
    MappableField,
    MappingValidation,
)

logger = structlog.get_logger()

# Confidence points per resolved field
DATE_POINTS = 30
AMOUNT_POINTS = 30
DESCRIPTION_POINTS = 20
REFERENCE_POINTS = 10
MEMO_POINTS = 10

MAX_SAMPLES = 3


def auto_detect_mapping(headers: list[str], rows: list[list[str]]) -> AutoDetectResult:
    """Suggest a column mapping for a parsed CSV.

    Args:
        headers: Column headers from the CSV
        rows: Data rows, used for sample values

    Returns:
        AutoDetectResult with the mapping, per-column entries, a 0-100
        confidence score and warnings for undetected required fields
    """
    preset_id = detect_bank_preset(headers)
    preset = get_bank_preset(preset_id) if preset_id else None

    if preset:
        result = _mapping_from_preset(headers, rows, preset)
    else:
        result = _mapping_from_fuzzy(headers, rows)

    logger.info(
        "mapping_detected",
        preset_id=result.preset_id,
        confidence=result.confidence,
        warnings=len(result.warnings),
    )
    return result


def _find_column_index(normalized_headers: list[str], column_name: Optional[str]) -> Optional[int]:
    if not column_name:
        return None
    target = normalize_header(column_name)
    if target in normalized_headers:
        return normalized_headers.index(target)
    return None


def _mapping_from_preset(
    headers: list[str], rows: list[list[str]], preset: BankPreset
) -> AutoDetectResult:
    normalized_headers = [normalize_header(h) for h in headers]

    date_index = _find_column_index(normalized_headers, preset.date_column)
    description_index = _find_column_index(normalized_headers, preset.description_column)

    mapping = ColumnMapping(
        date_column_index=-1 if date_index is None else date_index,
        date_format=preset.date_format,
        amount_format=preset.amount_format,
        description_column_index=-1 if description_index is None else description_index,
        reference_column_index=_find_column_index(normalized_headers, preset.reference_column),
        memo_column_index=_find_column_index(normalized_headers, preset.memo_column),
    )

    if preset.amount_format == AmountFormat.SPLIT:
        mapping.debit_column_index = _find_column_index(normalized_headers, preset.debit_column)
        mapping.credit_column_index = _find_column_index(normalized_headers, preset.credit_column)
    else:
        mapping.amount_column_index = _find_column_index(normalized_headers, preset.amount_column)

    return AutoDetectResult(
        preset_id=preset.id,
        mapping=mapping,
        column_mappings=build_column_mappings(headers, rows, mapping),
        confidence=calculate_confidence(
            mapping,
            expects_reference=preset.reference_column is not None,
            expects_memo=preset.memo_column is not None,
        ),
        warnings=[],
    )


def _mapping_from_fuzzy(headers: list[str], rows: list[list[str]]) -> AutoDetectResult:
    mapping = ColumnMapping(
        date_format=DateFormat(settings.DEFAULT_DATE_FORMAT),
        amount_format=AmountFormat.SIGNED,
    )
    has_debit_credit = False

    # First header matching a field claims its slot
    for index, header in enumerate(headers):
        matched = fuzzy_match_column(header)

        if matched == MappableField.DATE and mapping.date_column_index == -1:
            mapping.date_column_index = index
        elif matched == MappableField.AMOUNT and mapping.amount_column_index is None:
            mapping.amount_column_index = index
        elif matched == MappableField.DEBIT:
            has_debit_credit = True
            if mapping.debit_column_index is None:
                mapping.debit_column_index = index
        elif matched == MappableField.CREDIT:
            has_debit_credit = True
            if mapping.credit_column_index is None:
                mapping.credit_column_index = index
        elif matched == MappableField.DESCRIPTION and mapping.description_column_index == -1:
            mapping.description_column_index = index
        elif matched == MappableField.REFERENCE and mapping.reference_column_index is None:
            mapping.reference_column_index = index
        elif matched == MappableField.MEMO and mapping.memo_column_index is None:
            mapping.memo_column_index = index

    if has_debit_credit:
        mapping.amount_format = AmountFormat.SPLIT
        mapping.amount_column_index = None

    warnings = []
    if mapping.date_column_index == -1:
        warnings.append("Could not detect date column - please select manually")
    if mapping.amount_format == AmountFormat.SIGNED and mapping.amount_column_index is None:
        warnings.append("Could not detect amount column - please select manually")
    if mapping.amount_format == AmountFormat.SPLIT and (
        mapping.debit_column_index is None or mapping.credit_column_index is None
    ):
        warnings.append("Could not detect debit/credit columns - please select manually")
    if mapping.description_column_index == -1:
        warnings.append("Could not detect description column - please select manually")

    return AutoDetectResult(
        preset_id=None,
        mapping=mapping,
        column_mappings=build_column_mappings(headers, rows, mapping),
        confidence=calculate_confidence(mapping),
        warnings=warnings,
    )


def _has_amount(mapping: ColumnMapping) -> bool:
    if mapping.amount_format == AmountFormat.SPLIT:
        return mapping.debit_column_index is not None and mapping.credit_column_index is not None
    return mapping.amount_column_index is not None


def calculate_confidence(
    mapping: ColumnMapping, expects_reference: bool = True, expects_memo: bool = True
) -> int:
    """Score 0-100 for how much of the mapping was resolved.

    Optional fields a bank preset does not define are left out of the
    possible total, so a preset that matches fully scores 100.
    """
    score = 0
    possible = DATE_POINTS + AMOUNT_POINTS + DESCRIPTION_POINTS

    if mapping.date_column_index >= 0:
        score += DATE_POINTS
    if _has_amount(mapping):
        score += AMOUNT_POINTS
    if mapping.description_column_index >= 0:
        score += DESCRIPTION_POINTS

    if expects_reference:
        possible += REFERENCE_POINTS
        if mapping.reference_column_index is not None:
            score += REFERENCE_POINTS
    if expects_memo:
        possible += MEMO_POINTS
        if mapping.memo_column_index is not None:
            score += MEMO_POINTS

    return round(score / possible * 100)


def _field_for_index(mapping: ColumnMapping, index: int) -> MappableField:
    if index == mapping.date_column_index:
        return MappableField.DATE
    if index == mapping.amount_column_index:
        return MappableField.AMOUNT
    if index == mapping.debit_column_index:
        return MappableField.DEBIT
    if index == mapping.credit_column_index:
        return MappableField.CREDIT
    if index == mapping.description_column_index:
        return MappableField.DESCRIPTION
    if index == mapping.reference_column_index:
        return MappableField.REFERENCE
    if index == mapping.memo_column_index:
        return MappableField.MEMO
    return MappableField.IGNORE


def build_column_mappings(
    headers: list[str], rows: list[list[str]], mapping: ColumnMapping
) -> list[ColumnMappingEntry]:
    """One entry per physical column with its field and sample values."""
    return [
        ColumnMappingEntry(
            header=header,
            index=index,
            mapped_to=_field_for_index(mapping, index),
            sample_values=get_column_samples(rows, index, MAX_SAMPLES),
        )
        for index, header in enumerate(headers)
    ]


def column_mappings_to_mapping(
    entries: list[ColumnMappingEntry], date_format: DateFormat = DateFormat.DD_MM_YYYY
) -> ColumnMapping:
    """Rebuild a ColumnMapping from manually edited column entries.

    Any debit or credit entry switches the mapping to split and discards
    the amount column.
    """
    mapping = ColumnMapping(date_format=date_format, amount_format=AmountFormat.SIGNED)
    has_debit_credit = False

    for entry in entries:
        field = entry.mapped_to
        if field == MappableField.DATE:
            mapping.date_column_index = entry.index
        elif field == MappableField.AMOUNT:
            mapping.amount_column_index = entry.index
        elif field == MappableField.DEBIT:
            mapping.debit_column_index = entry.index
            has_debit_credit = True
        elif field == MappableField.CREDIT:
            mapping.credit_column_index = entry.index
            has_debit_credit = True
        elif field == MappableField.DESCRIPTION:
            mapping.description_column_index = entry.index
        elif field == MappableField.REFERENCE:
            mapping.reference_column_index = entry.index
        elif field == MappableField.MEMO:
            mapping.memo_column_index = entry.index

    if has_debit_credit:
        mapping.amount_format = AmountFormat.SPLIT
        mapping.amount_column_index = None

    return mapping


def validate_mapping(mapping: ColumnMapping) -> MappingValidation:
    """Check a mapping has every required field before rows are parsed."""
    errors = []

    if mapping.date_column_index < 0:
        errors.append("Date column is required")

    if mapping.amount_format == AmountFormat.SPLIT:
        if mapping.debit_column_index is None:
            errors.append("Debit column is required for split format")
        if mapping.credit_column_index is None:
            errors.append("Credit column is required for split format")
    elif mapping.amount_column_index is None:
        errors.append("Amount column is required")

    if mapping.description_column_index < 0:
        errors.append("Description column is required")

    return MappingValidation(valid=not errors, errors=errors)


def get_available_date_formats() -> list[dict]:
    """Date formats offered for manual selection."""
    return [
        {"value": DateFormat.DD_MM_YYYY, "label": "Day/Month/Year", "example": "31/12/2024"},
        {"value": DateFormat.MM_DD_YYYY, "label": "Month/Day/Year", "example": "12/31/2024"},
        {"value": DateFormat.YYYY_MM_DD, "label": "Year-Month-Day", "example": "2024-12-31"},
        {"value": DateFormat.DD_MM_YYYY_DASH, "label": "Day-Month-Year", "example": "31-12-2024"},
        {"value": DateFormat.D_M_YYYY, "label": "Day/Month/Year (short)", "example": "1/3/2024"},
        {"value": DateFormat.M_D_YYYY, "label": "Month/Day/Year (short)", "example": "3/1/2024"},
    ]


def get_available_field_types() -> list[dict]:
    """Fields a column can be assigned to in a manual-mapping editor."""
    return [
        {"value": MappableField.DATE, "label": "Transaction Date", "description": "When the transaction occurred"},
        {"value": MappableField.AMOUNT, "label": "Amount (signed)", "description": "Single amount column (negative = expense)"},
        {"value": MappableField.DEBIT, "label": "Debit Amount", "description": "Money out (expenses)"},
        {"value": MappableField.CREDIT, "label": "Credit Amount", "description": "Money in (income)"},
        {"value": MappableField.DESCRIPTION, "label": "Description / Payee", "description": "Transaction description or merchant name"},
        {"value": MappableField.REFERENCE, "label": "Reference", "description": "Bank reference number"},
        {"value": MappableField.MEMO, "label": "Memo / Notes", "description": "Additional notes or particulars"},
        {"value": MappableField.IGNORE, "label": "Ignore", "description": "Do not import this column"},
    ]
