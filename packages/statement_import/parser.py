"""
Statement CSV Parser - tokenizes raw bank exports into headers and rows.

Features: delimiter auto-detection (comma, semicolon, tab, pipe),
          quote-aware field splitting, ragged-row tolerance, row cap.

Known limitation: a quoted field may not span lines. Each physical line is
tokenized on its own, so a newline inside quotes splits the record.
"""

from typing import Optional

import structlog

from .config import settings
from .schemas import ContentCheck, ParsedCSV

logger = structlog.get_logger()

# Candidate delimiters, in tie-break order
DELIMITERS = (",", ";", "\t", "|")
DELIMITER_SAMPLE_LINES = 5
QUOTE = '"'


def _normalize_newlines(content: str) -> str:
    return content.replace("\r\n", "\n").replace("\r", "\n")


def detect_delimiter(content: str) -> str:
    """Detect the delimiter used in the first lines of a CSV string.

    Occurrences inside quoted spans are ignored. The candidate with the
    highest count wins; comma is returned for empty input and the earlier
    candidate in DELIMITERS wins a tie.
    """
    sample = "\n".join(_normalize_newlines(content).split("\n")[:DELIMITER_SAMPLE_LINES])

    counts = {delimiter: 0 for delimiter in DELIMITERS}
    in_quotes = False
    for char in sample:
        if char == QUOTE:
            in_quotes = not in_quotes
        elif char == "\n":
            # Quotes never carry over to the next line
            in_quotes = False
        elif char in counts and not in_quotes:
            counts[char] += 1

    best_delimiter = ","
    best_count = 0
    for delimiter in DELIMITERS:
        if counts[delimiter] > best_count:
            best_delimiter = delimiter
            best_count = counts[delimiter]

    return best_delimiter


def parse_line(line: str, delimiter: str) -> list[str]:
    """Split one CSV line into trimmed fields.

    A doubled quote inside a quoted field is a literal quote.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0

    while i < len(line):
        char = line[i]

        if char == QUOTE:
            if in_quotes and i + 1 < len(line) and line[i + 1] == QUOTE:
                current.append(QUOTE)
                i += 2
                continue
            in_quotes = not in_quotes
            i += 1
            continue

        if char == delimiter and not in_quotes:
            fields.append("".join(current).strip())
            current = []
            i += 1
            continue

        current.append(char)
        i += 1

    fields.append("".join(current).strip())
    return fields


def parse_csv(
    content: str,
    max_rows: Optional[int] = None,
    delimiter: Optional[str] = None,
    has_headers: bool = True,
    skip_empty_rows: bool = True,
) -> ParsedCSV:
    """
    Parse CSV content into headers and rows.

    Never raises on malformed content: rows with fewer than half as many
    fields as the header are dropped silently. Parsing stops once max_rows
    rows are kept and truncated is set if more rows remain.

    Args:
        content: Raw CSV text
        max_rows: Row cap (defaults to settings.MAX_ROWS)
        delimiter: Delimiter override (auto-detected when None)
        has_headers: Whether the first line is a header row
        skip_empty_rows: Skip blank lines

    Returns:
        ParsedCSV with headers, rows and parse metadata
    """
    if max_rows is None:
        max_rows = settings.MAX_ROWS

    normalized = _normalize_newlines(content or "")
    if delimiter is None:
        delimiter = detect_delimiter(normalized)

    lines = normalized.split("\n")

    headers: list[str] = []
    if has_headers and lines:
        headers = parse_line(lines[0], delimiter)

    min_fields = len(headers) / 2
    rows: list[list[str]] = []
    truncated = False
    dropped = 0

    for line in lines[1 if has_headers else 0 :]:
        if skip_empty_rows and line.strip() == "":
            continue

        if len(rows) >= max_rows:
            truncated = True
            break

        row = parse_line(line, delimiter)
        if len(row) < min_fields:
            dropped += 1
            continue

        rows.append(row)

    logger.debug(
        "csv_parsed",
        delimiter=delimiter,
        row_count=len(rows),
        dropped_rows=dropped,
        truncated=truncated,
    )

    return ParsedCSV(
        headers=headers,
        rows=rows,
        delimiter=delimiter,
        row_count=len(rows),
        file_size=len((content or "").encode("utf-8")),
        truncated=truncated,
    )


def validate_csv_content(content: str, file_size: Optional[int] = None) -> ContentCheck:
    """Cheap checks an upload must pass before it is parsed.

    All problems are reported, not just the first one.
    """
    errors: list[str] = []
    content = content or ""
    if file_size is None:
        file_size = len(content.encode("utf-8"))

    if file_size > settings.MAX_FILE_SIZE:
        limit_mb = settings.MAX_FILE_SIZE // (1024 * 1024)
        errors.append(f"File size exceeds {limit_mb}MB limit")

    if not content.strip():
        errors.append("File is empty")

    first_line = _normalize_newlines(content).split("\n")[0]
    if first_line and not any(d in first_line for d in DELIMITERS):
        errors.append("File does not appear to be a valid CSV (no delimiters found)")

    non_blank = [line for line in _normalize_newlines(content).split("\n") if line.strip()]
    if len(non_blank) < 2:
        errors.append("File must contain at least a header row and one data row")

    return ContentCheck(valid=not errors, errors=errors)


def get_column_samples(rows: list[list[str]], column_index: int, max_samples: int = 3) -> list[str]:
    """Distinct non-empty values of one column, in row order."""
    samples: list[str] = []

    for row in rows:
        if column_index >= len(row):
            continue
        value = row[column_index].strip()
        if value and value not in samples:
            samples.append(value)
            if len(samples) >= max_samples:
                break

    return samples
