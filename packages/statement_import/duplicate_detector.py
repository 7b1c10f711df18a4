"""Duplicate detection against already-committed transactions.

One fetch covers the whole batch: the candidates' date span widened by
DATE_RANGE_DAYS on each side. Each candidate is then compared with the
fetched records on amount, date proximity and description similarity.

Duplicate detection is advisory. If the fetch fails or times out the batch
is reported as having no duplicates.
"""

import asyncio
from datetime import date, timedelta
from typing import Optional

import structlog
from rapidfuzz.distance import Levenshtein

from .config import settings
from .data_source import TransactionDataSource
from .logging import import_context
from .schemas import (
    DuplicateCheckResult,
    DuplicateEntry,
    DuplicateMatch,
    ExistingTransaction,
    ParsedTransaction,
)

logger = structlog.get_logger()

DATE_RANGE_DAYS = 1
DESCRIPTION_SIMILARITY_THRESHOLD = 0.8
CONTAINMENT_SIMILARITY = 0.9
AMOUNT_TOLERANCE = 0.01
AMOUNT_WEIGHT = 40
DATE_WEIGHT = 30
NEARBY_DATE_FACTOR = 0.7
DESCRIPTION_WEIGHT = 30
MIN_CONFIDENCE = 60


def calculate_similarity(first: str, second: str) -> float:
    """Case-insensitive similarity between two descriptions, 0 to 1.

    Equal strings score 1, containment of one in the other 0.9, anything
    else the normalized Levenshtein ratio 1 - distance / longer length.
    """
    s1 = (first or "").lower().strip()
    s2 = (second or "").lower().strip()

    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    if s1 in s2 or s2 in s1:
        return CONTAINMENT_SIMILARITY

    distance = Levenshtein.distance(s1, s2)
    return 1 - distance / max(len(s1), len(s2))


def amounts_match(first: float, second: float) -> bool:
    return abs(first - second) < AMOUNT_TOLERANCE


def days_between(first: str, second: str) -> int:
    """Whole days between two YYYY-MM-DD dates."""
    return abs((date.fromisoformat(first) - date.fromisoformat(second)).days)


def score_match(candidate: ParsedTransaction, existing: ExistingTransaction) -> tuple[int, list[str]]:
    """Confidence (0-100) that candidate duplicates existing, with reasons."""
    score = 0.0
    reasons = []

    if amounts_match(candidate.amount, existing.amount):
        score += AMOUNT_WEIGHT
        reasons.append("Exact amount match")

    gap = days_between(candidate.occurred_at, existing.date)
    if gap == 0:
        score += DATE_WEIGHT
        reasons.append("Same date")
    elif gap <= DATE_RANGE_DAYS:
        score += DATE_WEIGHT * NEARBY_DATE_FACTOR
        reasons.append(f"Date within {DATE_RANGE_DAYS} day")

    similarity = calculate_similarity(candidate.description, existing.description)
    if similarity >= DESCRIPTION_SIMILARITY_THRESHOLD:
        score += DESCRIPTION_WEIGHT * similarity
        reasons.append(f"Description {round(similarity * 100)}% similar")

    return round(score), reasons


def _is_checkable(transaction: ParsedTransaction) -> bool:
    """Only valid rows with a canonical date take part in matching."""
    if not transaction.is_valid or not transaction.occurred_at:
        return False
    try:
        date.fromisoformat(transaction.occurred_at)
    except ValueError:
        return False
    return True


def _fetch_window(transactions: list[ParsedTransaction]) -> tuple[str, str]:
    dates = [date.fromisoformat(t.occurred_at) for t in transactions]
    start = min(dates) - timedelta(days=DATE_RANGE_DAYS)
    end = max(dates) + timedelta(days=DATE_RANGE_DAYS)
    return start.isoformat(), end.isoformat()


def find_best_match(
    candidate: ParsedTransaction, existing: list[ExistingTransaction]
) -> Optional[DuplicateMatch]:
    """Highest-confidence existing record scoring at least MIN_CONFIDENCE.

    existing must already be in (date, id) order; only a strictly higher
    score replaces the current best, so ties go to the earliest date and
    then the lowest id.
    """
    best: Optional[DuplicateMatch] = None

    for record in existing:
        # Cheap filters before any string comparison
        if not amounts_match(candidate.amount, record.amount):
            continue
        if days_between(candidate.occurred_at, record.date) > DATE_RANGE_DAYS:
            continue

        confidence, reasons = score_match(candidate, record)
        if confidence >= MIN_CONFIDENCE and (best is None or confidence > best.confidence):
            best = DuplicateMatch(
                existing_transaction_id=record.id,
                existing_description=record.description,
                existing_amount=record.amount,
                existing_date=record.date,
                confidence=confidence,
                match_reasons=reasons,
            )

    return best


async def check_for_duplicates(
    data_source: TransactionDataSource,
    user_id: str,
    account_id: str,
    transactions: list[ParsedTransaction],
) -> DuplicateCheckResult:
    """
    Check a batch of transactions for duplicates.

    Invalid rows and rows without a parsed date are never matched, but
    they still count towards checked_count.

    Args:
        data_source: Source of committed transactions
        user_id: Owner of the account
        account_id: Account being imported into
        transactions: Candidate transactions for one import

    Returns:
        DuplicateCheckResult; empty when the fetch fails
    """
    if not transactions:
        return DuplicateCheckResult()

    candidates = [t for t in transactions if _is_checkable(t)]
    if not candidates:
        return DuplicateCheckResult(checked_count=len(transactions))

    start_date, end_date = _fetch_window(candidates)

    with import_context(user_id=user_id, account_id=account_id):
        try:
            loop = asyncio.get_running_loop()
            existing = await asyncio.wait_for(
                loop.run_in_executor(
                    None, data_source.fetch_existing, user_id, account_id, start_date, end_date
                ),
                timeout=settings.DUPLICATE_FETCH_TIMEOUT,
            )
        except asyncio.TimeoutError:
            logger.warning("duplicate_fetch_timeout", timeout_s=settings.DUPLICATE_FETCH_TIMEOUT)
            return DuplicateCheckResult(checked_count=len(transactions))
        except Exception as e:
            logger.warning("duplicate_fetch_failed", error=str(e))
            return DuplicateCheckResult(checked_count=len(transactions))

        ordered = sorted(existing, key=lambda r: (r.date, r.id))

        duplicates = []
        for candidate in candidates:
            match = find_best_match(candidate, ordered)
            if match:
                duplicates.append(DuplicateEntry(temp_id=candidate.temp_id, match=match))

        logger.info(
            "duplicate_check_complete",
            checked=len(transactions),
            existing=len(ordered),
            duplicates=len(duplicates),
        )

    return DuplicateCheckResult(
        duplicates=duplicates,
        checked_count=len(transactions),
        duplicate_count=len(duplicates),
    )


def duplicate_side_table(result: DuplicateCheckResult) -> dict[str, DuplicateMatch]:
    """Map of temp_id to its duplicate match."""
    return {entry.temp_id: entry.match for entry in result.duplicates}


def mark_duplicates(
    transactions: list[ParsedTransaction], result: DuplicateCheckResult
) -> list[ParsedTransaction]:
    """Return the batch with matched transactions flagged as duplicates.

    The input transactions are not modified; flagged ones are copies.
    """
    matches = duplicate_side_table(result)

    marked = []
    for transaction in transactions:
        match = matches.get(transaction.temp_id)
        if match:
            transaction = transaction.model_copy(
                update={"is_duplicate": True, "duplicate_match": match}
            )
        marked.append(transaction)

    return marked
