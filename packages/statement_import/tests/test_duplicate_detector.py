"""Tests for duplicate scoring and the batch duplicate check."""

import time
from datetime import date, datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from packages.statement_import.column_mapper import auto_detect_mapping
from packages.statement_import.config import settings
from packages.statement_import.data_source import InMemoryTransactionSource, TransactionDataSource
from packages.statement_import.duplicate_detector import (
    MIN_CONFIDENCE,
    amounts_match,
    calculate_similarity,
    check_for_duplicates,
    days_between,
    duplicate_side_table,
    find_best_match,
    mark_duplicates,
    score_match,
)
from packages.statement_import.errors import DataSourceError
from packages.statement_import.parser import parse_csv
from packages.statement_import.schemas import (
    DuplicateCheckResult,
    DuplicateEntry,
    DuplicateMatch,
    ExistingTransaction,
    ParsedTransaction,
)
from packages.statement_import.transactions import parse_transactions


def _candidate(temp_id="c1", amount=-45.0, occurred_at="2024-03-15", description="Coffee House"):
    return ParsedTransaction(
        temp_id=temp_id,
        occurred_at=occurred_at,
        amount=amount,
        description=description,
        row_index=0,
    )


def _existing(id, amount=-45.0, date="2024-03-15", description="Coffee House"):
    return ExistingTransaction(id=id, amount=amount, date=date, description=description)


class FailingSource(TransactionDataSource):
    def fetch_existing(self, user_id, account_id, start_date, end_date):
        raise DataSourceError("Failed to query transactions: connection refused")


class SlowSource(TransactionDataSource):
    def fetch_existing(self, user_id, account_id, start_date, end_date):
        time.sleep(0.5)
        return [_existing("late")]


class TestSimilarity:
    """Case-insensitive description similarity."""

    @pytest.mark.parametrize(
        "first,second,expected",
        [
            ("Coffee House", "coffee house", 1.0),
            ("  Coffee House ", "COFFEE HOUSE", 1.0),
            ("", "", 1.0),
            ("Coffee", "", 0.0),
            ("", "Coffee", 0.0),
            ("Coffee House", "Coffee House Ponsonby", 0.9),
            ("POS COFFEE HOUSE 1234", "coffee house", 0.9),
            ("kitten", "sitting", 1 - 3 / 7),
            ("abc", "xyz", 0.0),
        ],
    )
    def test_calculate_similarity(self, first, second, expected):
        assert calculate_similarity(first, second) == pytest.approx(expected)

    def test_similarity_is_symmetric(self):
        assert calculate_similarity("Countdown Ponsonby", "Countdown Parnell") == pytest.approx(
            calculate_similarity("Countdown Parnell", "Countdown Ponsonby")
        )


class TestHelpers:
    @pytest.mark.parametrize(
        "first,second,expected",
        [(-45.0, -45.0, True), (-45.0, -45.005, True), (-45.0, -45.02, False), (45.0, -45.0, False)],
    )
    def test_amounts_match(self, first, second, expected):
        assert amounts_match(first, second) is expected

    def test_days_between(self):
        assert days_between("2024-03-15", "2024-03-15") == 0
        assert days_between("2024-03-15", "2024-03-14") == 1
        assert days_between("2024-02-28", "2024-03-01") == 2
        assert days_between("2023-12-31", "2024-01-01") == 1


class TestScoreMatch:
    """Amount, date and description points add up to the confidence."""

    def test_exact_duplicate(self):
        confidence, reasons = score_match(_candidate(), _existing("tx-1"))

        assert confidence == 100
        assert reasons == ["Exact amount match", "Same date", "Description 100% similar"]

    def test_nearby_date_and_contained_description(self):
        confidence, reasons = score_match(
            _candidate(), _existing("tx-1", date="2024-03-16", description="COFFEE HOUSE PONSONBY")
        )

        # 40 + 21 + 27
        assert confidence == 88
        assert reasons == ["Exact amount match", "Date within 1 day", "Description 90% similar"]

    def test_dissimilar_description_adds_nothing(self):
        confidence, reasons = score_match(_candidate(), _existing("tx-1", description="Petrol Station"))

        assert confidence == 70
        assert reasons == ["Exact amount match", "Same date"]

    def test_nothing_in_common(self):
        confidence, reasons = score_match(
            _candidate(), _existing("tx-1", amount=10.0, date="2024-04-15", description="Salary")
        )
        assert confidence == 0
        assert reasons == []


class TestFindBestMatch:
    """Highest score wins; ties go to earliest date, then lowest id."""

    def test_strictly_higher_score_kept(self):
        existing = [
            _existing("a", date="2024-03-14"),
            _existing("z", date="2024-03-15"),
        ]
        match = find_best_match(_candidate(), existing)

        assert match.existing_transaction_id == "z"
        assert match.confidence == 100

    def test_tie_resolves_to_earliest_date(self):
        existing = [
            _existing("a", date="2024-03-16"),
            _existing("z", date="2024-03-14"),
        ]
        existing.sort(key=lambda r: (r.date, r.id))
        match = find_best_match(_candidate(), existing)

        assert match.existing_transaction_id == "z"
        assert match.existing_date == "2024-03-14"

    def test_tie_on_same_date_resolves_to_lowest_id(self):
        existing = [_existing("tx-1"), _existing("tx-2")]
        match = find_best_match(_candidate(), existing)

        assert match.existing_transaction_id == "tx-1"

    def test_amount_mismatch_rejected(self):
        assert find_best_match(_candidate(), [_existing("a", amount=-46.0)]) is None

    def test_outside_window_rejected(self):
        assert find_best_match(_candidate(), [_existing("a", date="2024-03-17")]) is None

    def test_below_min_confidence_rejected(self, monkeypatch):
        from packages.statement_import import duplicate_detector

        monkeypatch.setattr(duplicate_detector, "MIN_CONFIDENCE", 95)
        match = find_best_match(_candidate(), [_existing("a", description="Something else")])
        assert match is None

    def test_match_fields(self):
        match = find_best_match(_candidate(), [_existing("tx-9", description="coffee house")])

        assert match.existing_description == "coffee house"
        assert match.existing_amount == -45.0
        assert match.confidence >= MIN_CONFIDENCE


class TestCheckForDuplicates:
    """The async batch check against a data source."""

    @pytest.mark.asyncio
    async def test_empty_batch_skips_fetch(self):
        source = InMemoryTransactionSource([_existing("tx-1")])
        result = await check_for_duplicates(source, "user-1", "acc-1", [])

        assert result == DuplicateCheckResult()
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_single_fetch_over_widened_window(self):
        source = InMemoryTransactionSource()
        candidates = [
            _candidate("c1", occurred_at="2024-03-20"),
            _candidate("c2", occurred_at="2024-03-15"),
        ]
        await check_for_duplicates(source, "user-1", "acc-1", candidates)

        assert source.calls == [("user-1", "acc-1", "2024-03-14", "2024-03-21")]

    @pytest.mark.asyncio
    async def test_duplicates_found(self):
        source = InMemoryTransactionSource(
            [
                _existing("tx-1"),
                _existing("tx-2", amount=-12.5, date="2024-03-16", description="Bakery"),
            ]
        )
        candidates = [
            _candidate("c1"),
            _candidate("c2", amount=99.0, description="Salary"),
        ]
        result = await check_for_duplicates(source, "user-1", "acc-1", candidates)

        assert result.checked_count == 2
        assert result.duplicate_count == 1
        assert result.duplicates[0].temp_id == "c1"
        assert result.duplicates[0].match.existing_transaction_id == "tx-1"

    @pytest.mark.asyncio
    async def test_tie_break_independent_of_fetch_order(self):
        source = InMemoryTransactionSource([_existing("tx-b"), _existing("tx-a")])
        result = await check_for_duplicates(source, "user-1", "acc-1", [_candidate()])

        assert result.duplicates[0].match.existing_transaction_id == "tx-a"

    @pytest.mark.asyncio
    async def test_fetch_failure_degrades_to_no_duplicates(self):
        result = await check_for_duplicates(FailingSource(), "user-1", "acc-1", [_candidate(), _candidate("c2")])

        assert result.duplicates == []
        assert result.duplicate_count == 0
        assert result.checked_count == 2

    @pytest.mark.asyncio
    async def test_fetch_timeout_degrades_to_no_duplicates(self, monkeypatch):
        monkeypatch.setattr(settings, "DUPLICATE_FETCH_TIMEOUT", 0.05)
        result = await check_for_duplicates(SlowSource(), "user-1", "acc-1", [_candidate()])

        assert result.duplicate_count == 0
        assert result.checked_count == 1


class TestMarkDuplicates:
    """Matches are applied to a copy of the batch."""

    @pytest.fixture
    def result(self):
        match = DuplicateMatch(
            existing_transaction_id="tx-1",
            existing_description="Coffee House",
            existing_amount=-45.0,
            existing_date="2024-03-15",
            confidence=100,
            match_reasons=["Exact amount match"],
        )
        return DuplicateCheckResult(
            duplicates=[DuplicateEntry(temp_id="c1", match=match)],
            checked_count=2,
            duplicate_count=1,
        )

    def test_marks_matched_transactions(self, result):
        batch = [_candidate("c1"), _candidate("c2")]
        marked = mark_duplicates(batch, result)

        assert marked[0].is_duplicate is True
        assert marked[0].duplicate_match.existing_transaction_id == "tx-1"
        assert marked[1].is_duplicate is False
        assert marked[1].duplicate_match is None

    def test_input_batch_unchanged(self, result):
        batch = [_candidate("c1"), _candidate("c2")]
        mark_duplicates(batch, result)

        assert batch[0].is_duplicate is False
        assert batch[0].duplicate_match is None

    def test_side_table(self, result):
        table = duplicate_side_table(result)
        assert list(table) == ["c1"]
        assert table["c1"].confidence == 100


class TestUncheckableRows:
    """Rows that failed parsing never break the duplicate check."""

    @pytest.mark.asyncio
    async def test_mixed_batch_from_parser(self):
        parsed = parse_csv(
            "Date,Amount,Description\n"
            "15/03/2024,-45.00,Coffee House\n"
            "31/02/2024,-10.00,Bad\n"
        )
        detected = auto_detect_mapping(parsed.headers, parsed.rows)
        transactions = parse_transactions(parsed.rows, detected.mapping)
        source = InMemoryTransactionSource([_existing("tx-1")])

        result = await check_for_duplicates(source, "user-1", "acc-1", transactions)

        assert result.checked_count == 2
        assert result.duplicate_count == 1
        assert result.duplicates[0].temp_id == transactions[0].temp_id
        assert source.calls == [("user-1", "acc-1", "2024-03-14", "2024-03-16")]

    @pytest.mark.asyncio
    async def test_only_invalid_rows_skips_fetch(self):
        source = InMemoryTransactionSource([_existing("tx-1")])
        bad = _candidate(occurred_at="").model_copy(update={"is_valid": False})

        result = await check_for_duplicates(source, "user-1", "acc-1", [bad])

        assert result.checked_count == 1
        assert result.duplicates == []
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_invalid_row_with_date_not_matched(self):
        source = InMemoryTransactionSource([_existing("tx-1")])
        invalid = _candidate("c1").model_copy(update={"is_valid": False})

        result = await check_for_duplicates(source, "user-1", "acc-1", [invalid, _candidate("c2")])

        assert [d.temp_id for d in result.duplicates] == ["c2"]


class TestExistingRecordDates:
    """Existing records keep only the calendar day of their date."""

    @pytest.mark.parametrize(
        "value",
        ["2024-03-15", "2024-03-15T10:00:00", "2024-03-15T10:00:00+13:00", " 2024-03-15 ",
         date(2024, 3, 15), datetime(2024, 3, 15, 23, 59)],
    )
    def test_normalized_to_day(self, value):
        assert _existing("tx-1", date=value).date == "2024-03-15"

    @pytest.mark.parametrize("value", ["", "yesterday", "15/03/2024", "2024-02-30"])
    def test_rejects_non_dates(self, value):
        with pytest.raises(PydanticValidationError):
            _existing("tx-1", date=value)

    @pytest.mark.asyncio
    async def test_timestamped_records_are_matched(self):
        source = InMemoryTransactionSource([_existing("tx-1", date="2024-03-15T10:00:00")])

        result = await check_for_duplicates(source, "user-1", "acc-1", [_candidate()])

        assert result.duplicate_count == 1
        assert result.duplicates[0].match.existing_date == "2024-03-15"
