"""Tests for the existing-transaction data sources."""

from unittest.mock import MagicMock

import pytest

from packages.statement_import import data_source
from packages.statement_import.config import settings
from packages.statement_import.data_source import (
    InMemoryTransactionSource,
    SupabaseTransactionSource,
    TransactionDataSource,
    get_supabase_client,
)
from packages.statement_import.errors import ConfigurationError, DataSourceError
from packages.statement_import.schemas import ExistingTransaction


@pytest.fixture
def mock_client():
    """Supabase client whose query chain returns two ledger rows."""
    client = MagicMock()
    table = MagicMock()
    client.table.return_value = table
    table.select.return_value = table
    table.eq.return_value = table
    table.gte.return_value = table
    table.lte.return_value = table
    table.order.return_value = table
    table.execute.return_value = MagicMock(
        data=[
            {"id": "tx-1", "merchant_name": "Coffee House", "amount": "-45.00", "occurred_at": "2024-03-15"},
            {"id": "tx-2", "merchant_name": None, "amount": 12, "occurred_at": "2024-03-16T09:30:00+00:00"},
        ]
    )
    return client


def test_data_source_is_abstract():
    with pytest.raises(TypeError):
        TransactionDataSource()


class TestInMemorySource:
    def test_filters_by_inclusive_range(self):
        source = InMemoryTransactionSource(
            [
                ExistingTransaction(id="a", amount=1, date="2024-03-14"),
                ExistingTransaction(id="b", amount=1, date="2024-03-15"),
                ExistingTransaction(id="c", amount=1, date="2024-03-17"),
                ExistingTransaction(id="d", amount=1, date="2024-03-18"),
            ]
        )
        records = source.fetch_existing("user-1", "acc-1", "2024-03-15", "2024-03-17")

        assert [r.id for r in records] == ["b", "c"]
        assert source.calls == [("user-1", "acc-1", "2024-03-15", "2024-03-17")]


class TestSupabaseSource:
    """Ledger rows are read through the Supabase query builder."""

    def test_query_chain(self, mock_client):
        source = SupabaseTransactionSource(mock_client)
        source.fetch_existing("user-1", "acc-1", "2024-03-14", "2024-03-17")

        mock_client.table.assert_called_once_with(settings.TRANSACTIONS_TABLE)
        table = mock_client.table.return_value
        table.select.assert_called_once_with("id, merchant_name, amount, occurred_at")
        table.eq.assert_any_call("user_id", "user-1")
        table.eq.assert_any_call("account_id", "acc-1")
        table.gte.assert_called_once_with("occurred_at", "2024-03-14")
        table.lte.assert_called_once_with("occurred_at", "2024-03-17")

    def test_custom_table(self, mock_client):
        SupabaseTransactionSource(mock_client, table="ledger").fetch_existing("u", "a", "2024-01-01", "2024-01-02")
        mock_client.table.assert_called_once_with("ledger")

    def test_rows_coerced_to_records(self, mock_client):
        records = SupabaseTransactionSource(mock_client).fetch_existing("u", "a", "2024-03-14", "2024-03-17")

        assert records == [
            ExistingTransaction(id="tx-1", description="Coffee House", amount=-45.0, date="2024-03-15"),
            ExistingTransaction(id="tx-2", description="", amount=12.0, date="2024-03-16"),
        ]

    def test_unusable_rows_dropped(self, mock_client):
        mock_client.table.return_value.execute.return_value = MagicMock(
            data=[
                {"id": "ok", "merchant_name": "Shop", "amount": "5", "occurred_at": "2024-03-15"},
                {"id": "bad-amount", "merchant_name": "Shop", "amount": "n/a", "occurred_at": "2024-03-15"},
                {"id": "bad-date", "merchant_name": "Shop", "amount": "5", "occurred_at": None},
            ]
        )
        records = SupabaseTransactionSource(mock_client).fetch_existing("u", "a", "2024-03-14", "2024-03-17")

        assert [r.id for r in records] == ["ok"]

    def test_empty_response(self, mock_client):
        mock_client.table.return_value.execute.return_value = MagicMock(data=[])
        assert SupabaseTransactionSource(mock_client).fetch_existing("u", "a", "2024-03-14", "2024-03-17") == []

    def test_query_failure_raises_data_source_error(self, mock_client):
        mock_client.table.return_value.execute.side_effect = RuntimeError("connection refused")

        with pytest.raises(DataSourceError) as exc_info:
            SupabaseTransactionSource(mock_client).fetch_existing("u", "a", "2024-03-14", "2024-03-17")

        assert "connection refused" in exc_info.value.detail


class TestClientFactory:
    def test_missing_credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "SUPABASE_URL", "")
        monkeypatch.setattr(settings, "SUPABASE_KEY", "")

        with pytest.raises(ConfigurationError):
            get_supabase_client()

    def test_uses_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "SUPABASE_URL", "https://test.supabase.co")
        monkeypatch.setattr(settings, "SUPABASE_KEY", "test-key")
        create_client = MagicMock(return_value="client")
        monkeypatch.setattr(data_source, "create_client", create_client)

        assert get_supabase_client() == "client"
        create_client.assert_called_once_with("https://test.supabase.co", "test-key")

    def test_explicit_credentials_win(self, monkeypatch):
        monkeypatch.setattr(settings, "SUPABASE_URL", "")
        create_client = MagicMock(return_value="client")
        monkeypatch.setattr(data_source, "create_client", create_client)

        get_supabase_client("https://other.supabase.co", "other-key")
        create_client.assert_called_once_with("https://other.supabase.co", "other-key")
