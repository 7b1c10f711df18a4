"""Existing-transaction data access for duplicate detection.

The duplicate detector depends only on TransactionDataSource. The Supabase
implementation reads committed ledger rows and turns the loosely typed
query result into ExistingTransaction records.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

import pandas as pd
import structlog
from supabase import Client, create_client

from .config import settings
from .errors import ConfigurationError, DataSourceError
from .schemas import ExistingTransaction

logger = structlog.get_logger()


class TransactionDataSource(ABC):
    """
    Abstract source of already-committed transactions.

    Implementations may block; the duplicate detector runs them off the
    event loop.
    """

    @abstractmethod
    def fetch_existing(
        self, user_id: str, account_id: str, start_date: str, end_date: str
    ) -> list[ExistingTransaction]:
        """
        Fetch an account's transactions dated within an inclusive range.

        Args:
            user_id: Owner of the account
            account_id: Account being imported into
            start_date: First date (YYYY-MM-DD)
            end_date: Last date (YYYY-MM-DD)

        Returns:
            Typed records with id, description, amount and date

        Raises:
            DataSourceError: if the records could not be read
        """
        pass


class InMemoryTransactionSource(TransactionDataSource):
    """List-backed source for tests and offline imports."""

    def __init__(self, records: Iterable[ExistingTransaction] = ()):
        self.records = list(records)
        self.calls: list[tuple[str, str, str, str]] = []

    def fetch_existing(self, user_id, account_id, start_date, end_date):
        self.calls.append((user_id, account_id, start_date, end_date))
        return [r for r in self.records if start_date <= r.date <= end_date]


def get_supabase_client(url: Optional[str] = None, key: Optional[str] = None) -> Client:
    """Create a Supabase client from explicit credentials or settings."""
    url = url or settings.SUPABASE_URL
    key = key or settings.SUPABASE_KEY
    if not url or not key:
        raise ConfigurationError("Supabase environment variables are not configured")

    return create_client(url, key)


class SupabaseTransactionSource(TransactionDataSource):
    """Reads existing transactions from the Supabase ledger table."""

    COLUMNS = "id, merchant_name, amount, occurred_at"

    def __init__(self, client: Client, table: Optional[str] = None):
        self.client = client
        self.table = table or settings.TRANSACTIONS_TABLE

    def fetch_existing(self, user_id, account_id, start_date, end_date):
        try:
            response = (
                self.client.table(self.table)
                .select(self.COLUMNS)
                .eq("user_id", user_id)
                .eq("account_id", account_id)
                .gte("occurred_at", start_date)
                .lte("occurred_at", end_date)
                .order("occurred_at", desc=False)
                .execute()
            )
        except Exception as e:
            raise DataSourceError(f"Failed to query {self.table}: {e}") from e

        return self._to_records(response.data or [])

    @staticmethod
    def _to_records(rows: list[dict]) -> list[ExistingTransaction]:
        """Coerce raw rows, dropping any without a usable amount or date."""
        if not rows:
            return []

        df = pd.DataFrame(rows)
        for column in ("id", "merchant_name", "amount", "occurred_at"):
            if column not in df.columns:
                df[column] = None

        df["amount"] = pd.to_numeric(df["amount"], errors="coerce")
        # Timestamps keep only their calendar date
        df["date"] = pd.to_datetime(
            df["occurred_at"].astype(str).str[:10], format="%Y-%m-%d", errors="coerce"
        )
        df["merchant_name"] = df["merchant_name"].fillna("").astype(str)

        usable = df.dropna(subset=["id", "amount", "date"])
        if len(usable) < len(df):
            logger.warning("existing_rows_skipped", skipped=len(df) - len(usable))

        return [
            ExistingTransaction(
                id=str(row.id),
                description=row.merchant_name,
                amount=float(row.amount),
                date=row.date.strftime("%Y-%m-%d"),
            )
            for row in usable.itertuples(index=False)
        ]
