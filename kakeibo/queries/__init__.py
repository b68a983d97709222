"""Ledger read package."""

from kakeibo.queries.balances import LedgerQueries, QueryExecutionError

__all__ = ["LedgerQueries", "QueryExecutionError"]
