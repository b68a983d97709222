"""
Kakeibo - Source Package

Imports the CSV exports of a household bookkeeping app into a
spreadsheet-backed ledger: transactions by month, monthly asset
balances per account, and investment transfers for cost basis.

DESIGN PRINCIPLES:
1. Re-importing the same export never duplicates anything
2. Fail early, fail visibly
3. Parsing never writes; writing never guesses
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Kakeibo Team"
