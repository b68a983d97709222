"""
Core Ledger Models for Kakeibo

These models define the canonical shapes that flow out of the CSV parsers
and into storage:
1. Transaction - one row of the canonical ledger
2. AssetLedgerEntry - one row of the per-account export (not persisted)
3. MonthlyAssetSnapshot - one account's opening/closing balance for a month
4. ImportResult - what an import reports back to its caller

DESIGN DECISION: Derived values (year, month, amount) are computed from
the fields they depend on rather than stored separately. A Transaction
can never disagree with itself about which month it belongs to.

Parsed records carry no generated IDs or timestamps, so parsing the same
file twice yields equal records.
"""

from datetime import date
from enum import Enum
from typing import NamedTuple, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)


# Memo value that marks transfer rows backfilled from the asset ledger.
SYNTHETIC_TRANSFER_MEMO = "__asset_report__"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """
    Transaction kinds as they appear in the export.

    The values are the literal strings written by the aggregation service.
    """
    EXPENSE = "支出"
    INCOME = "収入"
    TRANSFER = "振替"


class AssetType(str, Enum):
    """Coarse account category inferred from the account's display name."""
    BANK = "bank"
    CREDIT = "credit"
    INVESTMENT = "investment"
    IC_CARD = "ic_card"
    QR_PAY = "qr_pay"
    CASH = "cash"
    OTHER = "other"


# =============================================================================
# CANONICAL LEDGER
# =============================================================================

class Transaction(BaseModel):
    """
    A single canonical ledger row.

    Amounts are whole yen. For expenses and income exactly one of
    expense_amount / income_amount is non-zero; transfers are exempt.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    transaction_date: date = Field(
        ...,
        description="Wall-clock calendar date of the transaction"
    )
    kind: TransactionKind
    category: str = Field(
        default="",
        description="Free-text category label"
    )
    item_name: Optional[str] = None
    expense_amount: int = Field(default=0, ge=0)
    income_amount: int = Field(default=0, ge=0)
    account_name: Optional[str] = None
    tag: Optional[str] = None
    memo: Optional[str] = None
    exclude_from_pl: bool = Field(
        default=False,
        description="True when the row is left out of profit/loss totals"
    )

    @field_validator("item_name", "account_name", "tag", "memo", mode="before")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Blank cells are stored as missing, not as empty strings."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_amounts(self) -> "Transaction":
        """Exactly one side carries the amount unless this is a transfer."""
        if self.kind != TransactionKind.TRANSFER:
            if (self.expense_amount != 0) == (self.income_amount != 0):
                raise ValueError(
                    "Exactly one of expense_amount and income_amount must be non-zero"
                )
        return self

    @computed_field
    @property
    def year(self) -> int:
        return self.transaction_date.year

    @computed_field
    @property
    def month(self) -> int:
        return self.transaction_date.month

    @computed_field
    @property
    def amount(self) -> int:
        """Whichever of expense/income is non-zero."""
        return self.expense_amount if self.expense_amount != 0 else self.income_amount

    @property
    def period(self) -> tuple[int, int]:
        return (self.year, self.month)

    @property
    def is_synthetic_transfer(self) -> bool:
        return self.memo == SYNTHETIC_TRANSFER_MEMO


class TransferMatchKey(NamedTuple):
    """
    Natural key used to recognise the same transfer recorded by both exports.

    Both sides of the amount are part of the key, so an inflow never
    matches an outflow. Matching is exact. Amounts that differ only by
    rounding are NOT treated as the same movement.
    """
    transaction_date: date
    account_name: str
    expense_amount: int
    income_amount: int
    category: str = TransactionKind.TRANSFER.value

    @classmethod
    def for_transaction(cls, tx: Transaction) -> "TransferMatchKey":
        return cls(
            transaction_date=tx.transaction_date,
            account_name=tx.account_name or "",
            expense_amount=tx.expense_amount,
            income_amount=tx.income_amount,
            category=tx.category,
        )


# =============================================================================
# ASSET LEDGER
# =============================================================================

class AssetLedgerEntry(BaseModel):
    """
    One row of the per-account export.

    The initial-balance marker has no date. Order matters: the aggregator
    relies on file order to find each month's closing balance.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    account_name: str = Field(..., min_length=1)
    entry_date: Optional[date] = None
    kind: str = ""
    category: str = ""
    item_name: str = ""
    amount: int = 0
    balance: int = Field(
        ...,
        description="Account balance after this row was applied"
    )
    is_initial: bool = False

    @model_validator(mode="after")
    def validate_initial_marker(self) -> "AssetLedgerEntry":
        if self.is_initial != (self.entry_date is None):
            raise ValueError("Only the initial-balance marker may omit its date")
        return self

    @computed_field
    @property
    def year(self) -> int:
        return self.entry_date.year if self.entry_date else 0

    @computed_field
    @property
    def month(self) -> int:
        return self.entry_date.month if self.entry_date else 0


class MonthlyAssetSnapshot(BaseModel):
    """
    Closing balance of one account for one calendar month.

    Unique per (account_name, year, month). The opening balance chains
    from the previous snapshot's closing balance for the same account.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_name: str = Field(..., min_length=1)
    year: int = Field(..., ge=1900, le=2100)
    month: int = Field(..., ge=1, le=12)
    opening_balance: int
    closing_balance: int
    asset_type: AssetType = AssetType.OTHER

    @computed_field
    @property
    def period_key(self) -> int:
        return self.year * 100 + self.month

    @property
    def key(self) -> tuple[str, int, int]:
        return (self.account_name, self.year, self.month)


# =============================================================================
# IMPORT RESULT
# =============================================================================

class ImportResult(BaseModel):
    """Outcome of one import call."""

    import_id: UUID = Field(default_factory=uuid4)
    success: bool = True
    transactions_inserted: int = Field(default=0, ge=0)
    transactions_skipped: int = Field(
        default=0,
        ge=0,
        description="Backfilled transfers skipped because the combined ledger already had them"
    )
    snapshots_upserted: int = Field(default=0, ge=0)
    transfers_inserted: int = Field(default=0, ge=0)
    periods_replaced: list[str] = Field(default_factory=list)
    error: Optional[str] = None

    def to_response(self) -> dict:
        """Render the payload returned to the upload boundary."""
        payload = {
            "success": self.success,
            "transactions": {
                "inserted": self.transactions_inserted,
                "skipped": self.transactions_skipped,
            },
            "assets": {
                "inserted": self.snapshots_upserted + self.transfers_inserted,
                "snapshots": self.snapshots_upserted,
                "transfers": self.transfers_inserted,
            },
        }
        if self.error:
            payload["error"] = self.error
        return payload
