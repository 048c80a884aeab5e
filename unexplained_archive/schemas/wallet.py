"""
Pydantic Schemas for the Wallet Ledger

The ledger lives in the backend; these are read models of it. A balance is
only ever taken from a backend read, never computed from a local delta.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from unexplained_archive.schemas.case import to_decimal


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DONATION = "donation"
    REWARD = "reward"
    REFUND = "refund"
    SUBSCRIPTION = "subscription"
    BOOST = "boost"
    VERIFICATION = "verification"
    FEE = "fee"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Wallet(BaseModel):
    id: Optional[str] = None
    user_id: str
    balance: Decimal = Field(Decimal("0"), ge=0)
    currency: str = "EUR"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Wallet":
        return cls(
            id=str(row["id"]) if row.get("id") else None,
            user_id=str(row["user_id"]),
            balance=to_decimal(row.get("balance")),
            currency=row.get("currency") or "EUR",
        )


class Transaction(BaseModel):
    id: str
    type: str
    status: str = TransactionStatus.PENDING.value
    amount: Decimal
    description: Optional[str] = None
    case_id: Optional[str] = None
    from_wallet_id: Optional[str] = None
    to_wallet_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Transaction":
        return cls(
            id=str(row["id"]),
            type=row.get("transaction_type") or row.get("type") or "unknown",
            status=row.get("status") or TransactionStatus.PENDING.value,
            amount=to_decimal(row.get("amount")),
            description=row.get("description"),
            case_id=row.get("case_id"),
            from_wallet_id=row.get("from_wallet_id"),
            to_wallet_id=row.get("to_wallet_id"),
            created_at=row.get("created_at"),
        )


class WalletSnapshot(BaseModel):
    """Balance and recent transactions as last read from the backend."""
    balance: Decimal
    transactions: List[Transaction] = Field(default_factory=list)
    message: Optional[str] = None


class TransactionLimits(BaseModel):
    daily_limit: Decimal
    daily_spent: Decimal = Decimal("0")
    monthly_limit: Decimal
    monthly_spent: Decimal = Decimal("0")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TransactionLimits":
        return cls(
            daily_limit=to_decimal(row.get("daily_limit")),
            daily_spent=to_decimal(row.get("daily_spent")),
            monthly_limit=to_decimal(row.get("monthly_limit")),
            monthly_spent=to_decimal(row.get("monthly_spent")),
        )

    def refusal_reason(self, amount: Decimal) -> Optional[str]:
        if self.daily_spent + amount > self.daily_limit:
            return f"Daily limit exceeded. You can spend €{self.daily_limit - self.daily_spent:.2f} more today."
        if self.monthly_spent + amount > self.monthly_limit:
            return "Monthly limit exceeded. Complete KYC verification to increase limits."
        return None


# ============================================================================
# Request bodies
# ============================================================================

class AmountRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)


class WalletDonationRequest(BaseModel):
    case_id: str
    amount: Decimal = Field(..., gt=0)
