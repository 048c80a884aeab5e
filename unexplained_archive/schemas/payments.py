"""
Pydantic Schemas for Payments

Checkout sessions come from the payment processor via edge functions. The
return URL parameters are informational only; the ledger is authoritative.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from unexplained_archive.schemas.case import to_decimal


class SubscriptionPlan(str, Enum):
    INVESTIGATOR_PRO = "investigator_pro"
    USER_PREMIUM = "user_premium"


class VerificationType(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"


class CheckoutSession(BaseModel):
    session_id: Optional[str] = None
    checkout_url: str


class PaymentReturn(BaseModel):
    """
    Parsed query parameters of the payment return URL.

    Nothing here is trusted: callers reload the wallet/case to learn what
    actually happened.
    """
    kind: Optional[str] = None
    success: bool = False
    canceled: bool = False
    amount: Optional[Decimal] = None
    case_id: Optional[str] = None
    session_id: Optional[str] = None


class Subscription(BaseModel):
    id: str
    user_id: str
    plan_type: str
    status: str
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    price: Decimal = Decimal("0")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Subscription":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            plan_type=row.get("plan_type") or "",
            status=row.get("status") or "",
            current_period_end=row.get("current_period_end"),
            cancel_at_period_end=bool(row.get("cancel_at_period_end")),
            price=to_decimal(row.get("price")),
        )


# ============================================================================
# Request bodies
# ============================================================================

class DonationCheckoutRequest(BaseModel):
    """`case_id` of "platform" donates to the platform itself (no fee)."""
    case_id: str
    amount: Decimal = Field(..., gt=0)


class SubscriptionCheckoutRequest(BaseModel):
    plan: SubscriptionPlan
    billing_cycle: str = Field("monthly", pattern="^(monthly|yearly)$")


class VerificationRequest(BaseModel):
    verification_type: VerificationType = VerificationType.STANDARD
