"""
Pydantic Schemas for Case Boosts

Paid, time-limited placement of a case in the featured list.
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel

from unexplained_archive.schemas.case import to_decimal


class BoostType(str, Enum):
    HOURS_24 = "24h"
    DAYS_7 = "7d"
    DAYS_30 = "30d"


class BoostPricing(BaseModel):
    boost_type: BoostType
    price: Decimal
    duration_hours: int
    display_name: str = ""
    description: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BoostPricing":
        return cls(
            boost_type=BoostType(row["boost_type"]),
            price=to_decimal(row.get("price")),
            duration_hours=int(row.get("duration_hours") or 0),
            display_name=row.get("display_name") or row["boost_type"],
            description=row.get("description"),
            is_active=bool(row.get("is_active", True)),
        )


class Boost(BaseModel):
    id: Optional[str] = None
    case_id: str
    boost_type: BoostType
    featured_until: datetime
    featured_at: Optional[datetime] = None
    impressions: int = 0
    clicks: int = 0
    price_paid: Decimal = Decimal("0")
    status: str = "active"

    def is_active(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        until = self.featured_until
        if until.tzinfo is None:
            until = until.replace(tzinfo=timezone.utc)
        return self.status == "active" and until > now

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Boost":
        return cls(
            id=str(row["id"]) if row.get("id") else None,
            case_id=str(row["case_id"]),
            boost_type=BoostType(row["boost_type"]),
            featured_until=row["featured_until"],
            featured_at=row.get("featured_at"),
            impressions=int(row.get("impressions") or 0),
            clicks=int(row.get("clicks") or 0),
            price_paid=to_decimal(row.get("price_paid")),
            status=row.get("status") or "active",
        )


class BoostROI(BaseModel):
    impressions_per_euro: float
    clicks_per_euro: float
    ctr: float


# ============================================================================
# Request bodies
# ============================================================================

class BoostPurchaseRequest(BaseModel):
    boost_type: BoostType
