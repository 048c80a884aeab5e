"""
Pydantic Schemas for Investigator Teams

Team membership, invitations and the reward split of a case.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TeamRole(str, Enum):
    LEADER = "leader"
    MEMBER = "member"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class TeamMember(BaseModel):
    investigator_id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: TeamRole = TeamRole.MEMBER
    contribution_percentage: int = 0
    status: str = "active"
    joined_at: Optional[datetime] = None
    reputation: int = 0

    @property
    def is_leader(self) -> bool:
        return self.role == TeamRole.LEADER

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TeamMember":
        return cls(
            investigator_id=str(row.get("investigator_id") or row.get("id")),
            username=row.get("username"),
            full_name=row.get("full_name"),
            avatar_url=row.get("avatar_url"),
            role=TeamRole(row.get("role") or "member"),
            contribution_percentage=int(row.get("contribution_percentage") or 0),
            status=row.get("status") or "active",
            joined_at=row.get("joined_at"),
            reputation=int(row.get("reputation") or 0),
        )


class TeamInvitation(BaseModel):
    id: str
    case_id: str
    from_investigator_id: str
    to_investigator_id: str
    message: Optional[str] = None
    status: InvitationStatus = InvitationStatus.PENDING
    created_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    case_title: Optional[str] = None
    from_username: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TeamInvitation":
        case = row.get("case") or {}
        sender = row.get("from_investigator") or {}
        return cls(
            id=str(row["id"]),
            case_id=str(row["case_id"]),
            from_investigator_id=str(row["from_investigator_id"]),
            to_investigator_id=str(row["to_investigator_id"]),
            message=row.get("message"),
            status=InvitationStatus(row.get("status") or "pending"),
            created_at=row.get("created_at"),
            responded_at=row.get("responded_at"),
            case_title=case.get("title") if isinstance(case, dict) else None,
            from_username=sender.get("username") if isinstance(sender, dict) else None,
        )


class RewardSplit(BaseModel):
    investigator_id: str
    percentage: int = Field(..., ge=0, le=100)


class PayoutLine(BaseModel):
    investigator_id: str
    percentage: int
    amount: Decimal


class TeamMessage(BaseModel):
    id: str
    case_id: str
    sender_id: str
    message: str
    created_at: Optional[datetime] = None
    sender_username: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TeamMessage":
        sender = row.get("sender") or {}
        return cls(
            id=str(row["id"]),
            case_id=str(row["case_id"]),
            sender_id=str(row["sender_id"]),
            message=row.get("message") or "",
            created_at=row.get("created_at"),
            sender_username=sender.get("username") if isinstance(sender, dict) else None,
        )


class InvestigatorSummary(BaseModel):
    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    reputation: int = 0


# ============================================================================
# Request bodies
# ============================================================================

class InviteRequest(BaseModel):
    investigator_id: str
    message: Optional[str] = Field(None, max_length=500)


class RewardSplitRequest(BaseModel):
    splits: List[RewardSplit]


class TeamMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)


class RewardSplitResult(BaseModel):
    success: bool = True
    message: str
    payouts: List[PayoutLine]
