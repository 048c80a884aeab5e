"""
Pydantic Schemas for Cases

Canonical case representation plus the request bodies of the case lifecycle
routes. Backend rows are snake_case and have drifted over time (`reward` vs
`reward_amount`, `pending` vs `open`); `Case.from_row` absorbs that.
"""
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class CaseStatus(str, Enum):
    """Case lifecycle states."""
    OPEN = "OPEN"
    INVESTIGATING = "INVESTIGATING"
    PENDING_REVIEW = "PENDING_REVIEW"
    RESOLVED = "RESOLVED"
    DISPUTED = "DISPUTED"
    VOTING = "VOTING"
    CLOSED = "CLOSED"


class CaseCategory(str, Enum):
    UFO = "UFO"
    CRYPTID = "CRYPTID"
    PARANORMAL = "PARANORMAL"
    SUPERNATURAL = "SUPERNATURAL"
    OTHER = "OTHER"


# Backend status values (lowercase) to lifecycle states
_STATUS_ALIASES = {
    "pending": CaseStatus.OPEN,
    "open": CaseStatus.OPEN,
    "investigating": CaseStatus.INVESTIGATING,
    "in_progress": CaseStatus.INVESTIGATING,
    "pending_review": CaseStatus.PENDING_REVIEW,
    "resolved": CaseStatus.RESOLVED,
    "disputed": CaseStatus.DISPUTED,
    "voting": CaseStatus.VOTING,
    "closed": CaseStatus.CLOSED,
}


def parse_status(raw: Optional[str]) -> CaseStatus:
    """Map a backend status value to CaseStatus. Unknown values read as OPEN."""
    if not raw:
        return CaseStatus.OPEN
    return _STATUS_ALIASES.get(str(raw).strip().lower(), CaseStatus.OPEN)


def to_decimal(value: Any, default: str = "0") -> Decimal:
    if value is None or value == "":
        return Decimal(default)
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(default)


def parse_category(raw: Optional[str]) -> CaseCategory:
    try:
        return CaseCategory(str(raw or "OTHER").upper())
    except ValueError:
        return CaseCategory.OTHER


class EvidenceFile(BaseModel):
    url: str
    name: str
    type: str = "application/octet-stream"
    uploaded_by: Optional[str] = None
    uploaded_at: Optional[datetime] = None


class Review(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class CommunityVotes(BaseModel):
    agree: int = 0
    disagree: int = 0


class Case(BaseModel):
    """Canonical case record. Always reloaded from the backend after a write."""
    id: str
    title: str
    description: str = ""
    detailed_description: Optional[str] = None
    category: CaseCategory = CaseCategory.OTHER
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    incident_date: Optional[str] = None
    media_urls: List[str] = Field(default_factory=list)
    evidence_files: List[EvidenceFile] = Field(default_factory=list)
    submitted_by: Optional[str] = None
    assigned_investigator: Optional[str] = None
    status: CaseStatus = CaseStatus.OPEN
    reward: Decimal = Decimal("0")
    investigator_notes: Optional[str] = None
    resolution_proposal: Optional[str] = None
    resolution: Optional[str] = None
    user_review: Optional[Review] = None
    community_votes: CommunityVotes = Field(default_factory=CommunityVotes)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Case":
        reward = row.get("reward_amount")
        if reward is None:
            reward = row.get("reward")

        review = None
        rating = row.get("user_rating")
        if rating:
            review = Review(rating=int(rating), comment=row.get("user_feedback"))

        evidence = [
            EvidenceFile(**f) for f in (row.get("evidence_files") or [])
            if isinstance(f, dict) and f.get("url")
        ]

        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            description=row.get("description") or "",
            detailed_description=row.get("detailed_description"),
            category=parse_category(row.get("category")),
            location=row.get("location"),
            latitude=row.get("latitude"),
            longitude=row.get("longitude"),
            incident_date=row.get("incident_date") or row.get("date_occurred"),
            media_urls=row.get("media_urls") or [],
            evidence_files=evidence,
            submitted_by=row.get("user_id") or row.get("submitted_by"),
            assigned_investigator=row.get("assigned_investigator_id"),
            status=parse_status(row.get("status")),
            reward=to_decimal(reward),
            investigator_notes=row.get("investigator_notes"),
            resolution_proposal=row.get("resolution_proposal"),
            resolution=row.get("resolution"),
            user_review=review,
            community_votes=CommunityVotes(
                agree=row.get("community_agree_votes") or 0,
                disagree=row.get("community_disagree_votes") or 0,
            ),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


# ============================================================================
# Request bodies
# ============================================================================

class CaseDraft(BaseModel):
    """Schema for submitting a new case."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    detailed_description: Optional[str] = None
    category: CaseCategory = CaseCategory.OTHER
    location: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    incident_date: Optional[str] = None
    media_urls: List[str] = Field(default_factory=list)
    reward: Decimal = Field(Decimal("0"), ge=0)

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class NotesRequest(BaseModel):
    notes: str = ""
    proposal: Optional[str] = None


class ResolutionSubmitRequest(BaseModel):
    notes: str = ""
    proposal: str = Field(..., min_length=1)

    @field_validator("proposal")
    @classmethod
    def proposal_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Resolution proposal is required")
        return v.strip()


class AcceptResolutionRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = None


class RejectResolutionRequest(BaseModel):
    feedback: Optional[str] = None


class VoteRequest(BaseModel):
    agree: bool


class DisputeDecision(str, Enum):
    RELEASE = "RELEASE"
    REFUND = "REFUND"
    VOTE = "VOTE"


class AdminDecisionRequest(BaseModel):
    decision: DisputeDecision


class CaseListFilters(BaseModel):
    status: Optional[CaseStatus] = None
    category: Optional[CaseCategory] = None
    submitted_by: Optional[str] = None
    assigned_investigator: Optional[str] = None
    search: Optional[str] = Field(None, max_length=100)
    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)


# ============================================================================
# Results
# ============================================================================

class CaseActionResult(BaseModel):
    """Outcome of a lifecycle action: the reloaded case and the alert text."""
    success: bool = True
    message: str
    case: Case
    reputation_awarded: Optional[int] = None
    escrow: Optional[str] = None
