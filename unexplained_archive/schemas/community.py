"""
Pydantic Schemas for Community Interactions

Comments, theories and the small counters (likes, votes, followers) that are
updated optimistically.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class Comment(BaseModel):
    id: str
    case_id: str
    user_id: str
    content: str
    parent_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    username: Optional[str] = None

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Comment":
        author = row.get("user") or row.get("profiles") or {}
        return cls(
            id=str(row["id"]),
            case_id=str(row["case_id"]),
            user_id=str(row["user_id"]),
            content=row.get("content") or "",
            parent_id=row.get("parent_id"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            username=author.get("username") if isinstance(author, dict) else None,
        )


class Theory(BaseModel):
    id: str
    case_id: str
    user_id: str
    theory_type: str = "other"
    title: str
    description: str
    vote_count: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Theory":
        return cls(
            id=str(row["id"]),
            case_id=str(row["case_id"]),
            user_id=str(row["user_id"]),
            theory_type=row.get("theory_type") or "other",
            title=row.get("title") or "",
            description=row.get("description") or "",
            vote_count=int(row.get("vote_count") or 0),
            created_at=row.get("created_at"),
        )


class VoteState(BaseModel):
    """Counter shown next to a like/vote/follow button."""
    count: int
    user_voted: bool


# ============================================================================
# Request bodies
# ============================================================================

class CommentRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Comment cannot be empty")
        return v.strip()


class TheoryRequest(BaseModel):
    title: str = Field(..., max_length=200)
    description: str
    theory_type: str = "other"

    @field_validator("title", "description")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title and description are required")
        return v.strip()


class GuestFollowRequest(BaseModel):
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
