"""
Case Lifecycle State Machine

Client-side transition table and guards for a case. The backend re-validates
every transition; these checks exist so an obviously invalid action is refused
before any remote call is issued.

State Flow:
    OPEN → INVESTIGATING → PENDING_REVIEW → RESOLVED
                                          ↘ DISPUTED → PENDING_REVIEW (resubmit)
                                                     → VOTING → RESOLVED | CLOSED
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Union

from unexplained_archive.exceptions import (
    ConflictError,
    InvalidTransitionError,
    PermissionDeniedError,
)
from unexplained_archive.schemas.case import Case, CaseStatus
from unexplained_archive.session import Session

logger = logging.getLogger(__name__)


class CaseAction(str, Enum):
    """Actions that drive a case transition."""
    ASSIGN = "assign"
    SUBMIT_RESOLUTION = "submit_resolution"
    ACCEPT_RESOLUTION = "accept_resolution"
    REJECT_RESOLUTION = "reject_resolution"
    OPEN_VOTE = "open_vote"
    ADMIN_RELEASE = "admin_release"
    ADMIN_REFUND = "admin_refund"
    COMMUNITY_APPROVES = "community_approves"
    COMMUNITY_REJECTS = "community_rejects"


# Valid state transitions: {current_state: [allowed_next_states]}
ALLOWED_TRANSITIONS: Dict[CaseStatus, List[CaseStatus]] = {
    CaseStatus.OPEN: [CaseStatus.INVESTIGATING],
    CaseStatus.INVESTIGATING: [CaseStatus.PENDING_REVIEW],
    CaseStatus.PENDING_REVIEW: [CaseStatus.RESOLVED, CaseStatus.DISPUTED],
    CaseStatus.DISPUTED: [
        CaseStatus.PENDING_REVIEW,
        CaseStatus.VOTING,
        # Admin decision without a vote
        CaseStatus.RESOLVED,
        CaseStatus.CLOSED,
    ],
    CaseStatus.VOTING: [CaseStatus.RESOLVED, CaseStatus.CLOSED],
    CaseStatus.RESOLVED: [],
    CaseStatus.CLOSED: [],
}

# Action -> (states it may start from, state it leads to)
ACTION_TRANSITIONS: Dict[CaseAction, tuple] = {
    CaseAction.ASSIGN: ((CaseStatus.OPEN,), CaseStatus.INVESTIGATING),
    CaseAction.SUBMIT_RESOLUTION: ((CaseStatus.INVESTIGATING, CaseStatus.DISPUTED), CaseStatus.PENDING_REVIEW),
    CaseAction.ACCEPT_RESOLUTION: ((CaseStatus.PENDING_REVIEW,), CaseStatus.RESOLVED),
    CaseAction.REJECT_RESOLUTION: ((CaseStatus.PENDING_REVIEW,), CaseStatus.DISPUTED),
    CaseAction.OPEN_VOTE: ((CaseStatus.DISPUTED,), CaseStatus.VOTING),
    CaseAction.ADMIN_RELEASE: ((CaseStatus.DISPUTED,), CaseStatus.RESOLVED),
    CaseAction.ADMIN_REFUND: ((CaseStatus.DISPUTED,), CaseStatus.CLOSED),
    CaseAction.COMMUNITY_APPROVES: ((CaseStatus.VOTING,), CaseStatus.RESOLVED),
    CaseAction.COMMUNITY_REJECTS: ((CaseStatus.VOTING,), CaseStatus.CLOSED),
}

# States in which the assigned investigator may edit notes/findings
EDITABLE_STATES = (CaseStatus.INVESTIGATING, CaseStatus.DISPUTED)

# States in which a vote is a non-binding sentiment counter
SENTIMENT_STATES = (CaseStatus.RESOLVED, CaseStatus.CLOSED)


def is_valid_transition(current: CaseStatus, new: CaseStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, [])


def target_state(action: CaseAction, current: CaseStatus) -> CaseStatus:
    """Return the state `action` leads to from `current`, or raise."""
    sources, target = ACTION_TRANSITIONS[action]
    if current not in sources or not is_valid_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot {action.value.replace('_', ' ')} a case with status {current.value}"
        )
    return target


# ================= VOTE INTENT =================

@dataclass(frozen=True)
class DisputeVote:
    """Binding community vote on a disputed case (moves escrow)."""
    agree: bool


@dataclass(frozen=True)
class SentimentVote:
    """Non-binding agree/disagree counter on a finished case."""
    agree: bool


VoteIntent = Union[DisputeVote, SentimentVote]


def resolve_vote_intent(status: CaseStatus, agree: bool) -> VoteIntent:
    """
    Decide what an agree/disagree click means for a case in `status`.

    VOTING → DisputeVote, RESOLVED/CLOSED → SentimentVote, anything else is
    refused.
    """
    if status == CaseStatus.VOTING:
        return DisputeVote(agree=agree)
    if status in SENTIMENT_STATES:
        return SentimentVote(agree=agree)
    raise InvalidTransitionError(f"Voting is not open for a case with status {status.value}")


# ================= GUARDS =================

def guard_assign(session: Session, case: Case) -> None:
    session.require_approved_investigator()
    if case.status != CaseStatus.OPEN or case.assigned_investigator is not None:
        raise ConflictError("This case has already been assigned to an investigator")


def guard_investigator_edit(session: Session, case: Case) -> None:
    if case.assigned_investigator != session.user_id:
        raise PermissionDeniedError("Only the assigned investigator can update this case")
    if case.status not in EDITABLE_STATES:
        raise InvalidTransitionError(
            f"Findings cannot be edited while the case is {case.status.value}"
        )


def guard_submitter_review(session: Session, case: Case) -> None:
    if case.submitted_by != session.user_id:
        raise PermissionDeniedError("Only the case submitter can review the resolution")
    if case.status != CaseStatus.PENDING_REVIEW:
        raise InvalidTransitionError(
            f"There is no resolution awaiting review (status {case.status.value})"
        )


def guard_admin_decision(session: Session, case: Case) -> None:
    session.require_admin()
    if case.status != CaseStatus.DISPUTED:
        raise InvalidTransitionError(
            f"Only disputed cases can be decided (status {case.status.value})"
        )


def guard_evidence_edit(session: Session, case: Case) -> None:
    if session.user_id not in (case.assigned_investigator, case.submitted_by):
        raise PermissionDeniedError("Only the submitter or the assigned investigator can manage evidence")
