"""
unexplained_archive/routes/teams.py
Team investigations: leader claim, invitations, membership, reward split and
team chat.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from unexplained_archive.rate_limit import ACTION_LIMIT, COMMUNITY_LIMIT, limiter
from unexplained_archive.schemas.team import (
    InvestigatorSummary,
    InviteRequest,
    RewardSplit,
    RewardSplitRequest,
    RewardSplitResult,
    TeamInvitation,
    TeamMember,
    TeamMessage,
    TeamMessageRequest,
)
from unexplained_archive.services.backend_client import BackendClient
from unexplained_archive.services.team_service import TeamService
from unexplained_archive.session import Session, get_session, get_user_backend

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Teams"])


# ================= TEAM =================

@router.get("/cases/{case_id}/team", response_model=List[TeamMember])
async def get_case_team(case_id: str, backend: BackendClient = Depends(get_user_backend)):
    return await TeamService.get_case_team(backend, case_id)


@router.post("/cases/{case_id}/team/lead", response_model=List[TeamMember])
async def claim_leadership(
    case_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await TeamService.claim_case_as_leader(backend, session, case_id)


@router.delete("/cases/{case_id}/team/members/{member_id}", response_model=List[TeamMember])
async def remove_member(
    case_id: str,
    member_id: str,
    reason: Optional[str] = Query(None, max_length=500),
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await TeamService.remove_team_member(backend, session, case_id, member_id, reason)


@router.post("/cases/{case_id}/team/leave")
async def leave_team(
    case_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    await TeamService.leave_team(backend, session, case_id)
    return {"success": True, "message": "You have left the team"}


@router.get("/investigators/search", response_model=List[InvestigatorSummary])
async def search_investigators(
    q: str = Query("", max_length=100),
    case_id: Optional[str] = None,
    backend: BackendClient = Depends(get_user_backend),
):
    """Approved investigators to invite; current members of `case_id` are left out."""
    exclude = []
    if case_id:
        exclude = [m.investigator_id for m in await TeamService.get_case_team(backend, case_id)]
    return await TeamService.search_investigators(backend, q, exclude)


# ================= INVITATIONS =================

@router.post("/cases/{case_id}/team/invitations")
@limiter.limit(ACTION_LIMIT)
async def invite_member(
    request: Request,
    case_id: str,
    body: InviteRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await TeamService.invite_team_member(backend, session, case_id, body.investigator_id, body.message)


@router.get("/cases/{case_id}/team/invitations", response_model=List[TeamInvitation])
async def case_invitations(case_id: str, backend: BackendClient = Depends(get_user_backend)):
    return await TeamService.get_case_invitations(backend, case_id)


@router.get("/invitations", response_model=List[TeamInvitation])
async def my_invitations(
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await TeamService.get_my_invitations(backend, session)


@router.post("/invitations/{invitation_id}/accept", response_model=List[TeamMember])
async def accept_invitation(
    invitation_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await TeamService.accept_invitation(backend, session, invitation_id)


@router.post("/invitations/{invitation_id}/reject")
async def reject_invitation(
    invitation_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    await TeamService.reject_invitation(backend, session, invitation_id)
    return {"success": True, "message": "Invitation declined"}


@router.post("/invitations/{invitation_id}/cancel")
async def cancel_invitation(
    invitation_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    await TeamService.cancel_invitation(backend, session, invitation_id)
    return {"success": True, "message": "Invitation cancelled"}


# ================= REWARD SPLIT =================

@router.get("/cases/{case_id}/team/split", response_model=List[RewardSplit])
async def get_reward_split(case_id: str, backend: BackendClient = Depends(get_user_backend)):
    return await TeamService.get_reward_split(backend, case_id)


@router.get("/cases/{case_id}/team/split/equal", response_model=List[RewardSplit])
async def equal_split(case_id: str, backend: BackendClient = Depends(get_user_backend)):
    return await TeamService.equal_split(backend, case_id)


@router.put("/cases/{case_id}/team/split", response_model=RewardSplitResult)
@limiter.limit(ACTION_LIMIT)
async def set_reward_split(
    request: Request,
    case_id: str,
    body: RewardSplitRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await TeamService.set_reward_split(backend, session, case_id, body.splits)


# ================= TEAM CHAT =================

@router.get("/cases/{case_id}/team/messages", response_model=List[TeamMessage])
async def get_messages(
    case_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await TeamService.get_team_messages(backend, session, case_id)


@router.post("/cases/{case_id}/team/messages", response_model=List[TeamMessage])
@limiter.limit(COMMUNITY_LIMIT)
async def send_message(
    request: Request,
    case_id: str,
    body: TeamMessageRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await TeamService.send_team_message(backend, session, case_id, body.message)
