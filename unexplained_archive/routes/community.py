"""
unexplained_archive/routes/community.py
Comments, likes, theories, follows and saved cases.

Comment and theory writes return the freshly listed collection. Likes,
theory votes and follows return the counter the UI should display.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Request

from unexplained_archive.rate_limit import COMMUNITY_LIMIT, limiter
from unexplained_archive.schemas.community import (
    Comment,
    CommentRequest,
    GuestFollowRequest,
    Theory,
    TheoryRequest,
    VoteState,
)
from unexplained_archive.services.backend_client import BackendClient
from unexplained_archive.services.community_service import CommunityService
from unexplained_archive.session import Session, get_session, get_user_backend

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Community"])


# ================= COMMENTS =================

@router.get("/cases/{case_id}/comments", response_model=List[Comment])
async def list_comments(case_id: str, backend: BackendClient = Depends(get_user_backend)):
    return await CommunityService.list_comments(backend, case_id)


@router.post("/cases/{case_id}/comments", response_model=List[Comment])
@limiter.limit(COMMUNITY_LIMIT)
async def post_comment(
    request: Request,
    case_id: str,
    body: CommentRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CommunityService.post_comment(backend, session, case_id, body.content)


@router.post("/comments/{comment_id}/replies", response_model=List[Comment])
@limiter.limit(COMMUNITY_LIMIT)
async def reply_to_comment(
    request: Request,
    comment_id: str,
    body: CommentRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CommunityService.reply_to_comment(backend, session, comment_id, body.content)


@router.put("/comments/{comment_id}", response_model=List[Comment])
async def edit_comment(
    comment_id: str,
    body: CommentRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CommunityService.edit_comment(backend, session, comment_id, body.content)


@router.delete("/comments/{comment_id}", response_model=List[Comment])
async def delete_comment(
    comment_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CommunityService.delete_comment(backend, session, comment_id)


@router.get("/comments/{comment_id}/like", response_model=VoteState)
async def comment_like_state(
    comment_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CommunityService.get_vote_state(backend, session, "comment_like", comment_id)


@router.post("/comments/{comment_id}/like", response_model=VoteState)
@limiter.limit(COMMUNITY_LIMIT)
async def toggle_comment_like(
    request: Request,
    comment_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CommunityService.toggle_comment_like(backend, session, comment_id)


# ================= THEORIES =================

@router.get("/cases/{case_id}/theories", response_model=List[Theory])
async def list_theories(case_id: str, backend: BackendClient = Depends(get_user_backend)):
    return await CommunityService.list_theories(backend, case_id)


@router.post("/cases/{case_id}/theories", response_model=List[Theory])
@limiter.limit(COMMUNITY_LIMIT)
async def submit_theory(
    request: Request,
    case_id: str,
    body: TheoryRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CommunityService.submit_theory(
        backend, session, case_id, body.title, body.description, body.theory_type
    )


@router.get("/theories/{theory_id}/vote", response_model=VoteState)
async def theory_vote_state(
    theory_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CommunityService.get_vote_state(backend, session, "theory_vote", theory_id)


@router.post("/theories/{theory_id}/vote", response_model=VoteState)
@limiter.limit(COMMUNITY_LIMIT)
async def toggle_theory_vote(
    request: Request,
    theory_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CommunityService.toggle_theory_vote(backend, session, theory_id)


# ================= FOLLOWING =================

@router.get("/cases/{case_id}/followers")
async def follower_count(case_id: str, backend: BackendClient = Depends(get_user_backend)):
    return {"count": await CommunityService.follower_count(backend, case_id)}


@router.post("/cases/{case_id}/follow", response_model=VoteState)
@limiter.limit(COMMUNITY_LIMIT)
async def follow_case(
    request: Request,
    case_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CommunityService.follow_case(backend, session, case_id)


@router.delete("/cases/{case_id}/follow", response_model=VoteState)
@limiter.limit(COMMUNITY_LIMIT)
async def unfollow_case(
    request: Request,
    case_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CommunityService.unfollow_case(backend, session, case_id)


@router.post("/cases/{case_id}/follow/guest")
@limiter.limit(COMMUNITY_LIMIT)
async def follow_case_guest(
    request: Request,
    case_id: str,
    body: GuestFollowRequest,
    backend: BackendClient = Depends(get_user_backend),
):
    count = await CommunityService.follow_case_guest(backend, case_id, body.email)
    return {"success": True, "count": count, "message": "You will receive updates about this case by email."}


# ================= SAVED CASES =================

@router.get("/saved-cases")
async def list_saved_cases(
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return {"case_ids": await CommunityService.list_saved_cases(backend, session)}


@router.post("/saved-cases/{case_id}")
async def toggle_saved_case(
    case_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return {"saved": await CommunityService.toggle_saved_case(backend, session, case_id)}
