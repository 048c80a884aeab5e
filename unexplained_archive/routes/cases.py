"""
unexplained_archive/routes/cases.py
Case lifecycle API: listing, submission, investigation, review, dispute,
voting, evidence and export.

Every mutating route returns the case as reloaded from the backend together
with the message the UI shows.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import PlainTextResponse, Response

from unexplained_archive.rate_limit import ACTION_LIMIT, limiter
from unexplained_archive.schemas.case import (
    AcceptResolutionRequest,
    AdminDecisionRequest,
    Case,
    CaseActionResult,
    CaseCategory,
    CaseDraft,
    CaseListFilters,
    CaseStatus,
    NotesRequest,
    RejectResolutionRequest,
    ResolutionSubmitRequest,
    VoteRequest,
)
from unexplained_archive.services.backend_client import BackendClient
from unexplained_archive.services.case_export_service import case_export_service
from unexplained_archive.services.case_lifecycle_service import CaseLifecycleService
from unexplained_archive.services.community_service import CommunityService
from unexplained_archive.services.team_service import TeamService
from unexplained_archive.session import Session, get_session, get_user_backend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cases", tags=["Cases"])


# ================= READS =================

@router.get("", response_model=List[Case])
async def list_cases(
    status: Optional[CaseStatus] = None,
    category: Optional[CaseCategory] = None,
    submitted_by: Optional[str] = None,
    assigned_investigator: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    backend: BackendClient = Depends(get_user_backend),
):
    filters = CaseListFilters(
        status=status,
        category=category,
        submitted_by=submitted_by,
        assigned_investigator=assigned_investigator,
        search=search,
        limit=limit,
        offset=offset,
    )
    return await CaseLifecycleService.list_cases(backend, filters)


@router.get("/map")
async def cases_in_bounds(
    north: float = Query(..., ge=-90, le=90),
    south: float = Query(..., ge=-90, le=90),
    east: float = Query(..., ge=-180, le=180),
    west: float = Query(..., ge=-180, le=180),
    backend: BackendClient = Depends(get_user_backend),
):
    return {"cases": await CaseLifecycleService.cases_in_bounds(backend, north, south, east, west)}


@router.get("/{case_id}", response_model=Case)
async def get_case(case_id: str, backend: BackendClient = Depends(get_user_backend)):
    case = await CaseLifecycleService.load_case(backend, case_id)
    await CaseLifecycleService.record_view(backend, case_id)
    return case


@router.get("/{case_id}/export")
async def export_case(
    case_id: str,
    format: str = Query("pdf", pattern="^(pdf|text)$"),
    backend: BackendClient = Depends(get_user_backend),
):
    """Download the case report as PDF (default) or plain text."""
    case = await CaseLifecycleService.load_case(backend, case_id)
    team = await TeamService.get_case_team(backend, case_id)
    comments = await CommunityService.list_comments(backend, case_id)

    filename = f"case-{case_id}"
    if format == "text":
        return PlainTextResponse(
            case_export_service.export_text(case, team, comments),
            headers={"Content-Disposition": f'attachment; filename="{filename}.txt"'},
        )
    return Response(
        content=case_export_service.export_pdf(case, team, comments),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}.pdf"'},
    )


# ================= SUBMISSION =================

@router.post("", response_model=Case, status_code=201)
@limiter.limit(ACTION_LIMIT)
async def create_case(
    request: Request,
    draft: CaseDraft,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CaseLifecycleService.create_case(backend, session, draft)


# ================= INVESTIGATION =================

@router.post("/{case_id}/assign", response_model=CaseActionResult)
@limiter.limit(ACTION_LIMIT)
async def assign_case(
    request: Request,
    case_id: str,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CaseLifecycleService.assign(backend, session, case_id)


@router.put("/{case_id}/notes", response_model=Case)
async def save_notes(
    case_id: str,
    body: NotesRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CaseLifecycleService.save_notes(backend, session, case_id, body.notes, body.proposal)


@router.post("/{case_id}/resolution", response_model=CaseActionResult)
@limiter.limit(ACTION_LIMIT)
async def submit_resolution(
    request: Request,
    case_id: str,
    body: ResolutionSubmitRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CaseLifecycleService.submit_resolution(backend, session, case_id, body.notes, body.proposal)


# ================= REVIEW =================

@router.post("/{case_id}/resolution/accept", response_model=CaseActionResult)
@limiter.limit(ACTION_LIMIT)
async def accept_resolution(
    request: Request,
    case_id: str,
    body: AcceptResolutionRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CaseLifecycleService.accept_resolution(backend, session, case_id, body.rating, body.feedback)


@router.post("/{case_id}/resolution/reject", response_model=CaseActionResult)
@limiter.limit(ACTION_LIMIT)
async def reject_resolution(
    request: Request,
    case_id: str,
    body: RejectResolutionRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CaseLifecycleService.reject_resolution(backend, session, case_id, body.feedback)


# ================= DISPUTE & VOTING =================

@router.post("/{case_id}/dispute/decision", response_model=CaseActionResult)
@limiter.limit(ACTION_LIMIT)
async def admin_resolve_dispute(
    request: Request,
    case_id: str,
    body: AdminDecisionRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CaseLifecycleService.admin_resolve_dispute(backend, session, case_id, body.decision)


@router.post("/{case_id}/vote", response_model=CaseActionResult)
@limiter.limit(ACTION_LIMIT)
async def vote(
    request: Request,
    case_id: str,
    body: VoteRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    """Agree/disagree: a binding vote while VOTING, sentiment once RESOLVED or CLOSED."""
    return await CaseLifecycleService.vote(backend, session, case_id, body.agree)


# ================= EVIDENCE =================

@router.post("/{case_id}/evidence", response_model=CaseActionResult)
@limiter.limit(ACTION_LIMIT)
async def upload_evidence(
    request: Request,
    case_id: str,
    files: List[UploadFile] = File(...),
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    payload = []
    for upload in files:
        payload.append((upload.filename or "file", await upload.read(), upload.content_type))
    return await CaseLifecycleService.upload_evidence(backend, session, case_id, payload)


@router.delete("/{case_id}/evidence", response_model=CaseActionResult)
async def remove_evidence(
    case_id: str,
    url: str = Query(..., min_length=1),
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await CaseLifecycleService.remove_evidence(backend, session, case_id, url)
