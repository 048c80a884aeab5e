"""
unexplained_archive/routes/verification.py
Investigator verification (background check) status and purchase.
"""
import logging

from fastapi import APIRouter, Depends, Request

from unexplained_archive.rate_limit import ACTION_LIMIT, limiter
from unexplained_archive.schemas.payments import CheckoutSession, VerificationRequest
from unexplained_archive.schemas.wallet import WalletSnapshot
from unexplained_archive.services.backend_client import BackendClient
from unexplained_archive.services.verification_service import VerificationService, VerificationStatus
from unexplained_archive.session import Session, get_session, get_user_backend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/verification", tags=["Verification"])


@router.get("/users/{user_id}", response_model=VerificationStatus)
async def verification_status(user_id: str, backend: BackendClient = Depends(get_user_backend)):
    return await VerificationService.get_verification_status(backend, user_id)


@router.get("/checks")
async def my_background_checks(
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return {"checks": await VerificationService.get_background_checks(backend, session.user_id)}


@router.post("/checkout", response_model=CheckoutSession)
@limiter.limit(ACTION_LIMIT)
async def request_verification(
    request: Request,
    body: VerificationRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await VerificationService.request_verification(backend, session, body.verification_type)


@router.post("/wallet", response_model=WalletSnapshot)
@limiter.limit(ACTION_LIMIT)
async def request_verification_with_wallet(
    request: Request,
    body: VerificationRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await VerificationService.request_verification_with_wallet(backend, session, body.verification_type)
