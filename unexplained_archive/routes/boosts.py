"""
unexplained_archive/routes/boosts.py
Case boosts: pricing, purchase (wallet or card), tracking and analytics.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Request

from unexplained_archive.rate_limit import ACTION_LIMIT, COMMUNITY_LIMIT, limiter
from unexplained_archive.schemas.boost import BoostPricing, BoostPurchaseRequest
from unexplained_archive.schemas.payments import CheckoutSession
from unexplained_archive.services.backend_client import BackendClient
from unexplained_archive.services.boost_service import BoostService
from unexplained_archive.session import Session, get_session, get_user_backend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/boosts", tags=["Boosts"])


@router.get("/pricing", response_model=List[BoostPricing])
async def get_pricing(backend: BackendClient = Depends(get_user_backend)):
    return await BoostService.get_pricing(backend)


@router.get("/active")
async def active_boosts(backend: BackendClient = Depends(get_user_backend)):
    return {"boosts": await BoostService.get_active_boosts(backend)}


@router.get("/analytics")
async def my_boost_analytics(
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return {"boosts": await BoostService.get_user_boost_analytics(backend, session.user_id)}


@router.get("/cases/{case_id}")
async def case_boost(case_id: str, backend: BackendClient = Depends(get_user_backend)):
    boost = await BoostService.get_case_boost(backend, case_id)
    return {"boosted": boost is not None and boost.is_active(), "boost": boost}


@router.post("/cases/{case_id}/wallet")
@limiter.limit(ACTION_LIMIT)
async def purchase_with_wallet(
    request: Request,
    case_id: str,
    body: BoostPurchaseRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await BoostService.purchase_with_wallet(backend, session, case_id, body.boost_type)


@router.post("/cases/{case_id}/checkout", response_model=CheckoutSession)
@limiter.limit(ACTION_LIMIT)
async def purchase_with_card(
    request: Request,
    case_id: str,
    body: BoostPurchaseRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await BoostService.purchase_with_card(backend, session, case_id, body.boost_type)


@router.post("/cases/{case_id}/track", status_code=202)
@limiter.limit(COMMUNITY_LIMIT)
async def track(
    request: Request,
    case_id: str,
    event: str = Query("impression", pattern="^(impression|click)$"),
    backend: BackendClient = Depends(get_user_backend),
):
    """Record an impression or click without waiting for the backend."""
    BoostService.track_in_background(backend, case_id, event)
    return {"success": True}
