"""
unexplained_archive/routes/payments.py
Card checkouts (donations, subscriptions), subscription management and the
payment return page.
"""
import logging

from fastapi import APIRouter, Depends, Request

from unexplained_archive.rate_limit import ACTION_LIMIT, limiter
from unexplained_archive.schemas.payments import (
    CheckoutSession,
    DonationCheckoutRequest,
    SubscriptionCheckoutRequest,
)
from unexplained_archive.services.backend_client import BackendClient
from unexplained_archive.services.payment_service import PaymentService
from unexplained_archive.services.wallet_service import WalletService
from unexplained_archive.session import Session, get_session, get_user_backend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/donation", response_model=CheckoutSession)
@limiter.limit(ACTION_LIMIT)
async def donation_checkout(
    request: Request,
    body: DonationCheckoutRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await PaymentService.create_donation_checkout(backend, session, body.case_id, body.amount)


@router.post("/subscription", response_model=CheckoutSession)
@limiter.limit(ACTION_LIMIT)
async def subscription_checkout(
    request: Request,
    body: SubscriptionCheckoutRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await PaymentService.create_subscription_checkout(backend, session, body.plan, body.billing_cycle)


@router.get("/subscription")
async def get_subscription(
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    subscription = await PaymentService.get_active_subscription(backend, session.user_id)
    return {"subscription": subscription.model_dump(mode="json") if subscription else None}


@router.post("/subscription/cancel")
async def cancel_subscription(
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    subscription = await PaymentService.cancel_subscription(backend, session)
    return {
        "success": True,
        "message": "Your subscription will end at the close of the current billing period.",
        "subscription": subscription.model_dump(mode="json") if subscription else None,
    }


@router.get("/return")
async def payment_return(
    request: Request,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    """
    Landing call after the processor redirects back.

    The query string is only used for the message; the wallet is re-read so
    the UI shows what the backend actually recorded.
    """
    result = PaymentService.parse_payment_return(request.query_params)
    wallet = await WalletService.get_snapshot(
        backend, session.user_id, message=PaymentService.payment_return_message(result)
    )
    return {"payment": result.model_dump(mode="json"), "wallet": wallet.model_dump(mode="json")}
