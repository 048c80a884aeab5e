"""
unexplained_archive/routes/wallet.py
Wallet API: balance, history, deposits, wallet donations and withdrawals.

Balances are never computed here. Every response carries the wallet as
re-read from the backend after the operation.
"""
import logging

from fastapi import APIRouter, Depends, Request

from unexplained_archive.rate_limit import ACTION_LIMIT, limiter
from unexplained_archive.schemas.payments import CheckoutSession
from unexplained_archive.schemas.wallet import AmountRequest, WalletDonationRequest, WalletSnapshot
from unexplained_archive.services.backend_client import BackendClient
from unexplained_archive.services.wallet_service import WalletService
from unexplained_archive.session import Session, get_session, get_user_backend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("", response_model=WalletSnapshot)
async def get_wallet(
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await WalletService.get_snapshot(backend, session.user_id)


@router.post("/deposit", response_model=CheckoutSession)
@limiter.limit(ACTION_LIMIT)
async def deposit(
    request: Request,
    body: AmountRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    """Start a card checkout that tops up the wallet."""
    return await WalletService.create_deposit_checkout(backend, session, body.amount)


@router.post("/donate", response_model=WalletSnapshot)
@limiter.limit(ACTION_LIMIT)
async def donate(
    request: Request,
    body: WalletDonationRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await WalletService.donate_from_wallet(backend, session, body.case_id, body.amount)


@router.post("/withdraw", response_model=WalletSnapshot)
@limiter.limit(ACTION_LIMIT)
async def withdraw(
    request: Request,
    body: AmountRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await WalletService.request_withdrawal(backend, session, body.amount)
