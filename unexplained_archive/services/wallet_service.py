"""
Wallet Ledger Client

Reads wallets and transactions, and moves money out of a wallet through the
backend procedures (donation) and edge functions (withdrawal).

The balance returned after any money movement is always re-read from the
backend ledger. A locally computed `balance - amount` is never shown.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from unexplained_archive.config.payment_policy import MoneyOperation
from unexplained_archive.exceptions import (
    AuthenticationRequiredError,
    InsufficientFundsError,
    ValidationFailedError,
)
from unexplained_archive.schemas.payments import CheckoutSession
from unexplained_archive.schemas.wallet import (
    Transaction,
    TransactionLimits,
    Wallet,
    WalletSnapshot,
)
from unexplained_archive.services.backend_client import BackendClient, unwrap_result
from unexplained_archive.services.fees import ensure_minimum, format_eur
from unexplained_archive.services.payment_service import PLATFORM_TARGET, PaymentService
from unexplained_archive.session import Session

logger = logging.getLogger(__name__)


class WalletService:
    """Client for the `wallets`, `transactions` and `transaction_limits` tables."""

    # ================= READS =================

    @staticmethod
    async def get_wallet(backend: BackendClient, user_id: str) -> Wallet:
        """The user's wallet; a zero-balance wallet is created on first access."""
        row = await backend.select_one("wallets", {"user_id": user_id})
        if row is None:
            created = await backend.insert("wallets", {"user_id": user_id, "balance": 0})
            if created:
                logger.info(f"Created wallet for user {user_id}")
                row = created[0]
            else:
                row = {"user_id": user_id, "balance": 0}
        return Wallet.from_row(row)

    @classmethod
    async def get_balance(cls, backend: BackendClient, user_id: str) -> Decimal:
        return (await cls.get_wallet(backend, user_id)).balance

    @classmethod
    async def get_transactions(cls, backend: BackendClient, user_id: str, limit: int = 50) -> List[Transaction]:
        wallet = await cls.get_wallet(backend, user_id)
        if not wallet.id:
            return []
        rows = await backend.select(
            "transactions",
            {"status": ("in", ["completed", "pending", "failed"])},
            or_filter=f"from_wallet_id.eq.{wallet.id},to_wallet_id.eq.{wallet.id}",
            order="created_at.desc",
            limit=limit,
        )
        return [Transaction.from_row(row) for row in rows]

    @classmethod
    async def get_snapshot(cls, backend: BackendClient, user_id: str, message: Optional[str] = None) -> WalletSnapshot:
        wallet = await cls.get_wallet(backend, user_id)
        transactions = await cls.get_transactions(backend, user_id)
        return WalletSnapshot(balance=wallet.balance, transactions=transactions, message=message)

    @staticmethod
    async def check_transaction_limits(backend: BackendClient, user_id: str, amount: Decimal) -> Optional[str]:
        """Reason the amount exceeds the user's limits, or None. No limits row means no limit."""
        row = await backend.select_one("transaction_limits", {"user_id": user_id})
        if row is None:
            return None
        return TransactionLimits.from_row(row).refusal_reason(Decimal(amount))

    # ================= MONEY OUT =================

    @classmethod
    async def donate_from_wallet(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        amount: Decimal,
    ) -> WalletSnapshot:
        """
        Move `amount` from the wallet into a case's escrow.

        Minimum, limits and balance are checked before the procedure is
        called; the procedure re-checks all of them atomically.
        """
        if case_id == PLATFORM_TARGET:
            raise ValidationFailedError("Platform donations must be paid by card")
        amount = ensure_minimum(amount, MoneyOperation.DONATION)

        reason = await cls.check_transaction_limits(backend, session.user_id, amount)
        if reason:
            raise ValidationFailedError(reason)

        balance = await cls.get_balance(backend, session.user_id)
        if balance < amount:
            raise InsufficientFundsError(
                "Insufficient wallet balance. Please choose Stripe payment or deposit funds."
            )

        result = await backend.rpc("donate_from_wallet", {
            "p_user_id": session.user_id,
            "p_case_id": case_id,
            "p_amount": float(amount),
        })
        unwrap_result(result, "An unknown error occurred during donation.")
        logger.info(f"Wallet donation: {session.user_id} -> case {case_id}: {amount}")

        return await cls.get_snapshot(
            backend,
            session.user_id,
            message=f"Donated {format_eur(amount)} to the case reward pool!",
        )

    @classmethod
    async def request_withdrawal(cls, backend: BackendClient, session: Session, amount: Decimal) -> WalletSnapshot:
        """
        Ask the backend to pay out `amount` to the user's connected account.
        Only verified investigators succeed; the edge function decides.
        """
        if not session.access_token:
            raise AuthenticationRequiredError()
        amount = ensure_minimum(amount, MoneyOperation.WITHDRAWAL)

        balance = await cls.get_balance(backend, session.user_id)
        if balance < amount:
            raise InsufficientFundsError()

        # The function authenticates the bearer token only
        await backend.invoke("request-withdrawal", {"amount": float(amount)}, access_token=session.access_token)
        logger.info(f"Withdrawal requested by {session.user_id}: {amount}")

        return await cls.get_snapshot(
            backend,
            session.user_id,
            message="Withdrawal requested! Funds will arrive in 2-5 business days.",
        )

    # ================= MONEY IN =================

    @staticmethod
    async def create_deposit_checkout(backend: BackendClient, session: Session, amount: Decimal) -> CheckoutSession:
        return await PaymentService.create_deposit_checkout(backend, session, amount)
