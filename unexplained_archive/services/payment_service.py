"""
Payment Gateway Client

Creates payment-processor checkout sessions through edge functions and reads
subscription state. A checkout only hands back a redirect URL: the actual
ledger entry is written by the processor webhook in the backend, so nothing
here ever credits a wallet or a case.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from unexplained_archive.config.payment_policy import MoneyOperation
from unexplained_archive.config.settings import settings
from unexplained_archive.exceptions import CheckoutUnavailableError, ValidationFailedError
from unexplained_archive.schemas.boost import BoostType
from unexplained_archive.schemas.payments import (
    CheckoutSession,
    PaymentReturn,
    Subscription,
    SubscriptionPlan,
    VerificationType,
)
from unexplained_archive.services.backend_client import BackendClient
from unexplained_archive.services.fees import ensure_minimum
from unexplained_archive.session import Session

logger = logging.getLogger(__name__)

# Donation target meaning "the platform itself" (no fee)
PLATFORM_TARGET = "platform"

# Return-URL flags that name the payment kind
_RETURN_KINDS = ("donation", "deposit", "boost", "subscription", "verification", "withdrawal")
_TRUTHY = ("1", "true", "success", "yes")


def _to_checkout(data: Any, function: str) -> CheckoutSession:
    """Extract the redirect URL; no URL means the session is unusable."""
    if not isinstance(data, dict):
        logger.error(f"Checkout function {function} returned no session")
        raise CheckoutUnavailableError()

    url = data.get("checkoutUrl") or data.get("url") or data.get("checkout_url")
    if not url:
        logger.error(f"Checkout function {function} returned a session without URL: {data}")
        raise CheckoutUnavailableError()

    return CheckoutSession(session_id=data.get("sessionId") or data.get("session_id"), checkout_url=url)


def _money_param(amount: Decimal) -> float:
    # Edge functions take JSON numbers
    return float(amount)


class PaymentService:
    """Checkout creators and subscription reads."""

    # ================= CHECKOUTS =================

    @staticmethod
    async def create_deposit_checkout(backend: BackendClient, session: Session, amount: Decimal) -> CheckoutSession:
        amount = ensure_minimum(amount, MoneyOperation.DEPOSIT)
        data = await backend.invoke("create-deposit-checkout", {
            "userId": session.user_id,
            "amount": _money_param(amount),
            "successUrl": f"{settings.PUBLIC_APP_URL}/payment/success?type=deposit&amount={amount}",
            "cancelUrl": f"{settings.PUBLIC_APP_URL}/wallet?deposit=canceled",
        })
        logger.info(f"Deposit checkout created for {session.user_id}: {amount}")
        return _to_checkout(data, "create-deposit-checkout")

    @staticmethod
    async def create_donation_checkout(
        backend: BackendClient,
        session: Session,
        case_id: str,
        amount: Decimal,
    ) -> CheckoutSession:
        """Card donation to a case escrow, or to the platform when case_id is "platform"."""
        amount = ensure_minimum(amount, MoneyOperation.DONATION)
        is_platform = case_id == PLATFORM_TARGET

        if is_platform:
            success_url = f"{settings.PUBLIC_APP_URL}/payment/success?type=donation&amount={amount}"
            cancel_url = f"{settings.PUBLIC_APP_URL}/?donation=canceled"
        else:
            success_url = f"{settings.PUBLIC_APP_URL}/cases/{case_id}?donation=success&amount={amount}"
            cancel_url = f"{settings.PUBLIC_APP_URL}/cases/{case_id}?donation=canceled"

        data = await backend.invoke("create-escrow-payment-checkout", {
            "caseId": case_id,
            "amount": _money_param(amount),
            "userId": session.user_id,
            "isPlatformDonation": is_platform,
            "successUrl": success_url,
            "cancelUrl": cancel_url,
        })
        logger.info(f"Donation checkout created for {session.user_id}: {amount} -> {case_id}")
        return _to_checkout(data, "create-escrow-payment-checkout")

    @staticmethod
    async def create_subscription_checkout(
        backend: BackendClient,
        session: Session,
        plan: SubscriptionPlan,
        billing_cycle: str = "monthly",
    ) -> CheckoutSession:
        data = await backend.invoke("create-subscription-checkout", {
            "planType": SubscriptionPlan(plan).value,
            "billingCycle": billing_cycle,
            "userId": session.user_id,
            "successUrl": f"{settings.PUBLIC_APP_URL}/subscription?success=true",
            "cancelUrl": f"{settings.PUBLIC_APP_URL}/subscription?canceled=true",
        })
        return _to_checkout(data, "create-subscription-checkout")

    @staticmethod
    async def create_boost_checkout(
        backend: BackendClient,
        session: Session,
        case_id: str,
        boost_type: BoostType,
        amount: Decimal,
        product_name: str,
    ) -> CheckoutSession:
        amount = ensure_minimum(amount, MoneyOperation.BOOST)
        boost_type = BoostType(boost_type)
        data = await backend.invoke("create-direct-payment-checkout", {
            "amount": _money_param(amount),
            "productName": product_name,
            "productDescription": f"Boost for case {case_id}",
            "userId": session.user_id,
            "successUrl": f"{settings.PUBLIC_APP_URL}/payment/success?type=boost&amount={amount}&case_id={case_id}",
            "cancelUrl": f"{settings.PUBLIC_APP_URL}/cases/{case_id}?boost=canceled",
            "metadata": {
                "paymentType": "boost",
                "caseId": case_id,
                "boostType": boost_type.value,
            },
        })
        return _to_checkout(data, "create-direct-payment-checkout")

    @staticmethod
    async def create_verification_checkout(
        backend: BackendClient,
        session: Session,
        verification_type: VerificationType = VerificationType.STANDARD,
    ) -> CheckoutSession:
        data = await backend.invoke("request-verification-checkout", {
            "userId": session.user_id,
            "checkType": VerificationType(verification_type).value,
        })
        return _to_checkout(data, "request-verification-checkout")

    # ================= SUBSCRIPTIONS =================

    @staticmethod
    async def get_active_subscription(backend: BackendClient, user_id: str) -> Optional[Subscription]:
        row = await backend.select_one(
            "subscriptions",
            {"user_id": user_id, "status": "active"},
            order="created_at.desc",
        )
        return Subscription.from_row(row) if row else None

    @classmethod
    async def has_active_subscription(
        cls,
        backend: BackendClient,
        user_id: str,
        plan: Optional[SubscriptionPlan] = None,
    ) -> bool:
        subscription = await cls.get_active_subscription(backend, user_id)
        if subscription is None:
            return False
        if plan is not None:
            return subscription.plan_type == SubscriptionPlan(plan).value
        return True

    @classmethod
    async def cancel_subscription(cls, backend: BackendClient, session: Session) -> Optional[Subscription]:
        """Cancel at period end, then return the subscription as the backend now sees it."""
        if not await cls.has_active_subscription(backend, session.user_id):
            raise ValidationFailedError("You have no active subscription")

        await backend.invoke("cancel-subscription", {"userId": session.user_id})
        logger.info(f"Subscription cancellation requested by {session.user_id}")
        return await cls.get_active_subscription(backend, session.user_id)

    # ================= RETURN URL =================

    @staticmethod
    def parse_payment_return(query: Mapping[str, str]) -> PaymentReturn:
        """
        Read the parameters the processor appended to the return URL.

        Informational only: the parameters can be edited by anyone, so callers
        reload the ledger instead of acting on them.
        """
        kind = query.get("type")
        status = None
        for candidate in _RETURN_KINDS:
            if candidate in query:
                kind = kind or candidate
                status = query.get(candidate)
                break

        success = str(query.get("success", "")).lower() in _TRUTHY or status == "success"
        canceled = str(query.get("canceled", "")).lower() in _TRUTHY or status in ("canceled", "cancelled")
        if kind and status is None and not canceled and "success" not in query:
            # /payment/success?type=deposit carries no explicit flag
            success = True

        amount = None
        raw_amount = query.get("amount")
        if raw_amount:
            try:
                amount = Decimal(raw_amount)
            except InvalidOperation:
                logger.warning(f"Ignoring malformed amount in payment return: {raw_amount!r}")

        return PaymentReturn(
            kind=kind,
            success=success and not canceled,
            canceled=canceled,
            amount=amount,
            case_id=query.get("case_id"),
            session_id=query.get("session_id"),
        )

    @staticmethod
    def payment_return_message(result: PaymentReturn) -> Optional[str]:
        if result.canceled:
            return "Payment canceled."
        if not result.success:
            return None
        if result.kind == "deposit":
            return "Deposit received! Your wallet will update shortly."
        if result.kind == "donation":
            return "Thank you for your donation!"
        if result.kind == "boost":
            return "Boost purchased! Your case will be featured shortly."
        return "Payment successful!"


def checkout_payload(checkout: CheckoutSession) -> Dict[str, Any]:
    return {"success": True, "session_id": checkout.session_id, "checkout_url": checkout.checkout_url}
