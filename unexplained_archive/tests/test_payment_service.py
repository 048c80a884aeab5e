"""
Payment Gateway and Verification Tests
"""
from decimal import Decimal

import pytest

from unexplained_archive.exceptions import (
    CheckoutUnavailableError,
    PermissionDeniedError,
    RemoteServiceError,
    ValidationFailedError,
)
from unexplained_archive.services.payment_service import PaymentService
from unexplained_archive.services.verification_service import VerificationService

from conftest import SUBMITTER_ID


# ==========================================
# Checkouts
# ==========================================

@pytest.mark.asyncio
async def test_donation_checkout_returns_redirect(backend, submitter):
    backend.function_handlers["create-escrow-payment-checkout"] = {
        "sessionId": "cs_1", "checkoutUrl": "https://checkout.test/cs_1",
    }

    checkout = await PaymentService.create_donation_checkout(backend, submitter, "case-1", Decimal("20"))

    assert checkout.checkout_url == "https://checkout.test/cs_1"
    (_, _, payload), = backend.calls_to("invoke", "create-escrow-payment-checkout")
    assert payload["body"]["caseId"] == "case-1"
    assert payload["body"]["amount"] == 20.0
    assert payload["body"]["isPlatformDonation"] is False
    # Nothing is credited locally
    assert backend.calls_to("rpc") == []


@pytest.mark.asyncio
async def test_platform_donation_flag(backend, submitter):
    backend.function_handlers["create-escrow-payment-checkout"] = {"url": "https://checkout.test/p"}

    await PaymentService.create_donation_checkout(backend, submitter, "platform", Decimal("5"))

    (_, _, payload), = backend.calls_to("invoke", "create-escrow-payment-checkout")
    assert payload["body"]["isPlatformDonation"] is True


@pytest.mark.asyncio
async def test_checkout_without_url_is_unavailable(backend, submitter):
    backend.function_handlers["create-deposit-checkout"] = {"sessionId": "cs_2"}

    with pytest.raises(CheckoutUnavailableError) as exc:
        await PaymentService.create_deposit_checkout(backend, submitter, Decimal("10"))
    assert exc.value.message == "Invalid payment session. Please contact support."


@pytest.mark.asyncio
async def test_deposit_below_minimum_never_invokes(backend, submitter):
    with pytest.raises(ValidationFailedError):
        await PaymentService.create_deposit_checkout(backend, submitter, Decimal("4.99"))
    assert backend.calls == []


# ==========================================
# Subscriptions
# ==========================================

@pytest.mark.asyncio
async def test_cancel_without_subscription_refused(backend, submitter):
    with pytest.raises(ValidationFailedError):
        await PaymentService.cancel_subscription(backend, submitter)
    assert backend.calls_to("invoke") == []


@pytest.mark.asyncio
async def test_cancel_rereads_subscription(backend, submitter):
    backend.seed("subscriptions", {
        "id": "sub-1", "user_id": SUBMITTER_ID, "plan_type": "investigator_pro", "status": "active",
    })
    backend.function_handlers["cancel-subscription"] = {"success": True}

    subscription = await PaymentService.cancel_subscription(backend, submitter)

    assert subscription.id == "sub-1"
    assert backend.calls_to("invoke", "cancel-subscription")


# ==========================================
# Return URL
# ==========================================

def test_return_with_explicit_kind_flag():
    result = PaymentService.parse_payment_return({"donation": "success", "amount": "25"})
    assert result.kind == "donation"
    assert result.success
    assert result.amount == Decimal("25")


def test_return_canceled():
    result = PaymentService.parse_payment_return({"deposit": "canceled"})
    assert result.canceled
    assert not result.success
    assert PaymentService.payment_return_message(result) == "Payment canceled."


def test_return_success_page_without_flag():
    result = PaymentService.parse_payment_return({"type": "boost", "case_id": "case-1"})
    assert result.success
    assert result.case_id == "case-1"
    assert PaymentService.payment_return_message(result) == "Boost purchased! Your case will be featured shortly."


def test_return_malformed_amount_ignored():
    assert PaymentService.parse_payment_return({"type": "deposit", "amount": "lots"}).amount is None


# ==========================================
# Verification
# ==========================================

@pytest.mark.asyncio
async def test_verification_lookup_failure_reads_unverified(backend):
    def broken(params):
        raise RemoteServiceError()

    backend.rpc_handlers["get_verification_status"] = broken

    assert not await VerificationService.is_verified(backend, "user-x")


@pytest.mark.asyncio
async def test_verification_status_from_list_payload(backend):
    backend.rpc_handlers["get_verification_status"] = [{"verified": True, "badge_color": "gold"}]

    status = await VerificationService.get_verification_status(backend, "user-x")

    assert status.verified
    assert status.badge_color == "gold"


@pytest.mark.asyncio
async def test_only_investigators_request_verification(backend, submitter):
    with pytest.raises(PermissionDeniedError):
        await VerificationService.request_verification_with_wallet(backend, submitter)
    assert backend.calls == []
