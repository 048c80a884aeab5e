"""
Wallet Ledger Client Tests

Balances shown after a money movement must come from a fresh backend read,
and every refusal (minimum, limit, balance) happens before any procedure call.
"""
from decimal import Decimal

import pytest

from unexplained_archive.exceptions import (
    ConflictError,
    InsufficientFundsError,
    ValidationFailedError,
)
from unexplained_archive.services.wallet_service import WalletService

from conftest import SUBMITTER_ID, case_row


def _wallet(balance: str, user_id: str = SUBMITTER_ID) -> dict:
    return {"id": f"wallet-{user_id}", "user_id": user_id, "balance": balance}


@pytest.fixture
def funded(backend):
    backend.seed("cases", case_row())
    backend.seed("wallets", _wallet("100.00"))
    return backend


# ==========================================
# Reads
# ==========================================

@pytest.mark.asyncio
async def test_wallet_created_on_first_access(backend, submitter):
    wallet = await WalletService.get_wallet(backend, submitter.user_id)

    assert wallet.balance == Decimal("0")
    assert backend.calls_to("insert", "wallets")


@pytest.mark.asyncio
async def test_snapshot_lists_transactions_newest_first(funded, submitter):
    funded.seed(
        "transactions",
        {"id": "t1", "transaction_type": "deposit", "amount": "50", "status": "completed",
         "to_wallet_id": "wallet-user-submitter", "created_at": "2026-03-01T10:00:00+00:00"},
        {"id": "t2", "transaction_type": "donation", "amount": "20", "status": "completed",
         "from_wallet_id": "wallet-user-submitter", "created_at": "2026-03-02T10:00:00+00:00"},
    )

    snapshot = await WalletService.get_snapshot(funded, submitter.user_id)

    assert snapshot.balance == Decimal("100.00")
    assert [t.id for t in snapshot.transactions] == ["t2", "t1"]
    assert snapshot.transactions[0].type == "donation"


# ==========================================
# Wallet donations
# ==========================================

@pytest.mark.asyncio
async def test_donation_returns_reread_balance(funded, submitter):
    def debit(params):
        # The ledger decides the final balance; 71 proves it is not computed locally
        funded.tables["wallets"][0]["balance"] = "71.00"
        return {"success": True}

    funded.rpc_handlers["donate_from_wallet"] = debit

    snapshot = await WalletService.donate_from_wallet(funded, submitter, "case-1", Decimal("30"))

    assert snapshot.balance == Decimal("71.00")
    assert snapshot.message == "Donated €30 to the case reward pool!"
    (_, _, params), = funded.calls_to("rpc", "donate_from_wallet")
    assert params == {"p_user_id": SUBMITTER_ID, "p_case_id": "case-1", "p_amount": 30.0}


@pytest.mark.asyncio
async def test_donation_minimum_boundary(funded, submitter):
    funded.rpc_handlers["donate_from_wallet"] = {"success": True}

    await WalletService.donate_from_wallet(funded, submitter, "case-1", Decimal("5"))
    with pytest.raises(ValidationFailedError) as exc:
        await WalletService.donate_from_wallet(funded, submitter, "case-1", Decimal("4.99"))

    assert exc.value.message == "Minimum payment amount is €5"
    assert len(funded.calls_to("rpc", "donate_from_wallet")) == 1


@pytest.mark.asyncio
async def test_insufficient_balance_never_calls_procedure(funded, submitter):
    with pytest.raises(InsufficientFundsError) as exc:
        await WalletService.donate_from_wallet(funded, submitter, "case-1", Decimal("150"))

    assert exc.value.message == "Insufficient wallet balance. Please choose Stripe payment or deposit funds."
    assert funded.calls_to("rpc") == []


@pytest.mark.asyncio
async def test_daily_limit_refusal(funded, submitter):
    funded.seed("transaction_limits", {
        "user_id": SUBMITTER_ID,
        "daily_limit": "50", "daily_spent": "40",
        "monthly_limit": "1000", "monthly_spent": "40",
    })

    with pytest.raises(ValidationFailedError) as exc:
        await WalletService.donate_from_wallet(funded, submitter, "case-1", Decimal("20"))

    assert exc.value.message == "Daily limit exceeded. You can spend €10.00 more today."
    assert funded.calls_to("rpc") == []


@pytest.mark.asyncio
async def test_platform_donations_need_card(funded, submitter):
    with pytest.raises(ValidationFailedError):
        await WalletService.donate_from_wallet(funded, submitter, "platform", Decimal("10"))
    assert funded.writes() == []


@pytest.mark.asyncio
async def test_procedure_error_is_surfaced_verbatim(funded, submitter):
    funded.rpc_handlers["donate_from_wallet"] = {"success": False, "error": "Case is not accepting donations"}

    with pytest.raises(ConflictError) as exc:
        await WalletService.donate_from_wallet(funded, submitter, "case-1", Decimal("10"))

    assert exc.value.message == "Case is not accepting donations"
    assert funded.tables["wallets"][0]["balance"] == "100.00"


# ==========================================
# Withdrawals
# ==========================================

@pytest.mark.asyncio
async def test_withdrawal_minimum_boundary(funded, submitter):
    funded.function_handlers["request-withdrawal"] = {"success": True}

    snapshot = await WalletService.request_withdrawal(funded, submitter, Decimal("10"))
    assert snapshot.message == "Withdrawal requested! Funds will arrive in 2-5 business days."

    with pytest.raises(ValidationFailedError) as exc:
        await WalletService.request_withdrawal(funded, submitter, Decimal("9.99"))
    assert exc.value.message == "Minimum withdrawal amount is €10"
    assert len(funded.calls_to("invoke", "request-withdrawal")) == 1


@pytest.mark.asyncio
async def test_withdrawal_authenticates_with_user_token(funded, submitter):
    funded.function_handlers["request-withdrawal"] = {"success": True}

    await WalletService.request_withdrawal(funded, submitter, Decimal("25"))

    (_, _, payload), = funded.calls_to("invoke", "request-withdrawal")
    assert payload["access_token"] == submitter.access_token
    assert payload["body"] == {"amount": 25.0}


@pytest.mark.asyncio
async def test_withdrawal_over_balance_refused(funded, submitter):
    with pytest.raises(InsufficientFundsError):
        await WalletService.request_withdrawal(funded, submitter, Decimal("500"))
    assert funded.calls_to("invoke") == []
