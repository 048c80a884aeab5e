"""
Boost Client Tests

Wallet purchases, duplicate boosts, payload validation and ROI arithmetic.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from unexplained_archive.exceptions import ConflictError, InsufficientFundsError
from unexplained_archive.schemas.boost import Boost, BoostType
from unexplained_archive.services.boost_service import BoostService

from conftest import SUBMITTER_ID, case_row

FAR_FUTURE = "2099-01-01T00:00:00+00:00"


@pytest.fixture
def shop(backend):
    backend.seed("cases", case_row())
    backend.seed(
        "boost_pricing",
        {"boost_type": "24h", "price": "5.00", "duration_hours": 24, "display_name": "24 Hours", "is_active": True},
        {"boost_type": "7d", "price": "25.00", "duration_hours": 168, "display_name": "7 Days", "is_active": True},
    )
    backend.seed("wallets", {"id": "wallet-1", "user_id": SUBMITTER_ID, "balance": "20.00"})
    return backend


def _activate_boost(backend, params):
    backend.seed("featured_cases", {
        "id": "boost-1", "case_id": params["p_case_id"], "boost_type": params["p_boost_type"],
        "featured_until": FAR_FUTURE, "status": "active", "price_paid": "5.00",
    })
    backend.tables["wallets"][0]["balance"] = "15.00"
    return {"success": True}


# ==========================================
# Purchase
# ==========================================

@pytest.mark.asyncio
async def test_wallet_purchase(shop, submitter):
    shop.rpc_handlers["purchase_case_boost"] = lambda params: _activate_boost(shop, params)

    result = await BoostService.purchase_with_wallet(shop, submitter, "case-1", BoostType.HOURS_24)

    assert result["message"] == "Case boosted! Featured for 24 hours."
    assert result["balance"] == Decimal("15.00")
    assert result["boost"].boost_type == BoostType.HOURS_24
    (_, _, params), = shop.calls_to("rpc", "purchase_case_boost")
    assert params == {
        "p_case_id": "case-1",
        "p_user_id": SUBMITTER_ID,
        "p_boost_type": "24h",
        "p_stripe_payment_id": None,
    }


@pytest.mark.asyncio
async def test_insufficient_wallet_never_calls_procedure(shop, submitter):
    with pytest.raises(InsufficientFundsError):
        await BoostService.purchase_with_wallet(shop, submitter, "case-1", BoostType.DAYS_7)
    assert shop.calls_to("rpc") == []


@pytest.mark.asyncio
async def test_already_boosted_case_refused(shop, submitter):
    shop.seed("featured_cases", {
        "id": "boost-0", "case_id": "case-1", "boost_type": "24h",
        "featured_until": FAR_FUTURE, "status": "active",
    })

    with pytest.raises(ConflictError) as exc:
        await BoostService.purchase_with_wallet(shop, submitter, "case-1", BoostType.HOURS_24)
    assert exc.value.message == "This case is already boosted"
    assert shop.calls_to("rpc") == []


@pytest.mark.asyncio
async def test_unexpected_procedure_payload(shop, submitter):
    shop.rpc_handlers["purchase_case_boost"] = None

    with pytest.raises(ConflictError) as exc:
        await BoostService.purchase_with_wallet(shop, submitter, "case-1", BoostType.HOURS_24)
    assert exc.value.message == "Invalid response from server"


@pytest.mark.asyncio
async def test_procedure_refusal_surfaced_verbatim(shop, submitter):
    shop.rpc_handlers["purchase_case_boost"] = {"success": False, "error": "Case is closed"}

    with pytest.raises(ConflictError) as exc:
        await BoostService.purchase_with_wallet(shop, submitter, "case-1", BoostType.HOURS_24)
    assert exc.value.message == "Case is closed"


# ==========================================
# Tracking
# ==========================================

@pytest.mark.asyncio
async def test_tracking_failure_is_swallowed(backend):
    def broken(params):
        raise RuntimeError("analytics down")

    backend.rpc_handlers["track_boost_click"] = broken

    task = BoostService.track_in_background(backend, "case-1", "click")
    await task

    assert backend.calls_to("rpc", "track_boost_click")


# ==========================================
# ROI
# ==========================================

def _boost(**overrides) -> Boost:
    values = {
        "case_id": "case-1",
        "boost_type": BoostType.DAYS_7,
        "featured_until": datetime.now(timezone.utc) + timedelta(days=1),
        "impressions": 1000,
        "clicks": 50,
        "price_paid": Decimal("25.00"),
    }
    values.update(overrides)
    return Boost(**values)


def test_roi_metrics():
    roi = BoostService.calculate_roi(_boost())
    assert roi.impressions_per_euro == 40.0
    assert roi.clicks_per_euro == 2.0
    assert roi.ctr == 5.0


def test_roi_zero_safe():
    roi = BoostService.calculate_roi(_boost(impressions=0, clicks=0, price_paid=Decimal("0")))
    assert (roi.impressions_per_euro, roi.clicks_per_euro, roi.ctr) == (0.0, 0.0, 0.0)


def test_expired_boost_is_inactive():
    assert not _boost(featured_until=datetime.now(timezone.utc) - timedelta(minutes=1)).is_active()
