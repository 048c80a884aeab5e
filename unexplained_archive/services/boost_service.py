"""
Boost / Promotion Client

Paid, time-limited featuring of a case. Purchases go through the
`purchase_case_boost` procedure (wallet) or a direct checkout (card).
Impression and click tracking are fire-and-forget analytics.
"""
import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set

from unexplained_archive.config.feature_flags import feature_flags
from unexplained_archive.config.payment_policy import MoneyOperation
from unexplained_archive.exceptions import ConflictError, InsufficientFundsError, NotFoundError, ValidationFailedError
from unexplained_archive.schemas.boost import Boost, BoostPricing, BoostROI, BoostType
from unexplained_archive.schemas.payments import CheckoutSession
from unexplained_archive.services.backend_client import BackendClient, unwrap_result
from unexplained_archive.services.fees import ensure_minimum, to_money
from unexplained_archive.services.payment_service import PaymentService
from unexplained_archive.services.wallet_service import WalletService
from unexplained_archive.session import Session

logger = logging.getLogger(__name__)

# Strong references so pending tracking tasks are not garbage collected
_background_tasks: Set[asyncio.Task] = set()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class BoostService:

    @staticmethod
    def _ensure_enabled() -> None:
        if not feature_flags.FEATURE_BOOSTS:
            raise ValidationFailedError("Case boosts are disabled")

    # ================= READS =================

    @staticmethod
    async def get_pricing(backend: BackendClient) -> List[BoostPricing]:
        rows = await backend.select("boost_pricing", {"is_active": True}, order="price.asc")
        return [BoostPricing.from_row(row) for row in rows]

    @classmethod
    async def get_tier(cls, backend: BackendClient, boost_type: BoostType) -> BoostPricing:
        for tier in await cls.get_pricing(backend):
            if tier.boost_type == BoostType(boost_type):
                return tier
        raise NotFoundError("Boost tier", BoostType(boost_type).value)

    @staticmethod
    async def get_case_boost(backend: BackendClient, case_id: str) -> Optional[Boost]:
        row = await backend.select_one(
            "featured_cases",
            {"case_id": case_id, "status": "active", "featured_until": ("gt", _now_iso())},
        )
        return Boost.from_row(row) if row else None

    @classmethod
    async def is_case_boosted(cls, backend: BackendClient, case_id: str) -> bool:
        boost = await cls.get_case_boost(backend, case_id)
        return boost is not None and boost.is_active()

    @staticmethod
    async def get_active_boosts(backend: BackendClient) -> List[Dict[str, Any]]:
        return await backend.rpc("get_active_boosts") or []

    @staticmethod
    async def get_user_boost_analytics(backend: BackendClient, user_id: str) -> List[Dict[str, Any]]:
        rows = await backend.rpc("get_user_boost_analytics", {"p_user_id": user_id}) or []
        for row in rows:
            try:
                row["roi"] = BoostService.calculate_roi(Boost.from_row(row)).model_dump()
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping ROI for malformed analytics row: {str(e)}")
        return rows

    # ================= PURCHASE =================

    @classmethod
    async def purchase_with_wallet(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        boost_type: BoostType,
    ) -> Dict[str, Any]:
        """
        Pay for a boost from the wallet.

        The tier price is checked against a fresh balance read before the
        procedure is called; an insufficient balance never reaches it.
        """
        cls._ensure_enabled()
        tier = await cls.get_tier(backend, boost_type)
        ensure_minimum(tier.price, MoneyOperation.BOOST)

        if await cls.is_case_boosted(backend, case_id):
            raise ConflictError("This case is already boosted")

        balance = await WalletService.get_balance(backend, session.user_id)
        if balance < tier.price:
            raise InsufficientFundsError("Insufficient wallet balance")

        result = await backend.rpc("purchase_case_boost", {
            "p_case_id": case_id,
            "p_user_id": session.user_id,
            "p_boost_type": tier.boost_type.value,
            "p_stripe_payment_id": None,
        })
        if not (isinstance(result, dict) and "success" in result):
            logger.error(f"purchase_case_boost returned unexpected payload: {result!r}")
            raise ConflictError("Invalid response from server")
        unwrap_result(result, "Purchase failed")
        logger.info(f"Boost {tier.boost_type.value} purchased for case {case_id} by {session.user_id}")

        snapshot = await WalletService.get_snapshot(backend, session.user_id)
        boost = await cls.get_case_boost(backend, case_id)
        return {
            "success": True,
            "message": f"Case boosted! Featured for {tier.duration_hours} hours.",
            "balance": snapshot.balance,
            "boost": boost,
        }

    @classmethod
    async def purchase_with_card(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        boost_type: BoostType,
    ) -> CheckoutSession:
        cls._ensure_enabled()
        tier = await cls.get_tier(backend, boost_type)
        if await cls.is_case_boosted(backend, case_id):
            raise ConflictError("This case is already boosted")
        return await PaymentService.create_boost_checkout(
            backend, session, case_id, tier.boost_type, tier.price, tier.display_name or f"Case boost ({tier.boost_type.value})"
        )

    # ================= TRACKING =================

    @staticmethod
    async def track_impression(backend: BackendClient, case_id: str) -> None:
        try:
            await backend.rpc("track_boost_impression", {"p_case_id": case_id})
        except Exception as e:
            logger.warning(f"Error tracking impression for case {case_id}: {str(e)}")

    @staticmethod
    async def track_click(backend: BackendClient, case_id: str) -> None:
        try:
            await backend.rpc("track_boost_click", {"p_case_id": case_id})
        except Exception as e:
            logger.warning(f"Error tracking click for case {case_id}: {str(e)}")

    @classmethod
    def track_in_background(cls, backend: BackendClient, case_id: str, event: str) -> asyncio.Task:
        """Schedule an impression/click without awaiting it."""
        tracker = cls.track_click if event == "click" else cls.track_impression
        task = asyncio.create_task(tracker(backend, case_id))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        return task

    # ================= ANALYTICS =================

    @staticmethod
    def calculate_roi(boost: Boost) -> BoostROI:
        """Impressions and clicks per euro spent, and click-through rate."""
        price = float(boost.price_paid)
        impressions_per_euro = boost.impressions / price if price > 0 else 0.0
        clicks_per_euro = boost.clicks / price if price > 0 else 0.0
        ctr = (boost.clicks / boost.impressions) * 100 if boost.impressions > 0 else 0.0

        return BoostROI(
            impressions_per_euro=round(impressions_per_euro, 2),
            clicks_per_euro=round(clicks_per_euro, 2),
            ctr=round(ctr, 1),
        )

    @staticmethod
    def total_spend(boosts: Iterable[Boost]) -> Decimal:
        return to_money(sum((b.price_paid for b in boosts), Decimal("0")))
