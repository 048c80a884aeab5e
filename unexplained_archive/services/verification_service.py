"""
Investigator verification (background checks).
"""
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from unexplained_archive.exceptions import ArchiveException
from unexplained_archive.schemas.payments import CheckoutSession, VerificationType
from unexplained_archive.services.backend_client import BackendClient, unwrap_result
from unexplained_archive.services.payment_service import PaymentService
from unexplained_archive.services.wallet_service import WalletService
from unexplained_archive.session import Session

logger = logging.getLogger(__name__)


class VerificationStatus(BaseModel):
    verified: bool = False
    badge_color: Optional[str] = None
    verification_level: Optional[str] = None
    verified_at: Optional[str] = None
    expires_at: Optional[str] = None


class VerificationService:

    @staticmethod
    async def get_verification_status(backend: BackendClient, user_id: str) -> VerificationStatus:
        """Badge state for a user. A failed lookup reads as unverified."""
        try:
            data = await backend.rpc("get_verification_status", {"p_user_id": user_id})
        except ArchiveException as e:
            logger.error(f"Error fetching verification status for {user_id}: {e.message}")
            return VerificationStatus()
        if isinstance(data, list):
            data = data[0] if data else {}
        return VerificationStatus(**(data or {}))

    @classmethod
    async def is_verified(cls, backend: BackendClient, user_id: str) -> bool:
        return (await cls.get_verification_status(backend, user_id)).verified

    @staticmethod
    async def get_background_checks(backend: BackendClient, user_id: str) -> List[Dict[str, Any]]:
        return await backend.select("background_checks", {"investigator_id": user_id}, order="created_at.desc")

    @staticmethod
    async def request_verification(
        backend: BackendClient,
        session: Session,
        verification_type: VerificationType = VerificationType.STANDARD,
    ) -> CheckoutSession:
        session.require_investigator()
        return await PaymentService.create_verification_checkout(backend, session, verification_type)

    @staticmethod
    async def request_verification_with_wallet(
        backend: BackendClient,
        session: Session,
        verification_type: VerificationType = VerificationType.STANDARD,
    ):
        """Pay for a background check from the wallet; returns the reread wallet."""
        session.require_investigator()
        result = await backend.rpc("request_background_check", {
            "p_investigator_id": session.user_id,
            "p_check_type": VerificationType(verification_type).value,
            "p_stripe_payment_id": None,
        })
        unwrap_result(result, "Unknown error occurred")
        logger.info(f"Background check ({verification_type}) paid from wallet by {session.user_id}")
        return await WalletService.get_snapshot(
            backend, session.user_id, message="Verification requested! We will review your application shortly."
        )
