"""
AI analysis tools exposed through the `ai-analysis` edge function.

The edge function holds the model credentials; this module only validates
the action, forwards the payload and enforces the free image-generation quota.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from unexplained_archive.config.feature_flags import feature_flags
from unexplained_archive.exceptions import RateLimitedError, ValidationFailedError
from unexplained_archive.services.backend_client import BackendClient
from unexplained_archive.session import Session

logger = logging.getLogger(__name__)

ANALYSIS_ACTIONS = {
    "analyze-image",
    "analyze-text",
    "generate-report",
    "verify-image",
    "extract-timeline",
    "extract-text-ocr",
    "analyze-location",
    "verify-consistency",
    "analyze-patterns",
    "suggest-questions",
}

# Free AI image generations per (user, case)
MAX_IMAGE_GENERATIONS_PER_CASE = 2


class ImageGenerationQuota:
    """In-process counter of image generations per (user, case)."""

    def __init__(self, limit: int = MAX_IMAGE_GENERATIONS_PER_CASE):
        self.limit = limit
        # Never pruned: the quota lasts for the process lifetime
        self._used: Dict[Tuple[str, str], int] = {}

    def remaining(self, user_id: str, case_id: str) -> int:
        return max(0, self.limit - self._used.get((user_id, case_id), 0))

    def reserve(self, user_id: str, case_id: str) -> int:
        """Take one generation; returns how many remain afterwards."""
        key = (user_id, case_id)
        used = self._used.get(key, 0)
        if used >= self.limit:
            raise RateLimitedError(
                f"You have used all your free AI generations for this case ({self.limit} maximum)"
            )
        self._used[key] = used + 1
        return self.limit - used - 1

    def release(self, user_id: str, case_id: str) -> None:
        key = (user_id, case_id)
        if self._used.get(key, 0) > 0:
            self._used[key] -= 1


image_quota = ImageGenerationQuota()


class AIAnalysisService:

    @staticmethod
    def _ensure_enabled() -> None:
        if not feature_flags.FEATURE_AI_ANALYSIS:
            raise ValidationFailedError("AI analysis is disabled")

    @classmethod
    async def run(
        cls,
        backend: BackendClient,
        session: Session,
        action: str,
        payload: Dict[str, Any],
    ) -> Any:
        cls._ensure_enabled()
        if action not in ANALYSIS_ACTIONS:
            raise ValidationFailedError(f"Unknown analysis action: {action}")

        body = dict(payload)
        body["action"] = action
        body.setdefault("userId", session.user_id)
        logger.info(f"AI analysis '{action}' requested by {session.user_id}")
        return await backend.invoke("ai-analysis", body)

    @classmethod
    async def generate_image(
        cls,
        backend: BackendClient,
        session: Session,
        case_id: str,
        description: str,
        category: Optional[str] = None,
        location: Optional[str] = None,
        quota: Optional[ImageGenerationQuota] = None,
    ) -> Dict[str, Any]:
        """Illustrate a case. Free, but limited per case; a failed call gives the slot back."""
        cls._ensure_enabled()
        if not description or not description.strip():
            raise ValidationFailedError("A description is required to generate an image")

        quota = quota or image_quota
        remaining = quota.reserve(session.user_id, case_id)
        try:
            data = await backend.invoke("ai-analysis", {
                "action": "generate-image",
                "userId": session.user_id,
                "caseId": case_id,
                "description": description.strip(),
                "category": category,
                "location": location,
            })
        except Exception:
            quota.release(session.user_id, case_id)
            raise

        image_url = data.get("imageUrl") if isinstance(data, dict) else None
        if not image_url:
            quota.release(session.user_id, case_id)
            raise ValidationFailedError("Image generation returned no image")

        return {"image_url": image_url, "remaining": remaining}
