"""
Feature Flags Configuration

Centralized feature flag management for the case lifecycle service.
All feature flags are loaded from environment variables.
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional

from unexplained_archive.config.settings import get_bool_env

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RejectionRatingPolicy:
    """
    Rating recorded when a submitter rejects a proposed resolution.

    `fixed(n)` always sends n; `omit()` sends no rating at all.
    """
    rating: Optional[int]

    @classmethod
    def fixed(cls, rating: int) -> "RejectionRatingPolicy":
        if rating < 1 or rating > 5:
            raise ValueError(f"Rejection rating must be between 1 and 5, got {rating}")
        return cls(rating=rating)

    @classmethod
    def omit(cls) -> "RejectionRatingPolicy":
        return cls(rating=None)

    @property
    def omits_rating(self) -> bool:
        return self.rating is None

    @classmethod
    def parse(cls, raw: str) -> "RejectionRatingPolicy":
        """Parse `fixed:<n>` or `omit`."""
        value = (raw or "").strip().lower()
        if value == "omit":
            return cls.omit()
        if value.startswith("fixed:"):
            return cls.fixed(int(value.split(":", 1)[1]))
        raise ValueError(f"Unknown rejection rating policy: {raw!r}")


def _load_rejection_policy() -> RejectionRatingPolicy:
    raw = os.getenv("REJECTION_RATING_POLICY", "fixed:1")
    try:
        return RejectionRatingPolicy.parse(raw)
    except ValueError as e:
        logger.warning(f"Invalid REJECTION_RATING_POLICY ({e}); using fixed:1")
        return RejectionRatingPolicy.fixed(1)


class FeatureFlags:
    """
    Feature flags for the application.

    To add a new feature flag:
    1. Add it here as a class property
    2. Load it from environment variable
    3. Use it in your code
    """

    # Multi-investigator teams and reward splitting
    FEATURE_TEAMS: bool = get_bool_env('FEATURE_TEAMS', True)

    # Paid visibility boosts
    FEATURE_BOOSTS: bool = get_bool_env('FEATURE_BOOSTS', True)

    # Community dispute voting (VOTING status)
    FEATURE_COMMUNITY_VOTING: bool = get_bool_env('FEATURE_COMMUNITY_VOTING', True)

    # Gemini-backed translation and analysis
    FEATURE_TRANSLATION: bool = get_bool_env('FEATURE_TRANSLATION', True)
    FEATURE_AI_ANALYSIS: bool = get_bool_env('FEATURE_AI_ANALYSIS', True)

    # Rating sent to the backend when a resolution is rejected
    REJECTION_RATING_POLICY: RejectionRatingPolicy = _load_rejection_policy()

    @classmethod
    def is_enabled(cls, flag_name: str) -> bool:
        """Check if a feature flag is enabled by name."""
        return getattr(cls, flag_name, False)

    @classmethod
    def get_all_flags(cls) -> dict:
        """Get all feature flags as a dictionary."""
        return {
            key: value
            for key, value in cls.__dict__.items()
            if not key.startswith('_') and isinstance(value, bool)
        }


# Singleton instance for easy importing
feature_flags = FeatureFlags()
