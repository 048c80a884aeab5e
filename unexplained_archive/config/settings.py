"""
unexplained_archive/config/settings.py
Runtime settings for the case lifecycle service.

All values are loaded from environment variables. The web entry point loads
`.env` before this module is imported.
"""
import os
from typing import List, Optional


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_float_env(key: str, default: float) -> float:
    """Get a float value from environment variable, falling back on garbage."""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Settings:
    """
    Connection details for the managed backend, payment processor and
    generative AI API.
    """

    def __init__(self):
        # Managed backend (Postgres REST + RPC, edge functions, storage, auth)
        self.SUPABASE_URL: str = os.getenv("SUPABASE_URL", "http://localhost:54321").rstrip("/")
        self.SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")
        self.SUPABASE_SERVICE_KEY: Optional[str] = os.getenv("SUPABASE_SERVICE_KEY")
        self.SUPABASE_JWT_SECRET: str = os.getenv("SUPABASE_JWT_SECRET", "dev-jwt-secret-change-in-production")
        self.SUPABASE_JWT_AUDIENCE: str = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")
        self.STORAGE_BUCKET: str = os.getenv("STORAGE_BUCKET", "media")

        # Payment processor (public key only, the secret lives in edge functions)
        self.STRIPE_PUBLISHABLE_KEY: str = os.getenv("STRIPE_PUBLISHABLE_KEY", "")

        # Generative AI
        self.GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY")
        self.GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

        # Web surface
        self.PUBLIC_APP_URL: str = os.getenv("PUBLIC_APP_URL", "http://localhost:5173").rstrip("/")
        self.ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.HTTP_TIMEOUT_SECONDS: float = get_float_env("HTTP_TIMEOUT_SECONDS", 30.0)

        origins = os.getenv("ALLOWED_ORIGINS", "")
        self.ALLOWED_ORIGINS: List[str] = [o.strip() for o in origins.split(",") if o.strip()]

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    def missing_required(self) -> List[str]:
        """Names of required variables that are unset."""
        missing = []
        if not self.SUPABASE_ANON_KEY:
            missing.append("SUPABASE_ANON_KEY")
        if not os.getenv("SUPABASE_JWT_SECRET"):
            missing.append("SUPABASE_JWT_SECRET")
        return missing


settings = Settings()
