"""
unexplained_archive/session.py
Explicit session capability and FastAPI auth dependencies.

The managed auth service issues the bearer token; we only verify it. Role and
investigator approval come from the `profiles` row, read with the user's own
token. Every coordinator operation takes a `Session` argument: there is no
ambient "current user".
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from unexplained_archive.config.settings import settings
from unexplained_archive.exceptions import AuthenticationRequiredError, PermissionDeniedError
from unexplained_archive.services.backend_client import BackendClient

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

bearer_scheme = HTTPBearer(auto_error=False)

INVESTIGATOR_NOT_APPROVED = (
    "You must complete your investigator application and be approved by "
    "administrators before accepting cases."
)


# ================= SESSION =================

@dataclass(frozen=True)
class Session:
    user_id: str
    role: str = "user"
    investigator_status: Optional[str] = None
    access_token: Optional[str] = None
    username: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_investigator(self) -> bool:
        return self.role == "investigator"

    @property
    def is_approved_investigator(self) -> bool:
        return self.is_investigator and self.investigator_status == "approved"

    def require_approved_investigator(self) -> None:
        if not self.is_approved_investigator:
            raise PermissionDeniedError(INVESTIGATOR_NOT_APPROVED)

    def require_investigator(self) -> None:
        if not self.is_investigator:
            raise PermissionDeniedError("Only investigators can request verification")

    def require_admin(self) -> None:
        if not self.is_admin:
            raise PermissionDeniedError("Only administrators can perform this action")


# ================= TOKEN UTILS =================

def decode_token(token: str) -> Optional[dict]:
    """Decode and validate an access token issued by the auth service."""
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=settings.SUPABASE_JWT_AUDIENCE,
        )
    except JWTError as e:
        logger.warning(f"Rejected access token: {str(e)}")
        return None


# ================= DEPENDENCIES =================

def get_backend(request: Request) -> BackendClient:
    """Application-wide backend client created in the lifespan handler."""
    return request.app.state.backend


def get_user_backend(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> BackendClient:
    """Backend client acting as the caller (anon key for guests)."""
    backend = get_backend(request)
    return backend.as_user(credentials.credentials if credentials else None)


async def load_session(backend: BackendClient, token: str) -> Session:
    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        raise AuthenticationRequiredError("Invalid or expired session. Please log in again.")

    user_id = str(payload["sub"])
    profile = await backend.as_user(token).select_one(
        "profiles",
        {"id": user_id},
        columns="id,username,role,investigator_status",
    )
    if profile is None:
        logger.warning(f"Token for user {user_id} has no profile row")
        profile = {}

    return Session(
        user_id=user_id,
        role=profile.get("role") or "user",
        investigator_status=profile.get("investigator_status"),
        access_token=token,
        username=profile.get("username"),
    )


async def get_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Session:
    """Session for mutating routes. Guests get 401."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationRequiredError()
    return await load_session(get_backend(request), credentials.credentials)


async def get_optional_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Session]:
    """Session for read routes; None for guests."""
    if credentials is None or not credentials.credentials:
        return None
    return await load_session(get_backend(request), credentials.credentials)
