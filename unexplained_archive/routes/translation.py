"""
unexplained_archive/routes/translation.py
Translation endpoints.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from unexplained_archive.config.feature_flags import feature_flags
from unexplained_archive.exceptions import PermissionDeniedError, ValidationFailedError
from unexplained_archive.rate_limit import ACTION_LIMIT, limiter
from unexplained_archive.services.backend_client import BackendClient
from unexplained_archive.services.translation_service import translation_service
from unexplained_archive.session import Session, get_session, get_user_backend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/translation", tags=["Translation"])


# ============================================================================
# REQUEST MODELS
# ============================================================================

class TranslateRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=10000)
    target: str = Field("en", min_length=2, max_length=5)
    source: Optional[str] = None


class BatchTranslateRequest(BaseModel):
    texts: List[str] = Field(..., max_length=50)
    target: str = Field("en", min_length=2, max_length=5)


class DetectRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=10000)


async def _require_translation(backend: BackendClient, session: Session) -> None:
    if not feature_flags.FEATURE_TRANSLATION:
        raise ValidationFailedError("Translation is disabled")
    if not await translation_service.can_use_translation(backend, session):
        raise PermissionDeniedError("Translation requires an active investigator subscription")


# ================= TRANSLATION =================

@router.post("/translate")
@limiter.limit(ACTION_LIMIT)
async def translate(
    request: Request,
    body: TranslateRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    await _require_translation(backend, session)
    source = body.source or await translation_service.detect_language(body.text)
    translated = await translation_service.translate(body.text, body.target, source)
    await translation_service.track_translation(backend, session, source, body.target, len(body.text))
    return {"translated_text": translated, "source": source, "target": body.target}


@router.post("/translate/batch")
@limiter.limit(ACTION_LIMIT)
async def batch_translate(
    request: Request,
    body: BatchTranslateRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    await _require_translation(backend, session)
    return {"translations": await translation_service.batch_translate(body.texts, body.target)}


@router.post("/detect-language")
async def detect_language(
    body: DetectRequest,
    session: Session = Depends(get_session),
):
    return {"language": await translation_service.detect_language(body.text)}
