"""
unexplained_archive/routes/ai.py
AI analysis endpoints.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from unexplained_archive.rate_limit import ACTION_LIMIT, limiter
from unexplained_archive.services.ai_analysis_service import AIAnalysisService, image_quota
from unexplained_archive.services.backend_client import BackendClient
from unexplained_archive.session import Session, get_session, get_user_backend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["AI"])


# ============================================================================
# REQUEST MODELS
# ============================================================================

class ImageGenerationRequest(BaseModel):
    description: str = Field(..., min_length=1, max_length=2000)
    category: Optional[str] = None
    location: Optional[str] = None


# ================= ANALYSIS =================

@router.post("/analysis/{action}")
@limiter.limit(ACTION_LIMIT)
async def run_analysis(
    request: Request,
    action: str,
    payload: Dict[str, Any],
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await AIAnalysisService.run(backend, session, action, payload)


@router.get("/cases/{case_id}/image/remaining")
async def image_generations_remaining(case_id: str, session: Session = Depends(get_session)):
    return {"remaining": image_quota.remaining(session.user_id, case_id)}


@router.post("/cases/{case_id}/image")
@limiter.limit(ACTION_LIMIT)
async def generate_case_image(
    request: Request,
    case_id: str,
    body: ImageGenerationRequest,
    session: Session = Depends(get_session),
    backend: BackendClient = Depends(get_user_backend),
):
    return await AIAnalysisService.generate_image(
        backend, session, case_id, body.description, body.category, body.location
    )
