import os
import logging
from pathlib import Path
from contextlib import asynccontextmanager

# ============================================
# Load .env FIRST, before any package imports read settings
# ============================================
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_FILE = PROJECT_ROOT / ".env"

load_dotenv(dotenv_path=ENV_FILE)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from unexplained_archive import __version__
from unexplained_archive.config.feature_flags import feature_flags
from unexplained_archive.config.settings import settings
from unexplained_archive.errors import install_error_handlers
from unexplained_archive.rate_limit import limiter
from unexplained_archive.routes import router
from unexplained_archive.services.backend_client import BackendClient

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

missing_vars = settings.missing_required()
if missing_vars:
    if not settings.is_development:
        logger.error(f"Missing required environment variables: {', '.join(missing_vars)}")
        raise EnvironmentError(f"Missing required environment variables: {', '.join(missing_vars)}")
    logger.warning(f"Missing environment variables (development defaults in use): {', '.join(missing_vars)}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")
    logger.info(f"Loaded .env from: {ENV_FILE} (exists: {ENV_FILE.exists()})")
    logger.info(f"Backend: {settings.SUPABASE_URL}")
    logger.info(f"GEMINI_API_KEY present: {bool(settings.GEMINI_API_KEY)}")

    created = False
    if getattr(app.state, "backend", None) is None:
        app.state.backend = BackendClient()
        created = True

    yield

    logger.info("Shutting down application...")
    if created:
        try:
            await app.state.backend.aclose()
            logger.info("Backend client closed")
        except Exception as e:
            logger.error(f"Error closing backend client: {str(e)}")


app = FastAPI(
    title="Unexplained Archive API",
    description="Case lifecycle, escrow and community backend for the Unexplained Archive",
    version=__version__,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan
)

# Attach rate limiter to the app
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

origins = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]
origins.extend(settings.ALLOWED_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

install_error_handlers(app)


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "gemini_configured": bool(settings.GEMINI_API_KEY),
        "features": feature_flags.get_all_flags(),
        "version": __version__,
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Unexplained Archive API",
        "version": __version__,
        "docs": "/docs" if settings.is_development else None,
    }


app.include_router(router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "unexplained_archive.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=settings.is_development,
    )
