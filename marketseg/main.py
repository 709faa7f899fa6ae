from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from marketseg.api.routes import documents, segmentation
from marketseg.config import settings
from marketseg.models.schemas import HealthResponse
from marketseg.services import logger as log_service  # noqa: F401  configures sinks

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"[App] marketseg {VERSION} starting ({settings.environment})")
    if settings.quick_mode:
        logger.info("[App] Quick mode enabled")
    yield
    # Shutdown
    logger.info("[App] marketseg shutting down")


app = FastAPI(
    title="marketseg",
    description="Market segmentation research powered by Anthropic Claude and Serper",
    version=VERSION,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(segmentation.router)
app.include_router(documents.router)


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="healthy",
        service="marketseg",
        version=VERSION,
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
