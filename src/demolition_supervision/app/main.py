"""FastAPI application entry point for the Demolition Supervision API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from demolition_supervision.app.config import get_settings
from demolition_supervision.domain.schemas import HealthResponse
from demolition_supervision.infra.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database on startup."""
    await init_db()
    logger.info("Demolition supervision API ready")
    yield


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Demolition Supervision API",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware; debug mode allows any origin
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from demolition_supervision.app.routes.district import router as district_router
from demolition_supervision.app.routes.city import router as city_router
from demolition_supervision.app.routes.architect import router as architect_router
from demolition_supervision.app.routes.inspector import router as inspector_router

app.include_router(district_router)
app.include_router(city_router)
app.include_router(architect_router)
app.include_router(inspector_router)


@app.get("/health", tags=["health"], response_model=HealthResponse)
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "demolition-supervision"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "demolition_supervision.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
