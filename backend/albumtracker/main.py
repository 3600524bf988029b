from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from albumtracker.api.endpoints import router as api_router
from albumtracker.core.logging import configure_logging
from albumtracker.core.settings import settings


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()
    structlog.get_logger(__name__).info(
        "startup",
        library_root=str(settings.LIBRARY_ROOT_PATH) if settings.LIBRARY_ROOT_PATH else None,
        similarity_threshold=settings.SIMILARITY_THRESHOLD,
    )
    yield

app = FastAPI(
    title=settings.APP_NAME,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")
