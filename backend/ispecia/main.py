"""
Ispecia CRM API - main entry point.

Sales CRM backend:

- Contacts: persons and organizations
- Sales: leads, deals, pipelines, products, quotes, activities
- Tasks with hierarchy-based assignment and notifications
- Email accounts, messages, CRM linking and open/click tracking
- VoIP calling through Twilio

All endpoints live under /api/v1.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, Request, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ispecia.api.v1 import api_router
from ispecia.core.config import settings
from ispecia.core.errors import register_exception_handlers
from ispecia.core.log import configure_logging, warn_on_local_urls
from ispecia.db.base import get_db, init_db

logger = logging.getLogger("ispecia.requests")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    configure_logging()
    warn_on_local_urls()
    # Production schemas come from Alembic; this only fills in missing tables
    await init_db()
    logging.getLogger("ispecia.startup").info("%s started (%s)", settings.APP_NAME, settings.APP_ENV)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Sales CRM API: contacts, leads, deals, tasks, email and calling.",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, duration_ms)
    return response


register_exception_handlers(app)


# ============================================================================
# HEALTH CHECK
# ============================================================================

@app.get("/", tags=["health"])
async def root():
    return {
        "status": "ok",
        "message": f"{settings.APP_NAME} is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.APP_ENV,
    }


@app.get("/health", tags=["health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """Database round trip; 503 when the database is unreachable."""
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Health check failed: %s", exc)
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "unreachable"})
    return {"status": "healthy", "database": "connected"}


app.include_router(api_router, prefix=settings.API_V1_PREFIX)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ispecia.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
