"""
Conversational ordering API - FastAPI application
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
import structlog

from app.config import settings
from app.core.logging import configure_logging
from app.database import SessionLocal, engine
from app.tools import router as tools_router

configure_logging(settings)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info(
        "Starting ordering API",
        version="1.0.0",
        default_timezone=settings.default_timezone,
        function_timeout_seconds=settings.function_timeout_seconds,
    )
    yield
    await engine.dispose()
    logger.info("Shutting down ordering API")


app = FastAPI(
    title="Conversational Ordering",
    description="Cart and order engine for chat-based ordering assistants",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    """Liveness only; does not touch the database"""
    return {"status": "healthy", "service": "ordering", "version": "1.0.0"}


@app.get("/health/ready")
async def ready():
    """Readiness: the database answers a trivial query"""
    try:
        async with SessionLocal() as db:
            await db.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        logger.error("Readiness check failed", check="database", error=str(e))
        database = f"failed: {str(e)}"

    return {
        "status": "ready" if database == "ok" else "not_ready",
        "checks": {"database": database},
    }


# Function calling surface for the conversation driver
app.include_router(tools_router.router, prefix="/tools", tags=["Tools"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
