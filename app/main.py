"""FastAPI Application Entry Point"""

from fastapi import FastAPI
from contextlib import asynccontextmanager

from app.api.v1 import actions, executions, health
from app.api.exception_handlers import register_exception_handlers
from app.api.middleware import LoggingMiddleware, RequestIDMiddleware
from app.core.config import settings
from app.core.database import (
    init_database, close_database,
    init_redis, close_redis,
    get_session_factory, get_redis
)
from app.core.logging_config import get_logger
from app.services import create_execution_services


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events"""
    # Startup: connections first, then the engine services that use them
    await init_database()
    await init_redis()
    app.state.execution_services = create_execution_services(
        get_session_factory(),
        redis=get_redis()
    )
    logger.info("application_started", environment=settings.ENVIRONMENT)
    yield
    # Shutdown: tear down sandboxes before closing connections
    await app.state.execution_services.shutdown()
    await close_redis()
    await close_database()
    logger.info("application_stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

register_exception_handlers(app)

# Last added runs first: request ID must be set before logging reads it
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

# Executions router first so /actions/executions is not read as an action key
app.include_router(health.router)
app.include_router(executions.router, prefix="/api/v1")
app.include_router(actions.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint"""
    return {"message": settings.APP_NAME, "version": settings.APP_VERSION}
