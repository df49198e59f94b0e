import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import DBAPIError

from archilex.core.config import settings, validate_config
from archilex.core.database import create_all_tables
from archilex.core.logging import configure_logging
from archilex.core.middleware.request_id import RequestIdMiddleware
from archilex.core.errors import (
    AppError,
    app_error_handler,
    database_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from archilex.api import accounts, admin, billing, health, plans, usage

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("archilex")
    logger.info("Starting ArchiLex backend...")
    if settings.ENV.lower() != "production":
        # Production schema is managed by migrations
        create_all_tables()
    try:
        yield
    finally:
        logger.info("Stopping ArchiLex backend...")


app = FastAPI(title="ArchiLex - Usage & Billing", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(DBAPIError, database_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.APP_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(accounts.router, prefix="/api", tags=["accounts"])
app.include_router(plans.router, prefix="/api", tags=["plans"])
app.include_router(usage.router, prefix="/api", tags=["usage"])
app.include_router(billing.router, prefix="/api", tags=["billing"])
app.include_router(admin.router, prefix="/api", tags=["admin"])
