"""
Health endpoints.

Lightweight liveness/readiness probes; no secrets in responses.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from archilex.core.database import check_connection, get_engine, metadata

logger = logging.getLogger("archilex")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: DB connectivity + required tables."""
    if not check_connection():
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    try:
        inspector = inspect(get_engine())
        missing = [t for t in metadata.tables if not inspector.has_table(t)]
    except SQLAlchemyError as e:
        logger.error("readyz.failed", extra={"error_type": type(e).__name__})
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    if missing:
        detail = f"missing tables: {', '.join(sorted(missing))}"
        logger.warning("readyz.missing_tables", extra={"missing": missing})
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

    return {"status": "ok"}
