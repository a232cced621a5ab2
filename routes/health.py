# =============================================================================
# ❤️ routes/health.py
# -----------------------------------------------------------------------------
# Liveness, Readiness (DB-Ping → 503) und Detailstatus.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db
from dependencies import get_dispatcher
from settings import Settings, get_settings
from utils.dispatcher import BackgroundDispatcher
from utils.errors import AppError, ErrorCode, ErrorContext
from utils.timeutils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

SERVICE_NAME = "daobitat-property-qr"
SERVICE_VERSION = "1.0.0"


def _database_ok(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error(f"❌ Datenbank nicht erreichbar: {exc}")
        return False
    return True


@router.get("")
def health():
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": utc_now().isoformat(),
    }


@router.get("/live")
def liveness():
    return {"status": "alive", "timestamp": utc_now().isoformat()}


@router.get("/ready")
def readiness(db: Session = Depends(get_db)):
    if not _database_ok(db):
        raise AppError(
            ErrorCode.SERVICE_UNAVAILABLE,
            "Database is not reachable",
            ErrorContext(operation="readiness_check"),
        )
    return {"status": "ready", "database": "ok", "timestamp": utc_now().isoformat()}


@router.get("/detailed")
def detailed(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    dispatcher: BackgroundDispatcher = Depends(get_dispatcher),
):
    database = "ok" if _database_ok(db) else "unavailable"
    return {
        "status": "healthy" if database == "ok" else "degraded",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "environment": settings.environment,
        "checks": {
            "database": database,
            "analytics_dispatcher": "inline" if dispatcher.inline else f"{dispatcher.max_workers} workers",
        },
        "timestamp": utc_now().isoformat(),
    }
