# =============================================================================
# 🚀 DAO-Bitat Property QR – Hauptapplikation (main.py)
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from database import init_db
from dependencies import get_dispatcher
from settings import get_settings
from utils.api_response import error_body, error_response
from utils.errors import AppError, ErrorCode
from utils.logging_config import configure_logging

# -------------------------------------------------------------------------
# 1️⃣ Konfiguration & Logging
# -------------------------------------------------------------------------
settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


# -------------------------------------------------------------------------
# 2️⃣ Lebenszyklus: Tabellen anlegen, Dispatcher sauber beenden
# -------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    Path(settings.storage_dir).mkdir(parents=True, exist_ok=True)
    logger.info(f"🚀 Property-QR-Service gestartet ({settings.environment}) – {settings.base_url}")
    yield
    dispatcher = get_dispatcher()
    dispatcher.flush()
    dispatcher.shutdown()
    get_dispatcher.cache_clear()
    logger.info("👋 Property-QR-Service beendet")


# -------------------------------------------------------------------------
# 3️⃣ FastAPI App
# -------------------------------------------------------------------------
app = FastAPI(title="DAO-Bitat Property QR", version="1.0.0", lifespan=lifespan)

# Objektspeicher (QR-PNGs + Metadaten) unter /media
Path(settings.storage_dir).mkdir(parents=True, exist_ok=True)
app.mount("/media", StaticFiles(directory=settings.storage_dir), name="media")


# -------------------------------------------------------------------------
# 4️⃣ Fehlerbehandlung – einheitliche JSON-Hülle
# -------------------------------------------------------------------------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"❌ {exc.code.value}: {exc.message} ({request.url.path})")
    return error_response(exc, request.url.path)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=error_body(
            ErrorCode.INVALID_INPUT.value,
            "Request validation failed",
            request.url.path,
            {"details": jsonable_encoder(exc.errors())},
        ),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Unerwarteter Fehler bei {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=error_body(
            ErrorCode.INTERNAL_SERVER_ERROR.value,
            "Something went wrong on our end",
            request.url.path,
        ),
    )


# -------------------------------------------------------------------------
# 5️⃣ Routen
# -------------------------------------------------------------------------
from routes import analytics, health, properties, qr_api, scan  # noqa: E402

app.include_router(health.router)
app.include_router(scan.router)
app.include_router(qr_api.router)
app.include_router(analytics.router)
app.include_router(properties.router)


@app.get("/")
def root():
    return {
        "service": "DAO-Bitat Property QR",
        "version": app.version,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=not settings.is_production)
