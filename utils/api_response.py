# =============================================================================
# 📦 utils/api_response.py
# -----------------------------------------------------------------------------
# Einheitliche JSON-Hüllen für Erfolgs- und Fehlerantworten.
# =============================================================================

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from utils.errors import AppError
from utils.timeutils import utc_now


def success_response(data: Any) -> Dict[str, Any]:
    return {
        "success": True,
        "data": jsonable_encoder(data),
        "timestamp": utc_now().isoformat(),
    }


def error_body(
    error: str,
    message: str,
    path: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "success": False,
        "error": error,
        "message": message,
        "timestamp": utc_now().isoformat(),
    }
    if path:
        body["path"] = path
    if context:
        body["context"] = context
    return body


def error_response(exc: AppError, path: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code.value, exc.message, path, exc.context.to_dict()),
    )
