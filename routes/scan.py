# =============================================================================
# 🔁 routes/scan.py
# -----------------------------------------------------------------------------
# Öffentlicher Scan-Einstieg: /scan/{property_id} (Redirect oder HTML-Seite)
# und die JSON-Variante /api/scan/{property_id}.
# =============================================================================

from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from dependencies import get_scan_engine, get_url_builder
from services.scan_engine import DecisionKind, ScanContext, ScanRedirectEngine
from utils.timeutils import utc_now
from utils.url_builder import UrlBuilder

router = APIRouter(tags=["Scan"])
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _scan_context(request: Request) -> ScanContext:
    params = request.query_params
    return ScanContext(
        user_agent=request.headers.get("user-agent"),
        ip_address=_client_ip(request),
        session_id=request.cookies.get("session_id"),
        referrer=request.headers.get("referer"),
        ref=params.get("ref"),
        utm_source=params.get("utm_source"),
        utm_medium=params.get("utm_medium"),
        utm_campaign=params.get("utm_campaign"),
    )


@router.get("/scan/health")
def scan_health():
    return {"status": "healthy", "service": "scan_handler", "timestamp": utc_now().isoformat()}


@router.get("/scan/{property_id}")
def scan_qr_code(
    property_id: str,
    request: Request,
    source: Optional[str] = None,
    redirect: Optional[str] = None,
    engine: ScanRedirectEngine = Depends(get_scan_engine),
    urls: UrlBuilder = Depends(get_url_builder),
):
    decision = engine.handle_scan(property_id, source, redirect, _scan_context(request))

    if decision.kind == DecisionKind.REDIRECT:
        return RedirectResponse(url=decision.target_url)

    if decision.kind == DecisionKind.LANDING_PAGE:
        return templates.TemplateResponse(request, "scan_landing.html", decision.page)

    return templates.TemplateResponse(
        request,
        "scan_error.html",
        {
            "title": decision.error_message,
            "property_id": property_id,
            "home_url": urls.daobitat_base_url,
        },
        status_code=404,
    )


@router.get("/api/scan/{property_id}")
def get_scan_data(
    property_id: str,
    request: Request,
    source: Optional[str] = None,
    engine: ScanRedirectEngine = Depends(get_scan_engine),
):
    return engine.scan_data(property_id, source, _scan_context(request))
