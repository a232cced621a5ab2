# =============================================================================
# 📊 routes/analytics.py
# -----------------------------------------------------------------------------
# Analytics-Abfragen pro Property und systemweit, Refresh + Aufräumen.
# =============================================================================

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from dependencies import get_analytics_service
from services.analytics_service import AnalyticsService
from settings import Settings, get_settings
from utils.api_response import success_response
from utils.validation import validate_property_id

router = APIRouter(prefix="/api/v1/analytics", tags=["Analytics"])


@router.get("/property/{property_id}")
def property_analytics(
    property_id: str,
    include_recent_scans: bool = False,
    analytics: AnalyticsService = Depends(get_analytics_service),
):
    validate_property_id(property_id)
    return success_response(analytics.get_property_analytics(property_id, include_recent_scans))


@router.get("/property/{property_id}/trends")
def property_trends(
    property_id: str,
    days: int = Query(default=30, ge=1, le=365),
    analytics: AnalyticsService = Depends(get_analytics_service),
):
    validate_property_id(property_id)
    return success_response(
        {"property_id": property_id, "days": days, "trends": analytics.get_property_scan_trends(property_id, days)}
    )


@router.get("/system")
def system_analytics(
    include_comparison: bool = False,
    analytics: AnalyticsService = Depends(get_analytics_service),
):
    return success_response(analytics.get_system_analytics(include_comparison))


@router.post("/system/refresh")
def refresh_system_analytics(analytics: AnalyticsService = Depends(get_analytics_service)):
    analytics.update_system_analytics()
    return success_response(analytics.get_system_analytics(False))


@router.get("/top")
def top_properties(
    limit: int = Query(default=10, ge=1, le=100),
    days: int = Query(default=30, ge=1, le=365),
    analytics: AnalyticsService = Depends(get_analytics_service),
):
    return success_response(analytics.get_top_performing_properties(limit, days))


@router.get("/geo")
def geographic_distribution(
    property_id: Optional[str] = None,
    days: int = Query(default=30, ge=1, le=365),
    analytics: AnalyticsService = Depends(get_analytics_service),
):
    if property_id:
        validate_property_id(property_id)
    return success_response(analytics.get_geographic_distribution(property_id, days))


@router.post("/cleanup")
def cleanup_events(
    retention_days: Optional[int] = Query(default=None, ge=1),
    analytics: AnalyticsService = Depends(get_analytics_service),
    settings: Settings = Depends(get_settings),
):
    days = retention_days or settings.analytics_retention_days
    return success_response({"retention_days": days, "deleted": analytics.cleanup_old_events(days)})
