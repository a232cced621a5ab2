# =============================================================================
# 📈 models/analytics.py
# -----------------------------------------------------------------------------
# Aggregierte Scan-Statistiken: eine Zeile pro Property + eine Systemzeile.
# JSON-Felder werden immer neu zugewiesen, nie in-place verändert.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Float, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from database import Base
from utils.timeutils import utc_now

SYSTEM_ANALYTICS_ID = "global"


def empty_device_breakdown() -> Dict[str, int]:
    return {"mobile": 0, "desktop": 0, "tablet": 0, "unknown": 0}


def empty_generation_stats() -> Dict[str, Any]:
    return {
        "total_generated": 0,
        "generated_today": 0,
        "generated_this_week": 0,
        "generated_this_month": 0,
        "average_generation_time": 0.0,
        "failure_rate": 0.0,
    }


class PropertyScanAnalytics(Base):
    __tablename__ = "property_analytics"

    property_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    total_scans: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_scans: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_scanned: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    first_scanned: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    scans_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scans_this_week: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scans_this_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    top_countries: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    device_breakdown: Mapped[Dict[str, int]] = mapped_column(JSON, nullable=False, default=empty_device_breakdown)
    scan_trends: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    average_response_time: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    response_time_samples: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    @classmethod
    def empty(cls, property_id: str) -> "PropertyScanAnalytics":
        return cls(
            property_id=property_id,
            total_scans=0,
            unique_scans=0,
            scans_today=0,
            scans_this_week=0,
            scans_this_month=0,
            top_countries=[],
            device_breakdown=empty_device_breakdown(),
            scan_trends=[],
            average_response_time=0.0,
            response_time_samples=0,
            success_rate=0.0,
            last_updated=utc_now(),
        )

    def __repr__(self):
        return f"<PropertyScanAnalytics(property_id='{self.property_id}', total={self.total_scans})>"


class SystemAnalytics(Base):
    __tablename__ = "system_analytics"

    id: Mapped[str] = mapped_column(String(16), primary_key=True, default=SYSTEM_ANALYTICS_ID)

    total_properties: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    properties_with_qr: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_scans_all_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_scans_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_scans_this_week: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_scans_this_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_scans_per_property: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    top_performing_properties: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    qr_generation_stats: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=empty_generation_stats)

    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    def __repr__(self):
        return f"<SystemAnalytics(total_scans={self.total_scans_all_time}, properties={self.total_properties})>"
