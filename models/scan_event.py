# =============================================================================
# 📊 models/scan_event.py
# -----------------------------------------------------------------------------
# Ein Datensatz pro Scan (Quelle, Gerät, Redirect-Ergebnis, Antwortzeit).
# Wird einmal geschrieben und danach nie verändert.
# =============================================================================

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database import Base
from utils.timeutils import utc_now


class ScanSource(str, Enum):
    QR_CODE = "qr_code"
    DIRECT_LINK = "direct_link"
    SHARE_LINK = "share_link"
    SEARCH_ENGINE = "search_engine"
    SOCIAL_MEDIA = "social_media"
    UNKNOWN = "unknown"


class RedirectType(str, Enum):
    DUAL_REDIRECT = "dual_redirect"
    DAOBITAR_ONLY = "daobitar_only"
    BLOCKCHAIN_ONLY = "blockchain_only"
    FAILED = "failed"


class DeviceType(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# 📱 Geräteerkennung aus dem User-Agent
# ---------------------------------------------------------------------------
@dataclass
class DeviceInfo:
    device_type: DeviceType = DeviceType.UNKNOWN
    platform: Optional[str] = None
    browser: Optional[str] = None
    browser_version: Optional[str] = None
    screen_size: Optional[str] = None
    is_mobile: bool = False

    @classmethod
    def from_user_agent(cls, user_agent: str) -> "DeviceInfo":
        """Geordnete Substring-Prüfungen, der erste Treffer gewinnt."""
        ua = (user_agent or "").lower()

        # Tablet vor Mobile: iPad/Android-Tablets enthalten oft auch "mobile"
        if "tablet" in ua or "ipad" in ua:
            device_type = DeviceType.TABLET
        elif "mobile" in ua or "android" in ua or "iphone" in ua:
            device_type = DeviceType.MOBILE
        else:
            device_type = DeviceType.DESKTOP

        platform = None
        if "windows" in ua:
            platform = "Windows"
        elif "mac" in ua:
            platform = "macOS"
        elif "linux" in ua:
            platform = "Linux"
        elif "android" in ua:
            platform = "Android"
        elif "ios" in ua or "iphone" in ua:
            platform = "iOS"

        browser = None
        if "chrome" in ua:
            browser = "Chrome"
        elif "firefox" in ua:
            browser = "Firefox"
        elif "safari" in ua:
            browser = "Safari"
        elif "edge" in ua:
            browser = "Edge"

        return cls(
            device_type=device_type,
            platform=platform,
            browser=browser,
            is_mobile=device_type == DeviceType.MOBILE,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["device_type"] = self.device_type.value
        return data


class ScanEvent(Base):
    __tablename__ = "scan_events"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    property_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    qr_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    scanned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    scan_source: Mapped[str] = mapped_column(String(32), nullable=False, default=ScanSource.QR_CODE.value)

    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    referrer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    geolocation: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    device_info: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    redirect_success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    redirect_type: Mapped[str] = mapped_column(String(32), nullable=False)
    response_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    event_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    def __repr__(self):
        return (
            f"<ScanEvent(id='{self.id}', property_id='{self.property_id}', "
            f"type='{self.redirect_type}', success={self.redirect_success})>"
        )


# ---------------------------------------------------------------------------
# 🧱 Builder: wird lokal befüllt und dann einmal als ScanEvent gespeichert
# ---------------------------------------------------------------------------
@dataclass
class ScanEventDraft:
    property_id: str
    redirect_type: RedirectType
    scan_source: ScanSource = ScanSource.QR_CODE
    qr_version: int = 1
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    scanned_at: datetime = field(default_factory=utc_now)
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    session_id: Optional[str] = None
    referrer: Optional[str] = None
    geolocation: Optional[Dict[str, Any]] = None
    device_info: Optional[DeviceInfo] = None
    redirect_success: bool = True
    response_time: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def build(self) -> ScanEvent:
        return ScanEvent(
            id=self.id,
            property_id=self.property_id,
            qr_version=self.qr_version,
            scanned_at=self.scanned_at,
            scan_source=self.scan_source.value,
            user_agent=self.user_agent,
            ip_address=self.ip_address,
            session_id=self.session_id,
            referrer=self.referrer,
            geolocation=self.geolocation,
            device_info=self.device_info.to_dict() if self.device_info else None,
            redirect_success=self.redirect_success,
            redirect_type=self.redirect_type.value,
            response_time=self.response_time,
            event_metadata=dict(self.metadata),
        )
