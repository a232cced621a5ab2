# =============================================================================
# 🔁 services/scan_engine.py
# -----------------------------------------------------------------------------
# Entscheidet bei jedem Scan, wohin weitergeleitet wird:
#   property    → DAO-Bitat Listing
#   blockchain  → Explorer-Token-Seite (nur mit On-Chain-ID)
#   dual/leer   → Auswahlseite, falls On-Chain-ID vorhanden
# Analytics + Klickzähler laufen im Hintergrund und blockieren nie.
# =============================================================================

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.property import PropertyQrInfo
from models.scan_event import RedirectType, ScanSource
from services.analytics_service import AnalyticsService
from services.property_service import PropertyService
from services.qr_store import QrRecordStore
from utils.dispatcher import BackgroundDispatcher
from utils.errors import AppError, ErrorCode
from utils.url_builder import UrlBuilder

logger = logging.getLogger(__name__)

DEFAULT_QR_VERSION = 1

SOURCE_HINTS = {
    "qr": ScanSource.QR_CODE,
    "direct": ScanSource.DIRECT_LINK,
    "share": ScanSource.SHARE_LINK,
    "search": ScanSource.SEARCH_ENGINE,
    "social": ScanSource.SOCIAL_MEDIA,
}

# Kurzformen für die JSON-API
API_REDIRECT_NAMES = {
    RedirectType.DUAL_REDIRECT: "dual",
    RedirectType.DAOBITAR_ONLY: "property",
    RedirectType.BLOCKCHAIN_ONLY: "blockchain",
    RedirectType.FAILED: "failed",
}

ERROR_TITLES = {
    ErrorCode.PROPERTY_NOT_FOUND: "Property not found",
    ErrorCode.PROPERTY_NOT_ELIGIBLE: "Property unavailable",
    ErrorCode.INVALID_PROPERTY_ID: "Invalid property link",
}


def resolve_scan_source(hint: Optional[str]) -> ScanSource:
    """Unbekannte oder fehlende Hinweise zählen als QR-Scan."""
    return SOURCE_HINTS.get((hint or "").lower(), ScanSource.QR_CODE)


def resolve_redirect_type(hint: Optional[str], has_onchain_id: bool) -> RedirectType:
    hint = (hint or "").lower()
    if hint == "property":
        return RedirectType.DAOBITAR_ONLY
    if hint == "blockchain":
        # ohne On-Chain-ID gibt es kein Ziel im Explorer
        return RedirectType.BLOCKCHAIN_ONLY if has_onchain_id else RedirectType.DAOBITAR_ONLY
    return RedirectType.DUAL_REDIRECT if has_onchain_id else RedirectType.DAOBITAR_ONLY


@dataclass
class ScanContext:
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    session_id: Optional[str] = None
    referrer: Optional[str] = None
    ref: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None

    def tracking_metadata(self) -> Dict[str, Any]:
        data = {
            "ref": self.ref,
            "utm_source": self.utm_source,
            "utm_medium": self.utm_medium,
            "utm_campaign": self.utm_campaign,
        }
        return {k: v for k, v in data.items() if v}


class DecisionKind(str, Enum):
    REDIRECT = "redirect"
    LANDING_PAGE = "landing_page"
    ERROR_PAGE = "error_page"


@dataclass
class RedirectDecision:
    kind: DecisionKind
    redirect_type: RedirectType
    property_id: str
    scan_id: str
    target_url: Optional[str] = None
    property_url: Optional[str] = None
    blockchain_url: Optional[str] = None
    page: Dict[str, Any] = field(default_factory=dict)
    error_code: Optional[ErrorCode] = None
    error_message: Optional[str] = None


class ScanRedirectEngine:
    def __init__(
        self,
        properties: PropertyService,
        store: QrRecordStore,
        analytics: AnalyticsService,
        dispatcher: BackgroundDispatcher,
        urls: UrlBuilder,
        session_factory: Callable[[], Session],
    ):
        self.properties = properties
        self.store = store
        self.analytics = analytics
        self.dispatcher = dispatcher
        self.urls = urls
        self.session_factory = session_factory

    # ---------------------------------------------------------------------
    # 🔍 Scan über /scan/{id}
    # ---------------------------------------------------------------------
    def handle_scan(
        self,
        property_id: str,
        source_hint: Optional[str] = None,
        redirect_hint: Optional[str] = None,
        context: Optional[ScanContext] = None,
    ) -> RedirectDecision:
        started = time.perf_counter()
        context = context or ScanContext()
        source = resolve_scan_source(source_hint)
        scan_id = uuid.uuid4().hex
        logger.info(f"🔍 Scan für Property {property_id} (Quelle {source.value})")

        try:
            info = self.properties.get_property_qr_info(property_id)
        except AppError as exc:
            logger.warning(f"⚠️ Scan für Property {property_id} fehlgeschlagen: {exc.message}")
            self.dispatcher.submit(
                "record_failed_scan",
                self.analytics.record_failed_scan,
                property_id=property_id,
                error_reason=exc.message,
                scan_source=source,
                user_agent=context.user_agent,
                ip_address=context.ip_address,
                session_id=context.session_id,
                referrer=context.referrer,
                scan_id=scan_id,
            )
            return RedirectDecision(
                kind=DecisionKind.ERROR_PAGE,
                redirect_type=RedirectType.FAILED,
                property_id=property_id,
                scan_id=scan_id,
                error_code=exc.code,
                error_message=ERROR_TITLES.get(exc.code, "Property unavailable"),
            )

        redirect_type = resolve_redirect_type(redirect_hint, info.has_onchain_id)
        decision = self._decide(info, redirect_type, scan_id)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        self._record(info.id, source, redirect_type, context, scan_id, elapsed_ms)
        return decision

    def _decide(self, info: PropertyQrInfo, redirect_type: RedirectType, scan_id: str) -> RedirectDecision:
        property_url = self.urls.property_url(info.id)
        blockchain_url = self.urls.blockchain_url(info.onchain_id) if info.onchain_id else None

        if redirect_type == RedirectType.BLOCKCHAIN_ONLY:
            return RedirectDecision(
                kind=DecisionKind.REDIRECT,
                redirect_type=redirect_type,
                property_id=info.id,
                scan_id=scan_id,
                target_url=blockchain_url,
                property_url=property_url,
                blockchain_url=blockchain_url,
            )
        if redirect_type == RedirectType.DUAL_REDIRECT:
            return RedirectDecision(
                kind=DecisionKind.LANDING_PAGE,
                redirect_type=redirect_type,
                property_id=info.id,
                scan_id=scan_id,
                property_url=property_url,
                blockchain_url=blockchain_url,
                page={
                    "property_id": info.id,
                    "property_name": info.name,
                    "location": info.location or "Location not specified",
                    "action": info.action,
                    "price": info.price,
                    "image_url": info.primary_image,
                    "is_verified": bool(info.is_verified),
                    "crypto_accepted": info.crypto_accepted,
                    "onchain_id": info.onchain_id,
                    "property_url": property_url,
                    "blockchain_url": blockchain_url,
                    "scan_id": scan_id,
                    "auto_redirect_seconds": 10,
                },
            )
        return RedirectDecision(
            kind=DecisionKind.REDIRECT,
            redirect_type=redirect_type,
            property_id=info.id,
            scan_id=scan_id,
            target_url=property_url,
            property_url=property_url,
            blockchain_url=blockchain_url,
        )

    # ---------------------------------------------------------------------
    # 📡 JSON-Variante /api/scan/{id}
    # ---------------------------------------------------------------------
    def scan_data(
        self,
        property_id: str,
        source_hint: Optional[str] = None,
        context: Optional[ScanContext] = None,
    ) -> Dict[str, Any]:
        """Wie handle_scan, aber Fehler werden geworfen (→ JSON-Fehlerhülle)."""
        started = time.perf_counter()
        context = context or ScanContext()
        info = self.properties.get_property_qr_info(property_id)

        source = resolve_scan_source(source_hint)
        redirect_type = resolve_redirect_type(None, info.has_onchain_id)
        scan_id = uuid.uuid4().hex

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        self._record(info.id, source, redirect_type, context, scan_id, elapsed_ms, count_click=False)

        return {
            "success": True,
            "property_id": info.id,
            "redirect_type": API_REDIRECT_NAMES[redirect_type],
            "urls": {
                "property_url": self.urls.property_url(info.id),
                "blockchain_url": self.urls.blockchain_url(info.onchain_id) if info.onchain_id else None,
                "redirect_page_url": self.urls.redirect_page_url(info.id),
            },
            "scan_id": scan_id,
        }

    # ---------------------------------------------------------------------
    # 🧵 Hintergrund-Jobs
    # ---------------------------------------------------------------------
    def _record(
        self,
        property_id: str,
        source: ScanSource,
        redirect_type: RedirectType,
        context: ScanContext,
        scan_id: str,
        response_time: int,
        count_click: bool = True,
    ) -> None:
        try:
            qr_version = self.store.current_version(property_id) or DEFAULT_QR_VERSION
        except SQLAlchemyError as exc:
            # Analytics dürfen den Redirect nie blockieren
            logger.warning(f"⚠️ QR-Version für {property_id} nicht lesbar, nutze v{DEFAULT_QR_VERSION}: {exc}")
            qr_version = DEFAULT_QR_VERSION
        self.dispatcher.submit(
            "record_scan",
            self.analytics.record_scan,
            property_id=property_id,
            scan_source=source,
            redirect_type=redirect_type,
            qr_version=qr_version,
            user_agent=context.user_agent,
            ip_address=context.ip_address,
            session_id=context.session_id,
            referrer=context.referrer,
            response_time=response_time,
            metadata=context.tracking_metadata(),
            scan_id=scan_id,
        )
        if count_click:
            self.dispatcher.submit("increment_property_clicks", self._increment_clicks, property_id)

    def _increment_clicks(self, property_id: str) -> None:
        with self.session_factory() as db:
            PropertyService(db).increment_property_clicks(property_id)
