# =============================================================================
# 📦 models/__init__.py
# -----------------------------------------------------------------------------
# Registriert alle Tabellen in Base.metadata
# =============================================================================

from .property import Property, PropertyQrInfo
from .qr_metadata import QrCodeMetadata
from .scan_event import ScanEvent
from .analytics import PropertyScanAnalytics, SystemAnalytics

__all__ = [
    "Property",
    "PropertyQrInfo",
    "QrCodeMetadata",
    "ScanEvent",
    "PropertyScanAnalytics",
    "SystemAnalytics",
]
