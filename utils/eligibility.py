# =============================================================================
# ✅ utils/eligibility.py
# -----------------------------------------------------------------------------
# Eignungsprüfung: Nur nicht entfernte Objekte mit Bild und Preis > 0
# bekommen einen QR-Code.
# =============================================================================

from __future__ import annotations

from typing import Any

REASON_REMOVED = "Property has been removed"
REASON_NO_IMAGES = "Property has no images"
REASON_INVALID_PRICE = "Property has invalid price"
REASON_UNKNOWN = "Unknown reason"


def is_eligible(prop: Any) -> bool:
    """Funktioniert mit dem ORM-Modell Property und mit PropertyQrInfo."""
    return (
        not bool(getattr(prop, "removed", False))
        and bool(getattr(prop, "images", None))
        and (getattr(prop, "price", 0) or 0) > 0
    )


def ineligibility_reason(prop: Any) -> str:
    # gleiche Reihenfolge wie is_eligible
    if getattr(prop, "removed", False):
        return REASON_REMOVED
    if not getattr(prop, "images", None):
        return REASON_NO_IMAGES
    if (getattr(prop, "price", 0) or 0) <= 0:
        return REASON_INVALID_PRICE
    return REASON_UNKNOWN
