# =============================================================================
# 🔗 utils/url_builder.py
# -----------------------------------------------------------------------------
# Öffentliche URLs für Scan, Listing, Explorer und Redirect-Seite.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass

from settings import Settings


@dataclass(frozen=True)
class UrlBuilder:
    """Baut alle öffentlichen URLs (Scan, Listing, Explorer, Redirect-Seite)."""

    base_url: str
    daobitat_base_url: str
    explorer_base_url: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "UrlBuilder":
        return cls(
            base_url=settings.base_url.rstrip("/"),
            daobitat_base_url=settings.daobitat_base_url.rstrip("/"),
            explorer_base_url=settings.blockchain_explorer_base_url.rstrip("/"),
        )

    def scan_url(self, property_id: str) -> str:
        return f"{self.base_url}/scan/{property_id}"

    def property_url(self, property_id: str) -> str:
        return f"{self.daobitat_base_url}/property/{property_id}"

    def blockchain_url(self, onchain_id: str) -> str:
        return f"{self.explorer_base_url}/token/{onchain_id}"

    def redirect_page_url(self, property_id: str) -> str:
        return f"{self.daobitat_base_url}/scan/{property_id}"
