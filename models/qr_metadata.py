# =============================================================================
# 📦 models/qr_metadata.py
# -----------------------------------------------------------------------------
# Ein QR-Datensatz pro Property (SQLAlchemy 2.0).
# Lebenszyklus: erzeugt (v1, aktiv) → regeneriert (v+1) → deaktiviert/gelöscht.
# qr_version dient zugleich als optimistische Versionsspalte.
# =============================================================================

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database import Base
from utils.timeutils import as_utc, utc_now


def pattern_hash(pattern: str) -> str:
    """SHA-256 (hex) über die exakte Payload-Zeichenkette."""
    return hashlib.sha256(pattern.encode("utf-8")).hexdigest()


class QrCodeMetadata(Base):
    __tablename__ = "qr_metadata"

    # ---------------------------------------------------------------------
    # 🧾 Identität
    # ---------------------------------------------------------------------
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    property_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)

    # ---------------------------------------------------------------------
    # 🔳 QR-Inhalt
    # ---------------------------------------------------------------------
    qr_code_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    qr_pattern: Mapped[str] = mapped_column(Text, nullable=False)
    qr_code_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # ---------------------------------------------------------------------
    # 🕒 Zeitstempel & Zähler
    # ---------------------------------------------------------------------
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    scan_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_scanned: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    qr_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Snapshot der Listing-Daten zum Generierungszeitpunkt
    snapshot: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    __mapper_args__ = {
        "version_id_col": qr_version,
        "version_id_generator": False,
    }

    # ---------------------------------------------------------------------
    # 🔄 Lebenszyklus
    # ---------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        property_id: str,
        qr_code_url: str,
        qr_pattern: str,
        snapshot: Dict[str, Any],
    ) -> "QrCodeMetadata":
        now = utc_now()
        return cls(
            id=uuid.uuid4().hex,
            property_id=property_id,
            qr_code_url=qr_code_url,
            qr_pattern=qr_pattern,
            qr_code_hash=pattern_hash(qr_pattern),
            generated_at=now,
            last_updated=now,
            scan_count=0,
            last_scanned=None,
            is_active=True,
            qr_version=1,
            snapshot=dict(snapshot),
        )

    def regenerate(self, qr_code_url: str, qr_pattern: str, snapshot: Dict[str, Any]) -> None:
        """Ersetzt Bild, Payload und Snapshot; Version +1, wieder aktiv.

        generated_at startet neu, damit die Ablaufprüfung am aktuellen Bild hängt.
        """
        now = utc_now()
        self.qr_code_url = qr_code_url
        self.qr_pattern = qr_pattern
        self.qr_code_hash = pattern_hash(qr_pattern)
        self.snapshot = dict(snapshot)
        self.generated_at = now
        self.last_updated = now
        self.qr_version = (self.qr_version or 0) + 1
        self.is_active = True

    def is_expired(self, expiry_days: int, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        return as_utc(self.generated_at) + timedelta(days=expiry_days) < now

    @property
    def image_key(self) -> str:
        return image_key_for(self.property_id)

    @property
    def metadata_key(self) -> str:
        return f"metadata/{self.property_id}.json"

    def __repr__(self):
        return (
            f"<QrCodeMetadata(property_id='{self.property_id}', version={self.qr_version}, "
            f"active={self.is_active}, scans={self.scan_count})>"
        )


def image_key_for(property_id: str) -> str:
    return f"qr-images/{property_id}.png"
