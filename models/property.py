# =============================================================================
# 🏠 models/property.py
# -----------------------------------------------------------------------------
# Immobilien-Listing (gehört der Property-Domäne; der QR-Service liest es
# und pflegt nur den Klickzähler).
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from database import Base
from utils.timeutils import utc_now


@dataclass
class PropertyQrInfo:
    """Schreibgeschützte Sicht auf ein Listing – alles, was QR + Scan brauchen."""

    id: str
    name: str
    location: str
    action: str
    price: int
    onchain_id: Optional[str] = None
    crypto_accepted: bool = False
    images: List[str] = field(default_factory=list)
    is_verified: Optional[bool] = None
    removed: Optional[bool] = None

    @property
    def primary_image(self) -> Optional[str]:
        return self.images[0] if self.images else None

    @property
    def has_onchain_id(self) -> bool:
        return bool(self.onchain_id)


class Property(Base):
    __tablename__ = "properties"

    # ---------------------------------------------------------------------
    # 🔹 Stammdaten
    # ---------------------------------------------------------------------
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    property_name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    action: Mapped[str] = mapped_column(String(32), nullable=False, default="for sale")
    price: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # ---------------------------------------------------------------------
    # ⛓️ Blockchain
    # ---------------------------------------------------------------------
    onchain_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    crypto_accepted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # ---------------------------------------------------------------------
    # 🔹 Status
    # ---------------------------------------------------------------------
    is_verified: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    removed: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, default=False)

    # ---------------------------------------------------------------------
    # 📈 Klicks (vom Scan-Pfad hochgezählt)
    # ---------------------------------------------------------------------
    clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    click_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def to_qr_info(self) -> PropertyQrInfo:
        return PropertyQrInfo(
            id=self.id,
            name=self.property_name,
            location=self.location or "",
            action=self.action or "",
            price=int(self.price or 0),
            onchain_id=self.onchain_id or None,
            crypto_accepted=bool(self.crypto_accepted),
            images=list(self.images or []),
            is_verified=self.is_verified,
            removed=self.removed,
        )

    def __repr__(self):
        return f"<Property(id='{self.id}', name='{self.property_name}', price={self.price})>"
