# =============================================================================
# 🏠 services/property_service.py
# -----------------------------------------------------------------------------
# Lesezugriff auf Listings + Klickzähler.
# Liefert PropertyQrInfo nur für QR-geeignete Objekte.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from models.property import Property, PropertyQrInfo
from utils.eligibility import ineligibility_reason, is_eligible
from utils.errors import AppError, property_not_eligible, property_not_found
from utils.timeutils import utc_now
from utils.validation import validate_property_id

logger = logging.getLogger(__name__)


@dataclass
class PropertyStats:
    total_properties: int
    active_properties: int
    verified_properties: int
    properties_with_images: int
    qr_eligible_properties: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PropertySearchCriteria:
    location: Optional[str] = None
    action: Optional[str] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    verified_only: bool = False
    blockchain_only: bool = False
    limit: Optional[int] = 50


def _not_removed():
    return or_(Property.removed.is_(None), Property.removed.is_(False))


class PropertyService:
    def __init__(self, db: Session):
        self.db = db

    # ---------------------------------------------------------------------
    # 🔍 Einzelabfragen
    # ---------------------------------------------------------------------
    def get_property_by_id(self, property_id: str) -> Property:
        validate_property_id(property_id)
        prop = self.db.get(Property, property_id)
        if prop is None:
            raise property_not_found(property_id)
        return prop

    def get_property_qr_info(self, property_id: str) -> PropertyQrInfo:
        prop = self.get_property_by_id(property_id)
        if not is_eligible(prop):
            raise property_not_eligible(property_id, ineligibility_reason(prop))
        return prop.to_qr_info()

    def validate_property(self, property_id: str) -> bool:
        """True, wenn das Listing existiert und nicht entfernt wurde; ungültige IDs → False."""
        try:
            validate_property_id(property_id)
        except AppError:
            return False
        prop = self.db.get(Property, property_id)
        return prop is not None and not prop.removed

    # ---------------------------------------------------------------------
    # 📋 Listen
    # ---------------------------------------------------------------------
    def get_qr_eligible_properties(self, limit: Optional[int] = None) -> List[PropertyQrInfo]:
        stmt = (
            select(Property)
            .where(_not_removed())
            .where(Property.price > 0)
            .order_by(Property.created_at.desc())
        )
        # Bilder stecken in einer JSON-Liste → Prüfung in Python
        eligible = [p.to_qr_info() for p in self.db.execute(stmt).scalars() if is_eligible(p)]
        return eligible[:limit] if limit is not None else eligible

    def get_properties_needing_qr(self, existing_ids: Iterable[str]) -> List[PropertyQrInfo]:
        known = set(existing_ids)
        return [info for info in self.get_qr_eligible_properties() if info.id not in known]

    def get_properties_by_ids(self, property_ids: Iterable[str]) -> List[PropertyQrInfo]:
        """Unbekannte oder entfernte IDs fehlen im Ergebnis; Reihenfolge wie angefragt."""
        wanted = list(dict.fromkeys(property_ids))
        if not wanted:
            return []
        stmt = select(Property).where(Property.id.in_(wanted)).where(_not_removed())
        found = {p.id: p for p in self.db.execute(stmt).scalars()}
        return [found[pid].to_qr_info() for pid in wanted if pid in found]

    def get_recent_properties(self, limit: int = 10) -> List[PropertyQrInfo]:
        stmt = (
            select(Property)
            .where(_not_removed())
            .order_by(Property.created_at.desc())
            .limit(limit)
        )
        return [p.to_qr_info() for p in self.db.execute(stmt).scalars()]

    def search_properties(self, criteria: PropertySearchCriteria) -> List[PropertyQrInfo]:
        stmt = select(Property).where(_not_removed())
        if criteria.location:
            stmt = stmt.where(Property.location.ilike(f"%{criteria.location}%"))
        if criteria.action:
            stmt = stmt.where(func.lower(Property.action) == criteria.action.strip().lower())
        if criteria.min_price is not None:
            stmt = stmt.where(Property.price >= criteria.min_price)
        if criteria.max_price is not None:
            stmt = stmt.where(Property.price <= criteria.max_price)
        if criteria.verified_only:
            stmt = stmt.where(Property.is_verified.is_(True))
        if criteria.blockchain_only:
            stmt = stmt.where(Property.onchain_id.is_not(None)).where(Property.onchain_id != "")
        stmt = stmt.order_by(Property.created_at.desc())
        if criteria.limit is not None:
            stmt = stmt.limit(criteria.limit)
        return [p.to_qr_info() for p in self.db.execute(stmt).scalars()]

    # ---------------------------------------------------------------------
    # 📈 Klicks & Statistik
    # ---------------------------------------------------------------------
    def increment_property_clicks(self, property_id: str) -> bool:
        prop = self.db.get(Property, property_id)
        if prop is None:
            logger.warning(f"⚠️ Klick für unbekannte Property {property_id} ignoriert")
            return False
        now = utc_now()
        self.db.execute(
            update(Property)
            .where(Property.id == property_id)
            .values(clicks=Property.clicks + 1)
            .execution_options(synchronize_session=False)
        )
        # JSON-Liste wird neu zugewiesen, nicht mutiert
        prop.click_history = list(prop.click_history or []) + [{"timestamp": now.isoformat()}]
        self.db.commit()
        return True

    def get_property_stats(self) -> PropertyStats:
        total = self.db.execute(select(func.count()).select_from(Property)).scalar_one()
        active = list(self.db.execute(select(Property).where(_not_removed())).scalars())
        return PropertyStats(
            total_properties=total,
            active_properties=len(active),
            verified_properties=sum(1 for p in active if p.is_verified),
            properties_with_images=sum(1 for p in active if p.images),
            qr_eligible_properties=sum(1 for p in active if is_eligible(p)),
        )

    def count_properties(self) -> int:
        return self.db.execute(select(func.count()).select_from(Property)).scalar_one()
