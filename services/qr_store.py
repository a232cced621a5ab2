# =============================================================================
# 🗃️ services/qr_store.py
# -----------------------------------------------------------------------------
# Persistenz der QR-Datensätze (genau einer pro Property-ID).
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from models.qr_metadata import QrCodeMetadata
from utils.errors import AppError, ErrorCode, ErrorContext, qr_not_found
from utils.timeutils import utc_now

logger = logging.getLogger(__name__)


def _db_error(exc: Exception, operation: str, property_id: Optional[str] = None) -> AppError:
    return AppError(
        ErrorCode.DATABASE_OPERATION,
        f"Database operation failed: {exc}",
        ErrorContext(property_id=property_id, operation=operation),
    )


class QrRecordStore:
    def __init__(self, db: Session):
        self.db = db

    # ---------------------------------------------------------------------
    # 🔍 Lesen
    # ---------------------------------------------------------------------
    def find(self, property_id: str) -> Optional[QrCodeMetadata]:
        return self.db.execute(
            select(QrCodeMetadata).where(QrCodeMetadata.property_id == property_id)
        ).scalar_one_or_none()

    def get(self, property_id: str) -> QrCodeMetadata:
        record = self.find(property_id)
        if record is None:
            raise qr_not_found(property_id)
        return record

    def current_version(self, property_id: str) -> Optional[int]:
        return self.db.execute(
            select(QrCodeMetadata.qr_version).where(QrCodeMetadata.property_id == property_id)
        ).scalar_one_or_none()

    def list_all(
        self,
        limit: int = 50,
        skip: int = 0,
        property_id: Optional[str] = None,
        active_only: bool = False,
    ) -> List[QrCodeMetadata]:
        stmt = select(QrCodeMetadata)
        if property_id:
            stmt = stmt.where(QrCodeMetadata.property_id == property_id)
        if active_only:
            stmt = stmt.where(QrCodeMetadata.is_active.is_(True))
        stmt = stmt.order_by(QrCodeMetadata.generated_at.desc()).offset(skip).limit(limit)
        return list(self.db.execute(stmt).scalars())

    def all_property_ids(self) -> List[str]:
        return list(self.db.execute(select(QrCodeMetadata.property_id)).scalars())

    def property_ids_needing_regeneration(
        self, expiry_days: int, now: Optional[datetime] = None
    ) -> List[str]:
        cutoff = (now or utc_now()) - timedelta(days=expiry_days)
        stmt = (
            select(QrCodeMetadata.property_id)
            .where(QrCodeMetadata.is_active.is_(True))
            .where(QrCodeMetadata.generated_at < cutoff)
            .order_by(QrCodeMetadata.generated_at.asc())
        )
        return list(self.db.execute(stmt).scalars())

    def count(self) -> int:
        return self.db.execute(select(func.count()).select_from(QrCodeMetadata)).scalar_one()

    def count_generated_since(self, since: datetime) -> int:
        return self.db.execute(
            select(func.count())
            .select_from(QrCodeMetadata)
            .where(QrCodeMetadata.generated_at >= since)
        ).scalar_one()

    # ---------------------------------------------------------------------
    # ✍️ Schreiben
    # ---------------------------------------------------------------------
    def upsert(self, record: QrCodeMetadata) -> QrCodeMetadata:
        """
        Speichert den Datensatz (ersetzt den bestehenden derselben Property-ID).
        Veraltete Version oder paralleles Erst-Insert → QR_VERSION_CONFLICT.
        """
        try:
            self.db.add(record)
            self.db.commit()
        except StaleDataError as exc:
            self.db.rollback()
            logger.warning(f"⚠️ Versionskonflikt für Property {record.property_id}: {exc}")
            raise AppError(
                ErrorCode.QR_VERSION_CONFLICT,
                f"QR code for property {record.property_id} was modified concurrently",
                ErrorContext(property_id=record.property_id, operation="upsert_qr"),
            )
        except IntegrityError as exc:
            # zweites Erst-Insert derselben Property (unique property_id)
            self.db.rollback()
            logger.warning(f"⚠️ QR für Property {record.property_id} wurde parallel angelegt: {exc}")
            raise AppError(
                ErrorCode.QR_ALREADY_EXISTS,
                f"QR code for property {record.property_id} already exists",
                ErrorContext(property_id=record.property_id, operation="upsert_qr"),
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise _db_error(exc, "upsert_qr", record.property_id)
        self.db.refresh(record)
        return record

    def delete(self, property_id: str) -> bool:
        record = self.find(property_id)
        if record is None:
            return False
        try:
            self.db.delete(record)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise _db_error(exc, "delete_qr", property_id)
        return True

    def deactivate(self, property_id: str) -> bool:
        """Teil-Update: nur is_active + last_updated, Version bleibt."""
        try:
            result = self.db.execute(
                update(QrCodeMetadata)
                .where(QrCodeMetadata.property_id == property_id)
                .values(is_active=False, last_updated=utc_now())
                .execution_options(synchronize_session="fetch")
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise _db_error(exc, "deactivate_qr", property_id)
        return result.rowcount > 0

    def record_scan(self, property_id: str, scanned_at: datetime) -> bool:
        """scan_count +1 / last_scanned – ohne Versionsprüfung."""
        result = self.db.execute(
            update(QrCodeMetadata)
            .where(QrCodeMetadata.property_id == property_id)
            .values(
                scan_count=QrCodeMetadata.scan_count + 1,
                last_scanned=scanned_at,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount > 0
