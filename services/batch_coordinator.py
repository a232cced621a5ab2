# =============================================================================
# 📦 services/batch_coordinator.py
# -----------------------------------------------------------------------------
# Mehrere Properties nacheinander generieren; Fehler pro ID werden
# gesammelt und brechen den Batch nicht ab.
# =============================================================================

from __future__ import annotations

import logging
from typing import Iterable, Optional

from models.qr_payload import (
    BatchQrCodeResponse,
    QrGenerationError,
    QrGenerationReason,
)
from services.property_service import PropertyService
from services.qr_generator import QrGeneratorService
from services.qr_store import QrRecordStore
from utils.errors import AppError

logger = logging.getLogger(__name__)


class BatchCoordinator:
    def __init__(
        self,
        generator: QrGeneratorService,
        properties: PropertyService,
        store: QrRecordStore,
    ):
        self.generator = generator
        self.properties = properties
        self.store = store

    def batch_generate(
        self,
        property_ids: Iterable[str],
        force_regenerate: bool = False,
        reason: Optional[QrGenerationReason] = None,
    ) -> BatchQrCodeResponse:
        ids = list(property_ids)
        result = BatchQrCodeResponse(total_requested=len(ids))

        for property_id in ids:
            try:
                response = self.generator.generate_qr_code(property_id, force_regenerate, reason)
                result.successful.append(response)
            except AppError as exc:
                logger.warning(f"⚠️ Batch: Property {property_id} fehlgeschlagen – {exc.message}")
                result.failed.append(
                    QrGenerationError(
                        property_id=property_id,
                        error=exc.message,
                        error_code=exc.code.name,
                    )
                )

        result.total_successful = len(result.successful)
        result.total_failed = len(result.failed)
        logger.info(
            f"📦 Batch abgeschlossen: {result.total_successful}/{result.total_requested} erfolgreich, "
            f"{result.total_failed} fehlgeschlagen"
        )
        return result

    def generate_missing(self) -> BatchQrCodeResponse:
        """Alle geeigneten Properties ohne QR-Datensatz."""
        existing = self.store.all_property_ids()
        missing = [info.id for info in self.properties.get_properties_needing_qr(existing)]
        logger.info(f"🔍 {len(missing)} Properties ohne QR-Code gefunden")
        return self.batch_generate(missing, False, QrGenerationReason.BATCH_GENERATION)

    def regenerate_expired(self, expiry_days: int) -> BatchQrCodeResponse:
        """Aktive QR-Codes älter als expiry_days neu erzeugen."""
        expired = self.generator.get_qr_codes_needing_regeneration(expiry_days)
        logger.info(f"⏳ {len(expired)} abgelaufene QR-Codes (> {expiry_days} Tage)")
        return self.batch_generate(expired, True, QrGenerationReason.EXPIRED_QR)
