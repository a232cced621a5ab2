# =============================================================================
# 🔳 services/qr_generator.py
# -----------------------------------------------------------------------------
# QR-Lebenszyklus: erzeugen, idempotent wiederverwenden, regenerieren,
# deaktivieren, löschen.
#
# Ablauf generate_qr_code():
#   1. aktiver Datensatz + kein force → vorhandenen zurückgeben (status=exists)
#   2. Listing laden (nicht gefunden / nicht geeignet → Fehler)
#   3. Payload einmal serialisieren – derselbe String wird kodiert und gehasht
#   4. PNG rendern + hochladen (ohne Retry)
#   5. Datensatz anlegen (v1) oder in-place regenerieren (v+1)
#   6. Upsert als letzter Schritt – vorher schlägt nichts in der DB auf
# =============================================================================

from __future__ import annotations

import logging
from typing import List, Optional

from models.property import PropertyQrInfo
from models.qr_metadata import QrCodeMetadata, image_key_for
from models.qr_payload import (
    QrCodeData,
    QrCodeResponse,
    QrGenerationReason,
    QrMetadata,
    QrStatus,
)
from services.image_encoder import QrImageEncoder
from services.object_store import LocalObjectStore
from services.property_service import PropertyService
from services.qr_store import QrRecordStore
from utils.errors import AppError
from utils.timeutils import as_utc
from utils.url_builder import UrlBuilder

logger = logging.getLogger(__name__)


def build_snapshot(info: PropertyQrInfo, reason: QrGenerationReason) -> QrMetadata:
    return QrMetadata(
        property_name=info.name,
        location=info.location,
        action=info.action,
        price=info.price,
        onchain_id=info.onchain_id,
        crypto_accepted=info.crypto_accepted,
        primary_image=info.primary_image,
        is_verified=bool(info.is_verified),
        generated_by=None,
        generation_reason=reason,
    )


def to_response(
    record: QrCodeMetadata, urls: UrlBuilder, status: QrStatus
) -> QrCodeResponse:
    return QrCodeResponse(
        property_id=record.property_id,
        qr_code_url=record.qr_code_url,
        scan_url=urls.scan_url(record.property_id),
        generated_at=as_utc(record.generated_at),
        qr_version=record.qr_version,
        metadata=QrMetadata.model_validate(record.snapshot or {}),
        status=status,
    )


class QrGeneratorService:
    def __init__(
        self,
        store: QrRecordStore,
        properties: PropertyService,
        encoder: QrImageEncoder,
        objects: LocalObjectStore,
        urls: UrlBuilder,
    ):
        self.store = store
        self.properties = properties
        self.encoder = encoder
        self.objects = objects
        self.urls = urls

    # ---------------------------------------------------------------------
    # 🧩 Erzeugen / Regenerieren
    # ---------------------------------------------------------------------
    def generate_qr_code(
        self,
        property_id: str,
        force_regenerate: bool = False,
        reason: Optional[QrGenerationReason] = None,
    ) -> QrCodeResponse:
        reason = reason or QrGenerationReason.NEW_PROPERTY

        existing = self.store.find(property_id)
        if existing is not None and existing.is_active and not force_regenerate:
            logger.info(f"♻️ QR für Property {property_id} existiert bereits (v{existing.qr_version})")
            return to_response(existing, self.urls, QrStatus.EXISTS)

        info = self.properties.get_property_qr_info(property_id)

        payload = QrCodeData.for_property(property_id, self.urls.scan_url(property_id))
        pattern = payload.to_json()

        png = self.encoder.encode(pattern)
        qr_code_url = self.objects.put(image_key_for(property_id), png, "image/png")

        snapshot = build_snapshot(info, reason).to_snapshot()
        if existing is not None:
            existing.regenerate(qr_code_url, pattern, snapshot)
            record = existing
        else:
            record = QrCodeMetadata.create(property_id, qr_code_url, pattern, snapshot)

        record = self.store.upsert(record)
        self._upload_metadata(record)

        status = QrStatus.REGENERATED if force_regenerate else QrStatus.GENERATED
        logger.info(
            f"✅ QR {status.value} für Property {property_id} "
            f"(v{record.qr_version}, Grund: {reason.value})"
        )
        return to_response(record, self.urls, status)

    def _upload_metadata(self, record: QrCodeMetadata) -> None:
        # Begleit-JSON neben dem Bild; Fehler hier machen den QR nicht ungültig
        try:
            self.objects.put_json(
                record.metadata_key,
                {
                    "propertyId": record.property_id,
                    "qrVersion": record.qr_version,
                    "qrCodeUrl": record.qr_code_url,
                    "qrCodeHash": record.qr_code_hash,
                    "generatedAt": record.generated_at.isoformat(),
                    "metadata": record.snapshot,
                },
            )
        except AppError as exc:
            logger.warning(f"⚠️ Metadaten-Upload für {record.property_id} fehlgeschlagen: {exc.message}")

    # ---------------------------------------------------------------------
    # 🔍 Lesen / Verwalten
    # ---------------------------------------------------------------------
    def get_qr_code(self, property_id: str) -> QrCodeMetadata:
        return self.store.get(property_id)

    def delete_qr_code(self, property_id: str) -> bool:
        record = self.store.find(property_id)
        if record is None:
            return False
        image_key = record.image_key
        metadata_key = record.metadata_key
        deleted = self.store.delete(property_id)

        # Bild + Metadaten löschen ist best-effort
        self.objects.delete_many([image_key, metadata_key])
        logger.info(f"🗑️ QR für Property {property_id} gelöscht")
        return deleted

    def deactivate_qr_code(self, property_id: str) -> bool:
        ok = self.store.deactivate(property_id)
        if ok:
            logger.info(f"⏸️ QR für Property {property_id} deaktiviert")
        return ok

    def get_all_qr_codes(
        self,
        limit: int = 50,
        skip: int = 0,
        property_id: Optional[str] = None,
        active_only: bool = False,
    ) -> List[QrCodeMetadata]:
        return self.store.list_all(limit=limit, skip=skip, property_id=property_id, active_only=active_only)

    def get_qr_codes_needing_regeneration(self, expiry_days: int) -> List[str]:
        return self.store.property_ids_needing_regeneration(expiry_days)
