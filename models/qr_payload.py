# =============================================================================
# 🧩 models/qr_payload.py
# -----------------------------------------------------------------------------
# Pydantic-Modelle: QR-Payload (im Bild kodiert), Snapshot und API-DTOs.
# JSON-Schlüssel sind camelCase (propertyId, scanUrl, ...).
# =============================================================================

from __future__ import annotations

import time
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

QR_PAYLOAD_TYPE = "daobitat_property"
QR_PAYLOAD_VERSION = "1.0"


class QrGenerationReason(str, Enum):
    NEW_PROPERTY = "new_property"
    PROPERTY_UPDATED = "property_updated"
    MANUAL_REGENERATION = "manual_regeneration"
    BATCH_GENERATION = "batch_generation"
    EXPIRED_QR = "expired_qr"


class QrStatus(str, Enum):
    GENERATED = "generated"
    REGENERATED = "regenerated"
    FAILED = "failed"
    EXISTS = "exists"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# 🔳 Payload, die im QR-Bild steckt
# ---------------------------------------------------------------------------
class QrCodeData(_CamelModel):
    type: str = QR_PAYLOAD_TYPE
    property_id: str = Field(..., alias="propertyId")
    scan_url: str = Field(..., alias="scanUrl")
    version: str = QR_PAYLOAD_VERSION
    timestamp: int = Field(default_factory=lambda: int(time.time()))

    @classmethod
    def for_property(cls, property_id: str, scan_url: str) -> "QrCodeData":
        return cls(property_id=property_id, scan_url=scan_url)

    def to_json(self) -> str:
        # kompakt, Schlüsselreihenfolge wie deklariert
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> Optional["QrCodeData"]:
        try:
            return cls.model_validate_json(raw)
        except ValidationError:
            return None

    def is_valid(self) -> bool:
        return (
            bool(self.property_id)
            and bool(self.scan_url)
            and self.type == QR_PAYLOAD_TYPE
            and bool(self.version)
        )


# ---------------------------------------------------------------------------
# 🧾 Snapshot der Listing-Daten (im QR-Datensatz gespeichert)
# ---------------------------------------------------------------------------
class QrMetadata(_CamelModel):
    property_name: str = Field(..., alias="propertyName")
    location: str = ""
    action: str = ""
    price: int = 0
    onchain_id: Optional[str] = Field(default=None, alias="onchainId")
    crypto_accepted: bool = Field(default=False, alias="cryptoAccepted")
    primary_image: Optional[str] = Field(default=None, alias="primaryImage")
    is_verified: bool = Field(default=False, alias="isVerified")
    generated_by: Optional[str] = Field(default=None, alias="generatedBy")
    generation_reason: QrGenerationReason = Field(
        default=QrGenerationReason.NEW_PROPERTY, alias="generationReason"
    )

    def to_snapshot(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# 📨 Requests / Responses
# ---------------------------------------------------------------------------
class GenerateQrRequest(_CamelModel):
    force_regenerate: bool = Field(default=False, alias="forceRegenerate")
    reason: Optional[QrGenerationReason] = None


class BatchGenerateQrRequest(_CamelModel):
    property_ids: List[str] = Field(default_factory=list, alias="propertyIds")
    force_regenerate: bool = Field(default=False, alias="forceRegenerate")
    reason: Optional[QrGenerationReason] = None


class QrCodeResponse(_CamelModel):
    property_id: str = Field(..., alias="propertyId")
    qr_code_url: str = Field(..., alias="qrCodeUrl")
    scan_url: str = Field(..., alias="scanUrl")
    generated_at: datetime = Field(..., alias="generatedAt")
    qr_version: int = Field(default=1, alias="qrVersion")
    metadata: QrMetadata
    status: QrStatus


class QrGenerationError(_CamelModel):
    property_id: str = Field(..., alias="propertyId")
    error: str
    error_code: str = Field(..., alias="errorCode")


class BatchQrCodeResponse(_CamelModel):
    successful: List[QrCodeResponse] = Field(default_factory=list)
    failed: List[QrGenerationError] = Field(default_factory=list)
    total_requested: int = Field(default=0, alias="totalRequested")
    total_successful: int = Field(default=0, alias="totalSuccessful")
    total_failed: int = Field(default=0, alias="totalFailed")
