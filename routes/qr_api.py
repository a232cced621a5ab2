# =============================================================================
# 🧩 routes/qr_api.py
# -----------------------------------------------------------------------------
# QR-Verwaltung: Generieren, Batch, Regenerieren, Deaktivieren, Löschen.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from dependencies import get_batch_coordinator, get_qr_generator
from models.qr_metadata import QrCodeMetadata
from models.qr_payload import (
    BatchGenerateQrRequest,
    GenerateQrRequest,
    QrGenerationReason,
)
from services.batch_coordinator import BatchCoordinator
from services.qr_generator import QrGeneratorService
from settings import Settings, get_settings
from utils.api_response import success_response
from utils.errors import AppError, ErrorCode, ErrorContext, qr_not_found
from utils.timeutils import as_utc
from utils.validation import validate_property_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["QR Codes"])

MAX_BATCH_SIZE = 100
MAX_LIST_LIMIT = 100


def _serialize_qr(qr: QrCodeMetadata, expiry_days: int) -> dict[str, Any]:
    return {
        "id": qr.id,
        "propertyId": qr.property_id,
        "qrCodeUrl": qr.qr_code_url,
        "qrPattern": qr.qr_pattern,
        "qrCodeHash": qr.qr_code_hash,
        "generatedAt": as_utc(qr.generated_at).isoformat() if qr.generated_at else None,
        "lastUpdated": as_utc(qr.last_updated).isoformat() if qr.last_updated else None,
        "scanCount": qr.scan_count,
        "lastScanned": as_utc(qr.last_scanned).isoformat() if qr.last_scanned else None,
        "isActive": qr.is_active,
        "isExpired": qr.is_expired(expiry_days),
        "qrVersion": qr.qr_version,
        "metadata": qr.snapshot or {},
    }


def _dump(model) -> dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# 🧩 Generierung (statische Pfade vor /{property_id})
# ---------------------------------------------------------------------------
@router.post("/qr/generate/batch")
def generate_batch(
    payload: BatchGenerateQrRequest,
    coordinator: BatchCoordinator = Depends(get_batch_coordinator),
):
    if len(payload.property_ids) > MAX_BATCH_SIZE:
        raise AppError(
            ErrorCode.INVALID_INPUT,
            f"Batch size cannot exceed {MAX_BATCH_SIZE} properties",
            ErrorContext(operation="batch_generate", details={"requested": len(payload.property_ids)}),
        )
    result = coordinator.batch_generate(
        payload.property_ids,
        payload.force_regenerate,
        payload.reason or QrGenerationReason.BATCH_GENERATION,
    )
    return success_response(_dump(result))


@router.post("/qr/generate/missing")
def generate_missing(coordinator: BatchCoordinator = Depends(get_batch_coordinator)):
    return success_response(_dump(coordinator.generate_missing()))


@router.post("/qr/generate/{property_id}")
def generate_qr(
    property_id: str,
    payload: Optional[GenerateQrRequest] = Body(default=None),
    generator: QrGeneratorService = Depends(get_qr_generator),
):
    validate_property_id(property_id)
    payload = payload or GenerateQrRequest()
    response = generator.generate_qr_code(property_id, payload.force_regenerate, payload.reason)
    return success_response(_dump(response))


@router.get("/qr/expired")
def list_expired(
    days: Optional[int] = Query(default=None, ge=1),
    generator: QrGeneratorService = Depends(get_qr_generator),
    settings: Settings = Depends(get_settings),
):
    expiry_days = days or settings.qr_expiry_days
    ids = generator.get_qr_codes_needing_regeneration(expiry_days)
    return success_response({"expiryDays": expiry_days, "propertyIds": ids, "total": len(ids)})


@router.post("/qr/regenerate/expired")
def regenerate_expired(
    days: Optional[int] = Query(default=None, ge=1),
    coordinator: BatchCoordinator = Depends(get_batch_coordinator),
    settings: Settings = Depends(get_settings),
):
    result = coordinator.regenerate_expired(days or settings.qr_expiry_days)
    return success_response(_dump(result))


@router.put("/qr/regenerate/{property_id}")
def regenerate_qr(
    property_id: str,
    reason: QrGenerationReason = Query(default=QrGenerationReason.MANUAL_REGENERATION),
    generator: QrGeneratorService = Depends(get_qr_generator),
):
    validate_property_id(property_id)
    response = generator.generate_qr_code(property_id, True, reason)
    return success_response(_dump(response))


@router.patch("/qr/deactivate/{property_id}")
def deactivate_qr(property_id: str, generator: QrGeneratorService = Depends(get_qr_generator)):
    validate_property_id(property_id)
    if not generator.deactivate_qr_code(property_id):
        raise qr_not_found(property_id)
    return success_response({"propertyId": property_id, "deactivated": True})


# ---------------------------------------------------------------------------
# 🔍 Lesen / Löschen
# ---------------------------------------------------------------------------
@router.get("/qr")
def list_qr_codes(
    limit: int = Query(default=50, ge=1),
    skip: int = Query(default=0, ge=0),
    property_id: Optional[str] = None,
    active_only: bool = False,
    generator: QrGeneratorService = Depends(get_qr_generator),
    settings: Settings = Depends(get_settings),
):
    limit = min(limit, MAX_LIST_LIMIT)
    items = generator.get_all_qr_codes(limit=limit, skip=skip, property_id=property_id, active_only=active_only)
    return success_response(
        {
            "items": [_serialize_qr(qr, settings.qr_expiry_days) for qr in items],
            "limit": limit,
            "skip": skip,
            "count": len(items),
        }
    )


@router.get("/qr/{property_id}")
def get_qr(
    property_id: str,
    generator: QrGeneratorService = Depends(get_qr_generator),
    settings: Settings = Depends(get_settings),
):
    validate_property_id(property_id)
    return success_response(_serialize_qr(generator.get_qr_code(property_id), settings.qr_expiry_days))


@router.delete("/qr/{property_id}")
def delete_qr(property_id: str, generator: QrGeneratorService = Depends(get_qr_generator)):
    validate_property_id(property_id)
    if not generator.delete_qr_code(property_id):
        raise qr_not_found(property_id)
    return success_response({"propertyId": property_id, "deleted": True})
