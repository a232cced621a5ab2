# =============================================================================
# 🏠 routes/properties.py
# -----------------------------------------------------------------------------
# Listing-Abfragen: neueste, Suche, Sammelabruf per ID, Statistik.
# =============================================================================

from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from models.property import PropertyQrInfo
from services.property_service import PropertySearchCriteria, PropertyService
from utils.api_response import success_response
from utils.errors import AppError, ErrorCode, ErrorContext

router = APIRouter(prefix="/api/v1/properties", tags=["Properties"])

MAX_LOOKUP_IDS = 100


def _serialize_property(info: PropertyQrInfo) -> dict[str, Any]:
    return {
        "id": info.id,
        "propertyName": info.name,
        "location": info.location,
        "action": info.action,
        "price": info.price,
        "primaryImage": info.primary_image,
        "onchainId": info.onchain_id,
        "cryptoAccepted": info.crypto_accepted,
        "isVerified": bool(info.is_verified),
    }


@router.get("/recent")
def recent_properties(
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    items = PropertyService(db).get_recent_properties(limit)
    return success_response([_serialize_property(p) for p in items])


@router.get("/search")
def search_properties(
    location: Optional[str] = None,
    action: Optional[str] = None,
    min_price: Optional[int] = Query(default=None, ge=0),
    max_price: Optional[int] = Query(default=None, ge=0),
    verified_only: bool = False,
    blockchain_only: bool = False,
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
):
    criteria = PropertySearchCriteria(
        location=location,
        action=action,
        min_price=min_price,
        max_price=max_price,
        verified_only=verified_only,
        blockchain_only=blockchain_only,
        limit=limit,
    )
    items = PropertyService(db).search_properties(criteria)
    return success_response([_serialize_property(p) for p in items])


@router.get("/lookup")
def lookup_properties(
    ids: List[str] = Query(default=[]),
    db: Session = Depends(get_db),
):
    if len(ids) > MAX_LOOKUP_IDS:
        raise AppError(
            ErrorCode.INVALID_INPUT,
            f"Cannot look up more than {MAX_LOOKUP_IDS} properties at once",
            ErrorContext(operation="lookup_properties", details={"requested": len(ids)}),
        )
    items = PropertyService(db).get_properties_by_ids(ids)
    return success_response([_serialize_property(p) for p in items])


@router.get("/stats")
def property_stats(db: Session = Depends(get_db)):
    return success_response(PropertyService(db).get_property_stats().to_dict())
