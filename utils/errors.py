# =============================================================================
# 🚨 utils/errors.py
# -----------------------------------------------------------------------------
# Fehlerarten des Services + feste Zuordnung Fehlercode → HTTP-Status.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    # Eingaben
    INVALID_INPUT = "invalid_input"
    INVALID_PROPERTY_ID = "invalid_property_id"
    # Nicht gefunden
    PROPERTY_NOT_FOUND = "property_not_found"
    QR_NOT_FOUND = "qr_not_found"
    # Geschäftsregeln
    PROPERTY_NOT_ELIGIBLE = "property_not_eligible"
    QR_ALREADY_EXISTS = "qr_already_exists"
    QR_VERSION_CONFLICT = "qr_version_conflict"
    # Upstream / Infrastruktur
    QR_GENERATION_FAILED = "qr_generation_failed"
    UPLOAD_FAILED = "upload_failed"
    DATABASE_OPERATION = "database_operation"
    ANALYTICS_SERVICE_ERROR = "analytics_service_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INTERNAL_SERVER_ERROR = "internal_server_error"


STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.INVALID_PROPERTY_ID: 400,
    ErrorCode.PROPERTY_NOT_FOUND: 404,
    ErrorCode.QR_NOT_FOUND: 404,
    ErrorCode.QR_ALREADY_EXISTS: 409,
    ErrorCode.QR_VERSION_CONFLICT: 409,
    ErrorCode.PROPERTY_NOT_ELIGIBLE: 422,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.QR_GENERATION_FAILED: 500,
    ErrorCode.UPLOAD_FAILED: 500,
    ErrorCode.DATABASE_OPERATION: 500,
    ErrorCode.ANALYTICS_SERVICE_ERROR: 500,
    ErrorCode.INTERNAL_SERVER_ERROR: 500,
}


def status_for(code: ErrorCode) -> int:
    return STATUS_BY_CODE.get(code, 500)


@dataclass
class ErrorContext:
    property_id: Optional[str] = None
    qr_id: Optional[str] = None
    file_name: Optional[str] = None
    operation: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "property_id": self.property_id,
            "qr_id": self.qr_id,
            "file_name": self.file_name,
            "operation": self.operation,
        }
        data = {k: v for k, v in data.items() if v is not None}
        if self.details:
            data["details"] = dict(self.details)
        return data


class AppError(Exception):
    """Fachlicher Fehler mit Code, Nachricht und optionalem Kontext."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.context = context or ErrorContext()

    @property
    def status_code(self) -> int:
        return status_for(self.code)

    def __repr__(self) -> str:
        return f"<AppError(code={self.code.value}, message={self.message!r})>"


# ---------------------------------------------------------------------------
# 🧩 Kurzformen für häufige Fehler
# ---------------------------------------------------------------------------
def property_not_found(property_id: str) -> AppError:
    return AppError(
        ErrorCode.PROPERTY_NOT_FOUND,
        f"Property not found: {property_id}",
        ErrorContext(property_id=property_id, operation="property_lookup"),
    )


def property_not_eligible(property_id: str, reason: str) -> AppError:
    return AppError(
        ErrorCode.PROPERTY_NOT_ELIGIBLE,
        f"Property {property_id} is not eligible for QR code: {reason}",
        ErrorContext(property_id=property_id, operation="eligibility_check", details={"reason": reason}),
    )


def qr_not_found(property_id: str) -> AppError:
    return AppError(
        ErrorCode.QR_NOT_FOUND,
        f"QR code not found for property: {property_id}",
        ErrorContext(property_id=property_id, operation="qr_lookup"),
    )


def invalid_property_id(property_id: str, reason: str) -> AppError:
    return AppError(
        ErrorCode.INVALID_PROPERTY_ID,
        f"Invalid property ID format: {reason}",
        ErrorContext(property_id=property_id or None, operation="validate_property_id"),
    )
