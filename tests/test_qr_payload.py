from __future__ import annotations

from models.qr_payload import (
    BatchQrCodeResponse,
    GenerateQrRequest,
    QrCodeData,
    QrGenerationError,
)


def test_payload_json_is_compact_and_ordered():
    data = QrCodeData(property_id="P1", scan_url="https://qr.test/scan/P1", timestamp=1700000000)

    assert data.to_json() == (
        '{"type":"daobitat_property","propertyId":"P1",'
        '"scanUrl":"https://qr.test/scan/P1","version":"1.0","timestamp":1700000000}'
    )


def test_payload_parses_back():
    original = QrCodeData.for_property("P1", "https://qr.test/scan/P1")
    parsed = QrCodeData.from_json(original.to_json())

    assert parsed == original
    assert parsed.is_valid()


def test_payload_validity_rules():
    assert not QrCodeData(property_id="", scan_url="https://qr.test/scan/x").is_valid()
    assert not QrCodeData(property_id="P1", scan_url="").is_valid()
    assert not QrCodeData(type="other", property_id="P1", scan_url="u").is_valid()
    assert not QrCodeData(property_id="P1", scan_url="u", version="").is_valid()


def test_garbage_payload_is_rejected():
    assert QrCodeData.from_json("not json") is None
    assert QrCodeData.from_json('{"type":"daobitat_property"}') is None


def test_request_models_accept_camel_case():
    request = GenerateQrRequest.model_validate({"forceRegenerate": True, "reason": "expired_qr"})
    assert request.force_regenerate is True
    assert request.reason.value == "expired_qr"


def test_batch_response_serializes_with_aliases():
    response = BatchQrCodeResponse(
        failed=[QrGenerationError(property_id="ghost", error="Property not found: ghost", error_code="PROPERTY_NOT_FOUND")],
        total_requested=1,
        total_failed=1,
    )
    dumped = response.model_dump(by_alias=True, mode="json")

    assert dumped["totalRequested"] == 1
    assert dumped["failed"][0] == {
        "propertyId": "ghost",
        "error": "Property not found: ghost",
        "errorCode": "PROPERTY_NOT_FOUND",
    }
