from __future__ import annotations

import hashlib
from datetime import timedelta
from io import BytesIO

import pytest
from PIL import Image

from models.qr_metadata import QrCodeMetadata
from models.qr_payload import QrCodeData, QrGenerationReason, QrStatus
from services.image_encoder import QrImageEncoder
from services.qr_store import QrRecordStore
from utils.errors import AppError, ErrorCode
from utils.timeutils import utc_now


def test_first_generation_creates_version_one(seeded, generator, encoder, objects):
    response = generator.generate_qr_code("P1")

    assert response.status == QrStatus.GENERATED
    assert response.qr_version == 1
    assert response.scan_url == "https://qr.test/scan/P1"
    assert response.qr_code_url == "https://cdn.test/qr-images/P1.png"
    assert response.metadata.onchain_id == "42"
    assert response.metadata.primary_image == "https://img.test/P1/1.jpg"
    assert len(encoder.calls) == 1
    assert objects.puts == ["qr-images/P1.png"]


def test_pattern_is_exactly_what_was_encoded_and_hashed(seeded, generator, encoder, db):
    generator.generate_qr_code("P2")
    record = QrRecordStore(db).get("P2")

    assert record.qr_pattern == encoder.calls[0]
    assert record.qr_code_hash == hashlib.sha256(record.qr_pattern.encode("utf-8")).hexdigest()
    payload = QrCodeData.from_json(record.qr_pattern)
    assert payload is not None and payload.is_valid()
    assert payload.property_id == "P2"


def test_second_generation_is_idempotent(seeded, generator, encoder, objects):
    first = generator.generate_qr_code("P1")
    second = generator.generate_qr_code("P1")

    assert second.status == QrStatus.EXISTS
    assert second.qr_version == first.qr_version == 1
    assert second.qr_code_url == first.qr_code_url
    # kein erneutes Rendern / Hochladen
    assert len(encoder.calls) == 1
    assert len(objects.puts) == 1


def test_forced_regeneration_bumps_version(seeded, generator):
    generator.generate_qr_code("P1")
    second = generator.generate_qr_code("P1", force_regenerate=True, reason=QrGenerationReason.MANUAL_REGENERATION)
    third = generator.generate_qr_code("P1", force_regenerate=True)

    assert second.status == QrStatus.REGENERATED
    assert [second.qr_version, third.qr_version] == [2, 3]
    assert second.metadata.generation_reason == QrGenerationReason.MANUAL_REGENERATION


def test_inactive_record_is_regenerated_in_place(seeded, generator, db):
    generator.generate_qr_code("P2")
    assert generator.deactivate_qr_code("P2") is True

    response = generator.generate_qr_code("P2")

    assert response.status == QrStatus.GENERATED
    assert response.qr_version == 2
    db.expire_all()
    record = QrRecordStore(db).get("P2")
    assert record.is_active is True
    assert QrRecordStore(db).count() == 1


def test_ineligible_property_leaves_no_record(seeded, generator, encoder, db):
    with pytest.raises(AppError) as exc:
        generator.generate_qr_code("P3")

    assert exc.value.code == ErrorCode.PROPERTY_NOT_ELIGIBLE
    assert "invalid price" in exc.value.message
    assert encoder.calls == []
    assert QrRecordStore(db).find("P3") is None


def test_unknown_property_is_not_found(seeded, generator):
    with pytest.raises(AppError) as exc:
        generator.generate_qr_code("ghost")
    assert exc.value.code == ErrorCode.PROPERTY_NOT_FOUND
    assert exc.value.status_code == 404


def test_upload_failure_writes_nothing(seeded, generator, objects, db):
    objects.fail = True
    with pytest.raises(AppError) as exc:
        generator.generate_qr_code("P1")

    assert exc.value.code == ErrorCode.UPLOAD_FAILED
    assert QrRecordStore(db).find("P1") is None


def test_encoder_failure_keeps_previous_version(seeded, generator, encoder, db):
    generator.generate_qr_code("P1")
    encoder.fail = True

    with pytest.raises(AppError) as exc:
        generator.generate_qr_code("P1", force_regenerate=True)

    assert exc.value.code == ErrorCode.QR_GENERATION_FAILED
    db.expire_all()
    assert QrRecordStore(db).get("P1").qr_version == 1


def test_delete_removes_record_and_image(seeded, generator, objects, db):
    generator.generate_qr_code("P1")

    assert generator.delete_qr_code("P1") is True
    assert "qr-images/P1.png" in objects.deleted
    assert "metadata/P1.json" in objects.deleted
    assert QrRecordStore(db).find("P1") is None
    assert generator.delete_qr_code("P1") is False


def test_list_and_expired(seeded, generator, db):
    generator.generate_qr_code("P1")
    generator.generate_qr_code("P2")

    record = QrRecordStore(db).get("P1")
    record.generated_at = utc_now() - timedelta(days=400)
    db.commit()

    assert {qr.property_id for qr in generator.get_all_qr_codes()} == {"P1", "P2"}
    assert [qr.property_id for qr in generator.get_all_qr_codes(limit=1)] == ["P2"]
    assert generator.get_qr_codes_needing_regeneration(365) == ["P1"]
    assert record.is_expired(365) is True


def test_concurrent_regeneration_conflicts(seeded, generator, session_factory):
    generator.generate_qr_code("P1")

    first, second = session_factory(), session_factory()
    try:
        a = QrRecordStore(first).get("P1")
        b = QrRecordStore(second).get("P1")

        a.regenerate("https://cdn.test/a.png", "a", {"propertyName": "A"})
        QrRecordStore(first).upsert(a)

        b.regenerate("https://cdn.test/b.png", "b", {"propertyName": "B"})
        with pytest.raises(AppError) as exc:
            QrRecordStore(second).upsert(b)
        assert exc.value.code == ErrorCode.QR_VERSION_CONFLICT
    finally:
        first.close()
        second.close()


def test_record_lifecycle_helpers():
    record = QrCodeMetadata.create("P9", "https://cdn.test/x.png", "pattern", {"propertyName": "X"})
    assert record.qr_version == 1 and record.is_active
    assert record.image_key == "qr-images/P9.png"
    assert record.metadata_key == "metadata/P9.json"

    record.regenerate("https://cdn.test/y.png", "pattern-2", {"propertyName": "Y"})
    assert record.qr_version == 2
    assert record.qr_code_hash == hashlib.sha256(b"pattern-2").hexdigest()
    assert record.is_active is True


def test_real_encoder_produces_png():
    encoder = QrImageEncoder(size=256, error_correction="high")
    data = encoder.encode(QrCodeData.for_property("P1", "https://qr.test/scan/P1").to_json())

    assert data.startswith(b"\x89PNG")
    with Image.open(BytesIO(data)) as img:
        assert img.size == (256, 256)
