from __future__ import annotations

from datetime import timedelta

from models.qr_payload import QrGenerationReason, QrStatus
from services.qr_store import QrRecordStore
from utils.timeutils import utc_now


def test_empty_batch_is_valid(coordinator):
    result = coordinator.batch_generate([])

    assert result.total_requested == 0
    assert result.total_successful == 0
    assert result.total_failed == 0
    assert result.successful == [] and result.failed == []


def test_batch_isolates_failures(seeded, coordinator):
    result = coordinator.batch_generate(["P1", "ghost", "P3", "bad.id"])

    assert result.total_requested == 4
    assert [r.property_id for r in result.successful] == ["P1"]
    assert {f.property_id: f.error_code for f in result.failed} == {
        "ghost": "PROPERTY_NOT_FOUND",
        "P3": "PROPERTY_NOT_ELIGIBLE",
        "bad.id": "INVALID_PROPERTY_ID",
    }
    assert result.total_successful + result.total_failed == result.total_requested


def test_batch_reports_existing_codes(seeded, coordinator):
    coordinator.batch_generate(["P1"])
    result = coordinator.batch_generate(["P1", "P2"], reason=QrGenerationReason.BATCH_GENERATION)

    statuses = {r.property_id: r.status for r in result.successful}
    assert statuses == {"P1": QrStatus.EXISTS, "P2": QrStatus.GENERATED}


def test_generate_missing_only_covers_eligible_without_qr(seeded, coordinator):
    coordinator.batch_generate(["P1"])

    result = coordinator.generate_missing()

    assert [r.property_id for r in result.successful] == ["P2"]
    assert result.successful[0].metadata.generation_reason == QrGenerationReason.BATCH_GENERATION
    assert coordinator.generate_missing().total_requested == 0


def test_regenerate_expired(seeded, coordinator, db):
    coordinator.batch_generate(["P1", "P2"])
    record = QrRecordStore(db).get("P2")
    record.generated_at = utc_now() - timedelta(days=500)
    db.commit()

    result = coordinator.regenerate_expired(365)

    assert [r.property_id for r in result.successful] == ["P2"]
    assert result.successful[0].status == QrStatus.REGENERATED
    assert result.successful[0].qr_version == 2
    assert result.successful[0].metadata.generation_reason == QrGenerationReason.EXPIRED_QR

    # frisch regeneriert → läuft nicht sofort wieder ab
    assert coordinator.regenerate_expired(365).total_requested == 0
    db.expire_all()
    refreshed = QrRecordStore(db).get("P2")
    assert refreshed.qr_version == 2
    assert refreshed.is_expired(365) is False
