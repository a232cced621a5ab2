from __future__ import annotations

from datetime import timedelta

import pytest

from models.analytics import PropertyScanAnalytics
from models.qr_metadata import QrCodeMetadata
from models.scan_event import (
    DeviceInfo,
    DeviceType,
    RedirectType,
    ScanEventDraft,
    ScanSource,
)
from services.analytics_service import apply_scan, running_success_rate
from utils.timeutils import utc_now

from conftest import seed_property

WINDOWS_CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)
LINUX_FIREFOX = "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0"
IPAD_SAFARI = (
    "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


def test_success_rate_is_incremental_mean():
    rate = 0.0
    for n, ok in enumerate([True, False, True], start=1):
        rate = running_success_rate(rate, n, ok)
    assert rate == pytest.approx(66.67, abs=0.01)


@pytest.mark.parametrize(
    "ua, device, platform, browser",
    [
        (WINDOWS_CHROME, DeviceType.DESKTOP, "Windows", "Chrome"),
        (LINUX_FIREFOX, DeviceType.DESKTOP, "Linux", "Firefox"),
        (IPAD_SAFARI, DeviceType.TABLET, "macOS", "Safari"),
    ],
)
def test_device_info_from_user_agent(ua, device, platform, browser):
    info = DeviceInfo.from_user_agent(ua)
    assert info.device_type == device
    assert info.platform == platform
    assert info.browser == browser
    assert info.is_mobile is (device == DeviceType.MOBILE)


def test_apply_scan_counters_and_buckets():
    now = utc_now()
    row = PropertyScanAnalytics.empty("P1")

    apply_scan(row, now, DeviceType.MOBILE, True, response_time=10, now=now)
    apply_scan(row, now, None, False, response_time=30, now=now)

    assert row.total_scans == 2
    assert row.first_scanned == row.last_scanned
    assert row.device_breakdown == {"mobile": 1, "desktop": 0, "tablet": 0, "unknown": 1}
    assert row.success_rate == pytest.approx(50.0)
    assert row.scans_today == row.scans_this_week == row.scans_this_month == 2
    assert row.scan_trends == [{"date": now.strftime("%Y-%m-%d"), "count": 2}]
    assert row.average_response_time == pytest.approx(20.0)


def test_old_scan_does_not_count_as_today():
    now = utc_now()
    row = PropertyScanAnalytics.empty("P1")
    apply_scan(row, now - timedelta(days=40), DeviceType.DESKTOP, True, now=now)

    assert row.scans_today == 0
    assert row.scans_this_month == 0
    assert row.scan_trends == []


def test_recorded_scans_update_property_aggregate(seeded, analytics, generator, session_factory):
    generator.generate_qr_code("P2")

    analytics.record_scan("P2", ScanSource.QR_CODE, RedirectType.DAOBITAR_ONLY,
                          user_agent=WINDOWS_CHROME, ip_address="1.1.1.1")
    analytics.record_failed_scan("P2", "Property not found", ip_address="1.1.1.1")
    analytics.record_scan("P2", ScanSource.QR_CODE, RedirectType.DAOBITAR_ONLY,
                          user_agent=IPAD_SAFARI, ip_address="2.2.2.2")

    result = analytics.get_property_analytics("P2", include_recent_scans=True)
    stats = result["analytics"]

    assert stats["total_scans"] == 3
    assert stats["unique_scans"] == 2
    assert stats["success_rate"] == pytest.approx(66.67, abs=0.01)
    assert stats["device_breakdown"] == {"mobile": 0, "desktop": 1, "tablet": 1, "unknown": 1}
    assert stats["scans_today"] == 3
    assert len(result["recent_scans"]) == 3

    # erfolgreiche Scans zählen am QR-Datensatz mit
    with session_factory() as fresh:
        record = fresh.query(QrCodeMetadata).filter_by(property_id="P2").one()
        assert record.scan_count == 2
        assert record.last_scanned is not None


def test_failed_scan_of_unknown_id_keeps_only_the_event(seeded, analytics, session_factory):
    analytics.record_failed_scan("ghost", "Property not found: ghost")
    analytics.record_failed_scan("bad.id", "Invalid property ID")
    analytics.record_failed_scan("P3", "Property has invalid price")

    with session_factory() as fresh:
        assert fresh.get(PropertyScanAnalytics, "ghost") is None
        assert fresh.get(PropertyScanAnalytics, "bad.id") is None
        p3 = fresh.get(PropertyScanAnalytics, "P3")
        assert p3.total_scans == 1
        assert p3.success_rate == 0.0

    assert len(analytics.get_property_analytics("ghost", include_recent_scans=True)["recent_scans"]) == 1


def test_unknown_property_analytics_is_empty(analytics):
    stats = analytics.get_property_analytics("nobody")["analytics"]
    assert stats["total_scans"] == 0
    assert stats["success_rate"] == 0.0


def test_system_analytics_and_top_performers(seeded, analytics, generator):
    generator.generate_qr_code("P1")
    for ip in ("1.1.1.1", "1.1.1.1", "3.3.3.3"):
        analytics.record_scan("P1", ScanSource.QR_CODE, RedirectType.DUAL_REDIRECT, ip_address=ip)
    analytics.record_scan("P2", ScanSource.QR_CODE, RedirectType.DAOBITAR_ONLY, ip_address="9.9.9.9")

    system = analytics.get_system_analytics()["system"]

    assert system["total_properties"] == 3
    assert system["properties_with_qr"] == 1
    assert system["total_scans_all_time"] == 4
    assert system["total_scans_today"] == 4
    assert system["qr_generation_stats"]["total_generated"] == 1

    top = system["top_performing_properties"]
    assert top[0]["property_id"] == "P1"
    assert top[0]["property_name"] == "Villa P1"
    assert top[0]["total_scans"] == 3
    assert top[0]["unique_scans"] == 2
    assert top[0]["success_rate"] == 100.0


def _store_event(session_factory, property_id, days_ago=0, **kwargs):
    draft = ScanEventDraft(
        property_id=property_id,
        redirect_type=RedirectType.DAOBITAR_ONLY,
        scanned_at=utc_now() - timedelta(days=days_ago),
        **kwargs,
    )
    with session_factory() as session:
        session.add(draft.build())
        session.commit()


def test_trends_geo_and_comparison(session_factory, analytics):
    for _ in range(3):
        _store_event(session_factory, "P1", geolocation={"country": "KE"})
    _store_event(session_factory, "P1", geolocation={"country": "US"})
    _store_event(session_factory, "P1", days_ago=45)

    trends = analytics.get_property_scan_trends("P1", days=30)
    assert trends == [{"date": utc_now().strftime("%Y-%m-%d"), "count": 4}]

    geo = analytics.get_geographic_distribution("P1", days=30)
    assert geo[0] == {"country": "KE", "count": 3, "percentage": 75.0}
    assert geo[1]["country"] == "US"

    comparison = analytics.get_system_analytics(include_comparison=True)["period_comparison"]
    assert comparison["current_period"]["total_scans"] == 4
    assert comparison["previous_period"]["total_scans"] == 1
    assert comparison["percentage_change"] == 300.0


def test_cleanup_old_events(db, session_factory, analytics):
    seed_property(db, "P1")
    _store_event(session_factory, "P1", days_ago=400)
    _store_event(session_factory, "P1")

    assert analytics.cleanup_old_events(365) == 1
    assert len(analytics.get_property_scan_trends("P1", days=1000)) == 1
