from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from models.property import Property
from models.scan_event import RedirectType, ScanEvent, ScanSource
from services.scan_engine import (
    DecisionKind,
    ScanContext,
    resolve_redirect_type,
    resolve_scan_source,
)
from utils.errors import AppError, ErrorCode

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


@pytest.mark.parametrize(
    "hint, has_onchain, expected",
    [
        ("property", True, RedirectType.DAOBITAR_ONLY),
        ("property", False, RedirectType.DAOBITAR_ONLY),
        ("blockchain", True, RedirectType.BLOCKCHAIN_ONLY),
        ("blockchain", False, RedirectType.DAOBITAR_ONLY),
        ("dual", True, RedirectType.DUAL_REDIRECT),
        ("dual", False, RedirectType.DAOBITAR_ONLY),
        (None, True, RedirectType.DUAL_REDIRECT),
        (None, False, RedirectType.DAOBITAR_ONLY),
        ("weird", True, RedirectType.DUAL_REDIRECT),
    ],
)
def test_redirect_classification(hint, has_onchain, expected):
    assert resolve_redirect_type(hint, has_onchain) == expected


@pytest.mark.parametrize(
    "hint, expected",
    [
        ("qr", ScanSource.QR_CODE),
        ("direct", ScanSource.DIRECT_LINK),
        ("share", ScanSource.SHARE_LINK),
        ("search", ScanSource.SEARCH_ENGINE),
        ("social", ScanSource.SOCIAL_MEDIA),
        ("email", ScanSource.QR_CODE),
        (None, ScanSource.QR_CODE),
    ],
)
def test_source_classification(hint, expected):
    assert resolve_scan_source(hint) == expected


def _events(session_factory, property_id):
    with session_factory() as fresh:
        return list(fresh.execute(select(ScanEvent).where(ScanEvent.property_id == property_id)).scalars())


def test_onchain_property_without_hint_gets_landing_page(seeded, engine, session_factory):
    decision = engine.handle_scan("P1", context=ScanContext(user_agent=IPHONE_UA, ip_address="10.0.0.1"))

    assert decision.kind == DecisionKind.LANDING_PAGE
    assert decision.redirect_type == RedirectType.DUAL_REDIRECT
    assert decision.property_url == "https://daobitat.test/property/P1"
    assert decision.blockchain_url == "https://explorer.test/token/42"
    assert decision.page["price"] == 5_000_000
    assert decision.page["scan_id"] == decision.scan_id

    events = _events(session_factory, "P1")
    assert len(events) == 1
    assert events[0].id == decision.scan_id
    assert events[0].redirect_type == RedirectType.DUAL_REDIRECT.value
    assert events[0].device_info["device_type"] == "mobile"


def test_blockchain_hint_redirects_to_explorer(seeded, engine):
    decision = engine.handle_scan("P1", redirect_hint="blockchain")

    assert decision.kind == DecisionKind.REDIRECT
    assert decision.target_url == "https://explorer.test/token/42"


def test_property_without_onchain_id_falls_back_to_listing(seeded, engine, session_factory):
    decision = engine.handle_scan("P2", source_hint="share", redirect_hint="blockchain")

    assert decision.kind == DecisionKind.REDIRECT
    assert decision.redirect_type == RedirectType.DAOBITAR_ONLY
    assert decision.target_url == "https://daobitat.test/property/P2"

    events = _events(session_factory, "P2")
    assert events[0].scan_source == ScanSource.SHARE_LINK.value
    with session_factory() as fresh:
        assert fresh.get(Property, "P2").clicks == 1


def test_unknown_property_renders_error_and_records_failure(seeded, engine, session_factory):
    decision = engine.handle_scan("ghost")

    assert decision.kind == DecisionKind.ERROR_PAGE
    assert decision.redirect_type == RedirectType.FAILED
    assert decision.error_code == ErrorCode.PROPERTY_NOT_FOUND
    assert decision.error_message == "Property not found"

    events = _events(session_factory, "ghost")
    assert len(events) == 1
    assert events[0].redirect_success is False
    assert events[0].redirect_type == RedirectType.FAILED.value
    assert "ghost" in events[0].event_metadata["error_reason"]


def test_scan_event_carries_current_qr_version(seeded, engine, generator, session_factory):
    generator.generate_qr_code("P2")
    generator.generate_qr_code("P2", force_regenerate=True)

    engine.handle_scan("P2")

    assert _events(session_factory, "P2")[0].qr_version == 2


def test_tracking_parameters_are_recorded(seeded, engine, session_factory):
    context = ScanContext(ref="flyer", utm_source="instagram", utm_campaign="launch", referrer="https://ig.test")
    engine.handle_scan("P2", context=context)

    event = _events(session_factory, "P2")[0]
    assert event.event_metadata == {"ref": "flyer", "utm_source": "instagram", "utm_campaign": "launch"}
    assert event.referrer == "https://ig.test"
    assert event.response_time is not None


def test_scan_data_payload(seeded, engine):
    data = engine.scan_data("P1")

    assert data["success"] is True
    assert data["redirect_type"] == "dual"
    assert data["urls"] == {
        "property_url": "https://daobitat.test/property/P1",
        "blockchain_url": "https://explorer.test/token/42",
        "redirect_page_url": "https://daobitat.test/scan/P1",
    }
    assert engine.scan_data("P2")["urls"]["blockchain_url"] is None

    with pytest.raises(AppError) as exc:
        engine.scan_data("ghost")
    assert exc.value.code == ErrorCode.PROPERTY_NOT_FOUND


def test_analytics_failure_does_not_break_redirect(seeded, engine, analytics, monkeypatch):
    def boom(**kwargs):
        raise RuntimeError("analytics store down")

    monkeypatch.setattr(analytics, "record_scan", boom)

    decision = engine.handle_scan("P2")
    assert decision.kind == DecisionKind.REDIRECT


def test_version_lookup_failure_still_redirects(seeded, engine, session_factory, monkeypatch):
    def db_down(property_id):
        raise OperationalError("SELECT qr_version", {}, Exception("db down"))

    monkeypatch.setattr(engine.store, "current_version", db_down)

    decision = engine.handle_scan("P2")

    assert decision.kind == DecisionKind.REDIRECT
    assert decision.target_url == "https://daobitat.test/property/P2"
    assert _events(session_factory, "P2")[0].qr_version == 1
