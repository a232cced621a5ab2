# =============================================================================
# 📈 services/analytics_service.py
# -----------------------------------------------------------------------------
# Scan-Erfassung + Aggregation (pro Property und systemweit).
# Läuft im Hintergrund-Dispatcher mit eigenen Sessions; Fehler bleiben
# im Log und erreichen nie den Scan-Redirect.
# =============================================================================

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models.analytics import (
    SYSTEM_ANALYTICS_ID,
    PropertyScanAnalytics,
    SystemAnalytics,
    empty_device_breakdown,
)
from models.property import Property
from models.scan_event import (
    DeviceInfo,
    DeviceType,
    RedirectType,
    ScanEvent,
    ScanEventDraft,
    ScanSource,
)
from services.property_service import PropertyService
from services.qr_store import QrRecordStore
from utils.dispatcher import BackgroundDispatcher
from utils.errors import AppError, ErrorCode, ErrorContext
from utils.timeutils import as_utc, start_of_day, start_of_month, start_of_week, utc_now

logger = logging.getLogger(__name__)

TREND_WINDOW_DAYS = 30
TOP_PERFORMERS_LIMIT = 10
TOP_PERFORMERS_DAYS = 30
GEO_LIMIT = 20


# ---------------------------------------------------------------------------
# 🧮 Reine Aggregationslogik
# ---------------------------------------------------------------------------
def running_success_rate(previous_rate: float, total: int, success: bool) -> float:
    """Inkrementeller Mittelwert in Prozent; total zählt den neuen Scan bereits mit."""
    if total <= 0:
        return 0.0
    hit = 100.0 if success else 0.0
    return ((previous_rate * (total - 1)) + hit) / total


def apply_scan(
    analytics: PropertyScanAnalytics,
    scanned_at: datetime,
    device_type: Optional[DeviceType],
    success: bool,
    response_time: Optional[int] = None,
    now: Optional[datetime] = None,
) -> PropertyScanAnalytics:
    now = now or utc_now()
    scanned_at = as_utc(scanned_at)

    analytics.total_scans = (analytics.total_scans or 0) + 1
    analytics.last_scanned = scanned_at
    if analytics.first_scanned is None:
        analytics.first_scanned = scanned_at

    breakdown = dict(analytics.device_breakdown or empty_device_breakdown())
    bucket = (device_type or DeviceType.UNKNOWN).value
    breakdown[bucket] = breakdown.get(bucket, 0) + 1
    analytics.device_breakdown = breakdown

    analytics.success_rate = running_success_rate(
        analytics.success_rate or 0.0, analytics.total_scans, success
    )

    # Zeitfenster relativ zu "jetzt" (Woche ab Montag, Monat ab dem 1.)
    if scanned_at >= start_of_day(now):
        analytics.scans_today = (analytics.scans_today or 0) + 1
    if scanned_at >= start_of_week(now):
        analytics.scans_this_week = (analytics.scans_this_week or 0) + 1
    if scanned_at >= start_of_month(now):
        analytics.scans_this_month = (analytics.scans_this_month or 0) + 1

    # Tagesreihe (letzte 30 Tage)
    day = scanned_at.strftime("%Y-%m-%d")
    oldest = (now - timedelta(days=TREND_WINDOW_DAYS - 1)).strftime("%Y-%m-%d")
    trends = {t["date"]: t["count"] for t in (analytics.scan_trends or [])}
    trends[day] = trends.get(day, 0) + 1
    analytics.scan_trends = [
        {"date": d, "count": c} for d, c in sorted(trends.items()) if d >= oldest
    ]

    if response_time is not None:
        samples = (analytics.response_time_samples or 0) + 1
        avg = analytics.average_response_time or 0.0
        analytics.average_response_time = avg + (response_time - avg) / samples
        analytics.response_time_samples = samples

    analytics.last_updated = now
    return analytics


def _percentage_change(current: int, previous: int) -> float:
    if previous <= 0:
        return 0.0
    return (current - previous) / previous * 100.0


# ---------------------------------------------------------------------------
# 🧾 Serialisierung
# ---------------------------------------------------------------------------
def _iso(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value else None


def _serialize_property_analytics(row: PropertyScanAnalytics) -> Dict[str, Any]:
    return {
        "property_id": row.property_id,
        "total_scans": row.total_scans,
        "unique_scans": row.unique_scans,
        "last_scanned": _iso(row.last_scanned),
        "first_scanned": _iso(row.first_scanned),
        "scans_today": row.scans_today,
        "scans_this_week": row.scans_this_week,
        "scans_this_month": row.scans_this_month,
        "top_countries": list(row.top_countries or []),
        "device_breakdown": dict(row.device_breakdown or empty_device_breakdown()),
        "scan_trends": list(row.scan_trends or []),
        "average_response_time": round(row.average_response_time or 0.0, 2),
        "success_rate": round(row.success_rate or 0.0, 2),
        "last_updated": _iso(row.last_updated),
    }


def _serialize_event(ev: ScanEvent) -> Dict[str, Any]:
    return {
        "id": ev.id,
        "property_id": ev.property_id,
        "qr_version": ev.qr_version,
        "scanned_at": _iso(ev.scanned_at),
        "scan_source": ev.scan_source,
        "redirect_type": ev.redirect_type,
        "redirect_success": ev.redirect_success,
        "device_info": ev.device_info,
        "referrer": ev.referrer,
        "response_time": ev.response_time,
        "metadata": ev.event_metadata or {},
    }


def _serialize_system(row: Optional[SystemAnalytics]) -> Dict[str, Any]:
    if row is None:
        row = SystemAnalytics(id=SYSTEM_ANALYTICS_ID)
    return {
        "total_properties": row.total_properties or 0,
        "properties_with_qr": row.properties_with_qr or 0,
        "total_scans_all_time": row.total_scans_all_time or 0,
        "total_scans_today": row.total_scans_today or 0,
        "total_scans_this_week": row.total_scans_this_week or 0,
        "total_scans_this_month": row.total_scans_this_month or 0,
        "average_scans_per_property": round(row.average_scans_per_property or 0.0, 2),
        "top_performing_properties": list(row.top_performing_properties or []),
        "qr_generation_stats": dict(row.qr_generation_stats or {}),
        "last_updated": _iso(row.last_updated),
    }


# =============================================================================
# 📊 AnalyticsService
# =============================================================================
class AnalyticsService:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        dispatcher: BackgroundDispatcher,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher

    # ---------------------------------------------------------------------
    # ✍️ Erfassen
    # ---------------------------------------------------------------------
    def record_scan(
        self,
        property_id: str,
        scan_source: ScanSource,
        redirect_type: RedirectType,
        qr_version: int = 1,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        session_id: Optional[str] = None,
        referrer: Optional[str] = None,
        response_time: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        scan_id: Optional[str] = None,
        redirect_success: bool = True,
        update_aggregates: bool = True,
    ) -> str:
        draft = ScanEventDraft(
            property_id=property_id,
            redirect_type=redirect_type,
            scan_source=scan_source,
            qr_version=qr_version,
            user_agent=user_agent,
            ip_address=ip_address,
            session_id=session_id,
            referrer=referrer,
            redirect_success=redirect_success,
            response_time=response_time,
            metadata=dict(metadata or {}),
        )
        if scan_id:
            draft.id = scan_id
        if user_agent:
            draft.device_info = DeviceInfo.from_user_agent(user_agent)

        self._insert_event(draft)
        logger.info(
            f"📊 Scan {draft.id} erfasst: Property {property_id} "
            f"({redirect_type.value}, Quelle {scan_source.value})"
        )

        if update_aggregates:
            self.dispatcher.submit("update_property_analytics", self.update_property_analytics, draft)
        self.dispatcher.submit("update_system_analytics", self.update_system_analytics)
        return draft.id

    def record_failed_scan(
        self,
        property_id: str,
        error_reason: str,
        scan_source: ScanSource = ScanSource.QR_CODE,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        session_id: Optional[str] = None,
        referrer: Optional[str] = None,
        scan_id: Optional[str] = None,
    ) -> str:
        # unbekannte IDs bekommen keine eigene Aggregatzeile
        with self.session_factory() as db:
            known = PropertyService(db).validate_property(property_id)
        return self.record_scan(
            property_id=property_id,
            scan_source=scan_source,
            redirect_type=RedirectType.FAILED,
            user_agent=user_agent,
            ip_address=ip_address,
            session_id=session_id,
            referrer=referrer,
            metadata={"error_reason": error_reason},
            scan_id=scan_id,
            redirect_success=False,
            update_aggregates=known,
        )

    def _insert_event(self, draft: ScanEventDraft) -> None:
        with self.session_factory() as db:
            try:
                db.add(draft.build())
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise AppError(
                    ErrorCode.ANALYTICS_SERVICE_ERROR,
                    f"Failed to record scan event: {exc}",
                    ErrorContext(property_id=draft.property_id, operation="record_scan"),
                )

    # ---------------------------------------------------------------------
    # 🔄 Aggregate
    # ---------------------------------------------------------------------
    def update_property_analytics(self, draft: ScanEventDraft) -> None:
        # zwei Versuche: parallele Erst-Inserts derselben Property kollidieren
        for attempt in (1, 2):
            with self.session_factory() as db:
                try:
                    self._apply_to_property(db, draft)
                    db.commit()
                    return
                except IntegrityError:
                    db.rollback()
                    if attempt == 2:
                        raise
                    logger.debug(f"Analytics-Zeile für {draft.property_id} parallel angelegt – erneuter Versuch")

    def _apply_to_property(self, db: Session, draft: ScanEventDraft) -> None:
        row = db.get(PropertyScanAnalytics, draft.property_id)
        if row is None:
            row = PropertyScanAnalytics.empty(draft.property_id)
            db.add(row)

        device_type = draft.device_info.device_type if draft.device_info else None
        apply_scan(
            row,
            scanned_at=draft.scanned_at,
            device_type=device_type,
            success=draft.redirect_success,
            response_time=draft.response_time,
        )
        row.unique_scans = self._count_unique_visitors(db, draft.property_id)
        row.top_countries = self._geo_counts(db, draft.property_id, TREND_WINDOW_DAYS)[:5]

        if draft.redirect_success:
            # committet die Aggregatzeile mit
            QrRecordStore(db).record_scan(draft.property_id, draft.scanned_at)

    @staticmethod
    def _count_unique_visitors(db: Session, property_id: str) -> int:
        visitor = func.coalesce(ScanEvent.ip_address, ScanEvent.session_id)
        return db.execute(
            select(func.count(func.distinct(visitor)))
            .where(ScanEvent.property_id == property_id)
            .where(visitor.is_not(None))
        ).scalar_one()

    def update_system_analytics(self) -> None:
        now = utc_now()
        with self.session_factory() as db:
            row = db.get(SystemAnalytics, SYSTEM_ANALYTICS_ID)
            if row is None:
                row = SystemAnalytics(id=SYSTEM_ANALYTICS_ID)
                db.add(row)

            store = QrRecordStore(db)
            row.total_properties = PropertyService(db).count_properties()
            row.properties_with_qr = store.count()
            row.total_scans_all_time = self._count_events(db)
            row.total_scans_today = self._count_events(db, start_of_day(now))
            row.total_scans_this_week = self._count_events(db, start_of_week(now))
            row.total_scans_this_month = self._count_events(db, start_of_month(now))
            row.average_scans_per_property = (
                row.total_scans_all_time / row.properties_with_qr if row.properties_with_qr else 0.0
            )
            row.top_performing_properties = self._top_performers(db, TOP_PERFORMERS_LIMIT, TOP_PERFORMERS_DAYS)
            row.qr_generation_stats = self._generation_stats(store, now)
            row.last_updated = now
            try:
                db.commit()
            except IntegrityError:
                # parallel angelegt – der andere Schreiber hat dieselben Zahlen
                db.rollback()

    @staticmethod
    def _count_events(db: Session, since: Optional[datetime] = None) -> int:
        stmt = select(func.count()).select_from(ScanEvent)
        if since is not None:
            stmt = stmt.where(ScanEvent.scanned_at >= since)
        return db.execute(stmt).scalar_one()

    @staticmethod
    def _generation_stats(store: QrRecordStore, now: datetime) -> Dict[str, Any]:
        return {
            "total_generated": store.count(),
            "generated_today": store.count_generated_since(start_of_day(now)),
            "generated_this_week": store.count_generated_since(start_of_week(now)),
            "generated_this_month": store.count_generated_since(start_of_month(now)),
            "average_generation_time": 0.0,
            "failure_rate": 0.0,
        }

    @staticmethod
    def _top_performers(db: Session, limit: int, days: int) -> List[Dict[str, Any]]:
        since = utc_now() - timedelta(days=days)
        visitor = func.coalesce(ScanEvent.ip_address, ScanEvent.session_id)
        total = func.count(ScanEvent.id).label("total_scans")
        stmt = (
            select(
                ScanEvent.property_id,
                total,
                func.count(func.distinct(visitor)).label("unique_scans"),
                func.sum(case((ScanEvent.redirect_success.is_(True), 1), else_=0)).label("successful"),
            )
            .where(ScanEvent.scanned_at >= since)
            .group_by(ScanEvent.property_id)
            .order_by(total.desc(), ScanEvent.property_id)
            .limit(limit)
        )
        rows = db.execute(stmt).all()
        names = dict(
            db.execute(
                select(Property.id, Property.property_name).where(
                    Property.id.in_([r.property_id for r in rows])
                )
            ).all()
        ) if rows else {}

        return [
            {
                "property_id": r.property_id,
                "property_name": names.get(r.property_id, f"Property {r.property_id}"),
                "total_scans": r.total_scans,
                "unique_scans": r.unique_scans,
                "success_rate": round((r.successful or 0) / r.total_scans * 100.0, 2) if r.total_scans else 0.0,
            }
            for r in rows
        ]

    @staticmethod
    def _geo_counts(db: Session, property_id: Optional[str], days: int) -> List[Dict[str, Any]]:
        since = utc_now() - timedelta(days=days)
        stmt = (
            select(ScanEvent.geolocation)
            .where(ScanEvent.scanned_at >= since)
            .where(ScanEvent.geolocation.is_not(None))
        )
        if property_id:
            stmt = stmt.where(ScanEvent.property_id == property_id)
        counts = Counter(
            geo.get("country")
            for geo in db.execute(stmt).scalars()
            if isinstance(geo, dict) and geo.get("country")
        )
        total = sum(counts.values())
        return [
            {
                "country": country,
                "count": count,
                "percentage": round(count / total * 100.0, 2) if total else 0.0,
            }
            for country, count in counts.most_common(GEO_LIMIT)
        ]

    # ---------------------------------------------------------------------
    # 🔍 Abfragen
    # ---------------------------------------------------------------------
    def get_property_analytics(self, property_id: str, include_recent_scans: bool = False) -> Dict[str, Any]:
        with self.session_factory() as db:
            row = db.get(PropertyScanAnalytics, property_id) or PropertyScanAnalytics.empty(property_id)
            result: Dict[str, Any] = {
                "property_id": property_id,
                "analytics": _serialize_property_analytics(row),
                "recent_scans": [],
            }
            if include_recent_scans:
                since = utc_now() - timedelta(days=7)
                events = db.execute(
                    select(ScanEvent)
                    .where(ScanEvent.property_id == property_id)
                    .where(ScanEvent.scanned_at >= since)
                    .order_by(ScanEvent.scanned_at.desc())
                ).scalars()
                result["recent_scans"] = [_serialize_event(ev) for ev in events]
            return result

    def get_system_analytics(self, include_comparison: bool = False) -> Dict[str, Any]:
        with self.session_factory() as db:
            result: Dict[str, Any] = {
                "system": _serialize_system(db.get(SystemAnalytics, SYSTEM_ANALYTICS_ID)),
                "period_comparison": None,
            }
            if include_comparison:
                result["period_comparison"] = self._period_comparison(db)
            return result

    def _period_comparison(self, db: Session) -> Dict[str, Any]:
        now = utc_now()
        thirty = now - timedelta(days=30)
        sixty = now - timedelta(days=60)
        visitor = func.coalesce(ScanEvent.ip_address, ScanEvent.session_id)

        def period(start: datetime, end: datetime) -> Dict[str, Any]:
            total, unique = db.execute(
                select(func.count(ScanEvent.id), func.count(func.distinct(visitor)))
                .where(ScanEvent.scanned_at >= start)
                .where(ScanEvent.scanned_at < end)
            ).one()
            return {
                "total_scans": total,
                "unique_scans": unique,
                "average_scans_per_day": round(total / 30.0, 2),
            }

        current = period(thirty, now + timedelta(seconds=1))
        previous = period(sixty, thirty)
        return {
            "current_period": current,
            "previous_period": previous,
            "percentage_change": round(
                _percentage_change(current["total_scans"], previous["total_scans"]), 2
            ),
        }

    def get_top_performing_properties(self, limit: int = 10, days: int = 30) -> List[Dict[str, Any]]:
        with self.session_factory() as db:
            return self._top_performers(db, limit, days)

    def get_property_scan_trends(self, property_id: str, days: int = 30) -> List[Dict[str, Any]]:
        since = utc_now() - timedelta(days=days)
        with self.session_factory() as db:
            stamps = db.execute(
                select(ScanEvent.scanned_at)
                .where(ScanEvent.property_id == property_id)
                .where(ScanEvent.scanned_at >= since)
            ).scalars()
            counts = Counter(as_utc(ts).strftime("%Y-%m-%d") for ts in stamps)
        return [{"date": day, "count": counts[day]} for day in sorted(counts)]

    def get_geographic_distribution(self, property_id: Optional[str] = None, days: int = 30) -> List[Dict[str, Any]]:
        with self.session_factory() as db:
            return self._geo_counts(db, property_id, days)

    def cleanup_old_events(self, retention_days: int) -> int:
        cutoff = utc_now() - timedelta(days=retention_days)
        with self.session_factory() as db:
            result = db.execute(delete(ScanEvent).where(ScanEvent.scanned_at < cutoff))
            db.commit()
        logger.info(f"🧹 {result.rowcount} alte Scan-Events gelöscht (älter als {retention_days} Tage)")
        return result.rowcount
