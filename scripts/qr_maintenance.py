#!/usr/bin/env python3
"""
Script: qr_maintenance.py
Project: DAO-Bitat Property QR
Description:
    Wartungsaufgaben ohne laufenden Server:
      missing  – QR-Codes für alle geeigneten Properties ohne QR erzeugen
      expired  – aktive QR-Codes älter als QR_EXPIRY_DAYS neu erzeugen
      cleanup  – alte Scan-Events löschen (ANALYTICS_RETENTION_DAYS)
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time

# ─────────────────────────────────────────────
# 🧩 Projektpfad einbinden
# ─────────────────────────────────────────────
BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.append(BASE_DIR)

# ─────────────────────────────────────────────
# 📦 Interne Importe
# ─────────────────────────────────────────────
from database import SessionLocal, init_db  # noqa: E402
from models.qr_payload import BatchQrCodeResponse  # noqa: E402
from services.analytics_service import AnalyticsService  # noqa: E402
from services.batch_coordinator import BatchCoordinator  # noqa: E402
from services.image_encoder import QrImageEncoder  # noqa: E402
from services.object_store import LocalObjectStore  # noqa: E402
from services.property_service import PropertyService  # noqa: E402
from services.qr_generator import QrGeneratorService  # noqa: E402
from services.qr_store import QrRecordStore  # noqa: E402
from settings import get_settings  # noqa: E402
from utils.dispatcher import BackgroundDispatcher  # noqa: E402
from utils.logging_config import configure_logging  # noqa: E402
from utils.url_builder import UrlBuilder  # noqa: E402

logger = logging.getLogger("qr_maintenance")


def _coordinator(db) -> BatchCoordinator:
    settings = get_settings()
    store = QrRecordStore(db)
    properties = PropertyService(db)
    generator = QrGeneratorService(
        store=store,
        properties=properties,
        encoder=QrImageEncoder.from_settings(settings),
        objects=LocalObjectStore.from_settings(settings),
        urls=UrlBuilder.from_settings(settings),
    )
    return BatchCoordinator(generator, properties, store)


def _summary(result: BatchQrCodeResponse, elapsed: float) -> None:
    logger.info("────────────────────────────────────────────")
    logger.info("✅ Fertig! Zusammenfassung:")
    logger.info(f"• Gesamt: {result.total_requested}")
    logger.info(f"• Erfolgreich: {result.total_successful}")
    logger.info(f"• Fehler: {result.total_failed}")
    for failure in result.failed:
        logger.warning(f"  ↳ {failure.property_id}: {failure.error_code} – {failure.error}")
    logger.info(f"• Laufzeit: {elapsed:.2f} Sekunden")
    logger.info("────────────────────────────────────────────")


def run(command: str, days: int | None = None) -> int:
    settings = get_settings()
    init_db()
    start = time.time()

    if command == "cleanup":
        analytics = AnalyticsService(SessionLocal, BackgroundDispatcher(max_workers=0))
        deleted = analytics.cleanup_old_events(days or settings.analytics_retention_days)
        logger.info(f"🧹 {deleted} Scan-Events gelöscht")
        return 0

    with SessionLocal() as db:
        coordinator = _coordinator(db)
        if command == "missing":
            result = coordinator.generate_missing()
        else:
            result = coordinator.regenerate_expired(days or settings.qr_expiry_days)
    _summary(result, time.time() - start)
    return 1 if result.total_failed else 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="DAO-Bitat Property QR – Wartung")
    parser.add_argument("command", choices=["missing", "expired", "cleanup"])
    parser.add_argument("--days", type=int, default=None, help="Ablauf- bzw. Aufbewahrungsdauer in Tagen")
    args = parser.parse_args(argv)

    configure_logging(get_settings().log_level)
    return run(args.command, args.days)


if __name__ == "__main__":
    sys.exit(main())
