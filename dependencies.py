# =============================================================================
# 🧩 dependencies.py
# -----------------------------------------------------------------------------
# FastAPI-Dependencies: Services pro Request, geteilte Singletons
# (Dispatcher, Objektspeicher, Encoder). Tests ersetzen sie über
# app.dependency_overrides.
# =============================================================================

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from database import SessionLocal, get_db
from services.analytics_service import AnalyticsService
from services.batch_coordinator import BatchCoordinator
from services.image_encoder import QrImageEncoder
from services.object_store import LocalObjectStore
from services.property_service import PropertyService
from services.qr_generator import QrGeneratorService
from services.qr_store import QrRecordStore
from services.scan_engine import ScanRedirectEngine
from settings import Settings, get_settings
from utils.dispatcher import BackgroundDispatcher
from utils.url_builder import UrlBuilder


def get_session_factory():
    return SessionLocal


@lru_cache()
def get_dispatcher() -> BackgroundDispatcher:
    return BackgroundDispatcher(max_workers=get_settings().analytics_workers)


def get_url_builder(settings: Settings = Depends(get_settings)) -> UrlBuilder:
    return UrlBuilder.from_settings(settings)


def get_object_store(settings: Settings = Depends(get_settings)) -> LocalObjectStore:
    return LocalObjectStore.from_settings(settings)


def get_image_encoder(settings: Settings = Depends(get_settings)) -> QrImageEncoder:
    return QrImageEncoder.from_settings(settings)


def get_analytics_service(
    session_factory=Depends(get_session_factory),
    dispatcher: BackgroundDispatcher = Depends(get_dispatcher),
) -> AnalyticsService:
    return AnalyticsService(session_factory, dispatcher)


def get_qr_generator(
    db: Session = Depends(get_db),
    encoder: QrImageEncoder = Depends(get_image_encoder),
    objects: LocalObjectStore = Depends(get_object_store),
    urls: UrlBuilder = Depends(get_url_builder),
) -> QrGeneratorService:
    return QrGeneratorService(
        store=QrRecordStore(db),
        properties=PropertyService(db),
        encoder=encoder,
        objects=objects,
        urls=urls,
    )


def get_batch_coordinator(
    db: Session = Depends(get_db),
    generator: QrGeneratorService = Depends(get_qr_generator),
) -> BatchCoordinator:
    return BatchCoordinator(generator, PropertyService(db), QrRecordStore(db))


def get_scan_engine(
    db: Session = Depends(get_db),
    analytics: AnalyticsService = Depends(get_analytics_service),
    dispatcher: BackgroundDispatcher = Depends(get_dispatcher),
    urls: UrlBuilder = Depends(get_url_builder),
    session_factory=Depends(get_session_factory),
) -> ScanRedirectEngine:
    return ScanRedirectEngine(
        properties=PropertyService(db),
        store=QrRecordStore(db),
        analytics=analytics,
        dispatcher=dispatcher,
        urls=urls,
        session_factory=session_factory,
    )
