from __future__ import annotations

import os
import sys
import tempfile

import pytest
import pytest_asyncio
import httpx
from fastapi.testclient import TestClient
from httpx import ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# ⚙️ Testumgebung vor dem Import der App festlegen (eigene DB + Medienordner)
_TEST_HOME = tempfile.mkdtemp(prefix="property-qr-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TEST_HOME, 'app.db')}")
os.environ.setdefault("STORAGE_DIR", os.path.join(_TEST_HOME, "media"))
os.environ.setdefault("ANALYTICS_WORKERS", "0")

from database import Base, get_db  # noqa: E402
from dependencies import (  # noqa: E402
    get_dispatcher,
    get_image_encoder,
    get_object_store,
    get_session_factory,
    get_url_builder,
)
from main import app  # noqa: E402
from models.property import Property  # noqa: E402
from services.analytics_service import AnalyticsService  # noqa: E402
from services.batch_coordinator import BatchCoordinator  # noqa: E402
from services.property_service import PropertyService  # noqa: E402
from services.qr_generator import QrGeneratorService  # noqa: E402
from services.qr_store import QrRecordStore  # noqa: E402
from services.scan_engine import ScanRedirectEngine  # noqa: E402
from utils.dispatcher import BackgroundDispatcher  # noqa: E402
from utils.errors import AppError, ErrorCode, ErrorContext  # noqa: E402
from utils.url_builder import UrlBuilder  # noqa: E402

PNG_STUB = b"\x89PNG\r\n\x1a\nstub"


# ---------------------------------------------------------------------------
# 🧪 Test-Doubles für Encoder und Objektspeicher (zählen Aufrufe)
# ---------------------------------------------------------------------------
class FakeEncoder:
    def __init__(self):
        self.calls = []
        self.fail = False

    def encode(self, payload: str) -> bytes:
        self.calls.append(payload)
        if self.fail:
            raise AppError(ErrorCode.QR_GENERATION_FAILED, "encoder down", ErrorContext(operation="encode_qr"))
        return PNG_STUB


class FakeObjectStore:
    def __init__(self, base_url: str = "https://cdn.test"):
        self.base_url = base_url
        self.objects = {}
        self.puts = []
        self.deleted = []
        self.fail = False

    def put(self, key: str, data: bytes, content_type: str = "image/png") -> str:
        if self.fail:
            raise AppError(ErrorCode.UPLOAD_FAILED, "bucket unavailable", ErrorContext(file_name=key))
        self.puts.append(key)
        self.objects[key] = data
        return f"{self.base_url}/{key}"

    def put_json(self, key: str, payload: dict) -> str:
        self.objects[key] = payload
        return f"{self.base_url}/{key}"

    def delete(self, key: str) -> bool:
        self.deleted.append(key)
        return self.objects.pop(key, None) is not None

    def delete_many(self, keys: list) -> list:
        return [key for key in keys if self.delete(key)]


# ---------------------------------------------------------------------------
# 🗄️ Datenbank pro Test (SQLite-Datei, damit Worker-Sessions dieselbe DB sehen)
# ---------------------------------------------------------------------------
@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def seed_property(session, property_id: str, **overrides) -> Property:
    data = dict(
        id=property_id,
        property_name=f"Villa {property_id}",
        location="Nairobi",
        action="for sale",
        price=5_000_000,
        images=[f"https://img.test/{property_id}/1.jpg"],
        onchain_id=None,
        crypto_accepted=False,
        is_verified=True,
        removed=False,
    )
    data.update(overrides)
    prop = Property(**data)
    session.add(prop)
    session.commit()
    return prop


@pytest.fixture
def seeded(db):
    """P1 mit On-Chain-ID, P2 ohne, P3 ungeeignet (Preis 0)."""
    seed_property(db, "P1", onchain_id="42", crypto_accepted=True)
    seed_property(db, "P2")
    seed_property(db, "P3", price=0)
    return db


@pytest.fixture
def urls():
    return UrlBuilder(
        base_url="https://qr.test",
        daobitat_base_url="https://daobitat.test",
        explorer_base_url="https://explorer.test",
    )


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def objects():
    return FakeObjectStore()


@pytest.fixture
def dispatcher():
    return BackgroundDispatcher(max_workers=0)


@pytest.fixture
def generator(db, encoder, objects, urls):
    return QrGeneratorService(
        store=QrRecordStore(db),
        properties=PropertyService(db),
        encoder=encoder,
        objects=objects,
        urls=urls,
    )


@pytest.fixture
def coordinator(db, generator):
    return BatchCoordinator(generator, PropertyService(db), QrRecordStore(db))


@pytest.fixture
def analytics(session_factory, dispatcher):
    return AnalyticsService(session_factory, dispatcher)


@pytest.fixture
def engine(db, analytics, dispatcher, urls, session_factory):
    return ScanRedirectEngine(
        properties=PropertyService(db),
        store=QrRecordStore(db),
        analytics=analytics,
        dispatcher=dispatcher,
        urls=urls,
        session_factory=session_factory,
    )


# ---------------------------------------------------------------------------
# 🌐 HTTP-Clients mit überschriebenen Dependencies
# ---------------------------------------------------------------------------
@pytest.fixture
def app_overrides(session_factory, dispatcher, urls, encoder, objects):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_url_builder] = lambda: urls
    app.dependency_overrides[get_image_encoder] = lambda: encoder
    app.dependency_overrides[get_object_store] = lambda: objects
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def api_client(app_overrides):
    with TestClient(app) as client:
        yield client


@pytest_asyncio.fixture
async def client(app_overrides):
    """Async-Client direkt gegen die ASGI-App."""
    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
