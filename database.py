# =============================================================================
# 🗄️ database.py
# -----------------------------------------------------------------------------
# SQLAlchemy-Datenbankkonfiguration für den Property-QR-Service
# DATABASE_URL aus .env (SQLite als Standard), UTC-Zeitstempel
# =============================================================================

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from settings import get_settings


def build_engine(database_url: str) -> Engine:
    """Erstellt eine Engine; SQLite braucht check_same_thread=False für Worker-Threads."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
        )
    # pool_pre_ping = erkennt automatisch unterbrochene Verbindungen
    return create_engine(database_url, pool_pre_ping=True, pool_recycle=280)


# 🔹 Engine erstellen
engine = build_engine(get_settings().database_url)

# 🔹 SessionFactory – erzeugt Session für jede Anfrage
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# 🔹 Basisklasse für alle SQLAlchemy-Modelle
Base = declarative_base()


def init_db(bind: Engine | None = None) -> None:
    """Legt alle Tabellen an (idempotent)."""
    # Modelle importieren, damit sie in Base.metadata registriert sind
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


# 🔹 Dependency für FastAPI
def get_db():
    """
    Erstellt eine neue Datenbank-Session pro Anfrage und schließt sie automatisch.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
