# =============================================================================
# 📝 utils/logging_config.py
# -----------------------------------------------------------------------------
# Einheitliches Logging-Setup (Konsole, Zeitstempel, Level aus LOG_LEVEL)
# =============================================================================

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Installiert genau einen Stream-Handler am Root-Logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if any(getattr(h, "_property_qr", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    handler._property_qr = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # SQLAlchemy-Engine bleibt leise, außer im DEBUG-Modus
    if root.level > logging.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
