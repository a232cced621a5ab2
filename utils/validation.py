# =============================================================================
# 🔎 utils/validation.py
# -----------------------------------------------------------------------------
# Formatprüfung für Property-IDs (1–64 Zeichen, A-Z a-z 0-9 _ -).
# =============================================================================

from __future__ import annotations

import re

from utils.errors import invalid_property_id

PROPERTY_ID_MAX_LENGTH = 64
_PROPERTY_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_property_id(property_id: str) -> str:
    """Prüft das Format einer Property-ID und gibt sie unverändert zurück."""
    if property_id is None or property_id.strip() == "":
        raise invalid_property_id(property_id or "", "property id must not be empty")
    if len(property_id) > PROPERTY_ID_MAX_LENGTH:
        raise invalid_property_id(
            property_id, f"property id must be at most {PROPERTY_ID_MAX_LENGTH} characters"
        )
    if not _PROPERTY_ID_RE.match(property_id):
        raise invalid_property_id(
            property_id, "only letters, digits, '-' and '_' are allowed"
        )
    return property_id
