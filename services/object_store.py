# =============================================================================
# 🗂️ services/object_store.py
# -----------------------------------------------------------------------------
# Objektspeicher mit S3-artigen Keys (qr-images/{id}.png, metadata/{id}.json),
# lokal im STORAGE_DIR abgelegt und über /media bzw. ein CDN ausgeliefert.
# =============================================================================

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from settings import Settings
from utils.errors import AppError, ErrorCode, ErrorContext

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 1024


def _upload_error(key: str, message: str, operation: str = "upload") -> AppError:
    return AppError(
        ErrorCode.UPLOAD_FAILED,
        message,
        ErrorContext(file_name=key, operation=operation),
    )


def validate_key(key: str) -> str:
    if not key:
        raise _upload_error(key, "Invalid key: key cannot be empty", "validate_key")
    if len(key) > MAX_KEY_LENGTH:
        raise _upload_error(key, "Invalid key: key too long (max 1024 characters)", "validate_key")
    if "//" in key or key.startswith("/"):
        raise _upload_error(key, "Invalid key: invalid key format", "validate_key")
    if ".." in Path(key).parts:
        raise _upload_error(key, "Invalid key: path traversal is not allowed", "validate_key")
    return key


class LocalObjectStore:
    def __init__(self, root_dir: str, public_base_url: str):
        self.root = Path(root_dir)
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalObjectStore":
        public = settings.public_media_url or f"{settings.base_url}/media"
        return cls(settings.storage_dir, public)

    def _path(self, key: str) -> Path:
        return self.root / validate_key(key)

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    # ---------------------------------------------------------------------
    # ⬆️ Upload
    # ---------------------------------------------------------------------
    def put(self, key: str, data: bytes, content_type: str = "image/png") -> str:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError as exc:
            logger.error(f"❌ Upload fehlgeschlagen ({key}): {exc}")
            raise _upload_error(key, f"Upload failed: {exc}")
        logger.info(f"✅ Objekt gespeichert: {key} ({len(data)} bytes, {content_type})")
        return self.public_url(key)

    def put_json(self, key: str, payload: Dict[str, Any]) -> str:
        body = json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
        return self.put(key, body, content_type="application/json")

    # ---------------------------------------------------------------------
    # 🗑️ Löschen
    # ---------------------------------------------------------------------
    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as exc:
            raise _upload_error(key, f"Delete failed: {exc}", "delete")
        return True

    def delete_many(self, keys: List[str]) -> List[str]:
        deleted = []
        for key in keys:
            try:
                if self.delete(key):
                    deleted.append(key)
            except AppError as exc:
                logger.warning(f"⚠️ Konnte {key} nicht löschen: {exc.message}")
        return deleted
