# =============================================================================
# 🧠 services/image_encoder.py
# -----------------------------------------------------------------------------
# Rendert eine QR-Payload als PNG (qrcode + Pillow), optional mit Logo.
# =============================================================================

from __future__ import annotations

import logging
import os
from io import BytesIO
from typing import Optional

import qrcode
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q
from PIL import Image, ImageColor

from settings import Settings
from utils.errors import AppError, ErrorCode, ErrorContext

logger = logging.getLogger(__name__)

ERROR_CORRECTION = {
    "low": ERROR_CORRECT_L,
    "medium": ERROR_CORRECT_M,
    "quartile": ERROR_CORRECT_Q,
    "high": ERROR_CORRECT_H,
}


class QrImageEncoder:
    """encode(payload) -> PNG-Bytes. Keine Dateien, kein Upload."""

    def __init__(
        self,
        size: int = 256,
        error_correction: str = "medium",
        foreground: str = "#000000",
        background: str = "#FFFFFF",
        logo_path: Optional[str] = None,
    ):
        self.size = size
        self.error_correction = ERROR_CORRECTION.get(error_correction, ERROR_CORRECT_M)
        self.foreground = foreground
        self.background = background
        self.logo_path = logo_path

    @classmethod
    def from_settings(cls, settings: Settings) -> "QrImageEncoder":
        return cls(
            size=settings.qr_default_size,
            error_correction=settings.qr_error_correction,
            foreground=settings.qr_foreground_color,
            background=settings.qr_background_color,
            logo_path=settings.qr_logo_path,
        )

    def encode(self, payload: str) -> bytes:
        try:
            return self._render(payload)
        except Exception as exc:
            logger.error(f"❌ QR-Rendering fehlgeschlagen: {exc}")
            raise AppError(
                ErrorCode.QR_GENERATION_FAILED,
                f"QR code generation failed: {exc}",
                ErrorContext(operation="encode_qr"),
            )

    def _render(self, payload: str) -> bytes:
        # === 1️⃣ QR-Matrix ===
        qr = qrcode.QRCode(
            version=None,
            error_correction=self.error_correction,
            box_size=10,
            border=4,
        )
        qr.add_data(payload)
        qr.make(fit=True)

        # === 2️⃣ Bild in Wunschfarben ===
        img = qr.make_image(
            fill_color=ImageColor.getrgb(self.foreground),
            back_color=ImageColor.getrgb(self.background),
        ).convert("RGBA")

        # === 3️⃣ Logo mittig (nur mit hoher Fehlerkorrektur sinnvoll) ===
        if self.logo_path and os.path.exists(self.logo_path):
            try:
                logo = Image.open(self.logo_path).convert("RGBA")
                logo_size = int(img.width * 0.2)
                logo = logo.resize((logo_size, logo_size), Image.Resampling.LANCZOS)
                pos = ((img.width - logo_size) // 2, (img.height - logo_size) // 2)
                img.alpha_composite(logo, dest=pos)
            except OSError as e:
                logger.warning(f"⚠️ Logo konnte nicht eingebettet werden: {e}")

        # === 4️⃣ Finale Skalierung ===
        img = img.resize((self.size, self.size), Image.Resampling.NEAREST)

        buffer = BytesIO()
        img.convert("RGB").save(buffer, format="PNG")
        data = buffer.getvalue()
        if not data:
            raise ValueError("empty PNG buffer")
        return data
