# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — QR Layer
Resolves and decodes a guest's QR image and draws it (or a visible
placeholder) as a fixed-size square centred on the QR position.

Source precedence: inline base64 data first, then the remote path
(resolved against the backend storage URL unless already absolute).
A decode failure never propagates — it yields a QrOutcome with
image=None and the compositor draws the red "QR Error" square.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict

from cardengine.models.card import Guest
from cardengine.modules.rendering.text_layer import draw_text
from cardengine.utils.image_utils import (
    decode_data_url,
    decode_image_bytes,
    resize_to_square,
)
from cardengine.utils.logger import get_logger

log = get_logger(__name__)

_PLACEHOLDER_BGR = (0, 0, 255)        # #ff0000
_PLACEHOLDER_TEXT = "#ffffff"
LABEL_QR_ERROR = "QR Error"
LABEL_NO_QR = "NO QR"

# Fetches raw bytes for an absolute URL (the backend client's storage fetch)
UrlFetcher = Callable[[str], Awaitable[bytes]]


class QrSourceKind(str, Enum):
    INLINE = "inline"
    REMOTE = "remote"
    NONE = "none"


class QrLayerState(str, Enum):
    DRAWN = "drawn"
    DECODE_ERROR = "decode_error"
    MISSING = "missing"
    DISABLED = "disabled"


class QrOutcome(BaseModel):
    """Result of resolving + decoding one guest's QR source."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: QrSourceKind
    image: Any = None              # BGR np.ndarray on success
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.image is not None


def resolve_qr_url(path: str, base_url: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def qr_source_kind(guest: Guest) -> QrSourceKind:
    if not guest.has_qr_source:
        return QrSourceKind.NONE
    if guest.qr_code_base64:
        return QrSourceKind.INLINE
    return QrSourceKind.REMOTE


def _decode_inline(src: str) -> np.ndarray:
    return decode_image_bytes(decode_data_url(src))


class QrImageLoader:
    """
    Loads a guest's QR code into a decoded BGR bitmap.
    Each call completes only once decoding has finished (or failed);
    CPU-bound decoding runs in a worker thread.
    """

    def __init__(self, fetch_url: UrlFetcher, base_url: str) -> None:
        self._fetch_url = fetch_url
        self._base_url = base_url

    async def __call__(self, guest: Guest) -> QrOutcome:
        kind = qr_source_kind(guest)
        if kind == QrSourceKind.NONE:
            return QrOutcome(kind=kind, error="no QR source")

        try:
            if kind == QrSourceKind.INLINE:
                image = await asyncio.to_thread(_decode_inline, guest.qr_code_base64)
            else:
                url = resolve_qr_url(guest.qr_code_path, self._base_url)
                data = await self._fetch_url(url)
                image = await asyncio.to_thread(decode_image_bytes, data)
        except Exception as exc:
            log.warning(
                "qr_decode_failed",
                guest_id=guest.id,
                source=kind.value,
                error=f"{type(exc).__name__}: {exc}",
            )
            return QrOutcome(kind=kind, error=str(exc))

        return QrOutcome(kind=kind, image=image)


# ─── Drawing ─────────────────────────────────────────────────────────────────

def _square_bounds(center: tuple[float, float], size: int) -> tuple[int, int]:
    cx, cy = center
    return int(round(cx - size / 2)), int(round(cy - size / 2))


def _paste_clipped(canvas: np.ndarray, patch: np.ndarray, x0: int, y0: int) -> None:
    ch, cw = canvas.shape[:2]
    ph, pw = patch.shape[:2]
    cx0, cy0 = max(0, x0), max(0, y0)
    cx1, cy1 = min(cw, x0 + pw), min(ch, y0 + ph)
    if cx0 >= cx1 or cy0 >= cy1:
        return
    canvas[cy0:cy1, cx0:cx1] = patch[cy0 - y0 : cy1 - y0, cx0 - x0 : cx1 - x0]


def draw_qr_image(
    canvas: np.ndarray,
    qr_img: np.ndarray,
    center: tuple[float, float],
    size: int,
) -> None:
    """Scale the decoded QR to size×size and paste it centred at `center`."""
    x0, y0 = _square_bounds(center, size)
    _paste_clipped(canvas, resize_to_square(qr_img, size), x0, y0)


def draw_qr_placeholder(
    canvas: np.ndarray,
    center: tuple[float, float],
    size: int,
    label: str,
    font_path: Optional[str] = None,
) -> None:
    """Red size×size square with a centred white label."""
    x0, y0 = _square_bounds(center, size)
    square = np.empty((size, size, 3), dtype=np.uint8)
    square[:] = _PLACEHOLDER_BGR
    _paste_clipped(canvas, square, x0, y0)
    draw_text(
        canvas, label, center, int(round(size / 4)), _PLACEHOLDER_TEXT,
        glow=False, bold=False, font_path=font_path,
    )
