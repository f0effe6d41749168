# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Text Layer
Draws centred text onto a BGR canvas in place.

Text is rasterised with Pillow as an 8-bit coverage mask inside a small
region of interest, then alpha-blended into the canvas with numpy.
Guest names and card classes get a soft white glow (offset 2px, blur 4,
80% opacity) so they stay legible on arbitrary card artwork.
"""

from __future__ import annotations

import math
from functools import lru_cache
from pathlib import Path
from typing import Optional

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from cardengine.utils.image_utils import parse_color_bgr
from cardengine.utils.logger import get_logger

log = get_logger(__name__)

# Glow parameters (match the admin console's canvas shadow)
_GLOW_OPACITY = 0.8
_GLOW_OFFSET = (2, 2)
_GLOW_BLUR = 4            # canvas shadowBlur; gaussian sigma = blur / 2
_GLOW_BGR = (255, 255, 255)

_BOLD_FONT_CANDIDATES = [
    "arialbd.ttf",
    "Arial Bold.ttf",
    "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
    "/usr/share/fonts/truetype/msttcorefonts/Arial_Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "DejaVuSans-Bold.ttf",
]

_REGULAR_FONT_CANDIDATES = [
    "arial.ttf",
    "Arial.ttf",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
    "/usr/share/fonts/truetype/msttcorefonts/Arial.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "DejaVuSans.ttf",
]


@lru_cache(maxsize=64)
def load_font(
    size: int,
    bold: bool = True,
    font_path: Optional[str] = None,
) -> ImageFont.FreeTypeFont:
    """
    Load a TrueType font at `size` px, trying the configured font first,
    then common system fonts, then Pillow's bundled scalable default.
    Cached per (size, bold, font_path).
    """
    candidates = _BOLD_FONT_CANDIDATES if bold else _REGULAR_FONT_CANDIDATES
    if font_path:
        candidates = [font_path] + candidates

    for candidate in candidates:
        if candidate.startswith("/") and not Path(candidate).exists():
            continue
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue

    log.warning("font_fallback_default", size=size, bold=bold)
    return ImageFont.load_default(size=size)


def _text_mask(
    text: str,
    font: ImageFont.FreeTypeFont,
    center: tuple[float, float],
    pad: int,
) -> tuple[np.ndarray, int, int]:
    """
    Rasterise text centred on `center` into a float32 coverage mask.
    Returns (mask, x0, y0) — the mask's top-left in canvas coordinates.
    """
    cx, cy = center
    left, top, right, bottom = font.getbbox(text, anchor="mm")
    x0 = int(math.floor(cx + left)) - pad
    y0 = int(math.floor(cy + top)) - pad
    x1 = int(math.ceil(cx + right)) + pad
    y1 = int(math.ceil(cy + bottom)) + pad

    mask_img = Image.new("L", (x1 - x0, y1 - y0), 0)
    ImageDraw.Draw(mask_img).text(
        (cx - x0, cy - y0), text, fill=255, font=font, anchor="mm"
    )
    return np.asarray(mask_img, dtype=np.float32) / 255.0, x0, y0


def _glow_mask(mask: np.ndarray) -> np.ndarray:
    dx, dy = _GLOW_OFFSET
    h, w = mask.shape
    shifted = np.zeros_like(mask)
    shifted[dy:, dx:] = mask[: h - dy, : w - dx]
    blurred = cv2.GaussianBlur(shifted, (0, 0), sigmaX=_GLOW_BLUR / 2.0)
    return blurred * _GLOW_OPACITY


def _blend(
    canvas: np.ndarray,
    layer_alpha: np.ndarray,
    color_bgr: tuple[int, int, int],
    x0: int,
    y0: int,
) -> None:
    """Alpha-blend a solid colour through layer_alpha, clipped to the canvas."""
    ch, cw = canvas.shape[:2]
    lh, lw = layer_alpha.shape
    cx0, cy0 = max(0, x0), max(0, y0)
    cx1, cy1 = min(cw, x0 + lw), min(ch, y0 + lh)
    if cx0 >= cx1 or cy0 >= cy1:
        return

    alpha = layer_alpha[cy0 - y0 : cy1 - y0, cx0 - x0 : cx1 - x0, np.newaxis]
    roi = canvas[cy0:cy1, cx0:cx1].astype(np.float32)
    color = np.asarray(color_bgr, dtype=np.float32)
    roi = roi * (1.0 - alpha) + color * alpha
    canvas[cy0:cy1, cx0:cx1] = np.clip(np.rint(roi), 0, 255).astype(np.uint8)


def draw_text(
    canvas: np.ndarray,
    text: str,
    center: tuple[float, float],
    font_size: int,
    color: str = "#000000",
    *,
    glow: bool = True,
    bold: bool = True,
    font_path: Optional[str] = None,
) -> None:
    """
    Draw `text` centred (horizontally and vertically) at `center`.
    Mutates canvas in place; text partially outside the canvas is clipped.
    """
    if not text or font_size <= 0:
        return

    font = load_font(int(font_size), bold, font_path)
    pad = 3 * _GLOW_BLUR + max(_GLOW_OFFSET) if glow else 1
    mask, x0, y0 = _text_mask(text, font, center, pad)

    if glow:
        _blend(canvas, _glow_mask(mask), _GLOW_BGR, x0, y0)
    _blend(canvas, mask, parse_color_bgr(color), x0, y0)
