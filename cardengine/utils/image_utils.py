# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Image I/O and Conversion Utilities
Shared helpers used by the compositor, compressor, and image sources.
All internal rasters are BGR uint8 numpy arrays (OpenCV convention).
Pillow is used only for text rasterisation and colour parsing.
"""

import base64
import binascii
import re

import cv2
import numpy as np
from PIL import ImageColor

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?P<params>(;[\w=-]+)*),", re.I)

_MIME_BY_FORMAT = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "webp": "image/webp",
}


# ─── Data URLs / Base64 ──────────────────────────────────────────────────────

def decode_data_url(src: str) -> bytes:
    """
    Decode a `data:image/...;base64,` URL or a bare base64 string to bytes.
    Raises ValueError if the payload is not valid base64.
    """
    payload = src.strip()
    match = _DATA_URL_RE.match(payload)
    if match:
        payload = payload[match.end():]
    # Tolerate whitespace and missing padding from upstream serialisers
    payload = re.sub(r"\s+", "", payload)
    payload += "=" * (-len(payload) % 4)
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image payload: {e}") from e


def to_data_url(data: bytes, fmt: str) -> str:
    """Wrap encoded image bytes as a base64 data URL."""
    mime = _MIME_BY_FORMAT.get(fmt.lower(), "application/octet-stream")
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


# ─── Decode ──────────────────────────────────────────────────────────────────

def decode_image_bytes(data: bytes) -> np.ndarray:
    """
    Decode raw image bytes to a BGR uint8 array.
    Grayscale is expanded to 3 channels; alpha is flattened onto white
    (transparent QR backgrounds must stay scannable).
    Raises ValueError if the bytes cannot be decoded as an image.
    """
    if not data:
        raise ValueError("Empty image payload.")
    arr = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise ValueError("Could not decode image bytes.")

    if img.dtype != np.uint8:
        img = cv2.convertScaleAbs(img, alpha=255.0 / max(float(img.max()), 1.0))

    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.shape[2] == 4:
        return flatten_alpha(img)
    return img


def flatten_alpha(img_bgra: np.ndarray, bg_value: int = 255) -> np.ndarray:
    """Composite a BGRA array onto a solid background, returning BGR."""
    alpha = img_bgra[:, :, 3:4].astype(np.float32) / 255.0
    bgr = img_bgra[:, :, :3].astype(np.float32)
    out = bgr * alpha + float(bg_value) * (1.0 - alpha)
    return np.clip(out, 0, 255).astype(np.uint8)


# ─── Encode ──────────────────────────────────────────────────────────────────

def encode_png(img: np.ndarray) -> bytes:
    """Encode a BGR numpy array to PNG bytes (lossless)."""
    success, buf = cv2.imencode(".png", img)
    if not success:
        raise RuntimeError("Failed to encode image to PNG bytes.")
    return buf.tobytes()


def encode_jpeg(img: np.ndarray, quality: float) -> bytes:
    """
    Encode a BGR numpy array to JPEG bytes.
    quality is on the 0–1 scale used throughout the compressor.
    """
    q = int(round(min(max(quality, 0.0), 1.0) * 100))
    success, buf = cv2.imencode(".jpg", img, [cv2.IMWRITE_JPEG_QUALITY, q])
    if not success:
        raise RuntimeError(f"Failed to encode image to JPEG (quality={q}).")
    return buf.tobytes()


# ─── Resize ──────────────────────────────────────────────────────────────────

def resize_by_scale(img: np.ndarray, scale: float) -> np.ndarray:
    """
    Resize by a uniform scale factor, preserving aspect ratio.
    Downscaling uses INTER_AREA (best quality for shrinking); never
    returns an image smaller than 1×1.
    """
    h, w = img.shape[:2]
    new_w = max(1, int(w * scale))
    new_h = max(1, int(h * scale))
    interp = cv2.INTER_AREA if scale < 1.0 else cv2.INTER_CUBIC
    return cv2.resize(img, (new_w, new_h), interpolation=interp)


def resize_to_square(img: np.ndarray, size: int) -> np.ndarray:
    """Resize image to size×size (QR codes are drawn as squares)."""
    h, w = img.shape[:2]
    interp = cv2.INTER_AREA if max(h, w) > size else cv2.INTER_NEAREST
    return cv2.resize(img, (size, size), interpolation=interp)


# ─── Colour ──────────────────────────────────────────────────────────────────

def parse_color_bgr(color: str, default: str = "#000000") -> tuple[int, int, int]:
    """
    Parse a CSS colour ('#333', '#333333', 'red', 'rgb(…)') to a BGR tuple.
    Falls back to `default` for unparseable input.
    """
    try:
        r, g, b = ImageColor.getrgb(color)[:3]
    except (ValueError, AttributeError):
        r, g, b = ImageColor.getrgb(default)[:3]
    return (b, g, r)
