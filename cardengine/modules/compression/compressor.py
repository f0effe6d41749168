# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Card Compressor
Encodes a rendered card to bytes within a size budget (default 700 KB),
preferring fidelity:

  1. PNG (lossless)                         → done if within budget
  2. JPEG at 0.95, then −0.05 per step down to the quality floor (0.30)
  3. Resize by scale = sqrt(budget / size), cumulative against the
     original raster, INTER_AREA resampling, JPEG at 0.90, repeated
     at most resize_max_passes times while still over budget

Best-effort: always returns bytes. If nothing fits, the smallest encoding
produced is returned with within_budget=False. Iteration is bounded by
the quality floor and the pass limit.

Quality arithmetic is done in integer percent so the floor is hit exactly.
"""

from __future__ import annotations

import math
from typing import Literal, Optional

import numpy as np
from pydantic import BaseModel, Field

from cardengine.config import Settings, get_settings
from cardengine.utils.image_utils import (
    encode_jpeg,
    encode_png,
    resize_by_scale,
    to_data_url,
)
from cardengine.utils.logger import get_logger

log = get_logger(__name__)

ImageFormat = Literal["png", "jpeg"]


class CompressionAttempt(BaseModel):
    image_format: ImageFormat
    quality: Optional[float] = None
    width: int
    height: int
    size_bytes: int


class CompressionResult(BaseModel):
    data: bytes
    image_format: ImageFormat
    quality: Optional[float] = None
    width: int
    height: int
    budget_bytes: int
    attempts: list[CompressionAttempt] = Field(default_factory=list)

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def within_budget(self) -> bool:
        return self.size_bytes <= self.budget_bytes

    def to_data_url(self) -> str:
        return to_data_url(self.data, self.image_format)


class CompressionPolicy(BaseModel):
    """Tunables for compress_card; defaults come from Settings."""
    max_bytes: int = Field(..., gt=0)
    start_quality: float = Field(0.95, gt=0.0, le=1.0)
    quality_step: float = Field(0.05, gt=0.0, le=1.0)
    quality_floor: float = Field(0.30, gt=0.0, le=1.0)
    resize_quality: float = Field(0.90, gt=0.0, le=1.0)
    resize_max_passes: int = Field(3, ge=0)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        max_bytes: Optional[int] = None,
    ) -> "CompressionPolicy":
        s = settings or get_settings()
        return cls(
            max_bytes=max_bytes or s.card_max_bytes,
            start_quality=s.compression_start_quality,
            quality_step=s.compression_quality_step,
            quality_floor=s.compression_quality_floor,
            resize_quality=s.compression_resize_quality,
            resize_max_passes=s.resize_max_passes,
        )


def _pct(q: float) -> int:
    return int(round(q * 100))


class _Encoder:
    """Encodes candidates and keeps the attempt history + best-so-far."""

    def __init__(self, budget: int) -> None:
        self.budget = budget
        self.attempts: list[CompressionAttempt] = []
        self.best: Optional[CompressionResult] = None

    def encode(
        self, img: np.ndarray, fmt: ImageFormat, quality: Optional[float] = None
    ) -> CompressionResult:
        data = encode_png(img) if fmt == "png" else encode_jpeg(img, quality)
        h, w = img.shape[:2]
        attempt = CompressionAttempt(
            image_format=fmt, quality=quality, width=w, height=h, size_bytes=len(data)
        )
        self.attempts.append(attempt)
        log.debug(
            "compression_step",
            format=fmt,
            quality=quality,
            size=f"{w}x{h}",
            size_kb=round(len(data) / 1024, 1),
        )
        result = CompressionResult(
            data=data,
            image_format=fmt,
            quality=quality,
            width=w,
            height=h,
            budget_bytes=self.budget,
        )
        if self.best is None or result.size_bytes < self.best.size_bytes:
            self.best = result
        return result

    def finish(self, result: CompressionResult) -> CompressionResult:
        return result.model_copy(update={"attempts": list(self.attempts)})


def compress_card(
    img: np.ndarray,
    max_bytes: Optional[int] = None,
    policy: Optional[CompressionPolicy] = None,
) -> CompressionResult:
    """
    Encode a BGR card raster to fit within max_bytes (see module docstring).

    Args:
        img:       BGR uint8 raster from the compositor.
        max_bytes: Byte budget; defaults to policy / settings card_max_bytes.
        policy:    Full tunables; built from Settings when omitted.
    """
    if policy is None:
        policy = CompressionPolicy.from_settings(max_bytes=max_bytes)
    elif max_bytes is not None:
        policy = policy.model_copy(update={"max_bytes": max_bytes})

    budget = policy.max_bytes
    enc = _Encoder(budget)

    # ── 1. Lossless ──────────────────────────────────────────────────────────
    current = enc.encode(img, "png")
    if current.within_budget:
        log.debug("compression_lossless_fit", size_kb=round(current.size_bytes / 1024, 1))
        return enc.finish(current)

    # ── 2. JPEG quality ladder ───────────────────────────────────────────────
    q = _pct(policy.start_quality)
    step = max(1, _pct(policy.quality_step))
    floor = min(_pct(policy.quality_floor), q)

    current = enc.encode(img, "jpeg", q / 100)
    while not current.within_budget and q > floor:
        q = max(floor, q - step)
        current = enc.encode(img, "jpeg", q / 100)

    # ── 3. Resize passes ─────────────────────────────────────────────────────
    scale = 1.0
    passes = 0
    while not current.within_budget and passes < policy.resize_max_passes:
        scale *= math.sqrt(budget / current.size_bytes)
        resized = resize_by_scale(img, scale)
        current = enc.encode(resized, "jpeg", policy.resize_quality)
        passes += 1

    final = current if current.within_budget else enc.best
    log.info(
        "card_compressed",
        format=final.image_format,
        quality=final.quality,
        size=f"{final.width}x{final.height}",
        size_kb=round(final.size_bytes / 1024, 1),
        budget_kb=round(budget / 1024, 1),
        within_budget=final.within_budget,
        attempts=len(enc.attempts),
    )
    return enc.finish(final)
