# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Placement Resolver
Converts the event's normalised (0–100) layer positions into absolute
pixel coordinates on the current template:

    pixel = (percent / 100) × axis_size

Resolution is always done against the template actually being rendered;
nothing is cached across templates. Absent/null fields fall back to
PLACEMENT_DEFAULTS.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from cardengine.models.card import PLACEMENT_DEFAULTS, PlacementConfig


class TextStyle(BaseModel):
    size: int
    color: str


class ResolvedPlacement(BaseModel):
    """Pixel-space layout for one template size."""
    canvas_size: tuple[int, int]          # (width, height)
    name_xy: tuple[float, float]
    qr_xy: tuple[float, float]
    card_class_xy: tuple[float, float]
    name_style: TextStyle
    card_class_style: TextStyle


def resolve(percent: Optional[float], axis_size: float, default: float = 0.0) -> float:
    """Map a 0–100 percentage onto an axis of axis_size pixels."""
    p = default if percent is None else percent
    return (p / 100.0) * axis_size


def resolve_field(config: PlacementConfig, field: str, axis_size: float) -> float:
    return resolve(getattr(config, field), axis_size, PLACEMENT_DEFAULTS[field])


def resolve_placement(
    config: PlacementConfig,
    width: int,
    height: int,
) -> ResolvedPlacement:
    """Resolve every layer position and style for a width×height canvas."""
    def _xy(prefix: str) -> tuple[float, float]:
        return (
            resolve_field(config, f"{prefix}_position_x", width),
            resolve_field(config, f"{prefix}_position_y", height),
        )

    return ResolvedPlacement(
        canvas_size=(width, height),
        name_xy=_xy("name"),
        qr_xy=_xy("qr"),
        card_class_xy=_xy("card_class"),
        name_style=TextStyle(
            size=int(round(config.value("name_text_size"))),
            color=str(config.value("name_text_color")),
        ),
        card_class_style=TextStyle(
            size=int(round(config.value("card_class_text_size"))),
            color=str(config.value("card_class_text_color")),
        ),
    )
