# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Card Domain Models
Pydantic models for everything the card engine reads from the
event-management backend: the event's placement config, the card type's
layer flags, the guest directory, and the per-guest generation result.

All models ignore unknown fields — the backend returns full event and
guest records and only a subset is relevant to rendering.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator


class RegenerationMode(str, Enum):
    MISSING = "missing"   # only guests without a generated card
    ALL = "all"           # every guest, overwriting existing cards


# Defaults applied when a placement field is absent or null
PLACEMENT_DEFAULTS: dict[str, Any] = {
    "name_position_x": 50.0,
    "name_position_y": 30.0,
    "qr_position_x": 80.0,
    "qr_position_y": 70.0,
    "card_class_position_x": 20.0,
    "card_class_position_y": 90.0,
    "name_text_size": 98,
    "name_text_color": "#000000",
    "card_class_text_size": 60,
    "card_class_text_color": "#333333",
}


class PlacementConfig(BaseModel):
    """
    Normalised (0–100) layer positions and text styles for one event.
    Null fields are kept as None here; the placement resolver applies
    PLACEMENT_DEFAULTS at resolution time.
    """
    model_config = ConfigDict(extra="ignore")

    name_position_x: Optional[float] = None
    name_position_y: Optional[float] = None
    qr_position_x: Optional[float] = None
    qr_position_y: Optional[float] = None
    card_class_position_x: Optional[float] = None
    card_class_position_y: Optional[float] = None

    name_text_size: Optional[float] = None
    name_text_color: Optional[str] = None
    card_class_text_size: Optional[float] = None
    card_class_text_color: Optional[str] = None

    def value(self, field: str) -> Any:
        """Return the configured value of a field, or its documented default."""
        raw = getattr(self, field)
        return PLACEMENT_DEFAULTS[field] if raw is None else raw


class CardTypeFlags(BaseModel):
    """Which layers the compositor draws. Owned by the event's card type."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    name: Optional[str] = None
    show_guest_name: bool = True
    show_card_class: bool = False
    show_qr_code: bool = False

    @field_validator("show_guest_name", mode="before")
    @classmethod
    def _name_on_unless_disabled(cls, v: Any) -> Any:
        # The guest name layer is only hidden when explicitly disabled
        return True if v is None else v

    @field_validator("show_card_class", "show_qr_code", mode="before")
    @classmethod
    def _off_when_null(cls, v: Any) -> Any:
        return False if v is None else v


class EventCardConfig(PlacementConfig):
    """Event record as far as card rendering is concerned."""
    id: int
    event_name: Optional[str] = None
    card_design_path: Optional[str] = None
    card_type_id: Optional[int] = None

    @property
    def has_template(self) -> bool:
        return bool(self.card_design_path)

    def placement(self) -> PlacementConfig:
        return PlacementConfig.model_validate(self.model_dump())


class CardClass(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    name: str
    max_guests: Optional[int] = None


class Guest(BaseModel):
    """
    One entry from the (non-paginated) guest directory.
    guest_card_path present ⇒ a card has already been generated.
    """
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    title: Optional[str] = None
    invite_code: Optional[str] = None
    card_class: Optional[CardClass] = None
    qr_code_base64: Optional[str] = None
    qr_code_path: Optional[str] = None
    guest_card_path: Optional[str] = None

    @property
    def has_card(self) -> bool:
        return bool(self.guest_card_path)

    @property
    def has_qr_source(self) -> bool:
        return bool(self.qr_code_base64 or self.qr_code_path)


class CardTemplate(BaseModel):
    """
    Decoded background raster for one rendering session.
    image is a BGR uint8 numpy array (H×W×3); never drawn on directly.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    event_id: int
    image: Any = Field(..., description="np.ndarray BGR template raster")

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    def fresh_canvas(self) -> np.ndarray:
        """Return a private copy of the template for one render."""
        return self.image.copy()


class UploadResult(BaseModel):
    """Response of the card upload endpoint."""
    model_config = ConfigDict(extra="ignore")

    success: bool = False
    card_url: Optional[str] = None
    message: Optional[str] = None


class GenerationResult(BaseModel):
    """Outcome of one guest's render → compress → upload attempt."""
    guest_id: int
    success: bool
    error: Optional[str] = None
    card_url: Optional[str] = None
    size_bytes: Optional[int] = None
    image_format: Optional[str] = None
