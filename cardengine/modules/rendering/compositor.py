# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Card Compositor
Produces one fully rendered card raster for one guest:

  1. Background   fresh copy of the template (never a previous guest's output)
  2. Guest name   centred at the name position, with glow   (show_guest_name)
  3. Card class   centred at the class position, with glow  (show_card_class)
  4. QR code      600×600 square centred at the QR position (show_qr_code)
                  decoded → background + text repainted, then QR on top
                  decode failure → red "QR Error" square
                  no source → red "NO QR" square

Every render owns its own buffer and takes a generation token. QR decoding
is awaited to completion before anything is painted; if a newer render was
started on the same compositor while this one was waiting, the late result
is discarded and StaleRenderError is raised instead of painting.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict

from cardengine.api.middleware.error_handler import StaleRenderError
from cardengine.models.card import CardTemplate, CardTypeFlags, Guest, PlacementConfig
from cardengine.modules.rendering.placement import ResolvedPlacement, resolve_placement
from cardengine.modules.rendering.qr_layer import (
    LABEL_NO_QR,
    LABEL_QR_ERROR,
    QrLayerState,
    QrOutcome,
    QrSourceKind,
    draw_qr_image,
    draw_qr_placeholder,
)
from cardengine.modules.rendering.text_layer import draw_text
from cardengine.utils.logger import get_logger

log = get_logger(__name__)

QrLoader = Callable[[Guest], Awaitable[QrOutcome]]


class RenderedCard(BaseModel):
    """A composed card raster, ready for compression."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    guest_id: int
    generation: int
    image: Any                  # BGR uint8 np.ndarray (H×W×3)
    qr_state: QrLayerState


class CardCompositor:
    """
    Renders guest cards for one event session (one template, one placement
    config, one set of layer flags). Not shared across events.
    """

    def __init__(
        self,
        template: CardTemplate,
        placement: PlacementConfig,
        flags: CardTypeFlags,
        qr_loader: QrLoader,
        *,
        qr_size: int = 600,
        font_path: Optional[str] = None,
    ) -> None:
        self._template = template
        self._placement = placement
        self._flags = flags
        self._qr_loader = qr_loader
        self._qr_size = qr_size
        self._font_path = font_path
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def layout(self) -> ResolvedPlacement:
        # Recomputed per render from the template's real pixel size
        return resolve_placement(
            self._placement, self._template.width, self._template.height
        )

    # ── Layers ───────────────────────────────────────────────────────────────

    def _paint_base(self, guest: Guest, layout: ResolvedPlacement) -> np.ndarray:
        """Background + text layers on a brand-new buffer."""
        canvas = self._template.fresh_canvas()

        if self._flags.show_guest_name:
            draw_text(
                canvas, guest.name, layout.name_xy,
                layout.name_style.size, layout.name_style.color,
                font_path=self._font_path,
            )

        if self._flags.show_card_class and guest.card_class is not None:
            draw_text(
                canvas, guest.card_class.name, layout.card_class_xy,
                layout.card_class_style.size, layout.card_class_style.color,
                font_path=self._font_path,
            )

        return canvas

    def _ensure_current(self, token: int, guest: Guest) -> None:
        if token != self._generation:
            log.warning(
                "stale_render_discarded",
                guest_id=guest.id,
                token=token,
                current=self._generation,
            )
            raise StaleRenderError(
                f"Render {token} for guest {guest.id} superseded by render "
                f"{self._generation}."
            )

    # ── Public API ───────────────────────────────────────────────────────────

    async def render(self, guest: Guest) -> RenderedCard:
        """
        Compose the card for `guest`. Returns only after every layer,
        including the asynchronously decoded QR, has been painted.
        """
        self._generation += 1
        token = self._generation
        layout = self.layout()

        canvas = self._paint_base(guest, layout)

        if not self._flags.show_qr_code:
            state = QrLayerState.DISABLED
        else:
            outcome = await self._qr_loader(guest)
            self._ensure_current(token, guest)

            if outcome.ok:
                # Full stack again underneath the QR
                canvas = self._paint_base(guest, layout)
                draw_qr_image(canvas, outcome.image, layout.qr_xy, self._qr_size)
                state = QrLayerState.DRAWN
            elif outcome.kind == QrSourceKind.NONE:
                draw_qr_placeholder(
                    canvas, layout.qr_xy, self._qr_size, LABEL_NO_QR,
                    font_path=self._font_path,
                )
                state = QrLayerState.MISSING
            else:
                draw_qr_placeholder(
                    canvas, layout.qr_xy, self._qr_size, LABEL_QR_ERROR,
                    font_path=self._font_path,
                )
                state = QrLayerState.DECODE_ERROR

        log.debug(
            "card_rendered",
            guest_id=guest.id,
            generation=token,
            qr_state=state.value,
            size=f"{layout.canvas_size[0]}x{layout.canvas_size[1]}",
        )
        return RenderedCard(
            guest_id=guest.id, generation=token, image=canvas, qr_state=state
        )
