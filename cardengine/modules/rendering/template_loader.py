# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Card Template Loader
Decodes the event's card design (data URL or bare base64) once per
rendering session. Any failure here is fatal for the session: without a
background no card can be produced.
"""

from __future__ import annotations

from typing import Optional

from cardengine.api.middleware.error_handler import TemplateUnavailableError
from cardengine.models.card import CardTemplate
from cardengine.utils.image_utils import decode_data_url, decode_image_bytes
from cardengine.utils.logger import get_logger

log = get_logger(__name__)

# Below this the placement math is meaningless for a print card
_MIN_DIMENSION_PX = 16


def load_template(
    event_id: int,
    design_src: Optional[str],
    nominal_size: tuple[int, int] = (3000, 4200),
) -> CardTemplate:
    """
    Decode a card design into a CardTemplate.

    Raises:
        TemplateUnavailableError: empty source, bad base64, undecodable
        image, or degenerate dimensions.
    """
    if not design_src:
        raise TemplateUnavailableError(
            f"No card design found for event {event_id}."
        )

    try:
        image = decode_image_bytes(decode_data_url(design_src))
    except ValueError as e:
        raise TemplateUnavailableError(
            f"Failed to load card design for event {event_id}: {e}"
        ) from e

    h, w = image.shape[:2]
    if min(h, w) < _MIN_DIMENSION_PX:
        raise TemplateUnavailableError(
            f"Card design for event {event_id} is too small ({w}×{h})."
        )

    if (w, h) != nominal_size:
        # Positions are resolved against the real size
        log.info(
            "template_non_nominal_size",
            event_id=event_id,
            size=f"{w}x{h}",
            nominal=f"{nominal_size[0]}x{nominal_size[1]}",
        )

    log.info("template_loaded", event_id=event_id, width=w, height=h)
    return CardTemplate(event_id=event_id, image=image)
