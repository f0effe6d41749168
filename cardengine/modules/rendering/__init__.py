# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Rendering Module
Public API for composing guest cards.
"""

from cardengine.modules.rendering.compositor import CardCompositor, RenderedCard
from cardengine.modules.rendering.placement import (
    ResolvedPlacement,
    resolve,
    resolve_placement,
)
from cardengine.modules.rendering.qr_layer import (
    QrImageLoader,
    QrLayerState,
    QrOutcome,
    resolve_qr_url,
)
from cardengine.modules.rendering.template_loader import load_template
from cardengine.modules.rendering.text_layer import draw_text, load_font

__all__ = [
    # Placement
    "resolve",
    "resolve_placement",
    "ResolvedPlacement",
    # Layers
    "draw_text",
    "load_font",
    "QrImageLoader",
    "QrOutcome",
    "QrLayerState",
    "resolve_qr_url",
    # Compositor
    "load_template",
    "CardCompositor",
    "RenderedCard",
]
