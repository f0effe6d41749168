# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Single-guest card endpoints
Synchronous: the response is returned once the card is rendered
(and, for the generate endpoint, uploaded).
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response

from cardengine.core.pipeline import generate_single_card, render_preview
from cardengine.dependencies import BackendDep, SettingsDep
from cardengine.models.card import GenerationResult

router = APIRouter(tags=["cards"])

_MEDIA_TYPES = {"png": "image/png", "jpeg": "image/jpeg"}


@router.post(
    "/events/{event_id}/guests/{guest_id}/card",
    response_model=GenerationResult,
    summary="Generate and upload one guest's card",
)
async def generate_guest_card(
    event_id: int,
    guest_id: int,
    backend: BackendDep,
    settings: SettingsDep,
) -> GenerationResult:
    return await generate_single_card(event_id, guest_id, backend, settings)


@router.get(
    "/events/{event_id}/guests/{guest_id}/card/preview",
    summary="Render one guest's card without uploading it",
    response_class=Response,
    responses={200: {"content": {"image/png": {}, "image/jpeg": {}}}},
)
async def preview_guest_card(
    event_id: int,
    guest_id: int,
    backend: BackendDep,
    settings: SettingsDep,
) -> Response:
    result = await render_preview(event_id, guest_id, backend, settings)
    return Response(
        content=result.data,
        media_type=_MEDIA_TYPES[result.image_format],
        headers={
            "X-Card-Size-Bytes": str(result.size_bytes),
            "X-Card-Within-Budget": str(result.within_budget).lower(),
        },
    )
