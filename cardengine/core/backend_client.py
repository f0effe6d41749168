# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Event Backend Client
Abstract interface over the event-management REST backend that owns
events, card types, guests and stored card images.

HttpCardBackend  — httpx.AsyncClient against the real backend
(tests supply an in-process fake implementing CardBackend)

Endpoint map (relative to BACKEND_API_URL):
  GET    /events/{id}                  event + placement config
  GET    /card-types                   card type list (layer flags)
  GET    /events/{id}/card-design      {"card_design_base64": "..."}
  GET    /events/{id}/guests/all       full guest directory, not paginated
  POST   /guests/{id}/canvas-card      {"card_image": data URL} → UploadResult
  DELETE /guests/{id}/card             remove a previously generated card
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from cardengine.api.middleware.error_handler import BackendApiError
from cardengine.config import Settings
from cardengine.models.card import (
    CardTypeFlags,
    EventCardConfig,
    Guest,
    UploadResult,
)
from cardengine.utils.logger import get_logger

log = get_logger(__name__)


def _unwrap(payload: Any) -> Any:
    """Accept both bare payloads and Laravel-style {"data": ...} envelopes."""
    if isinstance(payload, dict) and isinstance(payload.get("data"), (list, dict)):
        return payload["data"]
    return payload


# ─── Abstract Interface ──────────────────────────────────────────────────────

class CardBackend(ABC):
    """Everything the card engine needs from the event backend."""

    @abstractmethod
    async def get_event(self, event_id: int) -> EventCardConfig:
        """Return the event record with its placement config."""

    @abstractmethod
    async def get_card_type(self, card_type_id: Optional[int]) -> CardTypeFlags:
        """Return the layer flags for a card type (defaults when unknown)."""

    @abstractmethod
    async def get_card_design(self, event_id: int) -> Optional[str]:
        """Return the event's card design as a base64 data URL, or None."""

    @abstractmethod
    async def get_all_guests(self, event_id: int) -> list[Guest]:
        """Return the event's complete guest directory."""

    @abstractmethod
    async def upload_card(self, guest_id: int, data_url: str) -> UploadResult:
        """Upload an encoded card image for a guest."""

    @abstractmethod
    async def delete_card(self, guest_id: int) -> bool:
        """Delete a guest's stored card. Returns False if nothing was deleted."""

    @abstractmethod
    async def fetch_storage_file(self, url: str) -> bytes:
        """Download raw bytes from backend storage (QR images)."""

    async def notify_refresh(
        self, event_id: int, summary: Optional[dict] = None
    ) -> None:
        """Tell interested parties that an event's guest cards changed."""

    async def aclose(self) -> None:
        """Release network resources."""


# ─── HTTP Implementation ─────────────────────────────────────────────────────

class HttpCardBackend(CardBackend):
    """
    httpx-based backend client. One AsyncClient per process, created at
    startup and closed in the app lifespan.
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if settings.backend_api_token:
            headers["Authorization"] = f"Bearer {settings.backend_api_token}"

        self._settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.backend_api_url.rstrip("/"),
            headers=headers,
            timeout=settings.http_timeout_seconds,
            follow_redirects=True,
        )
        self._owns_client = client is None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise BackendApiError(f"{method} {url} failed: {e}") from e

        if response.is_error:
            message = response.reason_phrase
            try:
                body = response.json()
                if isinstance(body, dict) and body.get("message"):
                    message = body["message"]
            except ValueError:
                pass
            log.warning(
                "backend_request_rejected",
                method=method,
                url=url,
                status_code=response.status_code,
                message=message,
            )
            raise BackendApiError(
                f"{method} {url} returned {response.status_code}: {message}",
                status_code=response.status_code,
            )
        return response

    async def get_event(self, event_id: int) -> EventCardConfig:
        response = await self._request("GET", f"/events/{event_id}")
        return EventCardConfig.model_validate(_unwrap(response.json()))

    async def get_card_type(self, card_type_id: Optional[int]) -> CardTypeFlags:
        if card_type_id is None:
            return CardTypeFlags()

        response = await self._request("GET", "/card-types")
        for entry in _unwrap(response.json()) or []:
            if entry.get("id") == card_type_id:
                return CardTypeFlags.model_validate(entry)

        log.warning("card_type_not_found", card_type_id=card_type_id)
        return CardTypeFlags(id=card_type_id)

    async def get_card_design(self, event_id: int) -> Optional[str]:
        response = await self._request("GET", f"/events/{event_id}/card-design")
        body = _unwrap(response.json())
        if isinstance(body, dict):
            return body.get("card_design_base64") or None
        return None

    async def get_all_guests(self, event_id: int) -> list[Guest]:
        response = await self._request("GET", f"/events/{event_id}/guests/all")
        guests = [Guest.model_validate(g) for g in _unwrap(response.json()) or []]
        log.debug("guests_fetched", event_id=event_id, count=len(guests))
        return guests

    async def upload_card(self, guest_id: int, data_url: str) -> UploadResult:
        response = await self._request(
            "POST",
            f"/guests/{guest_id}/canvas-card",
            json={"card_image": data_url},
        )
        return UploadResult.model_validate(response.json())

    async def delete_card(self, guest_id: int) -> bool:
        try:
            await self._request("DELETE", f"/guests/{guest_id}/card")
        except BackendApiError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    async def fetch_storage_file(self, url: str) -> bytes:
        # Absolute URL: httpx ignores base_url for it
        response = await self._request("GET", url)
        return response.content

    async def notify_refresh(
        self, event_id: int, summary: Optional[dict] = None
    ) -> None:
        if not self._settings.refresh_webhook_url:
            return
        await self._request(
            "POST",
            self._settings.refresh_webhook_url,
            json={
                "event_id": event_id,
                "reason": "cards_generated",
                "summary": summary or {},
            },
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
