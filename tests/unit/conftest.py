# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
Shared fixtures: an in-process fake of the event backend and small
synthetic rasters, so no test needs a network or a real card design.
"""

from __future__ import annotations

import base64
from typing import Optional

import cv2
import numpy as np
import pytest

from cardengine.config import Settings
from cardengine.core.backend_client import CardBackend
from cardengine.models.card import CardTypeFlags, EventCardConfig, Guest, UploadResult


def _png_data_url(img: np.ndarray) -> str:
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return "data:image/png;base64," + base64.b64encode(buf.tobytes()).decode("ascii")


def _make_template(w: int = 300, h: int = 420) -> np.ndarray:
    img = np.full((h, w, 3), 235, dtype=np.uint8)
    cv2.rectangle(img, (10, 10), (w - 10, h - 10), (120, 90, 40), 3)
    return img


def _make_qr(size: int = 40) -> np.ndarray:
    """Black/white checkerboard standing in for a QR code."""
    cells = np.indices((8, 8)).sum(axis=0) % 2
    board = (cells * 255).astype(np.uint8)
    board = cv2.resize(board, (size, size), interpolation=cv2.INTER_NEAREST)
    return cv2.cvtColor(board, cv2.COLOR_GRAY2BGR)


class FakeBackend(CardBackend):
    """
    Records every call. Failure injection:
      fail_upload_for   guest ids whose upload raises
      reject_upload_for guest ids whose upload returns success=False
      fail_delete       every delete raises
      fail_refresh      notify_refresh raises
    """

    def __init__(
        self,
        guests: list[Guest],
        design: Optional[str],
        event: Optional[EventCardConfig] = None,
        flags: Optional[CardTypeFlags] = None,
        storage: Optional[dict[str, bytes]] = None,
    ) -> None:
        self.guests = guests
        self.design = design
        self.event = event or EventCardConfig(
            id=1,
            event_name="Harusi",
            card_design_path="designs/1.png" if design else None,
            card_type_id=7,
        )
        self.flags = flags or CardTypeFlags(id=7)
        self.storage = storage or {}

        self.uploads: list[tuple[int, str]] = []
        self.deletes: list[int] = []
        self.fetched: list[str] = []
        self.refreshes: list[tuple[int, Optional[dict]]] = []

        self.fail_upload_for: set[int] = set()
        self.reject_upload_for: set[int] = set()
        self.fail_delete = False
        self.fail_refresh = False
        self.closed = False

    async def get_event(self, event_id: int) -> EventCardConfig:
        return self.event

    async def get_card_type(self, card_type_id: Optional[int]) -> CardTypeFlags:
        return self.flags

    async def get_card_design(self, event_id: int) -> Optional[str]:
        return self.design

    async def get_all_guests(self, event_id: int) -> list[Guest]:
        return list(self.guests)

    async def upload_card(self, guest_id: int, data_url: str) -> UploadResult:
        if guest_id in self.fail_upload_for:
            raise RuntimeError(f"upload exploded for {guest_id}")
        if guest_id in self.reject_upload_for:
            return UploadResult(success=False, message="Storage quota exceeded")
        self.uploads.append((guest_id, data_url))
        return UploadResult(
            success=True, card_url=f"http://cdn.test/cards/{guest_id}.png"
        )

    async def delete_card(self, guest_id: int) -> bool:
        if self.fail_delete:
            raise RuntimeError("delete endpoint down")
        self.deletes.append(guest_id)
        return True

    async def fetch_storage_file(self, url: str) -> bytes:
        self.fetched.append(url)
        if url not in self.storage:
            raise FileNotFoundError(url)
        return self.storage[url]

    async def notify_refresh(self, event_id: int, summary: Optional[dict] = None) -> None:
        if self.fail_refresh:
            raise RuntimeError("webhook down")
        self.refreshes.append((event_id, summary))

    async def aclose(self) -> None:
        self.closed = True


# ─── Fixtures ────────────────────────────────────────────────────────────────

@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        inter_item_delay_seconds=0,
        qr_size_px=60,
        card_canvas_width=300,
        card_canvas_height=420,
        log_level="WARNING",
    )


@pytest.fixture
def template_img() -> np.ndarray:
    return _make_template()


@pytest.fixture
def design_data_url(template_img) -> str:
    return _png_data_url(template_img)


@pytest.fixture
def qr_data_url() -> str:
    return _png_data_url(_make_qr())


@pytest.fixture
def make_guests():
    def _factory(count: int, carded: int = 0, **fields) -> list[Guest]:
        return [
            Guest(
                id=i + 1,
                name=f"Guest {i + 1}",
                guest_card_path=f"cards/{i + 1}.png" if i < carded else None,
                **fields,
            )
            for i in range(count)
        ]
    return _factory


@pytest.fixture
def make_backend(design_data_url):
    def _factory(guests: list[Guest], design: Optional[str] = "default", **kwargs) -> FakeBackend:
        return FakeBackend(
            guests,
            design_data_url if design == "default" else design,
            **kwargs,
        )
    return _factory
