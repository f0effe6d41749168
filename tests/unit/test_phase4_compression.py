# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
Phase 4 tests — card compression against a byte budget.
"""

import numpy as np
import pytest

KB = 1024


def _policy(max_bytes, **kw):
    from cardengine.modules.compression import CompressionPolicy
    return CompressionPolicy(max_bytes=max_bytes, **kw)


def _noise(h, w, seed=0):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(h, w, 3), dtype=np.uint8)


def _print_card_raster():
    """
    3000×4200 card: flat artwork with one band of high-frequency detail,
    about 2 MB as PNG.
    """
    img = np.full((4200, 3000, 3), 240, dtype=np.uint8)
    img[:, :, 0] = np.linspace(180, 250, 3000, dtype=np.uint8)[np.newaxis, :]
    img[1800:2040, :, :] = _noise(240, 3000, seed=7)
    return img


def test_lossless_result_when_png_fits(template_img):
    from cardengine.modules.compression import compress_card
    from cardengine.utils.image_utils import encode_png

    result = compress_card(template_img, policy=_policy(700 * KB))

    assert result.image_format == "png"
    assert result.quality is None
    assert result.data == encode_png(template_img)
    assert len(result.attempts) == 1
    assert result.within_budget


def test_print_card_fits_budget_and_sizes_fall_with_quality():
    from cardengine.modules.compression import compress_card

    img = _print_card_raster()
    result = compress_card(img, policy=_policy(700 * KB))

    assert result.attempts[0].image_format == "png"
    assert result.attempts[0].size_bytes > 700 * KB
    assert result.within_budget
    assert result.size_bytes <= 700 * KB
    assert result.image_format == "jpeg"

    ladder = [
        a for a in result.attempts
        if a.image_format == "jpeg" and (a.width, a.height) == (3000, 4200)
    ]
    assert ladder[0].quality == pytest.approx(0.95)
    qualities = [a.quality for a in ladder]
    assert qualities == sorted(qualities, reverse=True)
    sizes = [a.size_bytes for a in ladder]
    assert all(b <= a for a, b in zip(sizes, sizes[1:]))


def test_quality_ladder_stops_at_floor_then_resizes():
    from cardengine.modules.compression import compress_card

    img = _noise(600, 600, seed=1)
    result = compress_card(img, policy=_policy(10 * KB))

    full_size = [a for a in result.attempts if (a.width, a.height) == (600, 600)]
    jpeg_qualities = [a.quality for a in full_size if a.image_format == "jpeg"]
    assert jpeg_qualities[-1] == pytest.approx(0.30)
    assert min(jpeg_qualities) == pytest.approx(0.30)
    assert len(jpeg_qualities) == 14          # 0.95 → 0.30 in 0.05 steps

    resized = [a for a in result.attempts if (a.width, a.height) != (600, 600)]
    assert resized, "expected at least one resize pass"
    assert all(a.quality == pytest.approx(0.90) for a in resized)
    widths = [a.width for a in resized]
    assert widths == sorted(widths, reverse=True)
    # Aspect ratio is kept
    assert all(abs(a.width - a.height) <= 1 for a in resized)


def test_compression_terminates_with_tiny_budget():
    from cardengine.modules.compression import compress_card

    img = _noise(400, 400, seed=2)
    result = compress_card(img, policy=_policy(1 * KB, resize_max_passes=2))

    assert result.data
    assert len(result.attempts) <= 1 + 14 + 2
    # Best effort: the smallest encoding produced is returned
    assert result.size_bytes == min(a.size_bytes for a in result.attempts)


def test_explicit_max_bytes_overrides_policy():
    from cardengine.modules.compression import compress_card

    img = _noise(200, 200, seed=3)
    loose = compress_card(img, policy=_policy(10_000 * KB))
    tight = compress_card(img, max_bytes=20 * KB, policy=_policy(10_000 * KB))

    assert loose.image_format == "png"
    assert tight.image_format == "jpeg"
    assert tight.budget_bytes == 20 * KB


def test_policy_rejects_non_positive_budget():
    from pydantic import ValidationError

    with pytest.raises(ValidationError):
        _policy(0)


def test_policy_from_settings(settings):
    from cardengine.modules.compression import CompressionPolicy

    policy = CompressionPolicy.from_settings(settings)
    assert policy.max_bytes == 700 * KB
    assert policy.quality_floor == pytest.approx(0.30)
    assert policy.resize_max_passes == 3


def test_result_data_url_prefix(template_img):
    from cardengine.modules.compression import compress_card

    result = compress_card(template_img, policy=_policy(700 * KB))
    assert result.to_data_url().startswith("data:image/png;base64,")
