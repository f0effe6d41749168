# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Compression Module
Public API for fitting rendered cards into the upload byte budget.
"""

from cardengine.modules.compression.compressor import (
    CompressionAttempt,
    CompressionPolicy,
    CompressionResult,
    compress_card,
)

__all__ = [
    "CompressionAttempt",
    "CompressionPolicy",
    "CompressionResult",
    "compress_card",
]
