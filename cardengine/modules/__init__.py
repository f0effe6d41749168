# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Processing Modules
  rendering    placement, text/QR layers, per-guest compositor
  compression  byte-budget encoder for rendered cards
"""
