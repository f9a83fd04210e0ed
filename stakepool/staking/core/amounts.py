# MIT License
# Copyright (c) 2025 Hashborn

from typing import Tuple
from ...protocol.config.params import U64_MAX

def saturating_add(a: int, b: int, cap: int = U64_MAX) -> Tuple[int, bool]:
    """Returns (min(a + b, cap), saturated)."""
    total = a + b
    if total > cap:
        return cap, True
    return total, False

def saturating_sub(a: int, b: int) -> Tuple[int, bool]:
    """Returns (max(a - b, 0), saturated)."""
    if b > a:
        return 0, True
    return a - b, False
