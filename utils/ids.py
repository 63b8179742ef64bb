"""
Record id generation.

Ids look like "tsk_m1x2y3z4_a9k2": a short entity prefix, the creation
time in milliseconds as base36, and four random base36 characters.
Collisions are possible in principle but negligible at CRM write volumes.
"""

from __future__ import annotations

import random
import string
import time
from typing import Optional

_BASE36_ALPHABET = string.digits + string.ascii_lowercase


def to_base36(number: int) -> str:
    if number < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_id(
    prefix: str,
    timestamp_ms: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """Build "<prefix>_<base36 ms timestamp>_<4 random base36 chars>"."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    chooser = rng or random
    suffix = "".join(chooser.choice(_BASE36_ALPHABET) for _ in range(4))
    return f"{prefix}_{to_base36(timestamp_ms)}_{suffix}"
