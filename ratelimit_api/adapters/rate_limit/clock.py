"""Millisecond clock used by the limiter.

Components take a ``clock`` callable instead of reading time directly so
tests can drive time deterministically.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], float]


def now_ms() -> float:
    """Return UNIX time in milliseconds."""
    return time.time() * 1000.0
