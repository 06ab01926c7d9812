"""
orderseal/core/time.py

THE ONLY CLOCK IN ORDERSEAL.

Order expiration is compared against unix_now().
Journal entries are stamped with journal_timestamp().
Components accept a `clock` callable defaulting to unix_now so tests can pin time.
"""

import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], int]


def unix_now() -> int:
    """Current unix time in whole seconds."""
    return int(time.time())


def journal_timestamp() -> str:
    """
    Return current UTC time in journal wire format.
    Format: YYYY-MM-DDTHH:MM:SS.mmmZ  (exactly 3 fractional digits, Z suffix)
    """
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"
