"""
Wall clock in epoch milliseconds.

Offer expiry is stored and compared in milliseconds; everything that reads
"now" goes through ``now_ms`` so tests can pin time.
"""

import time


def now_ms() -> int:
    return int(time.time() * 1000)
