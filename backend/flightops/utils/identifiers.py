from __future__ import annotations

import os
import time
import uuid


def generate_uuid7() -> str:
    """
    Time-ordered UUIDv7 string used as primary key for every flightops table.

    Bookings and invoice items inserted in one request therefore sort in
    insertion order, which keeps audit listings stable.
    """
    ts_ms = int(time.time() * 1000) & ((1 << 48) - 1)
    value = (ts_ms << 80) | int.from_bytes(os.urandom(10), "big")
    value = (value & ~(0xF << 76)) | (0x7 << 76)
    value = (value & ~(0x3 << 62)) | (0x2 << 62)
    return str(uuid.UUID(int=value))
