"""
Timestamp utilities for consistent time handling across the system.
"""

import re
import time
from datetime import datetime
from typing import Optional


def to_iso_timestamp(date: str, clock: str, period: Optional[str] = None) -> str:
    """Rebuild an export timestamp as ISO-8601.

    Dates are day-first; two-digit years map to 20xx. Impossible dates keep
    the raw 'date, time' text so the message is not lost.

    Args:
        date: Date part, '/' or '.' separated (e.g. '25/12/23')
        clock: Time part, 'h:mm' or 'h:mm:ss'
        period: Optional AM/PM marker

    Returns:
        'YYYY-MM-DDTHH:MM:SS' or the raw text
    """
    raw = f'{date}, {clock}' + (f' {period}' if period else '')
    try:
        day, month, year = (int(part) for part in re.split(r'[/.]', date))
        if year < 100:
            year += 2000

        clock_parts = [int(part) for part in clock.split(':')]
        hour, minute = clock_parts[0], clock_parts[1]
        second = clock_parts[2] if len(clock_parts) > 2 else 0

        if period:
            marker = period.replace('.', '').strip().lower()
            if marker == 'pm' and hour < 12:
                hour += 12
            elif marker == 'am' and hour == 12:
                hour = 0

        return datetime(year, month, day, hour, minute, second).isoformat()
    except ValueError:
        return raw


def elapsed_ms(start: float) -> int:
    """Milliseconds since a time.monotonic() reading."""
    return int((time.monotonic() - start) * 1000)

