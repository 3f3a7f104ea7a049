"""
Counter readings, wraparound-aware deltas and safe value conversion.

SNMP octet counters are unsigned and wrap back to 0 after their maximum
value: 2^32 - 1 for ifInOctets/ifOutOctets, 2^64 - 1 for the ifHC* columns.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Tuple

logger = logging.getLogger(__name__)


class ConversionFailure(ValueError):
    """Raised when a raw store value cannot be coerced to its numeric domain."""


class CounterWidth(IntEnum):
    """Bit width of an SNMP counter column."""

    BITS_32 = 32
    BITS_64 = 64

    @property
    def max_value(self) -> int:
        return (1 << int(self)) - 1


@dataclass(frozen=True)
class CounterReading:
    """One counter value and the instant it was read."""

    value: int
    timestamp: datetime


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def compute_delta(
    previous: CounterReading,
    current: CounterReading,
    width: CounterWidth,
) -> Tuple[int, timedelta]:
    """
    Return `(delta_value, delta_time)` between two readings of one counter.

    A current value below the previous one is a wrap: the delta is what was
    left up to the maximum plus what was counted after rolling over.
    Discontinuities (reboots, resets) are not inferred here.
    """
    delta_time = current.timestamp - previous.timestamp

    if current.value >= previous.value:
        delta_value = current.value - previous.value
    else:
        delta_value = (width.max_value + 1 - previous.value) + current.value

    return delta_value, delta_time


# ---------------------------------------------------------------------------
# Conversion of raw column values
# ---------------------------------------------------------------------------


def _to_number(value: Any):
    if value is None or isinstance(value, bool):
        raise ConversionFailure(f"not a number: {value!r}")
    if isinstance(value, (int, float)):
        number = value
    else:
        text = str(value).strip()
        try:
            number = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError as exc:
                raise ConversionFailure(f"not a number: {value!r}") from exc
    if isinstance(number, float) and not math.isfinite(number):
        raise ConversionFailure(f"not a finite number: {value!r}")
    return number


def to_counter(value: Any, width: CounterWidth) -> int:
    """
    Coerce a raw column value to an unsigned counter of `width` bits.

    Out-of-range values are clamped to [0, max]. Unparseable values raise
    ConversionFailure.
    """
    number = int(_to_number(value))
    return min(max(number, 0), width.max_value)


def safe_counter(value: Any, width: CounterWidth, key: str = "") -> int:
    """`to_counter`, substituting 0 when the value cannot be converted."""
    try:
        return to_counter(value, width)
    except ConversionFailure as exc:
        logger.warning("Counter value for interface %r replaced by 0: %s", key, exc)
        return 0


def safe_timestamp(value: Any, default: datetime, key: str = "") -> datetime:
    """A UTC datetime from a raw column value, or `default` when unusable."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        try:
            return ensure_utc(datetime.fromisoformat(value.strip()))
        except ValueError:
            pass
    logger.warning("Poll time %r for interface %r unusable, using cycle time", value, key)
    return default
