"""
Interface-level helpers: duplex status, discontinuity detection, speed
conversion and bandwidth utilization.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any

from ifrates.counters import ConversionFailure, CounterWidth, to_counter

logger = logging.getLogger(__name__)

# Sentinel for "unknown" link speed and "unknown" utilization.
UNKNOWN = -1.0


class DuplexStatus(IntEnum):
    """dot3StatsDuplexStatus, plus NOT_INITIALIZED for rows we have no data for."""

    NOT_INITIALIZED = -1
    UNKNOWN = 1
    HALF_DUPLEX = 2
    FULL_DUPLEX = 3

    @classmethod
    def from_code(cls, code: Any) -> "DuplexStatus":
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return cls.NOT_INITIALIZED


def has_discontinuity(fresh: Any, stored: str) -> bool:
    """
    True when a previously known discontinuity marker changed.

    The first observation (empty `stored`) is never a discontinuity, and an
    empty `fresh` value carries no information.
    """
    fresh_text = "" if fresh is None else str(fresh)
    if not stored or not fresh_text:
        return False
    return fresh_text != stored


def to_bitrate(octet_rate: float) -> float:
    """Octets/s to bits/s. Zero and negative sentinels pass through unscaled."""
    return octet_rate * 8 if octet_rate > 0 else octet_rate


def _speed_value(raw: Any, key: str):
    if raw is None:
        return None
    try:
        return to_counter(raw, CounterWidth.BITS_32)
    except ConversionFailure as exc:
        logger.warning("Speed for interface %r treated as unknown: %s", key, exc)
        return None


def if_speed_to_bps(raw: Any, key: str = "") -> float:
    """ifSpeed is in bits/s; its maximum value means the agent cannot report it."""
    speed = _speed_value(raw, key)
    if speed is None or speed == CounterWidth.BITS_32.max_value:
        return UNKNOWN
    return float(speed)


def if_high_speed_to_bps(raw: Any, key: str = "") -> float:
    """ifHighSpeed is in Mbit/s."""
    speed = _speed_value(raw, key)
    if speed is None:
        return UNKNOWN
    return float(speed) * 10 ** 6


def calculate_utilization(
    bitrate_in: float,
    bitrate_out: float,
    speed: float,
    duplex: DuplexStatus,
) -> float:
    """
    Bandwidth utilization in percent, or UNKNOWN.

    Full duplex links carry both directions independently, so the busiest
    direction counts; half duplex links share the medium, so both add up.
    The result is not clamped to 100.
    """
    if speed <= 0 or bitrate_in < 0 or bitrate_out < 0:
        return UNKNOWN

    if duplex == DuplexStatus.FULL_DUPLEX:
        return max(bitrate_in, bitrate_out) / speed * 100
    if duplex == DuplexStatus.HALF_DUPLEX:
        return (bitrate_in + bitrate_out) / speed * 100

    return UNKNOWN
