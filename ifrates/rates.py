"""
Rate estimation from cumulative SNMP counters.

A RateEstimator turns successive readings of one counter into an octets per
second rate. Its state is a `RateState` and round-trips through JSON so that
rate continuity survives between polling cycles and process restarts.

Timing window:
- deltas shorter than `min_delta` are measurement jitter: the previous rate is
  returned and the baseline is left untouched
- deltas longer than `max_delta` are stale (missed polls): history is dropped,
  the current sample becomes the new baseline and the rate is 0
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ifrates.counters import CounterReading, CounterWidth, compute_delta, ensure_utc
from ifrates.schemas import (
    InterfaceRateState,
    MalformedPersistedState,
    RateState,
    parse_interface_state,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_DELTA = timedelta(seconds=5)
DEFAULT_MAX_DELTA = timedelta(minutes=10)


class RateEstimator:
    """Octet rate of one counter direction of one interface."""

    def __init__(
        self,
        width: CounterWidth,
        min_delta: timedelta = DEFAULT_MIN_DELTA,
        max_delta: timedelta = DEFAULT_MAX_DELTA,
        state: RateState | None = None,
    ) -> None:
        self.width = width
        self.min_delta = min_delta
        self.max_delta = max_delta
        self.state = state if state is not None else RateState()
        if self.state.last_value is not None and self.state.last_value > width.max_value:
            logger.warning(
                "Stored counter %d exceeds %d-bit range, starting without history",
                self.state.last_value,
                int(width),
            )
            self.state = RateState()

    @classmethod
    def from_json(
        cls,
        text: str | None,
        width: CounterWidth,
        min_delta: timedelta = DEFAULT_MIN_DELTA,
        max_delta: timedelta = DEFAULT_MAX_DELTA,
    ) -> "RateEstimator":
        """Rebuild an estimator; empty or unreadable text gives a fresh one."""
        state = None
        if text and text.strip():
            try:
                state = RateState.model_validate_json(text)
            except ValueError:
                logger.warning("Discarding unreadable rate state %r", text)
        return cls(width, min_delta, max_delta, state)

    def to_json(self) -> str:
        return self.state.model_dump_json()

    @property
    def has_history(self) -> bool:
        return self.state.last_value is not None and self.state.last_timestamp is not None

    def reset(self) -> None:
        self.state = RateState()

    def _rebaseline(self, value: int, timestamp: datetime) -> None:
        self.state = RateState(last_value=value, last_timestamp=timestamp)

    def calculate(self, value: int, timestamp: datetime) -> float:
        """
        Feed the current counter value and return the octet rate.

        Returns 0 on the first observation, after a stale gap, and when the
        clock went backwards.
        """
        timestamp = ensure_utc(timestamp)

        if not self.has_history:
            self._rebaseline(value, timestamp)
            return 0.0

        previous = CounterReading(self.state.last_value, ensure_utc(self.state.last_timestamp))
        delta_value, interval = compute_delta(
            previous, CounterReading(value, timestamp), self.width
        )

        if interval <= timedelta(0):
            logger.debug("Non-positive delta time %s, restarting rate history", interval)
            self._rebaseline(value, timestamp)
            return 0.0

        elapsed = interval + timedelta(seconds=self.state.buffered_seconds)

        if elapsed < self.min_delta:
            return self.state.last_rate

        if interval > self.max_delta:
            logger.debug("Delta time %s exceeds %s, restarting rate history", interval, self.max_delta)
            self._rebaseline(value, timestamp)
            return 0.0

        rate = delta_value / elapsed.total_seconds()
        self.state = RateState(last_value=value, last_timestamp=timestamp, last_rate=rate)
        return rate

    def buffer_delta(self, timestamp: datetime) -> None:
        """
        Account for a poll that produced no counter value (e.g. a timeout).

        The time since the baseline timestamp is moved into `buffered_seconds`
        and the baseline timestamp advances, so the next `calculate` checks
        staleness against this poll while still dividing by the full time since
        the last accepted value. No-op without history.
        """
        if not self.has_history:
            return

        timestamp = ensure_utc(timestamp)
        interval = timestamp - ensure_utc(self.state.last_timestamp)
        if interval <= timedelta(0):
            return

        self.state = self.state.model_copy(
            update={
                "last_timestamp": timestamp,
                "buffered_seconds": self.state.buffered_seconds + interval.total_seconds(),
            }
        )


class InterfaceRateData:
    """
    Per-interface persisted data: both rate directions plus the last known
    ifCounterDiscontinuityTime.
    """

    def __init__(
        self,
        width: CounterWidth,
        min_delta: timedelta = DEFAULT_MIN_DELTA,
        max_delta: timedelta = DEFAULT_MAX_DELTA,
        state: InterfaceRateState | None = None,
    ) -> None:
        state = state if state is not None else InterfaceRateState()
        self.width = width
        self.min_delta = min_delta
        self.max_delta = max_delta
        self.discontinuity_time = state.discontinuity_time
        self.bitrate_in = RateEstimator(width, min_delta, max_delta, state.bitrate_in)
        self.bitrate_out = RateEstimator(width, min_delta, max_delta, state.bitrate_out)

    @classmethod
    def from_json(
        cls,
        blob,
        width: CounterWidth,
        min_delta: timedelta = DEFAULT_MIN_DELTA,
        max_delta: timedelta = DEFAULT_MAX_DELTA,
        key: str = "",
    ) -> "InterfaceRateData":
        try:
            state = parse_interface_state(blob)
        except MalformedPersistedState as exc:
            logger.warning("Malformed rate data for interface %r, starting without history: %s", key, exc)
            state = None
        return cls(width, min_delta, max_delta, state)

    def to_json(self) -> str:
        state = InterfaceRateState(
            discontinuity_time=self.discontinuity_time,
            bitrate_in=self.bitrate_in.state,
            bitrate_out=self.bitrate_out.state,
        )
        return state.model_dump_json()

    def reset_rates(self) -> None:
        """Drop counter history in both directions (discontinuity, restart)."""
        self.bitrate_in.reset()
        self.bitrate_out.reset()
