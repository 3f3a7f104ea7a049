"""Tests for RateEstimator and the persisted per-interface rate data."""

import json
from datetime import timedelta

import pytest

from ifrates.counters import CounterWidth
from ifrates.rates import InterfaceRateData, RateEstimator


def make_estimator(width: CounterWidth = CounterWidth.BITS_64) -> RateEstimator:
    return RateEstimator(width, timedelta(seconds=5), timedelta(minutes=10))


class TestRateEstimator:
    """Tests for RateEstimator.calculate and buffer_delta."""

    def test_first_call_bootstraps(self, t0) -> None:
        """No history: rate 0, current sample stored."""
        estimator = make_estimator()

        assert estimator.calculate(1000, t0) == 0.0
        assert estimator.has_history
        assert estimator.state.last_value == 1000
        assert estimator.state.last_timestamp == t0

    def test_rate_from_delta(self, t0) -> None:
        estimator = make_estimator()
        estimator.calculate(1000, t0)

        rate = estimator.calculate(1000 + 1_250_000, t0 + timedelta(seconds=10))

        assert rate == pytest.approx(125_000.0)
        assert estimator.state.last_rate == pytest.approx(125_000.0)

    def test_rate_across_wrap(self, t0) -> None:
        estimator = make_estimator(CounterWidth.BITS_32)
        estimator.calculate(2 ** 32 - 500, t0)

        rate = estimator.calculate(500, t0 + timedelta(seconds=10))

        assert rate == pytest.approx(100.0)

    def test_noise_guard_reuses_previous_rate(self, t0) -> None:
        """A delta below min_delta returns the last rate and keeps the baseline."""
        estimator = make_estimator()
        estimator.calculate(1000, t0)
        estimator.calculate(126_000, t0 + timedelta(seconds=10))

        rate = estimator.calculate(200_000, t0 + timedelta(seconds=12))

        assert rate == pytest.approx(12_500.0)
        assert estimator.state.last_value == 126_000
        assert estimator.state.last_timestamp == t0 + timedelta(seconds=10)

    def test_staleness_resets_history(self, t0) -> None:
        """A delta above max_delta yields 0 and re-baselines on the new sample."""
        estimator = make_estimator()
        estimator.calculate(1000, t0)
        later = t0 + timedelta(minutes=15)

        assert estimator.calculate(5000, later) == 0.0
        assert estimator.state.last_value == 5000
        assert estimator.state.last_timestamp == later

        rate = estimator.calculate(5000 + 1_250_000, later + timedelta(seconds=10))
        assert rate == pytest.approx(125_000.0)

    def test_clock_going_backwards(self, t0) -> None:
        estimator = make_estimator()
        estimator.calculate(1000, t0)

        assert estimator.calculate(2000, t0 - timedelta(seconds=30)) == 0.0
        assert estimator.state.last_value == 2000

    def test_round_trip_is_transparent(self, t0) -> None:
        """Serializing between calls changes nothing about the next result."""
        kept = make_estimator()
        kept.calculate(1000, t0)
        kept.calculate(51_000, t0 + timedelta(seconds=10))

        restored = RateEstimator.from_json(
            kept.to_json(), CounterWidth.BITS_64, timedelta(seconds=5), timedelta(minutes=10)
        )

        for estimator in (kept, restored):
            assert estimator.calculate(61_000, t0 + timedelta(seconds=11)) == pytest.approx(5000.0)
        assert kept.calculate(151_000, t0 + timedelta(seconds=20)) == restored.calculate(
            151_000, t0 + timedelta(seconds=20)
        )
        assert kept.to_json() == restored.to_json()

    @pytest.mark.parametrize("text", [None, "", "   ", "{broken", "[]"])
    def test_from_json_without_usable_state(self, text, t0) -> None:
        estimator = RateEstimator.from_json(text, CounterWidth.BITS_32)

        assert not estimator.has_history
        assert estimator.calculate(10, t0) == 0.0

    def test_from_json_ignores_unknown_fields(self, t0) -> None:
        text = json.dumps(
            {
                "last_value": 100,
                "last_timestamp": t0.isoformat(),
                "last_rate": 1.5,
                "added_in_a_later_version": True,
            }
        )
        estimator = RateEstimator.from_json(text, CounterWidth.BITS_32)

        assert estimator.state.last_value == 100
        assert estimator.calculate(200, t0 + timedelta(seconds=10)) == pytest.approx(10.0)

    def test_stored_value_beyond_width_is_discarded(self, t0, caplog) -> None:
        """A 32-bit counter stored as 2^40 would make every later delta negative."""
        text = json.dumps({"last_value": 2 ** 40, "last_timestamp": t0.isoformat()})
        estimator = RateEstimator.from_json(text, CounterWidth.BITS_32)

        assert not estimator.has_history
        assert "exceeds 32-bit range" in caplog.text
        assert estimator.calculate(1000, t0 + timedelta(seconds=10)) == 0.0
        assert estimator.calculate(11_000, t0 + timedelta(seconds=20)) == pytest.approx(1000.0)

    def test_negative_stored_value_is_discarded(self, t0) -> None:
        text = json.dumps({"last_value": -10_000_000, "last_timestamp": t0.isoformat()})
        estimator = RateEstimator.from_json(text, CounterWidth.BITS_32)

        assert not estimator.has_history
        assert estimator.calculate(1000, t0 + timedelta(seconds=10)) == 0.0

    def test_buffer_delta_prevents_false_staleness(self, t0) -> None:
        """Timed-out polls keep the gap fresh while the rate spans the full interval."""
        estimator = make_estimator()
        estimator.calculate(0, t0)
        t1 = t0 + timedelta(seconds=10)
        estimator.calculate(1_000_000, t1)

        estimator.buffer_delta(t1 + timedelta(minutes=5))
        estimator.buffer_delta(t1 + timedelta(minutes=10))
        assert estimator.state.last_value == 1_000_000
        assert estimator.state.buffered_seconds == pytest.approx(600.0)

        rate = estimator.calculate(1_000_000 + 72_000_000, t1 + timedelta(minutes=12))

        assert rate == pytest.approx(100_000.0)
        assert estimator.state.buffered_seconds == 0.0

    def test_gap_without_buffering_is_stale(self, t0) -> None:
        estimator = make_estimator()
        estimator.calculate(0, t0)

        assert estimator.calculate(72_000_000, t0 + timedelta(minutes=12)) == 0.0

    def test_buffer_delta_without_history_is_noop(self, t0) -> None:
        estimator = make_estimator()
        estimator.buffer_delta(t0)

        assert not estimator.has_history
        assert estimator.state.buffered_seconds == 0.0


class TestInterfaceRateData:
    """Tests for the per-interface blob."""

    def test_empty_blob(self) -> None:
        data = InterfaceRateData.from_json("", CounterWidth.BITS_64)

        assert data.discontinuity_time == ""
        assert not data.bitrate_in.has_history
        assert not data.bitrate_out.has_history

    def test_malformed_blob_starts_fresh(self, caplog) -> None:
        data = InterfaceRateData.from_json("{not json", CounterWidth.BITS_64, key="3")

        assert not data.bitrate_in.has_history
        assert "Malformed rate data for interface '3'" in caplog.text

    def test_out_of_range_counters_start_fresh(self, t0) -> None:
        blob = json.dumps(
            {
                "discontinuity_time": "77",
                "bitrate_in": {"last_value": -5, "last_timestamp": t0.isoformat()},
                "bitrate_out": {"last_value": 2 ** 40, "last_timestamp": t0.isoformat()},
            }
        )

        negative = InterfaceRateData.from_json(blob, CounterWidth.BITS_32, key="3")
        assert not negative.bitrate_in.has_history
        assert not negative.bitrate_out.has_history

        blob = json.dumps({"bitrate_out": {"last_value": 2 ** 40, "last_timestamp": t0.isoformat()}})
        wide = InterfaceRateData.from_json(blob, CounterWidth.BITS_32)
        assert not wide.bitrate_out.has_history

        # within 64-bit range the same value is a valid baseline
        assert InterfaceRateData.from_json(blob, CounterWidth.BITS_64).bitrate_out.has_history

    def test_round_trip(self, t0) -> None:
        data = InterfaceRateData(CounterWidth.BITS_32)
        data.discontinuity_time = "1234"
        data.bitrate_in.calculate(10, t0)
        data.bitrate_out.calculate(20, t0)

        restored = InterfaceRateData.from_json(data.to_json(), CounterWidth.BITS_32)

        assert restored.discontinuity_time == "1234"
        assert restored.bitrate_in.state.model_dump() == data.bitrate_in.state.model_dump()
        assert restored.bitrate_out.state.last_value == 20

    def test_reset_rates(self, t0) -> None:
        data = InterfaceRateData(CounterWidth.BITS_32)
        data.discontinuity_time = "1234"
        data.bitrate_in.calculate(10, t0)

        data.reset_rates()

        assert not data.bitrate_in.has_history
        assert data.discontinuity_time == "1234"
