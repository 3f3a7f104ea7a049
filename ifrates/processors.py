"""
Polling-cycle processors for the ifTable (32-bit) and ifXTable (64-bit).

A full cycle reads one snapshot from the column store and, per row:

1. resets rate history on an agent restart or a changed discontinuity time
2. turns the in/out octet counters into bit rates
3. derives bandwidth utilization from the bit rates, link speed and duplex

All outputs are collected into one `CycleWrite` and committed in one batch.
Rows are independent: a row that fails is logged and left out, the others
are still written.

The timeout cycle runs instead of a full cycle when the poll of a table timed
out. It only buffers the elapsed time into each row's rate state.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ifrates.config import RateCalculationMethod, Settings, settings
from ifrates.counters import CounterWidth, ensure_utc, safe_counter, safe_timestamp, utc_now
from ifrates.interface import (
    DuplexStatus,
    calculate_utilization,
    has_discontinuity,
    if_high_speed_to_bps,
    if_speed_to_bps,
    to_bitrate,
)
from ifrates.rates import InterfaceRateData
from ifrates.store import (
    ColumnStore,
    CounterRow,
    CycleWrite,
    InterfaceTable,
    RateDataOutput,
    RowOutput,
)

logger = logging.getLogger(__name__)

TABLE_WIDTHS = {
    InterfaceTable.IF_TABLE: CounterWidth.BITS_32,
    InterfaceTable.IF_X_TABLE: CounterWidth.BITS_64,
}

# Errors a single malformed row can raise while being processed.
ROW_ERRORS = (ValueError, TypeError, ArithmeticError, AttributeError, KeyError)


@dataclass
class CycleResult:
    table: InterfaceTable
    write: CycleWrite
    failed_keys: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.write.rows) + len(self.write.rate_data)


class TableCycleProcessor(ABC):
    """Full polling cycle for one interface table; see the module docstring."""

    table: InterfaceTable
    width: CounterWidth

    def __init__(self, store: ColumnStore, config: Optional[Settings] = None) -> None:
        self.store = store
        self.config = config or settings

    # Table specifics ----------------------------------------------------------

    @abstractmethod
    def discontinuity_markers(self, rows: List[CounterRow]) -> Dict[str, Any]:
        """Discontinuity marker per interface key."""

    @abstractmethod
    def speed_to_bps(self, raw: Any, key: str) -> float:
        """Link speed in bits/s, or UNKNOWN."""

    # Cycle ------------------------------------------------------------------

    def row_timestamp(self, row: CounterRow, now: datetime) -> datetime:
        if (
            self.config.rate_calculation_method == RateCalculationMethod.ACCURATE
            and row.polled_at is not None
        ):
            return safe_timestamp(row.polled_at, now, str(row.key))
        return now

    def process(self, now: Optional[datetime] = None) -> CycleResult:
        """Compute this cycle's outputs without writing them."""
        now = ensure_utc(now) if now is not None else utc_now()

        restarted = self.store.read_restart_flag(self.table)
        rows = self.store.read_counter_rows(self.table)
        markers = self.discontinuity_markers(rows)
        duplex_statuses = {
            str(key): DuplexStatus.from_code(code)
            for key, code in self.store.read_duplex_statuses()
        }

        if restarted:
            logger.info("SNMP agent restart flagged for %s, resetting all rates", self.table.value)

        write = CycleWrite(table=self.table, clear_restart_flag=restarted)
        result = CycleResult(table=self.table, write=write)

        for row in rows:
            key = str(row.key)
            try:
                write.rows.append(
                    self.process_row(
                        row,
                        now,
                        restarted=restarted,
                        marker=markers.get(key),
                        duplex=duplex_statuses.get(key, DuplexStatus.NOT_INITIALIZED),
                    )
                )
            except ROW_ERRORS:
                logger.exception("Skipping interface %r of %s", key, self.table.value)
                result.failed_keys.append(key)

        logger.info(
            "%s cycle: %d rows processed, %d skipped",
            self.table.value,
            len(write.rows),
            len(result.failed_keys),
        )
        return result

    def process_row(
        self,
        row: CounterRow,
        now: datetime,
        restarted: bool = False,
        marker: Any = None,
        duplex: DuplexStatus = DuplexStatus.NOT_INITIALIZED,
    ) -> RowOutput:
        key = str(row.key)
        rate_data = InterfaceRateData.from_json(
            row.rate_data, self.width, self.config.min_delta, self.config.max_delta, key=key
        )

        if has_discontinuity(marker, rate_data.discontinuity_time):
            logger.info("Counter discontinuity on interface %r of %s", key, self.table.value)
            rate_data.reset_rates()
        elif restarted:
            rate_data.reset_rates()
        if marker is not None and str(marker):
            rate_data.discontinuity_time = str(marker)

        timestamp = self.row_timestamp(row, now)
        octets_in = safe_counter(row.octets_in, self.width, key)
        octets_out = safe_counter(row.octets_out, self.width, key)
        bitrate_in = to_bitrate(rate_data.bitrate_in.calculate(octets_in, timestamp))
        bitrate_out = to_bitrate(rate_data.bitrate_out.calculate(octets_out, timestamp))

        speed = self.speed_to_bps(row.speed, key)
        utilization = calculate_utilization(bitrate_in, bitrate_out, speed, duplex)

        return RowOutput(
            key=key,
            bitrate_in=bitrate_in,
            bitrate_out=bitrate_out,
            utilization=utilization,
            rate_data=rate_data.to_json(),
        )

    def update_store(self, result: CycleResult) -> None:
        if result.write:
            self.store.commit(result.write)

    def run(self, now: Optional[datetime] = None) -> CycleResult:
        result = self.process(now)
        self.update_store(result)
        return result


class IfTableProcessor(TableCycleProcessor):
    """
    ifTable: 32-bit ifInOctets/ifOutOctets, ifSpeed in bits/s.

    The ifTable has no discontinuity column of its own; the marker is joined
    from the ifXTable by interface key. Interfaces without an ifXTable row only
    reset on the agent restart flag.
    """

    table = InterfaceTable.IF_TABLE
    width = CounterWidth.BITS_32

    def discontinuity_markers(self, rows: List[CounterRow]) -> Dict[str, Any]:
        return {str(k): v for k, v in self.store.read_discontinuity_times().items()}

    def speed_to_bps(self, raw: Any, key: str) -> float:
        return if_speed_to_bps(raw, key)


class IfXTableProcessor(TableCycleProcessor):
    """ifXTable: 64-bit ifHCInOctets/ifHCOutOctets, ifHighSpeed in Mbit/s."""

    table = InterfaceTable.IF_X_TABLE
    width = CounterWidth.BITS_64

    def discontinuity_markers(self, rows: List[CounterRow]) -> Dict[str, Any]:
        return {str(row.key): row.discontinuity for row in rows}

    def speed_to_bps(self, raw: Any, key: str) -> float:
        return if_high_speed_to_bps(raw, key)


class TimeoutProcessor:
    """Keeps rate timing state fresh for a table whose poll timed out."""

    def __init__(
        self,
        store: ColumnStore,
        table: InterfaceTable,
        config: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.table = table
        self.width = TABLE_WIDTHS[table]
        self.config = config or settings

    def process(self, now: Optional[datetime] = None) -> CycleResult:
        now = ensure_utc(now) if now is not None else utc_now()
        write = CycleWrite(table=self.table)
        result = CycleResult(table=self.table, write=write)

        for key, blob in self.store.read_rate_data(self.table):
            key = str(key)
            try:
                rate_data = InterfaceRateData.from_json(
                    blob, self.width, self.config.min_delta, self.config.max_delta, key=key
                )
                rate_data.bitrate_in.buffer_delta(now)
                rate_data.bitrate_out.buffer_delta(now)
                write.rate_data.append(RateDataOutput(key=key, rate_data=rate_data.to_json()))
            except ROW_ERRORS:
                logger.exception("Skipping interface %r of %s", key, self.table.value)
                result.failed_keys.append(key)

        logger.info("%s timeout cycle: %d rows buffered", self.table.value, len(write.rate_data))
        return result

    def update_store(self, result: CycleResult) -> None:
        if result.write:
            self.store.commit(result.write)

    def run(self, now: Optional[datetime] = None) -> CycleResult:
        result = self.process(now)
        self.update_store(result)
        return result


PROCESSORS = {
    InterfaceTable.IF_TABLE: IfTableProcessor,
    InterfaceTable.IF_X_TABLE: IfXTableProcessor,
}


def get_processor(
    table: InterfaceTable,
    store: ColumnStore,
    config: Optional[Settings] = None,
) -> TableCycleProcessor:
    return PROCESSORS[table](store, config)
