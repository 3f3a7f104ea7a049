"""
Column store boundary.

The rate processors never touch tables directly. They read one snapshot per
cycle through a `ColumnStore` and hand back a single `CycleWrite`, which the
store applies as one batch. Two implementations:

- InMemoryColumnStore: dictionaries, for tests and embedding
- SqlColumnStore: the SQLAlchemy tables from `ifrates.models`

Any failure at this boundary surfaces as `StoreUnavailable`; the cycle that
hit it produces no output and the next poll starts over.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import String, select
from sqlalchemy.exc import SQLAlchemyError

from ifrates.models import Dot3StatsEntry, IfTableEntry, IfXTableEntry, ProtocolParameter

logger = logging.getLogger(__name__)


class StoreUnavailable(Exception):
    """Raised when reading from or writing to the column store fails."""


class InterfaceTable(str, Enum):
    IF_TABLE = "iftable"
    IF_X_TABLE = "ifxtable"

    @property
    def restart_flag_name(self) -> str:
        return f"{self.value}_snmp_agent_restart_flag"


@dataclass
class CounterRow:
    """Raw column values of one table row, as read from the store."""

    key: str
    octets_in: Any = None
    octets_out: Any = None
    speed: Any = None
    discontinuity: Any = None
    rate_data: Any = None
    polled_at: Optional[datetime] = None


@dataclass
class RowOutput:
    key: str
    bitrate_in: float
    bitrate_out: float
    utilization: float
    rate_data: str


@dataclass
class RateDataOutput:
    key: str
    rate_data: str


@dataclass
class CycleWrite:
    """Everything one cycle writes back, committed as a single batch."""

    table: InterfaceTable
    rows: List[RowOutput] = field(default_factory=list)
    rate_data: List[RateDataOutput] = field(default_factory=list)
    clear_restart_flag: bool = False

    def __bool__(self) -> bool:
        return bool(self.rows or self.rate_data or self.clear_restart_flag)


class ColumnStore(ABC):
    """Read/write interface the cycle processors depend on."""

    @abstractmethod
    def read_counter_rows(self, table: InterfaceTable) -> List[CounterRow]:
        """All rows of `table` in store order."""

    @abstractmethod
    def read_discontinuity_times(self) -> Dict[str, Any]:
        """ifCounterDiscontinuityTime per interface key, from the ifXTable."""

    @abstractmethod
    def read_duplex_statuses(self) -> List[Tuple[str, Any]]:
        """(key, dot3StatsDuplexStatus) pairs."""

    @abstractmethod
    def read_restart_flag(self, table: InterfaceTable) -> bool:
        """Whether the agent restart flag of `table` is set."""

    @abstractmethod
    def read_rate_data(self, table: InterfaceTable) -> List[Tuple[str, Any]]:
        """(key, rate_data blob) pairs, for timeout cycles."""

    @abstractmethod
    def commit(self, write: CycleWrite) -> None:
        """Apply a cycle's outputs atomically."""

    @abstractmethod
    def read_outputs(self, table: InterfaceTable) -> List[RowOutput]:
        """Computed columns of `table`, for presentation by the API."""


def _truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return False
        try:
            return float(value) != 0
        except ValueError:
            return value.lower() in ("true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryColumnStore(ColumnStore):
    """Dictionary-backed store. Rows keep insertion order."""

    def __init__(self) -> None:
        self.tables: Dict[InterfaceTable, Dict[str, Dict[str, Any]]] = {
            table: {} for table in InterfaceTable
        }
        self.duplex: Dict[str, Any] = {}
        self.parameters: Dict[str, Any] = {}
        self.commits: List[CycleWrite] = []

    # Poller-side writes -----------------------------------------------------

    def put_row(self, table: InterfaceTable, key: str, **columns: Any) -> None:
        row = self.tables[table].setdefault(str(key), {})
        row.update(columns)

    def set_duplex(self, key: str, code: Any) -> None:
        self.duplex[str(key)] = code

    def set_restart_flag(self, table: InterfaceTable, value: Any = 1) -> None:
        self.parameters[table.restart_flag_name] = value

    # ColumnStore ------------------------------------------------------------

    def read_counter_rows(self, table: InterfaceTable) -> List[CounterRow]:
        return [
            CounterRow(
                key=key,
                octets_in=row.get("octets_in"),
                octets_out=row.get("octets_out"),
                speed=row.get("speed"),
                discontinuity=row.get("discontinuity"),
                rate_data=row.get("rate_data"),
                polled_at=row.get("polled_at"),
            )
            for key, row in self.tables[table].items()
        ]

    def read_discontinuity_times(self) -> Dict[str, Any]:
        return {
            key: row.get("discontinuity")
            for key, row in self.tables[InterfaceTable.IF_X_TABLE].items()
        }

    def read_duplex_statuses(self) -> List[Tuple[str, Any]]:
        return list(self.duplex.items())

    def read_restart_flag(self, table: InterfaceTable) -> bool:
        return _truthy(self.parameters.get(table.restart_flag_name))

    def read_rate_data(self, table: InterfaceTable) -> List[Tuple[str, Any]]:
        return [(key, row.get("rate_data")) for key, row in self.tables[table].items()]

    def commit(self, write: CycleWrite) -> None:
        rows = self.tables[write.table]
        for out in write.rows:
            if out.key in rows:
                rows[out.key].update(
                    bitrate_in=out.bitrate_in,
                    bitrate_out=out.bitrate_out,
                    utilization=out.utilization,
                    rate_data=out.rate_data,
                )
        for out in write.rate_data:
            if out.key in rows:
                rows[out.key]["rate_data"] = out.rate_data
        if write.clear_restart_flag:
            self.parameters[write.table.restart_flag_name] = 0
        self.commits.append(write)

    def read_outputs(self, table: InterfaceTable) -> List[RowOutput]:
        return [
            RowOutput(
                key=key,
                bitrate_in=row.get("bitrate_in"),
                bitrate_out=row.get("bitrate_out"),
                utilization=row.get("utilization"),
                rate_data=row.get("rate_data") or "",
            )
            for key, row in self.tables[table].items()
        ]


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

_MODELS = {
    InterfaceTable.IF_TABLE: IfTableEntry,
    InterfaceTable.IF_X_TABLE: IfXTableEntry,
}


class SqlColumnStore(ColumnStore):
    """
    Column store on the ORM tables.

    Every read uses its own short session; `commit` runs in one transaction,
    so either all rows of a cycle land or none do.
    """

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def _read(self, fn):
        try:
            with self.session_factory() as db:
                return fn(db)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"read failed: {exc}") from exc

    # Poller-side writes -----------------------------------------------------

    def put_row(self, table: InterfaceTable, key: str, **columns: Any) -> None:
        """Insert or update the raw columns of one row."""
        model = _MODELS[table]
        mapping = {
            "octets_in": "in_octets",
            "octets_out": "out_octets",
            "speed": "speed",
            "discontinuity": "counter_discontinuity_time",
            "polled_at": "polled_at",
            "rate_data": "rate_data",
        }
        try:
            with self.session_factory() as db, db.begin():
                entry = db.get(model, str(key))
                if entry is None:
                    entry = model(if_index=str(key))
                    db.add(entry)
                for name, value in columns.items():
                    attr = mapping.get(name)
                    if attr is None or not hasattr(model, attr):
                        raise ValueError(f"{table.value} has no column {name!r}")
                    if attr in ("in_octets", "out_octets") and isinstance(model.__table__.c.in_octets.type, String):
                        value = None if value is None else str(value)
                    setattr(entry, attr, value)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"write failed: {exc}") from exc

    def set_duplex(self, key: str, code: Any) -> None:
        try:
            with self.session_factory() as db, db.begin():
                db.merge(Dot3StatsEntry(if_index=str(key), duplex_status=code))
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"write failed: {exc}") from exc

    def set_restart_flag(self, table: InterfaceTable, value: Any = 1) -> None:
        try:
            with self.session_factory() as db, db.begin():
                db.merge(ProtocolParameter(name=table.restart_flag_name, value=str(value)))
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"write failed: {exc}") from exc

    # ColumnStore ------------------------------------------------------------

    def read_counter_rows(self, table: InterfaceTable) -> List[CounterRow]:
        model = _MODELS[table]

        def fetch(db):
            entries = db.scalars(select(model).order_by(model.if_index)).all()
            return [
                CounterRow(
                    key=e.if_index,
                    octets_in=e.in_octets,
                    octets_out=e.out_octets,
                    speed=e.speed,
                    discontinuity=getattr(e, "counter_discontinuity_time", None),
                    rate_data=e.rate_data,
                    polled_at=e.polled_at,
                )
                for e in entries
            ]

        return self._read(fetch)

    def read_discontinuity_times(self) -> Dict[str, Any]:
        def fetch(db):
            rows = db.execute(
                select(IfXTableEntry.if_index, IfXTableEntry.counter_discontinuity_time)
            ).all()
            return {key: marker for key, marker in rows}

        return self._read(fetch)

    def read_duplex_statuses(self) -> List[Tuple[str, Any]]:
        def fetch(db):
            rows = db.execute(
                select(Dot3StatsEntry.if_index, Dot3StatsEntry.duplex_status)
            ).all()
            return [(key, code) for key, code in rows]

        return self._read(fetch)

    def read_restart_flag(self, table: InterfaceTable) -> bool:
        def fetch(db):
            param = db.get(ProtocolParameter, table.restart_flag_name)
            return _truthy(param.value if param is not None else None)

        return self._read(fetch)

    def read_rate_data(self, table: InterfaceTable) -> List[Tuple[str, Any]]:
        model = _MODELS[table]

        def fetch(db):
            rows = db.execute(
                select(model.if_index, model.rate_data).order_by(model.if_index)
            ).all()
            return [(key, blob) for key, blob in rows]

        return self._read(fetch)

    def commit(self, write: CycleWrite) -> None:
        model = _MODELS[write.table]
        try:
            with self.session_factory() as db, db.begin():
                for out in write.rows:
                    entry = db.get(model, out.key)
                    if entry is None:
                        logger.debug("Row %s vanished from %s before commit", out.key, write.table.value)
                        continue
                    entry.in_bitrate = out.bitrate_in
                    entry.out_bitrate = out.bitrate_out
                    entry.utilization = out.utilization
                    entry.rate_data = out.rate_data
                for out in write.rate_data:
                    entry = db.get(model, out.key)
                    if entry is not None:
                        entry.rate_data = out.rate_data
                if write.clear_restart_flag:
                    db.merge(ProtocolParameter(name=write.table.restart_flag_name, value="0"))
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"commit failed: {exc}") from exc

    def read_outputs(self, table: InterfaceTable) -> List[RowOutput]:
        model = _MODELS[table]

        def fetch(db):
            entries = db.scalars(select(model).order_by(model.if_index)).all()
            return [
                RowOutput(
                    key=e.if_index,
                    bitrate_in=e.in_bitrate,
                    bitrate_out=e.out_bitrate,
                    utilization=e.utilization,
                    rate_data=e.rate_data or "",
                )
                for e in entries
            ]

        return self._read(fetch)
