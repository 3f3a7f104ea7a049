"""
Background polling loop.

This module:
- opens the SQL column store
- every poll interval, runs a full rate cycle for each configured table
- logs and skips a cycle when the store is unavailable; the next poll
  recovers from the last committed rate state

Run it as:

    python -m ifrates.collector
"""

import logging
import time
from typing import List, Optional

from ifrates.config import Settings, settings
from ifrates.database import Base, SessionLocal, engine
from ifrates.logging_config import setup_logging
from ifrates.processors import CycleResult, TimeoutProcessor, get_processor
from ifrates.store import ColumnStore, InterfaceTable, SqlColumnStore, StoreUnavailable

logger = logging.getLogger(__name__)


def configured_tables(config: Settings) -> List[InterfaceTable]:
    tables = []
    for name in config.polled_tables:
        try:
            tables.append(InterfaceTable(name))
        except ValueError:
            logger.warning("Ignoring unknown table %r in POLLED_TABLES", name)
    return tables


def run_cycle(
    store: ColumnStore,
    table: InterfaceTable,
    timed_out: bool = False,
    config: Optional[Settings] = None,
) -> CycleResult:
    """Run one cycle for `table`: the timeout variant when its poll timed out."""
    if timed_out:
        return TimeoutProcessor(store, table, config).run()
    return get_processor(table, store, config).run()


def poll_once(store: ColumnStore, config: Settings) -> None:
    """Run a full cycle for every configured table."""
    for table in configured_tables(config):
        try:
            run_cycle(store, table, config=config)
        except StoreUnavailable as exc:
            logger.error("Cycle for %s skipped, store unavailable: %s", table.value, exc)


def main() -> None:
    """
    Main collector loop: poll, sleep, repeat.
    """
    setup_logging(settings.log_level, settings.log_json)

    # Create DB tables on startup (no-op if they already exist)
    Base.metadata.create_all(bind=engine)
    store = SqlColumnStore(SessionLocal)

    logger.info("Starting interface rate collector loop...")
    logger.info("Tables: %s", ", ".join(settings.polled_tables))
    logger.info("Poll interval: %s seconds", settings.poll_interval_seconds)

    while True:
        poll_once(store, settings)
        time.sleep(settings.poll_interval_seconds)


if __name__ == "__main__":
    main()
