"""
FastAPI application around the rate processor.

Endpoints
---------
- GET  /health                   -> Simple liveness check
- GET  /tables/{table}/rows      -> Computed bitrates/utilization per interface
- POST /tables/{table}/cycle     -> Run a full rate cycle now
- POST /tables/{table}/timeout   -> Report a timed-out poll (buffers timing state)

`table` is `iftable` or `ifxtable`.
"""

from typing import List

from fastapi import Depends, FastAPI, HTTPException

from ifrates.config import settings
from ifrates.database import Base, SessionLocal, engine
from ifrates.collector import run_cycle
from ifrates.processors import CycleResult
from ifrates.schemas import CycleOut, InterfaceRateOut
from ifrates.store import ColumnStore, InterfaceTable, SqlColumnStore, StoreUnavailable


# ---------------------------------------------------------------------------
# Database bootstrap
# ---------------------------------------------------------------------------

# Make sure tables exist even if the collector has not been run yet.
Base.metadata.create_all(bind=engine)


app = FastAPI(
    title="Interface Rate Processor API",
    version="0.1.0",
)


# ---------------------------------------------------------------------------
# Dependency: the column store
# ---------------------------------------------------------------------------

def get_store() -> ColumnStore:
    """
    FastAPI dependency that provides the column store.

    Tests override it with an in-memory store.
    """
    return SqlColumnStore(SessionLocal)


def _cycle_out(result: CycleResult) -> CycleOut:
    return CycleOut(
        table=result.table.value,
        processed=result.processed,
        failed_keys=result.failed_keys,
        restart_flag_cleared=result.write.clear_restart_flag,
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/health")
def health() -> dict:
    """Simple liveness endpoint used for health checks."""
    return {"status": "ok"}


@app.get("/tables/{table}/rows", response_model=List[InterfaceRateOut])
def get_rows(table: InterfaceTable, store: ColumnStore = Depends(get_store)):
    """Return the last committed outputs of every row in `table`."""
    try:
        outputs = store.read_outputs(table)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))

    return [
        InterfaceRateOut(
            table=table.value,
            if_index=out.key,
            bitrate_in=out.bitrate_in,
            bitrate_out=out.bitrate_out,
            utilization=out.utilization,
        )
        for out in outputs
    ]


@app.post("/tables/{table}/cycle", response_model=CycleOut)
def post_cycle(table: InterfaceTable, store: ColumnStore = Depends(get_store)):
    """Run a full cycle for `table` and commit its outputs."""
    try:
        result = run_cycle(store, table, config=settings)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return _cycle_out(result)


@app.post("/tables/{table}/timeout", response_model=CycleOut)
def post_timeout(table: InterfaceTable, store: ColumnStore = Depends(get_store)):
    """
    Called by the poller when polling `table` timed out.

    Only the rate timing state is updated, so the next full cycle neither
    resets on a long gap nor inflates the rate.
    """
    try:
        result = run_cycle(store, table, timed_out=True, config=settings)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return _cycle_out(result)
