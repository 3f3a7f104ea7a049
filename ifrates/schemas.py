"""
Pydantic models ("schemas").

Two groups:
- the persisted per-interface rate state, stored as a JSON blob in the
  `rate_data` column between polling cycles
- API responses, kept separate from the ORM models so the API layer does not
  expose SQLAlchemy internals
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class MalformedPersistedState(ValueError):
    """Raised when a stored rate-data blob cannot be parsed."""


class RateState(BaseModel):
    """
    Last accepted sample of one counter direction.

    - last_value / last_timestamp: baseline for the next delta (None = no history)
    - last_rate: last computed octet rate, reused when a delta is too short
    - buffered_seconds: time accumulated by timeout cycles since the baseline
      timestamp was last moved
    """

    model_config = ConfigDict(extra="ignore")

    last_value: Optional[int] = Field(default=None, ge=0)
    last_timestamp: Optional[datetime] = None
    last_rate: float = 0.0
    buffered_seconds: float = 0.0


class InterfaceRateState(BaseModel):
    """Everything persisted for one interface row."""

    model_config = ConfigDict(extra="ignore")

    discontinuity_time: str = ""
    bitrate_in: RateState = Field(default_factory=RateState)
    bitrate_out: RateState = Field(default_factory=RateState)


def parse_interface_state(blob) -> InterfaceRateState:
    """
    Parse a stored rate-data blob.

    Empty or absent input means "no history". Anything else that is not a
    valid JSON object of the expected shape raises MalformedPersistedState.
    """
    if blob is None:
        return InterfaceRateState()
    text = blob.decode("utf-8", "replace") if isinstance(blob, bytes) else str(blob)
    if not text.strip():
        return InterfaceRateState()
    try:
        return InterfaceRateState.model_validate_json(text)
    except ValidationError as exc:
        raise MalformedPersistedState(str(exc)) from exc


class InterfaceRateOut(BaseModel):
    """
    Computed outputs of one table row, as returned by GET /tables/{table}/rows.

    - bitrate_in / bitrate_out: bits per second (None until the first cycle)
    - utilization: percent, -1 when unknown
    """

    table: str
    if_index: str
    bitrate_in: Optional[float] = None
    bitrate_out: Optional[float] = None
    utilization: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class CycleOut(BaseModel):
    """Summary of a cycle triggered through the API."""

    table: str
    processed: int
    failed_keys: list[str]
    restart_flag_cleared: bool
