"""
SQLAlchemy ORM models backing the column store.

- IfTableEntry:     IF-MIB ifTable rows (32-bit counters) plus computed columns
- IfXTableEntry:    IF-MIB ifXTable rows (64-bit HC counters) plus computed columns
- Dot3StatsEntry:   EtherLike-MIB dot3StatsDuplexStatus per interface
- ProtocolParameter: single named values, e.g. the agent restart flags

The poller fills the raw columns; the rate processor fills the computed ones
(bitrates, utilization, rate_data).
"""

from sqlalchemy import Column, DateTime, Float, Integer, String, BigInteger, Text

from ifrates.database import Base


class IfTableEntry(Base):
    __tablename__ = "if_table"

    if_index = Column(String(32), primary_key=True)

    # Raw counters as polled
    in_octets = Column(BigInteger, nullable=True)
    out_octets = Column(BigInteger, nullable=True)
    speed = Column(BigInteger, nullable=True)  # ifSpeed, bits/s

    # When the poller read this row (used by the "accurate" method)
    polled_at = Column(DateTime, nullable=True)

    # Computed by the rate processor
    in_bitrate = Column(Float, nullable=True)
    out_bitrate = Column(Float, nullable=True)
    utilization = Column(Float, nullable=True)
    rate_data = Column(Text, nullable=True)


class IfXTableEntry(Base):
    __tablename__ = "if_x_table"

    if_index = Column(String(32), primary_key=True)

    # 64-bit counters do not fit a signed BIGINT, keep them as text
    in_octets = Column(String(20), nullable=True)   # ifHCInOctets
    out_octets = Column(String(20), nullable=True)  # ifHCOutOctets
    speed = Column(BigInteger, nullable=True)       # ifHighSpeed, Mbit/s
    counter_discontinuity_time = Column(String(64), nullable=True)

    polled_at = Column(DateTime, nullable=True)

    in_bitrate = Column(Float, nullable=True)
    out_bitrate = Column(Float, nullable=True)
    utilization = Column(Float, nullable=True)
    rate_data = Column(Text, nullable=True)


class Dot3StatsEntry(Base):
    __tablename__ = "dot3_stats_table"

    if_index = Column(String(32), primary_key=True)
    duplex_status = Column(Integer, nullable=True)  # 1=unknown, 2=half, 3=full


class ProtocolParameter(Base):
    __tablename__ = "parameters"

    name = Column(String(64), primary_key=True)
    value = Column(String(255), nullable=True)
