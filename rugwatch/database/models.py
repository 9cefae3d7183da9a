"""
SQLAlchemy rows for warnings, tombstones, insider submissions and chat messages.

Each row keeps the full document as a JSON column plus the handful of scalar
columns that queries filter or sort on (network, status, risk score, unique
keys). Timestamps used for ordering and ranges are Unix seconds.
"""

from __future__ import annotations

from sqlalchemy import JSON, Column, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class WarningRow(Base):
    __tablename__ = "warning_signs"

    id = Column(String(64), primary_key=True)
    network = Column(String(32), nullable=False, index=True)
    status = Column(String(32), nullable=False, index=True)
    risk_level = Column(String(16), nullable=False, index=True)
    risk_score = Column(Integer, nullable=False, default=0, index=True)
    contract_address = Column(String(128), nullable=False, index=True)
    created_ts = Column(Float, nullable=False, index=True)
    document = Column(JSON, nullable=False)


class TombstoneRow(Base):
    __tablename__ = "rug_coin_tombstones"
    __table_args__ = (UniqueConstraint("token_symbol", "network", name="uq_tombstone_symbol_network"),)

    id = Column(String(64), primary_key=True)
    token_symbol = Column(String(32), nullable=False)
    network = Column(String(32), nullable=False, index=True)
    contract_address = Column(String(128), nullable=False, unique=True)
    verification_status = Column(String(16), nullable=False, index=True)
    rug_pull_ts = Column(Float, nullable=False, index=True)
    document = Column(JSON, nullable=False)


class InsiderRow(Base):
    __tablename__ = "insider_information"

    id = Column(String(64), primary_key=True)
    submission_hash = Column(String(64), nullable=False, unique=True)
    project_name = Column(String(256), nullable=False, index=True)
    network = Column(String(32), nullable=False, index=True)
    verification_status = Column(String(16), nullable=False, index=True)
    credibility_score = Column(Integer, nullable=False, default=0, index=True)
    created_ts = Column(Float, nullable=False, index=True)
    document = Column(JSON, nullable=False)


class ChatMessageRow(Base):
    __tablename__ = "chat_messages"

    id = Column(String(64), primary_key=True)
    room_id = Column(String(128), nullable=False, index=True)
    visibility = Column(String(16), nullable=False, index=True)
    created_ts = Column(Float, nullable=False, index=True)
    document = Column(JSON, nullable=False)
