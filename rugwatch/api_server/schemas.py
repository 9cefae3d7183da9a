"""
Request bodies for the REST API. Enum values arrive as strings and are
validated by the services, so bad values surface as ValidationError (422)
with the field name in the details.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class WarningCreateRequest(BaseModel):
    """POST /warnings body."""

    project_name: str = Field(..., min_length=1, max_length=200)
    token_symbol: str = Field(..., min_length=1, max_length=32)
    network: str = Field(..., description="Ethereum, BSC, Solana, Polygon or Other")
    contract_address: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    risk_types: list[str] = Field(default_factory=list)
    evidence: dict[str, Any] | None = None
    project_profile: dict[str, Any] | None = Field(None, description="Known risk indicators, by feature name")
    requires_monitoring: bool = False


class ResolveRequest(BaseModel):
    moderator_id: str = Field(..., min_length=1)
    resolution: str = Field(..., min_length=1)


class FalseAlarmRequest(BaseModel):
    moderator_id: str = Field(..., min_length=1)
    explanation: str = Field(..., min_length=1)


class VerifyWarningRequest(BaseModel):
    verifier_id: str = Field(..., min_length=1)


class NotifyRequest(BaseModel):
    recipients: list[str] = Field(default_factory=list)
    channel: str = "Push"


class TombstoneCreateRequest(BaseModel):
    """POST /tombstones body; the submitting user is passed alongside."""

    submitted_by: str = Field(..., min_length=1)
    project_name: str = Field(..., min_length=1)
    token_symbol: str = Field(..., min_length=1)
    network: str
    contract_address: str = Field(..., min_length=1)
    launch_date: datetime
    rug_pull_date: datetime
    total_loss: float = Field(0, ge=0)
    affected_users: int = Field(0, ge=0)
    fraud_tactics: list[str] = Field(default_factory=list)
    evidence: list[str] = Field(default_factory=list)
    team_anonymous: bool = True
    known_members: list[dict[str, Any]] = Field(default_factory=list)
    trading_data: dict[str, Any] = Field(default_factory=dict)


class VerifyTombstoneRequest(BaseModel):
    status: str
    user_id: str = Field(..., min_length=1)


class InsiderSubmitRequest(BaseModel):
    """POST /insider body. submitter_info is fingerprinted and never stored raw."""

    submitter_info: str = Field(..., min_length=1)
    title: str
    content: str
    project_name: str = Field(..., min_length=1)
    network: str
    categories: list[str] = Field(default_factory=list)
    contract_address: str | None = None
    risk_level: str = "Medium"
    evidence: list[str] = Field(default_factory=list)


class ReportRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    reason: str = ""


class ModerationRequest(BaseModel):
    status: str
    moderator_id: str = Field(..., min_length=1)
    reason: str = ""


class RiskReportRequest(BaseModel):
    """POST /tombstones/risk-report body: a live project to assess, nothing is stored."""

    contract_address: str = Field(..., min_length=1)
    network: str
    pair_address: str | None = None
    team_wallets: list[str] = Field(default_factory=list)
    project_profile: dict[str, Any] | None = Field(None, description="Known risk indicators, by feature name")
