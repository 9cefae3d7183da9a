"""
Domain models for risk warnings.

A WarningSign is the aggregate root: descriptive token data, evidence in three
independently-mergeable sub-records, the latest AI analysis, lifecycle status
and an append-only notification log. No ORM coupling; the database layer
converts to and from these dataclasses.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from rugwatch.core.exceptions import ValidationError


class Network(str, Enum):
    ETHEREUM = "Ethereum"
    BSC = "BSC"
    SOLANA = "Solana"
    POLYGON = "Polygon"
    OTHER = "Other"


class RiskType(str, Enum):
    LARGE_TOKEN_TRANSFER = "Large Token Transfer"
    LIQUIDITY_REDUCTION = "Liquidity Reduction"
    CONTRACT_RISK = "Contract Risk"
    TEAM_WALLET_ACTIVITY = "Team Wallet Activity"
    MARKET_MANIPULATION = "Market Manipulation"
    SOCIAL_SENTIMENT = "Social Sentiment"
    OTHER = "Other"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class WarningStatus(str, Enum):
    ACTIVE = "Active"
    RESOLVED = "Resolved"
    FALSE_ALARM = "False Alarm"


class NotificationChannel(str, Enum):
    PUSH = "Push"
    EMAIL = "Email"
    IN_APP = "In-App"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def parse_enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    """Coerce a raw value into enum_cls; ValidationError on unknown values."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid {field_name}: {value!r} (allowed: {allowed})",
            {"field": field_name, "value": value},
        ) from None


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts else None


def _parse_ts(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        # Unix seconds; milliseconds when clearly too large
        seconds = value / 1000.0 if value > 1e11 else float(value)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _opt_float(value: Any) -> float | None:
    """None passes through; anything else must convert (ValueError/TypeError otherwise)."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise TypeError(f"expected a number, got {value!r}")
    return float(value)


def _opt_int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise TypeError(f"expected an integer, got {value!r}")
    return int(value)


# -----------------------------------------------------------------------------
# Evidence sub-records. None means "not known / not supplied".
# -----------------------------------------------------------------------------


@dataclass
class OnChainData:
    transaction_hash: str | None = None
    block_number: int | None = None
    timestamp: datetime | None = None
    pair_address: str | None = None
    """Liquidity-pool pair; when known, monitoring re-fetches reserves."""
    details: dict[str, Any] | None = None
    """Opaque structured facts (contract-risk scan, transfers); merged key-wise."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_hash": self.transaction_hash,
            "block_number": self.block_number,
            "timestamp": _iso(self.timestamp),
            "pair_address": self.pair_address,
            "details": dict(self.details) if self.details is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "OnChainData":
        data = data or {}
        return cls(
            transaction_hash=data.get("transaction_hash"),
            block_number=_opt_int(data.get("block_number")),
            timestamp=_parse_ts(data.get("timestamp")),
            pair_address=data.get("pair_address"),
            details=dict(data["details"]) if data.get("details") is not None else None,
        )


@dataclass
class MarketData:
    price_change: float | None = None
    volume_change: float | None = None
    liquidity_change: float | None = None
    """Percent change in pool liquidity; derived from reserves when not supplied."""
    reserve0: int | None = None
    reserve1: int | None = None
    timestamp: datetime | None = None

    @property
    def reserve_sum(self) -> int | None:
        if self.reserve0 is None and self.reserve1 is None:
            return None
        return int(self.reserve0 or 0) + int(self.reserve1 or 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "price_change": self.price_change,
            "volume_change": self.volume_change,
            "liquidity_change": self.liquidity_change,
            "reserve0": self.reserve0,
            "reserve1": self.reserve1,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "MarketData":
        data = data or {}
        return cls(
            price_change=_opt_float(data.get("price_change")),
            volume_change=_opt_float(data.get("volume_change")),
            liquidity_change=_opt_float(data.get("liquidity_change")),
            reserve0=_opt_int(data.get("reserve0")),
            reserve1=_opt_int(data.get("reserve1")),
            timestamp=_parse_ts(data.get("timestamp")),
        )


@dataclass
class SocialData:
    sentiment: float | None = None
    volume: int | None = None
    platform: str | None = None
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sentiment": self.sentiment,
            "volume": self.volume,
            "platform": self.platform,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "SocialData":
        data = data or {}
        return cls(
            sentiment=_opt_float(data.get("sentiment")),
            volume=_opt_int(data.get("volume")),
            platform=data.get("platform"),
            timestamp=_parse_ts(data.get("timestamp")),
        )


@dataclass
class Evidence:
    on_chain: OnChainData = field(default_factory=OnChainData)
    market: MarketData = field(default_factory=MarketData)
    social: SocialData = field(default_factory=SocialData)

    def to_dict(self) -> dict[str, Any]:
        return {
            "on_chain": self.on_chain.to_dict(),
            "market": self.market.to_dict(),
            "social": self.social.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "Evidence":
        data = data or {}
        return cls(
            on_chain=OnChainData.from_dict(data.get("on_chain")),
            market=MarketData.from_dict(data.get("market")),
            social=SocialData.from_dict(data.get("social")),
        )


@dataclass
class AIAnalysis:
    risk_score: int = 0
    """0-100, model output scaled and rounded."""
    confidence: int = 0
    """0-100 share of the 12 features that were known; a completeness proxy."""
    factors: list[str] = field(default_factory=list)
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "risk_score": self.risk_score,
            "confidence": self.confidence,
            "factors": list(self.factors),
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "AIAnalysis":
        data = data or {}
        return cls(
            risk_score=int(data.get("risk_score") or 0),
            confidence=int(data.get("confidence") or 0),
            factors=list(data.get("factors") or []),
            timestamp=_parse_ts(data.get("timestamp")),
        )


@dataclass
class NotificationRecord:
    channel: NotificationChannel
    timestamp: datetime
    recipient_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel.value,
            "timestamp": _iso(self.timestamp),
            "recipient_count": self.recipient_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NotificationRecord":
        return cls(
            channel=NotificationChannel(data["channel"]),
            timestamp=_parse_ts(data["timestamp"]) or utcnow(),
            recipient_count=int(data.get("recipient_count") or 0),
        )


@dataclass
class ResolutionDetails:
    resolved_at: datetime
    resolved_by: str
    resolution: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "resolved_at": _iso(self.resolved_at),
            "resolved_by": self.resolved_by,
            "resolution": self.resolution,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "ResolutionDetails | None":
        if not data:
            return None
        return cls(
            resolved_at=_parse_ts(data["resolved_at"]) or utcnow(),
            resolved_by=str(data["resolved_by"]),
            resolution=str(data.get("resolution") or ""),
        )


@dataclass
class WarningSign:
    """Tracked risk assessment for one token contract."""

    project_name: str
    token_symbol: str
    network: Network
    contract_address: str
    description: str
    risk_types: list[RiskType] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    evidence: Evidence = field(default_factory=Evidence)
    ai_analysis: AIAnalysis = field(default_factory=AIAnalysis)
    status: WarningStatus = WarningStatus.ACTIVE
    notifications_sent: list[NotificationRecord] = field(default_factory=list)
    verified_by: list[str] = field(default_factory=list)
    resolution_details: ResolutionDetails | None = None
    project_profile: dict[str, Any] = field(default_factory=dict)
    """Caller-known team/token/contract/market indicators used for scoring."""
    requires_monitoring: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == WarningStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_name": self.project_name,
            "token_symbol": self.token_symbol,
            "network": self.network.value,
            "contract_address": self.contract_address,
            "risk_types": [r.value for r in self.risk_types],
            "risk_level": self.risk_level.value,
            "description": self.description,
            "evidence": self.evidence.to_dict(),
            "ai_analysis": self.ai_analysis.to_dict(),
            "status": self.status.value,
            "notifications_sent": [n.to_dict() for n in self.notifications_sent],
            "verified_by": list(self.verified_by),
            "resolution_details": self.resolution_details.to_dict() if self.resolution_details else None,
            "project_profile": dict(self.project_profile),
            "requires_monitoring": self.requires_monitoring,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WarningSign":
        return cls(
            id=str(data.get("id") or new_id()),
            project_name=str(data["project_name"]),
            token_symbol=str(data["token_symbol"]),
            network=parse_enum(Network, data["network"], "network"),
            contract_address=str(data["contract_address"]),
            description=str(data.get("description") or ""),
            risk_types=[parse_enum(RiskType, r, "risk_type") for r in data.get("risk_types") or []],
            risk_level=parse_enum(RiskLevel, data.get("risk_level") or RiskLevel.LOW, "risk_level"),
            evidence=Evidence.from_dict(data.get("evidence")),
            ai_analysis=AIAnalysis.from_dict(data.get("ai_analysis")),
            status=parse_enum(WarningStatus, data.get("status") or WarningStatus.ACTIVE, "status"),
            notifications_sent=[NotificationRecord.from_dict(n) for n in data.get("notifications_sent") or []],
            verified_by=list(data.get("verified_by") or []),
            resolution_details=ResolutionDetails.from_dict(data.get("resolution_details")),
            project_profile=dict(data.get("project_profile") or {}),
            requires_monitoring=bool(data.get("requires_monitoring", False)),
            created_at=_parse_ts(data.get("created_at")) or utcnow(),
            updated_at=_parse_ts(data.get("updated_at")) or utcnow(),
        )
