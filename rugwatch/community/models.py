"""
Community records consumed by the risk engine: rug-pull tombstones (confirmed
incidents, ground truth for similarity lookups), anonymous insider tips and
chat messages with their risk scan and moderation state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from rugwatch.core.exceptions import ValidationError
from rugwatch.warning_signs.models import (
    Network,
    RiskLevel,
    _iso,
    _parse_ts,
    new_id,
    parse_enum,
    utcnow,
)


class FraudTactic(str, Enum):
    LIQUIDITY_REMOVAL = "Liquidity Removal"
    TEAM_TOKEN_DUMP = "Team Token Dump"
    HONEYPOT = "Honeypot"
    FLASH_LOAN_ATTACK = "Flash Loan Attack"
    TEAM_ABANDONMENT = "Team Abandonment"
    OTHER = "Other"


class TombstoneStatus(str, Enum):
    PENDING = "Pending"
    VERIFIED = "Verified"
    DISPUTED = "Disputed"


class InsiderCategory(str, Enum):
    TEAM_BACKGROUND = "Team Background"
    TOKEN_DISTRIBUTION = "Token Distribution"
    CONTRACT_VULNERABILITY = "Contract Vulnerability"
    MARKET_MANIPULATION = "Market Manipulation"
    INSIDER_TRADING = "Insider Trading"
    OTHER = "Other"


class InsiderStatus(str, Enum):
    PENDING = "Pending"
    VERIFIED = "Verified"
    REJECTED = "Rejected"


class MessageVisibility(str, Enum):
    PUBLIC = "public"
    PREMIUM = "premium"
    DELETED = "deleted"
    MODERATED = "moderated"


class ModerationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class UserReport:
    """A flag on a chat message or a report on an insider submission."""

    user_id: str
    reason: str = ""
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "reason": self.reason, "timestamp": _iso(self.timestamp)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserReport":
        return cls(
            user_id=str(data["user_id"]),
            reason=str(data.get("reason") or ""),
            timestamp=_parse_ts(data.get("timestamp")) or utcnow(),
        )


@dataclass
class RugCoinTombstone:
    project_name: str
    token_symbol: str
    network: Network
    contract_address: str
    launch_date: datetime
    rug_pull_date: datetime
    total_loss: float
    affected_users: int
    submitted_by: str
    fraud_tactics: list[FraudTactic] = field(default_factory=list)
    evidence: list[str] = field(default_factory=list)
    team_anonymous: bool = True
    known_members: list[dict[str, Any]] = field(default_factory=list)
    trading_data: dict[str, Any] = field(default_factory=dict)
    verification_status: TombstoneStatus = TombstoneStatus.PENDING
    verified_by: list[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.token_symbol = self.token_symbol.strip().upper()
        if self.total_loss < 0:
            raise ValidationError("total_loss must be >= 0", {"field": "total_loss"})
        if self.affected_users < 0:
            raise ValidationError("affected_users must be >= 0", {"field": "affected_users"})

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_name": self.project_name,
            "token_symbol": self.token_symbol,
            "network": self.network.value,
            "contract_address": self.contract_address,
            "launch_date": _iso(self.launch_date),
            "rug_pull_date": _iso(self.rug_pull_date),
            "total_loss": self.total_loss,
            "affected_users": self.affected_users,
            "fraud_tactics": [t.value for t in self.fraud_tactics],
            "evidence": list(self.evidence),
            "team_anonymous": self.team_anonymous,
            "known_members": list(self.known_members),
            "trading_data": dict(self.trading_data),
            "verification_status": self.verification_status.value,
            "verified_by": list(self.verified_by),
            "submitted_by": self.submitted_by,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RugCoinTombstone":
        launch = _parse_ts(data.get("launch_date"))
        rug = _parse_ts(data.get("rug_pull_date"))
        if launch is None or rug is None:
            raise ValidationError("launch_date and rug_pull_date are required")
        return cls(
            id=str(data.get("id") or new_id()),
            project_name=str(data["project_name"]),
            token_symbol=str(data["token_symbol"]),
            network=parse_enum(Network, data["network"], "network"),
            contract_address=str(data["contract_address"]).strip(),
            launch_date=launch,
            rug_pull_date=rug,
            total_loss=float(data.get("total_loss") or 0),
            affected_users=int(data.get("affected_users") or 0),
            fraud_tactics=[parse_enum(FraudTactic, t, "fraud_tactic") for t in data.get("fraud_tactics") or []],
            evidence=list(data.get("evidence") or []),
            team_anonymous=bool(data.get("team_anonymous", True)),
            known_members=list(data.get("known_members") or []),
            trading_data=dict(data.get("trading_data") or {}),
            verification_status=parse_enum(
                TombstoneStatus, data.get("verification_status") or TombstoneStatus.PENDING, "verification_status"
            ),
            verified_by=list(data.get("verified_by") or []),
            submitted_by=str(data["submitted_by"]),
            created_at=_parse_ts(data.get("created_at")) or utcnow(),
        )


@dataclass
class InsiderSubmission:
    title: str
    content: str
    project_name: str
    network: Network
    categories: list[InsiderCategory]
    submission_hash: str = ""
    submitter_fingerprint: str = ""
    """HMAC of submitter info; the raw identity is never stored."""
    contract_address: str | None = None
    risk_level: RiskLevel = RiskLevel.MEDIUM
    evidence: list[str] = field(default_factory=list)
    verification_status: InsiderStatus = InsiderStatus.PENDING
    credibility_score: int = 0
    views: int = 0
    likes: int = 0
    reports: list[UserReport] = field(default_factory=list)
    moderator_notes: list[dict[str, Any]] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.title = self.title.strip()
        self.content = self.content.strip()
        if not 5 <= len(self.title) <= 200:
            raise ValidationError("title must be 5-200 characters", {"field": "title"})
        if len(self.content) < 20:
            raise ValidationError("content must be at least 20 characters", {"field": "content"})
        if not self.categories:
            raise ValidationError("at least one category is required", {"field": "categories"})

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "project_name": self.project_name,
            "network": self.network.value,
            "contract_address": self.contract_address,
            "risk_level": self.risk_level.value,
            "categories": [c.value for c in self.categories],
            "evidence": list(self.evidence),
            "verification_status": self.verification_status.value,
            "credibility_score": self.credibility_score,
            "submission_hash": self.submission_hash,
            "submitter_fingerprint": self.submitter_fingerprint,
            "views": self.views,
            "likes": self.likes,
            "reports": [r.to_dict() for r in self.reports],
            "moderator_notes": list(self.moderator_notes),
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InsiderSubmission":
        return cls(
            id=str(data.get("id") or new_id()),
            title=str(data.get("title") or ""),
            content=str(data.get("content") or ""),
            project_name=str(data["project_name"]),
            network=parse_enum(Network, data["network"], "network"),
            contract_address=data.get("contract_address"),
            risk_level=parse_enum(RiskLevel, data.get("risk_level") or RiskLevel.MEDIUM, "risk_level"),
            categories=[parse_enum(InsiderCategory, c, "category") for c in data.get("categories") or []],
            evidence=list(data.get("evidence") or []),
            verification_status=parse_enum(
                InsiderStatus, data.get("verification_status") or InsiderStatus.PENDING, "verification_status"
            ),
            credibility_score=int(data.get("credibility_score") or 0),
            submission_hash=str(data.get("submission_hash") or ""),
            submitter_fingerprint=str(data.get("submitter_fingerprint") or ""),
            views=int(data.get("views") or 0),
            likes=int(data.get("likes") or 0),
            reports=[UserReport.from_dict(r) for r in data.get("reports") or []],
            moderator_notes=list(data.get("moderator_notes") or []),
            created_at=_parse_ts(data.get("created_at")) or utcnow(),
        )


MAX_CHAT_MESSAGE_LENGTH = 2000


@dataclass
class ChatMessage:
    room_id: str
    sender_id: str
    content: str
    anonymous: bool = False
    message_type: str = "text"
    metadata: dict[str, Any] = field(default_factory=dict)
    analysis: dict[str, Any] = field(default_factory=dict)
    """Risk scan output: keywords, risk_indicators, sentiment, credibility_score."""
    flags: list[UserReport] = field(default_factory=list)
    visibility: MessageVisibility = MessageVisibility.PUBLIC
    moderation_status: ModerationStatus = ModerationStatus.PENDING
    moderated_by: str | None = None
    moderation_time: datetime | None = None
    moderation_reason: str | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.content = self.content.strip()
        if not self.content:
            raise ValidationError("content must be non-empty", {"field": "content"})
        if len(self.content) > MAX_CHAT_MESSAGE_LENGTH:
            raise ValidationError(
                f"content exceeds {MAX_CHAT_MESSAGE_LENGTH} characters", {"field": "content"}
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "room_id": self.room_id,
            "sender_id": self.sender_id,
            "anonymous": self.anonymous,
            "content": self.content,
            "message_type": self.message_type,
            "metadata": dict(self.metadata),
            "analysis": dict(self.analysis),
            "flags": [f.to_dict() for f in self.flags],
            "visibility": self.visibility.value,
            "moderation_status": self.moderation_status.value,
            "moderated_by": self.moderated_by,
            "moderation_time": _iso(self.moderation_time),
            "moderation_reason": self.moderation_reason,
            "created_at": _iso(self.created_at),
        }

    def public_dict(self) -> dict[str, Any]:
        """Broadcast view: sender hidden for anonymous posts, flags collapsed to a count."""
        data = self.to_dict()
        if self.anonymous:
            data["sender_id"] = None
        data["flag_count"] = len(data.pop("flags"))
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChatMessage":
        return cls(
            id=str(data.get("id") or new_id()),
            room_id=str(data["room_id"]),
            sender_id=str(data.get("sender_id") or ""),
            content=str(data.get("content") or ""),
            anonymous=bool(data.get("anonymous", False)),
            message_type=str(data.get("message_type") or "text"),
            metadata=dict(data.get("metadata") or {}),
            analysis=dict(data.get("analysis") or {}),
            flags=[UserReport.from_dict(f) for f in data.get("flags") or []],
            visibility=parse_enum(MessageVisibility, data.get("visibility") or MessageVisibility.PUBLIC, "visibility"),
            moderation_status=parse_enum(
                ModerationStatus, data.get("moderation_status") or ModerationStatus.PENDING, "moderation_status"
            ),
            moderated_by=data.get("moderated_by"),
            moderation_time=_parse_ts(data.get("moderation_time")),
            moderation_reason=data.get("moderation_reason"),
            created_at=_parse_ts(data.get("created_at")) or utcnow(),
        )
