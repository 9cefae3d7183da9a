"""
Related-case lookup for warnings and tombstones.

A plain filtered query, not a learned similarity metric: a candidate matches
when it is on the same network, shares at least one tag and is in its
confirmed state (Resolved for warnings, Verified for tombstones). Warning
risk types and tombstone fraud tactics are compared through a fixed tag map
so warnings can be cross-referenced against historical rug pulls. Results
are ordered by incident date, most recent first.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from rugwatch.community.models import FraudTactic, RugCoinTombstone, TombstoneStatus
from rugwatch.core.exceptions import NotFoundError
from rugwatch.database import Database
from rugwatch.logging import get_logger
from rugwatch.warning_signs.models import Network, RiskType, WarningSign, WarningStatus

logger = get_logger(__name__)

DEFAULT_SIMILAR_LIMIT = 5

# Shared vocabulary: fraud tactics are the canonical tags
TACTIC_FOR_RISK_TYPE: dict[RiskType, FraudTactic] = {
    RiskType.LIQUIDITY_REDUCTION: FraudTactic.LIQUIDITY_REMOVAL,
    RiskType.LARGE_TOKEN_TRANSFER: FraudTactic.TEAM_TOKEN_DUMP,
    RiskType.TEAM_WALLET_ACTIVITY: FraudTactic.TEAM_TOKEN_DUMP,
    RiskType.CONTRACT_RISK: FraudTactic.HONEYPOT,
    RiskType.MARKET_MANIPULATION: FraudTactic.FLASH_LOAN_ATTACK,
    RiskType.SOCIAL_SENTIMENT: FraudTactic.TEAM_ABANDONMENT,
    RiskType.OTHER: FraudTactic.OTHER,
}


def warning_tags(warning: WarningSign) -> set[str]:
    return {TACTIC_FOR_RISK_TYPE[r].value for r in warning.risk_types}


def tombstone_tags(tombstone: RugCoinTombstone) -> set[str]:
    return {t.value for t in tombstone.fraud_tactics}


@dataclass
class SimilarCase:
    kind: str
    """'warning' or 'tombstone'."""
    record_id: str
    incident_date: datetime
    shared_tags: list[str]
    record: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.record_id,
            "incident_date": self.incident_date.isoformat(),
            "shared_tags": self.shared_tags,
            "record": self.record,
        }


class SimilarityIndex:
    def __init__(self, db: Database) -> None:
        self.db = db

    def _candidates(self, network: Network, tags: set[str], exclude_id: str) -> list[SimilarCase]:
        cases: list[SimilarCase] = []
        for t in self.db.query_tombstones(network=network.value, verification_status=TombstoneStatus.VERIFIED.value):
            shared = tags & tombstone_tags(t)
            if t.id != exclude_id and shared:
                cases.append(SimilarCase("tombstone", t.id, t.rug_pull_date, sorted(shared), t.to_dict()))
        for w in self.db.query_warnings(network=network.value, status=WarningStatus.RESOLVED.value):
            shared = tags & warning_tags(w)
            if w.id != exclude_id and shared:
                cases.append(SimilarCase("warning", w.id, w.created_at, sorted(shared), w.to_dict()))
        return cases

    def find_similar(self, record_id: str, limit: int = DEFAULT_SIMILAR_LIMIT) -> list[SimilarCase]:
        """Related confirmed cases for a warning or tombstone id. NotFoundError if neither exists."""
        warning = self.db.get_warning(record_id)
        if warning is not None:
            network, tags = warning.network, warning_tags(warning)
        else:
            tombstone = self.db.get_tombstone(record_id)
            if tombstone is None:
                raise NotFoundError("WarningSign or RugCoinTombstone", record_id)
            network, tags = tombstone.network, tombstone_tags(tombstone)

        if not tags:
            return []
        cases = self._candidates(network, tags, record_id)
        cases.sort(key=lambda c: c.incident_date, reverse=True)
        logger.debug("similar_cases_found", record_id=record_id, matches=len(cases), limit=limit)
        return cases[: max(0, limit)]
