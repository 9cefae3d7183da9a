"""
Warning service: create, update, query and notify.

Every warning is scored at creation; there is no unscored state. Evidence
updates merge field-by-field, rescore and recompute the risk level under the
warning's lock, then publish warning_updated. Status changes go through the
WarningStateMachine.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Protocol

from rugwatch.alerts.dispatcher import EventKind, NotificationDispatcher
from rugwatch.analysis_engine.evidence import evidence_is_empty, merge_evidence
from rugwatch.analysis_engine.features import FEATURE_NAMES
from rugwatch.analysis_engine.scorer import RiskScorer
from rugwatch.chain.base import ChainDataProvider, check_address
from rugwatch.core.exceptions import (
    NotFoundError,
    UnsupportedNetworkError,
    ValidationError,
    WarningClosedError,
)
from rugwatch.core.providers import call_with_timeout, run_blocking
from rugwatch.database import Database
from rugwatch.logging import get_logger
from rugwatch.similarity.index import DEFAULT_SIMILAR_LIMIT, SimilarCase, SimilarityIndex
from rugwatch.warning_signs.locks import EntityLocks
from rugwatch.warning_signs.models import (
    Evidence,
    Network,
    NotificationChannel,
    NotificationRecord,
    RiskLevel,
    RiskType,
    WarningSign,
    WarningStatus,
    _parse_ts,
    parse_enum,
    utcnow,
)
from rugwatch.warning_signs.state_machine import WarningStateMachine

logger = get_logger(__name__)

# Fields a client may change on update; status and risk level have their own paths
UPDATABLE_FIELDS = frozenset(
    {"description", "risk_types", "evidence", "project_profile", "requires_monitoring"}
)
DERIVED_FIELDS = frozenset({"risk_level", "ai_analysis", "status", "resolution_details", "verified_by"})


class MonitorHook(Protocol):
    def start_monitoring(self, warning_id: str) -> bool: ...

    def stop_monitoring(self, warning_id: str) -> bool: ...


def _required_text(data: Mapping[str, Any], name: str) -> str:
    value = str(data.get(name) or "").strip()
    if not value:
        raise ValidationError(f"{name} is required", {"field": name})
    return value


def _parse_profile(raw: Any) -> dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValidationError("project_profile must be an object", {"field": "project_profile"})
    unknown = sorted(set(raw) - set(FEATURE_NAMES))
    if unknown:
        raise ValidationError(f"Unknown project_profile keys: {', '.join(unknown)}", {"field": "project_profile"})
    return dict(raw)


def _parse_evidence(raw: Any) -> Evidence:
    if raw is None:
        return Evidence()
    if isinstance(raw, Evidence):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError("evidence must be an object", {"field": "evidence"})
    try:
        return Evidence.from_dict(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Malformed evidence: {e}", {"field": "evidence"}) from e


class WarningService:
    def __init__(
        self,
        db: Database,
        scorer: RiskScorer,
        dispatcher: NotificationDispatcher,
        *,
        locks: EntityLocks | None = None,
        chain: ChainDataProvider | None = None,
        provider_timeout_sec: float = 15.0,
    ) -> None:
        self.db = db
        self.scorer = scorer
        self.dispatcher = dispatcher
        self.locks = locks or EntityLocks()
        self.chain = chain
        self.provider_timeout_sec = provider_timeout_sec
        self.state_machine = WarningStateMachine(db, dispatcher, self.locks)
        self.similarity = SimilarityIndex(db)
        self.monitor: MonitorHook | None = None

    def attach_monitor(self, monitor: MonitorHook) -> None:
        self.monitor = monitor

    # -------------------------------------------------------------------------
    # Create / update
    # -------------------------------------------------------------------------

    async def _contract_risk_evidence(self, warning: WarningSign) -> Evidence | None:
        """On-chain contract scan for a new warning; None for networks without a handler."""
        if self.chain is None:
            return None
        try:
            risks = await call_with_timeout(
                self.chain.analyze_contract_risks(warning.contract_address, warning.network),
                provider=self.chain.name,
                operation="analyze_contract_risks",
                timeout_sec=self.provider_timeout_sec,
            )
        except UnsupportedNetworkError:
            logger.info("contract_scan_unsupported_network", network=warning.network.value)
            return None
        return Evidence.from_dict({"on_chain": {"details": risks}})

    async def create_warning(self, data: Mapping[str, Any]) -> WarningSign:
        """
        Validate, scan the contract (EVM networks), score and persist a new
        Active warning. Client-supplied risk_level / ai_analysis / status are
        ignored. Provider timeouts and failures propagate as ProviderError.
        """
        warning = WarningSign(
            project_name=_required_text(data, "project_name"),
            token_symbol=_required_text(data, "token_symbol").upper(),
            network=parse_enum(Network, data.get("network"), "network"),
            contract_address=_required_text(data, "contract_address"),
            description=_required_text(data, "description"),
            risk_types=[parse_enum(RiskType, r, "risk_type") for r in data.get("risk_types") or []],
            evidence=_parse_evidence(data.get("evidence")),
            project_profile=_parse_profile(data.get("project_profile")),
            requires_monitoring=bool(data.get("requires_monitoring", False)),
        )
        check_address(warning.contract_address, warning.network, "contract_address")
        check_address(warning.evidence.on_chain.pair_address, warning.network, "pair_address")
        scan = await self._contract_risk_evidence(warning)
        if scan is not None:
            warning.evidence = merge_evidence(warning.evidence, scan)

        await self.scorer.rescore(warning)
        await run_blocking(self.db.save_warning, warning)
        logger.info(
            "warning_created",
            warning_id=warning.id,
            network=warning.network.value,
            risk_score=warning.ai_analysis.risk_score,
            risk_level=warning.risk_level.value,
        )
        self.dispatcher.publish(EventKind.WARNING_CREATED, warning.to_dict())
        if warning.requires_monitoring and self.monitor is not None:
            self.monitor.start_monitoring(warning.id)
        return warning

    async def update_warning(self, warning_id: str, data: Mapping[str, Any]) -> WarningSign:
        """
        Apply a partial update to an Active warning. Evidence merges
        field-by-field and project_profile key-wise; any evidence or profile
        change triggers a rescore and risk level recompute.
        """
        derived = sorted(set(data) & DERIVED_FIELDS)
        if derived:
            raise ValidationError(f"Fields are derived and cannot be set: {', '.join(derived)}", {"fields": derived})
        unknown = sorted(set(data) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(unknown)}", {"fields": unknown})

        async with self.locks.lock(warning_id):
            warning = await self.get_warning(warning_id)
            if warning.status != WarningStatus.ACTIVE:
                raise WarningClosedError(warning_id, warning.status.value)

            rescore = False
            if "description" in data:
                warning.description = _required_text(data, "description")
            if data.get("risk_types") is not None:
                warning.risk_types = [parse_enum(RiskType, r, "risk_type") for r in data["risk_types"]]
            if data.get("evidence") is not None:
                fragment = _parse_evidence(data["evidence"])
                check_address(fragment.on_chain.pair_address, warning.network, "pair_address")
                if not evidence_is_empty(fragment):
                    warning.evidence = merge_evidence(warning.evidence, fragment)
                    rescore = True
            if data.get("project_profile") is not None:
                warning.project_profile = {**warning.project_profile, **_parse_profile(data["project_profile"])}
                rescore = True
            if "requires_monitoring" in data:
                warning.requires_monitoring = bool(data["requires_monitoring"])

            if rescore:
                await self.scorer.rescore(warning)
            warning.updated_at = utcnow()
            await run_blocking(self.db.save_warning, warning)

        logger.info(
            "warning_updated",
            warning_id=warning_id,
            rescored=rescore,
            risk_score=warning.ai_analysis.risk_score,
            risk_level=warning.risk_level.value,
        )
        self.dispatcher.publish(EventKind.WARNING_UPDATED, warning.to_dict(), key=warning_id)
        if self.monitor is not None and "requires_monitoring" in data:
            if warning.requires_monitoring:
                self.monitor.start_monitoring(warning_id)
            else:
                self.monitor.stop_monitoring(warning_id)
        return warning

    async def apply_evidence(self, warning_id: str, fragment: Evidence | Mapping[str, Any]) -> WarningSign:
        """Merge an evidence fragment into an Active warning and rescore it."""
        return await self.update_warning(warning_id, {"evidence": fragment})

    # -------------------------------------------------------------------------
    # Lifecycle (delegated to the state machine)
    # -------------------------------------------------------------------------

    async def resolve_warning(self, warning_id: str, moderator_id: str, resolution: str) -> WarningSign:
        if not resolution.strip():
            raise ValidationError("resolution is required", {"field": "resolution"})
        return await self.state_machine.resolve(warning_id, moderator_id, resolution)

    async def mark_false_alarm(self, warning_id: str, moderator_id: str, explanation: str) -> WarningSign:
        if not explanation.strip():
            raise ValidationError("explanation is required", {"field": "explanation"})
        return await self.state_machine.mark_false_alarm(warning_id, moderator_id, explanation)

    async def record_verification(self, warning_id: str, verifier_id: str) -> WarningSign:
        return await self.state_machine.record_verification(warning_id, verifier_id)

    async def delete_warning(self, warning_id: str) -> None:
        """Administrative delete. A monitoring tick that finds it gone cancels itself."""
        async with self.locks.lock(warning_id):
            deleted = await run_blocking(self.db.delete_warning, warning_id)
        if not deleted:
            raise NotFoundError("WarningSign", warning_id)
        logger.info("warning_deleted", warning_id=warning_id)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_warning(self, warning_id: str) -> WarningSign:
        warning = await run_blocking(self.db.get_warning, warning_id)
        if warning is None:
            raise NotFoundError("WarningSign", warning_id)
        return warning

    async def get_active_warnings(self, network: str | Network | None = None) -> list[WarningSign]:
        """Active warnings, highest risk score first."""
        net = parse_enum(Network, network, "network").value if network else None
        return await run_blocking(
            self.db.query_warnings,
            network=net,
            status=WarningStatus.ACTIVE.value,
            order_by_score=True,
        )

    async def list_warnings(
        self,
        *,
        network: str | None = None,
        risk_level: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WarningSign]:
        return await run_blocking(
            self.db.query_warnings,
            network=parse_enum(Network, network, "network").value if network else None,
            risk_level=parse_enum(RiskLevel, risk_level, "risk_level").value if risk_level else None,
            status=parse_enum(WarningStatus, status, "status").value if status else None,
            order_by_score=True,
            limit=max(1, min(limit, 500)),
            offset=max(0, offset),
        )

    async def get_warning_stats(self, start: datetime, end: datetime) -> dict[str, Any]:
        """Totals by status, risk type / level distributions and rounded mean score."""
        start, end = _parse_ts(start), _parse_ts(end)
        if end < start:
            raise ValidationError("end must not be before start", {"start": start.isoformat(), "end": end.isoformat()})
        warnings = await run_blocking(self.db.warnings_between, start, end)
        stats: dict[str, Any] = {
            "total_warnings": len(warnings),
            "active_warnings": 0,
            "resolved_warnings": 0,
            "false_alarms": 0,
            "risk_type_distribution": {},
            "risk_level_distribution": {},
            "average_risk_score": 0,
        }
        status_keys = {
            WarningStatus.ACTIVE: "active_warnings",
            WarningStatus.RESOLVED: "resolved_warnings",
            WarningStatus.FALSE_ALARM: "false_alarms",
        }
        total_score = 0
        for w in warnings:
            stats[status_keys[w.status]] += 1
            for rt in w.risk_types:
                stats["risk_type_distribution"][rt.value] = stats["risk_type_distribution"].get(rt.value, 0) + 1
            level = w.risk_level.value
            stats["risk_level_distribution"][level] = stats["risk_level_distribution"].get(level, 0) + 1
            total_score += w.ai_analysis.risk_score
        if warnings:
            stats["average_risk_score"] = round(total_score / len(warnings))
        return stats

    async def find_similar(self, record_id: str, limit: int = DEFAULT_SIMILAR_LIMIT) -> list[SimilarCase]:
        return await run_blocking(self.similarity.find_similar, record_id, limit)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def send_notifications(
        self,
        warning_id: str,
        recipients: list[str],
        channel: str | NotificationChannel = NotificationChannel.PUSH,
    ) -> WarningSign:
        """
        Record an outbound notification batch. Transport to push/email is
        external; the warning keeps an append-only log of channel, time and
        recipient count.
        """
        ch = parse_enum(NotificationChannel, channel, "channel")
        async with self.locks.lock(warning_id):
            warning = await self.get_warning(warning_id)
            warning.notifications_sent.append(
                NotificationRecord(channel=ch, timestamp=utcnow(), recipient_count=len(set(recipients)))
            )
            warning.updated_at = utcnow()
            await run_blocking(self.db.save_warning, warning)
        logger.info(
            "warning_notifications_sent",
            warning_id=warning_id,
            channel=ch.value,
            recipient_count=len(set(recipients)),
        )
        return warning
