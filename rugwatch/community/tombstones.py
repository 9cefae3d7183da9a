"""
Rug-pull tombstones: confirmed incident records.

Submissions start Pending; moderators move them to Verified or Disputed.
Verified tombstones are the ground truth for similarity lookups. On EVM
networks the contract is scanned at submission and the results, together
with the token's recent transfer volume, are kept in trading_data for later
reference.

The service also produces standalone risk reports for live projects: the
same chain reads and scorer used for warnings, without creating a record.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Awaitable, Mapping, TypeVar

from rugwatch.analysis_engine.features import FEATURE_NAMES, build_feature_vector
from rugwatch.analysis_engine.scorer import RiskScorer, risk_level_for_score
from rugwatch.chain.base import ChainDataProvider, check_address
from rugwatch.community.models import RugCoinTombstone, TombstoneStatus
from rugwatch.core.exceptions import NotFoundError, ProviderError, UnsupportedNetworkError, ValidationError
from rugwatch.core.providers import call_with_timeout, run_blocking
from rugwatch.database import Database
from rugwatch.logging import get_logger
from rugwatch.similarity.index import DEFAULT_SIMILAR_LIMIT, SimilarCase, SimilarityIndex
from rugwatch.warning_signs.locks import EntityLocks
from rugwatch.warning_signs.models import Evidence, Network, parse_enum, utcnow

logger = get_logger(__name__)

T = TypeVar("T")


class TombstoneService:
    def __init__(
        self,
        db: Database,
        *,
        chain: ChainDataProvider | None = None,
        scorer: RiskScorer | None = None,
        provider_timeout_sec: float = 15.0,
    ) -> None:
        self.db = db
        self.chain = chain
        self.scorer = scorer or RiskScorer()
        self.provider_timeout_sec = provider_timeout_sec
        self.similarity = SimilarityIndex(db)
        self.locks = EntityLocks()

    async def _call(self, awaitable: Awaitable[T], operation: str) -> T:
        return await call_with_timeout(
            awaitable,
            provider=self.chain.name,
            operation=operation,
            timeout_sec=self.provider_timeout_sec,
        )

    async def _chain_snapshot(self, tombstone: RugCoinTombstone) -> dict[str, Any]:
        if self.chain is None:
            return {}
        try:
            token_info = await self._call(
                self.chain.get_token_info(tombstone.contract_address, tombstone.network), "get_token_info"
            )
            contract_risks = await self._call(
                self.chain.analyze_contract_risks(tombstone.contract_address, tombstone.network),
                "analyze_contract_risks",
            )
        except UnsupportedNetworkError:
            return {}
        total_volume = await self.calculate_total_volume(tombstone.contract_address, tombstone.network)
        return {"token_info": token_info, "contract_risks": contract_risks, "total_volume": total_volume}

    async def calculate_total_volume(self, contract_address: str, network: Network) -> str:
        """
        Sum of every Transfer value in the provider's recent block window, as
        a decimal string (token amounts exceed float precision). Degrades to
        "0" when the chain cannot be read.
        """
        if self.chain is None:
            return "0"
        try:
            transfers = await self._call(
                self.chain.monitor_large_transfers(contract_address, network, 0), "monitor_large_transfers"
            )
        except (UnsupportedNetworkError, ProviderError) as e:
            logger.warning("total_volume_unavailable", contract_address=contract_address, error=str(e))
            return "0"
        return str(sum(int(t["value"]) for t in transfers))

    async def create_tombstone(self, data: Mapping[str, Any], user_id: str) -> RugCoinTombstone:
        """Validate and store a Pending tombstone. DuplicateRecordError on symbol/network or address clash."""
        payload = dict(data)
        payload.pop("verification_status", None)
        payload.pop("verified_by", None)
        payload["submitted_by"] = user_id
        try:
            tombstone = RugCoinTombstone.from_dict(payload)
        except KeyError as e:
            raise ValidationError(f"{e.args[0]} is required", {"field": e.args[0]}) from e
        if tombstone.rug_pull_date < tombstone.launch_date:
            raise ValidationError("rug_pull_date must not precede launch_date", {"field": "rug_pull_date"})
        check_address(tombstone.contract_address, tombstone.network, "contract_address")

        snapshot = await self._chain_snapshot(tombstone)
        if snapshot:
            tombstone.trading_data = {**tombstone.trading_data, **snapshot}

        await run_blocking(self.db.insert_tombstone, tombstone)
        logger.info(
            "tombstone_created",
            tombstone_id=tombstone.id,
            token_symbol=tombstone.token_symbol,
            network=tombstone.network.value,
        )
        return tombstone

    async def get_tombstone(self, tombstone_id: str) -> RugCoinTombstone:
        tombstone = await run_blocking(self.db.get_tombstone, tombstone_id)
        if tombstone is None:
            raise NotFoundError("RugCoinTombstone", tombstone_id)
        return tombstone

    async def verify_tombstone(self, tombstone_id: str, status: str, user_id: str) -> RugCoinTombstone:
        """Set verification status and record the verifier (idempotent add)."""
        target = parse_enum(TombstoneStatus, status, "verification_status")
        async with self.locks.lock(tombstone_id):
            tombstone = await self.get_tombstone(tombstone_id)
            tombstone.verification_status = target
            if user_id not in tombstone.verified_by:
                tombstone.verified_by.append(user_id)
            await run_blocking(self.db.save_tombstone, tombstone)
        logger.info("tombstone_verified", tombstone_id=tombstone_id, status=target.value, user_id=user_id)
        return tombstone

    async def similar_cases(self, tombstone_id: str, limit: int = DEFAULT_SIMILAR_LIMIT) -> list[SimilarCase]:
        await self.get_tombstone(tombstone_id)
        return await run_blocking(self.similarity.find_similar, tombstone_id, limit)

    async def get_verified_stats(self, network: str | None = None) -> dict[str, Any]:
        """Count, total loss, affected users, fraud-tactic distribution and per-month timeline of Verified incidents."""
        net = parse_enum(Network, network, "network").value if network else None
        tombstones = await run_blocking(
            self.db.query_tombstones,
            network=net,
            verification_status=TombstoneStatus.VERIFIED.value,
        )
        tactics: Counter[str] = Counter(t.value for ts in tombstones for t in ts.fraud_tactics)
        timeline: Counter[str] = Counter(ts.rug_pull_date.strftime("%Y-%m") for ts in tombstones)
        return {
            "total_cases": len(tombstones),
            "total_loss": sum(t.total_loss for t in tombstones),
            "affected_users": sum(t.affected_users for t in tombstones),
            "tactic_distribution": dict(tactics),
            "timeline": dict(sorted(timeline.items())),
        }

    async def generate_risk_report(self, project: Mapping[str, Any]) -> dict[str, Any]:
        """
        Risk report for a live project: contract scan, pool reserves when a
        pair address is given, team wallet activity, and a score from the
        same feature vector and scorer warnings use. Nothing is stored.

        Networks without a chain handler get a profile-only score with the
        chain sections left as None. Provider failures propagate.
        """
        network = parse_enum(Network, project.get("network"), "network")
        contract_address = str(project.get("contract_address") or "").strip()
        if not contract_address:
            raise ValidationError("contract_address is required", {"field": "contract_address"})
        pair_address = project.get("pair_address") or None
        team_wallets = list(project.get("team_wallets") or [])
        check_address(contract_address, network, "contract_address")
        check_address(pair_address, network, "pair_address")
        for wallet in team_wallets:
            check_address(wallet, network, "team_wallets")
        profile = dict(project.get("project_profile") or {})
        unknown = sorted(set(profile) - set(FEATURE_NAMES))
        if unknown:
            raise ValidationError(f"Unknown project_profile keys: {', '.join(unknown)}", {"field": "project_profile"})

        contract_analysis = liquidity_analysis = team_analysis = None
        if self.chain is not None:
            try:
                contract_analysis = await self._call(
                    self.chain.analyze_contract_risks(contract_address, network), "analyze_contract_risks"
                )
                if pair_address:
                    liquidity_analysis = await self._call(
                        self.chain.check_liquidity_pool(pair_address, network), "check_liquidity_pool"
                    )
                if team_wallets:
                    team_analysis = await self._call(
                        self.chain.track_team_wallets(team_wallets, network), "track_team_wallets"
                    )
            except UnsupportedNetworkError:
                logger.info("risk_report_profile_only", network=network.value)

        evidence = Evidence.from_dict(
            {
                "on_chain": {"details": contract_analysis, "pair_address": pair_address},
                "market": {
                    "reserve0": (liquidity_analysis or {}).get("reserve0"),
                    "reserve1": (liquidity_analysis or {}).get("reserve1"),
                },
            }
        )
        analysis = await self.scorer.score_async(build_feature_vector(profile, evidence))
        level = risk_level_for_score(analysis.risk_score, self.scorer.config)
        logger.info(
            "risk_report_generated",
            contract_address=contract_address,
            network=network.value,
            risk_score=analysis.risk_score,
            risk_level=level.value,
        )
        return {
            "contract_address": contract_address,
            "network": network.value,
            "contract_analysis": contract_analysis,
            "liquidity_analysis": liquidity_analysis,
            "team_analysis": team_analysis,
            "risk_prediction": {**analysis.to_dict(), "risk_level": level.value},
            "timestamp": utcnow().isoformat(),
        }
