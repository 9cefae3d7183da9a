"""
Monitoring scheduler: periodic re-evaluation of Active warnings.

One asyncio task per monitored warning, owned by the MonitoringScheduler
instance. Each task sleeps for the interval, then runs a tick: re-scan the
contract, re-read pool reserves when a pair address is known, merge, rescore
and persist through the WarningService. Ticks run sequentially inside the
task, so a slow tick delays the next one instead of overlapping it.

A tick that finds the warning deleted or no longer Active cancels its own
task; that is the only automatic eviction. Provider failures are logged and
the tick is skipped; the warning stays monitored and is retried next interval.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from rugwatch.chain.base import ChainDataProvider
from rugwatch.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    ProviderError,
    UnsupportedNetworkError,
)
from rugwatch.core.providers import call_with_timeout
from rugwatch.logging import get_logger
from rugwatch.warning_signs.models import WarningSign, WarningStatus, utcnow
from rugwatch.warning_signs.service import WarningService

logger = get_logger(__name__)

DEFAULT_MONITORING_INTERVAL_SEC = 300.0  # 5 minutes
DEFAULT_PROVIDER_TIMEOUT_SEC = 15.0


@dataclass
class MonitoringConfig:
    """Tick interval and per-call deadline for chain reads."""

    interval_sec: float = DEFAULT_MONITORING_INTERVAL_SEC
    provider_timeout_sec: float = DEFAULT_PROVIDER_TIMEOUT_SEC


class TickOutcome:
    UPDATED = "updated"
    SKIPPED = "skipped"
    RETIRED = "retired"


class MonitoringScheduler:
    def __init__(
        self,
        service: WarningService,
        chain: ChainDataProvider,
        config: MonitoringConfig | None = None,
    ) -> None:
        self.service = service
        self.chain = chain
        self.config = config or MonitoringConfig()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._closed = False

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def is_monitoring(self, warning_id: str) -> bool:
        task = self._tasks.get(warning_id)
        return task is not None and not task.done()

    @property
    def monitored_ids(self) -> list[str]:
        return [wid for wid, task in self._tasks.items() if not task.done()]

    def start_monitoring(self, warning_id: str) -> bool:
        """Schedule periodic ticks. No-op (returns False) if already scheduled."""
        if self._closed:
            logger.warning("monitoring_start_after_shutdown", warning_id=warning_id)
            return False
        if self.is_monitoring(warning_id):
            return False
        task = asyncio.get_running_loop().create_task(
            self._run(warning_id), name=f"monitor-{warning_id}"
        )
        self._tasks[warning_id] = task
        logger.info("monitoring_started", warning_id=warning_id, interval_sec=self.config.interval_sec)
        return True

    def stop_monitoring(self, warning_id: str) -> bool:
        """Cancel this warning's task only. Safe when nothing is scheduled."""
        task = self._tasks.pop(warning_id, None)
        if task is None:
            return False
        if not task.done() and task is not asyncio.current_task():
            task.cancel()
        logger.info("monitoring_stopped", warning_id=warning_id)
        return True

    async def restore(self) -> int:
        """Resume monitoring for Active warnings flagged requires_monitoring (startup)."""
        warnings = await self.service.get_active_warnings()
        started = sum(1 for w in warnings if w.requires_monitoring and self.start_monitoring(w.id))
        if started:
            logger.info("monitoring_restored", count=started)
        return started

    async def shutdown(self) -> None:
        """Cancel every task and wait for them to finish."""
        self._closed = True
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("monitoring_shutdown", cancelled=len(tasks))

    # -------------------------------------------------------------------------
    # Loop and tick
    # -------------------------------------------------------------------------

    async def _run(self, warning_id: str) -> None:
        interval = max(0.0, self.config.interval_sec)
        try:
            while True:
                await asyncio.sleep(interval)
                try:
                    outcome = await self.tick(warning_id)
                except Exception as e:
                    # Crash in one tick is logged; the warning stays monitored
                    logger.exception("monitoring_tick_failed", warning_id=warning_id, error=str(e))
                    continue
                if outcome == TickOutcome.RETIRED:
                    break
        finally:
            if self._tasks.get(warning_id) is asyncio.current_task():
                del self._tasks[warning_id]

    async def _fetch(self, warning: WarningSign) -> dict[str, Any]:
        timeout = self.config.provider_timeout_sec
        fragment: dict[str, Any] = {}
        risks = await call_with_timeout(
            self.chain.analyze_contract_risks(warning.contract_address, warning.network),
            provider=self.chain.name,
            operation="analyze_contract_risks",
            timeout_sec=timeout,
        )
        fragment["on_chain"] = {"details": risks}

        pair_address = warning.evidence.on_chain.pair_address
        if pair_address:
            pool = await call_with_timeout(
                self.chain.check_liquidity_pool(pair_address, warning.network),
                provider=self.chain.name,
                operation="check_liquidity_pool",
                timeout_sec=timeout,
            )
            fragment["market"] = {
                "reserve0": pool["reserve0"],
                "reserve1": pool["reserve1"],
                "timestamp": utcnow(),
            }
        return fragment

    def _retire(self, warning_id: str, reason: str) -> str:
        logger.info("monitoring_retired", warning_id=warning_id, reason=reason)
        self.stop_monitoring(warning_id)
        return TickOutcome.RETIRED

    async def tick(self, warning_id: str) -> str:
        """One re-evaluation cycle. Returns a TickOutcome value."""
        try:
            warning = await self.service.get_warning(warning_id)
        except NotFoundError:
            return self._retire(warning_id, "not_found")
        if warning.status != WarningStatus.ACTIVE:
            return self._retire(warning_id, warning.status.value)

        try:
            fragment = await self._fetch(warning)
        except (ProviderError, UnsupportedNetworkError) as e:
            logger.warning(
                "monitoring_tick_skipped",
                warning_id=warning_id,
                network=warning.network.value,
                error=str(e),
                error_code=e.code,
            )
            return TickOutcome.SKIPPED

        try:
            updated = await self.service.apply_evidence(warning_id, fragment)
        except NotFoundError:
            return self._retire(warning_id, "not_found")
        except InvalidTransitionError as e:
            # Resolved or false-alarmed while the chain reads were in flight
            return self._retire(warning_id, e.current)
        except ProviderError as e:
            logger.warning("monitoring_tick_skipped", warning_id=warning_id, error=str(e), error_code=e.code)
            return TickOutcome.SKIPPED

        logger.debug(
            "monitoring_tick_completed",
            warning_id=warning_id,
            risk_score=updated.ai_analysis.risk_score,
            risk_level=updated.risk_level.value,
        )
        return TickOutcome.UPDATED
