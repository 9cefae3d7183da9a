"""
Warning lifecycle state machine.

    Active ──► Resolved
       │
       └─────► False Alarm

Terminal states are final: any transition out of Resolved or False Alarm
fails with InvalidTransitionError. resolution_details is set exactly when the
status leaves Active. Successful transitions publish warning_updated;
recording a verification does not.
"""

from __future__ import annotations

from rugwatch.alerts.dispatcher import EventKind, NotificationDispatcher
from rugwatch.core.exceptions import InvalidTransitionError, NotFoundError
from rugwatch.core.providers import run_blocking
from rugwatch.database import Database
from rugwatch.logging import get_logger
from rugwatch.warning_signs.locks import EntityLocks
from rugwatch.warning_signs.models import ResolutionDetails, WarningSign, WarningStatus, utcnow

logger = get_logger(__name__)

VALID_TRANSITIONS: dict[WarningStatus, set[WarningStatus]] = {
    WarningStatus.ACTIVE: {WarningStatus.RESOLVED, WarningStatus.FALSE_ALARM},
    # Terminal states - no transitions out
    WarningStatus.RESOLVED: set(),
    WarningStatus.FALSE_ALARM: set(),
}

FALSE_ALARM_PREFIX = "False Alarm: "


def can_transition(current: WarningStatus, target: WarningStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


class WarningStateMachine:
    def __init__(self, db: Database, dispatcher: NotificationDispatcher, locks: EntityLocks) -> None:
        self.db = db
        self.dispatcher = dispatcher
        self.locks = locks

    async def _load(self, warning_id: str) -> WarningSign:
        warning = await run_blocking(self.db.get_warning, warning_id)
        if warning is None:
            raise NotFoundError("WarningSign", warning_id)
        return warning

    async def _transition(
        self,
        warning_id: str,
        target: WarningStatus,
        moderator_id: str,
        resolution: str,
    ) -> WarningSign:
        async with self.locks.lock(warning_id):
            warning = await self._load(warning_id)
            if not can_transition(warning.status, target):
                logger.info(
                    "warning_transition_rejected",
                    warning_id=warning_id,
                    current=warning.status.value,
                    target=target.value,
                )
                raise InvalidTransitionError(warning_id, warning.status.value, target.value)
            now = utcnow()
            previous = warning.status
            warning.status = target
            warning.resolution_details = ResolutionDetails(
                resolved_at=now,
                resolved_by=moderator_id,
                resolution=resolution,
            )
            warning.updated_at = now
            await run_blocking(self.db.save_warning, warning)

        logger.info(
            "warning_resolved" if target == WarningStatus.RESOLVED else "warning_marked_false_alarm",
            warning_id=warning_id,
            from_status=previous.value,
            to_status=target.value,
            moderator_id=moderator_id,
        )
        self.dispatcher.publish(EventKind.WARNING_UPDATED, warning.to_dict(), key=warning_id)
        return warning

    async def resolve(self, warning_id: str, moderator_id: str, resolution: str) -> WarningSign:
        return await self._transition(warning_id, WarningStatus.RESOLVED, moderator_id, resolution)

    async def mark_false_alarm(self, warning_id: str, moderator_id: str, explanation: str) -> WarningSign:
        return await self._transition(
            warning_id,
            WarningStatus.FALSE_ALARM,
            moderator_id,
            FALSE_ALARM_PREFIX + explanation,
        )

    async def record_verification(self, warning_id: str, verifier_id: str) -> WarningSign:
        """Idempotent add of verifier_id to verified_by; status is untouched."""
        async with self.locks.lock(warning_id):
            warning = await self._load(warning_id)
            if verifier_id in warning.verified_by:
                return warning
            warning.verified_by.append(verifier_id)
            warning.updated_at = utcnow()
            await run_blocking(self.db.save_warning, warning)
        logger.info("warning_verified", warning_id=warning_id, verifier_id=verifier_id)
        return warning
