"""
Anonymous insider information.

Submitter identity is never stored: only an HMAC-SHA256 fingerprint keyed
with SUBMITTER_HASH_SECRET. Each submission is identified by the SHA-256 of
its canonical JSON, so an identical tip cannot be filed twice. Credibility
starts from the message credibility scorer and moves with moderation.
Reports auto-escalate the submission back to Pending exactly when the report
count reaches the threshold.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from collections import Counter
from datetime import datetime
from typing import Any, Mapping

from rugwatch.analysis_engine.credibility import analyze_chat_message
from rugwatch.community.models import InsiderStatus, InsiderSubmission, UserReport
from rugwatch.core.exceptions import DuplicateRecordError, NotFoundError, ValidationError
from rugwatch.core.providers import run_blocking
from rugwatch.database import Database
from rugwatch.logging import get_logger
from rugwatch.ml.text_model import LexiconTextModel
from rugwatch.warning_signs.locks import EntityLocks
from rugwatch.warning_signs.models import _parse_ts, parse_enum, utcnow

logger = get_logger(__name__)

DEFAULT_REPORT_THRESHOLD = 5
VERIFIED_CREDIBILITY_BONUS = 30
REJECTED_CREDIBILITY_PENALTY = 50
RELATED_LIMIT = 5

_HASHED_FIELDS = (
    "title",
    "content",
    "project_name",
    "network",
    "contract_address",
    "risk_level",
    "categories",
    "evidence",
)


def submission_hash(data: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical JSON (sorted keys, compact) of the submitted fields."""
    canonical = {k: data.get(k) for k in _HASHED_FIELDS}
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def submitter_fingerprint(submitter_info: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), submitter_info.encode("utf-8"), hashlib.sha256).hexdigest()


def adjusted_credibility(current: int, status: InsiderStatus) -> int:
    if status == InsiderStatus.VERIFIED:
        return min(current + VERIFIED_CREDIBILITY_BONUS, 100)
    if status == InsiderStatus.REJECTED:
        return max(current - REJECTED_CREDIBILITY_PENALTY, 0)
    return current


class InsiderService:
    def __init__(
        self,
        db: Database,
        *,
        secret: str,
        report_threshold: int = DEFAULT_REPORT_THRESHOLD,
        text_model: LexiconTextModel | None = None,
    ) -> None:
        self.db = db
        self.secret = secret
        self.report_threshold = report_threshold
        self.text_model = text_model or LexiconTextModel()
        self.locks = EntityLocks()

    async def submit_information(self, data: Mapping[str, Any], submitter_info: str) -> InsiderSubmission:
        if not submitter_info.strip():
            raise ValidationError("submitter_info is required", {"field": "submitter_info"})
        payload = {k: v for k, v in data.items() if k in _HASHED_FIELDS}
        try:
            submission = InsiderSubmission.from_dict(payload)
        except KeyError as e:
            raise ValidationError(f"{e.args[0]} is required", {"field": e.args[0]}) from e

        # Hash the normalized record so whitespace or enum spelling cannot dodge the unique key
        normalized = submission.to_dict()
        submission.submission_hash = submission_hash(normalized)
        submission.submitter_fingerprint = submitter_fingerprint(submitter_info, self.secret)
        analysis = analyze_chat_message(submission.content, self.text_model)
        submission.credibility_score = analysis["credibility_score"]

        await run_blocking(self.db.insert_submission, submission)
        logger.info(
            "insider_submission_created",
            submission_id=submission.id,
            project_name=submission.project_name,
            credibility_score=submission.credibility_score,
            risk_indicators=analysis["risk_indicators"],
        )
        return submission

    async def get_submission(self, submission_id: str) -> InsiderSubmission:
        submission = await run_blocking(self.db.get_submission, submission_id)
        if submission is None:
            raise NotFoundError("InsiderSubmission", submission_id)
        return submission

    async def report_submission(self, submission_id: str, user_id: str, reason: str = "") -> InsiderSubmission:
        """Add a user report; at exactly the threshold-th report the submission returns to Pending."""
        async with self.locks.lock(submission_id):
            submission = await self.get_submission(submission_id)
            if any(r.user_id == user_id for r in submission.reports):
                raise DuplicateRecordError("User already reported this submission", {"user_id": user_id})
            submission.reports.append(UserReport(user_id=user_id, reason=reason))
            escalated = len(submission.reports) == self.report_threshold
            if escalated:
                previous = submission.verification_status
                submission.verification_status = InsiderStatus.PENDING
                submission.moderator_notes.append(
                    {
                        "moderator_id": "system",
                        "note": f"Auto-escalated after {self.report_threshold} reports",
                        "status": InsiderStatus.PENDING.value,
                        "timestamp": utcnow().isoformat(),
                    }
                )
            await run_blocking(self.db.save_submission, submission)

        if escalated:
            logger.warning(
                "insider_submission_escalated",
                submission_id=submission_id,
                report_count=len(submission.reports),
                previous_status=previous.value,
            )
        else:
            logger.info("insider_submission_reported", submission_id=submission_id, report_count=len(submission.reports))
        return submission

    async def verify_information(
        self,
        submission_id: str,
        status: str,
        moderator_id: str,
        note: str = "",
    ) -> InsiderSubmission:
        """Moderator decision: Verified adds 30 credibility, Rejected removes 50 (clamped to 0-100)."""
        target = parse_enum(InsiderStatus, status, "verification_status")
        async with self.locks.lock(submission_id):
            submission = await self.get_submission(submission_id)
            submission.verification_status = target
            submission.moderator_notes.append(
                {
                    "moderator_id": moderator_id,
                    "note": note,
                    "status": target.value,
                    "timestamp": utcnow().isoformat(),
                }
            )
            submission.credibility_score = adjusted_credibility(submission.credibility_score, target)
            await run_blocking(self.db.save_submission, submission)
        logger.info(
            "insider_submission_verified",
            submission_id=submission_id,
            status=target.value,
            credibility_score=submission.credibility_score,
        )
        return submission

    async def related_submissions(self, submission_id: str, limit: int = RELATED_LIMIT) -> list[InsiderSubmission]:
        """Verified submissions on the same project or sharing a category, most credible first."""
        submission = await self.get_submission(submission_id)
        categories = set(submission.categories)
        verified = await run_blocking(self.db.query_submissions, verification_status=InsiderStatus.VERIFIED.value)
        related = [
            s
            for s in verified
            if s.id != submission_id
            and (s.project_name == submission.project_name or categories & set(s.categories))
        ]
        return related[: max(0, limit)]

    async def get_submission_stats(self, start: datetime, end: datetime) -> dict[str, Any]:
        """Counts by status, category and risk level plus rounded mean credibility, for submissions in [start, end]."""
        start, end = _parse_ts(start), _parse_ts(end)
        if end < start:
            raise ValidationError("end must not be before start", {"start": start.isoformat(), "end": end.isoformat()})
        submissions = await run_blocking(self.db.submissions_between, start, end)
        statuses = Counter(s.verification_status for s in submissions)
        categories: Counter[str] = Counter(c.value for s in submissions for c in s.categories)
        levels: Counter[str] = Counter(s.risk_level.value for s in submissions)
        total_credibility = sum(s.credibility_score for s in submissions)
        return {
            "total_submissions": len(submissions),
            "verified_count": statuses[InsiderStatus.VERIFIED],
            "rejected_count": statuses[InsiderStatus.REJECTED],
            "pending_count": statuses[InsiderStatus.PENDING],
            "average_credibility": round(total_credibility / len(submissions)) if submissions else 0,
            "category_distribution": dict(categories),
            "risk_level_distribution": dict(levels),
        }
