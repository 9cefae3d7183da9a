"""
REST endpoints. Routes validate the body shape with pydantic and delegate to
the services; domain errors propagate to the app's exception handler.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Response

from rugwatch.api_server.deps import Services, get_services
from rugwatch.api_server.schemas import (
    FalseAlarmRequest,
    InsiderSubmitRequest,
    ModerationRequest,
    NotifyRequest,
    ReportRequest,
    ResolveRequest,
    RiskReportRequest,
    TombstoneCreateRequest,
    VerifyTombstoneRequest,
    VerifyWarningRequest,
    WarningCreateRequest,
)
from rugwatch.warning_signs.models import utcnow

router = APIRouter()

DEFAULT_STATS_WINDOW = timedelta(days=30)


@router.get("/health")
async def health(services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"status": "ok", "monitored_warnings": len(services.scheduler.monitored_ids)}


# -----------------------------------------------------------------------------
# Warnings
# -----------------------------------------------------------------------------


@router.post("/warnings", status_code=201, tags=["Warnings"])
async def create_warning(body: WarningCreateRequest, services: Services = Depends(get_services)):
    warning = await services.warnings.create_warning(body.model_dump())
    return warning.to_dict()


@router.get("/warnings", tags=["Warnings"])
async def list_warnings(
    network: str | None = None,
    risk_level: str | None = None,
    status: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    services: Services = Depends(get_services),
):
    warnings = await services.warnings.list_warnings(
        network=network, risk_level=risk_level, status=status, limit=limit, offset=offset
    )
    return [w.to_dict() for w in warnings]


@router.get("/warnings/active", tags=["Warnings"])
async def active_warnings(network: str | None = None, services: Services = Depends(get_services)):
    return [w.to_dict() for w in await services.warnings.get_active_warnings(network)]


@router.get("/warnings/stats", tags=["Warnings"])
async def warning_stats(
    start: datetime | None = None,
    end: datetime | None = None,
    services: Services = Depends(get_services),
):
    """Statistics over warnings created in [start, end]; defaults to the last 30 days."""
    end = end or utcnow()
    start = start or end - DEFAULT_STATS_WINDOW
    return await services.warnings.get_warning_stats(start, end)


@router.get("/warnings/{warning_id}", tags=["Warnings"])
async def get_warning(warning_id: str, services: Services = Depends(get_services)):
    return (await services.warnings.get_warning(warning_id)).to_dict()


@router.patch("/warnings/{warning_id}", tags=["Warnings"])
async def update_warning(
    warning_id: str,
    body: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    """Partial update; derived fields (risk_level, ai_analysis, status) are rejected."""
    return (await services.warnings.update_warning(warning_id, body)).to_dict()


@router.delete("/warnings/{warning_id}", status_code=204, tags=["Warnings"])
async def delete_warning(warning_id: str, services: Services = Depends(get_services)):
    await services.warnings.delete_warning(warning_id)
    return Response(status_code=204)


@router.post("/warnings/{warning_id}/resolve", tags=["Warnings"])
async def resolve_warning(warning_id: str, body: ResolveRequest, services: Services = Depends(get_services)):
    warning = await services.warnings.resolve_warning(warning_id, body.moderator_id, body.resolution)
    return warning.to_dict()


@router.post("/warnings/{warning_id}/false-alarm", tags=["Warnings"])
async def mark_false_alarm(warning_id: str, body: FalseAlarmRequest, services: Services = Depends(get_services)):
    warning = await services.warnings.mark_false_alarm(warning_id, body.moderator_id, body.explanation)
    return warning.to_dict()


@router.post("/warnings/{warning_id}/verify", tags=["Warnings"])
async def verify_warning(warning_id: str, body: VerifyWarningRequest, services: Services = Depends(get_services)):
    return (await services.warnings.record_verification(warning_id, body.verifier_id)).to_dict()


@router.post("/warnings/{warning_id}/notify", tags=["Warnings"])
async def notify(warning_id: str, body: NotifyRequest, services: Services = Depends(get_services)):
    warning = await services.warnings.send_notifications(warning_id, body.recipients, body.channel)
    return warning.to_dict()


@router.get("/warnings/{warning_id}/similar", tags=["Warnings"])
async def similar_to_warning(
    warning_id: str,
    limit: int = Query(5, ge=1, le=50),
    services: Services = Depends(get_services),
):
    await services.warnings.get_warning(warning_id)
    return [c.to_dict() for c in await services.warnings.find_similar(warning_id, limit)]


# -----------------------------------------------------------------------------
# Tombstones
# -----------------------------------------------------------------------------


@router.post("/tombstones", status_code=201, tags=["Tombstones"])
async def create_tombstone(body: TombstoneCreateRequest, services: Services = Depends(get_services)):
    data = body.model_dump(exclude={"submitted_by"})
    tombstone = await services.tombstones.create_tombstone(data, body.submitted_by)
    return tombstone.to_dict()


@router.post("/tombstones/risk-report", tags=["Tombstones"])
async def risk_report(body: RiskReportRequest, services: Services = Depends(get_services)):
    return await services.tombstones.generate_risk_report(body.model_dump())


@router.get("/tombstones/stats", tags=["Tombstones"])
async def tombstone_stats(network: str | None = None, services: Services = Depends(get_services)):
    return await services.tombstones.get_verified_stats(network)


@router.get("/tombstones/{tombstone_id}", tags=["Tombstones"])
async def get_tombstone(tombstone_id: str, services: Services = Depends(get_services)):
    return (await services.tombstones.get_tombstone(tombstone_id)).to_dict()


@router.post("/tombstones/{tombstone_id}/verify", tags=["Tombstones"])
async def verify_tombstone(
    tombstone_id: str,
    body: VerifyTombstoneRequest,
    services: Services = Depends(get_services),
):
    tombstone = await services.tombstones.verify_tombstone(tombstone_id, body.status, body.user_id)
    return tombstone.to_dict()


@router.get("/tombstones/{tombstone_id}/similar", tags=["Tombstones"])
async def similar_to_tombstone(
    tombstone_id: str,
    limit: int = Query(5, ge=1, le=50),
    services: Services = Depends(get_services),
):
    return [c.to_dict() for c in await services.tombstones.similar_cases(tombstone_id, limit)]


# -----------------------------------------------------------------------------
# Insider information
# -----------------------------------------------------------------------------


@router.post("/insider", status_code=201, tags=["Insider"])
async def submit_insider(body: InsiderSubmitRequest, services: Services = Depends(get_services)):
    data = body.model_dump(exclude={"submitter_info"})
    submission = await services.insider.submit_information(data, body.submitter_info)
    return submission.to_dict()


@router.get("/insider/stats", tags=["Insider"])
async def insider_stats(
    start: datetime | None = None,
    end: datetime | None = None,
    services: Services = Depends(get_services),
):
    """Submission statistics over [start, end]; defaults to the last 30 days."""
    end = end or utcnow()
    start = start or end - DEFAULT_STATS_WINDOW
    return await services.insider.get_submission_stats(start, end)


@router.get("/insider/{submission_id}", tags=["Insider"])
async def get_insider(submission_id: str, services: Services = Depends(get_services)):
    return (await services.insider.get_submission(submission_id)).to_dict()


@router.post("/insider/{submission_id}/report", tags=["Insider"])
async def report_insider(submission_id: str, body: ReportRequest, services: Services = Depends(get_services)):
    submission = await services.insider.report_submission(submission_id, body.user_id, body.reason)
    return submission.to_dict()


@router.post("/insider/{submission_id}/verify", tags=["Insider"])
async def verify_insider(submission_id: str, body: ModerationRequest, services: Services = Depends(get_services)):
    submission = await services.insider.verify_information(
        submission_id, body.status, body.moderator_id, body.reason
    )
    return submission.to_dict()


@router.get("/insider/{submission_id}/related", tags=["Insider"])
async def related_insider(submission_id: str, services: Services = Depends(get_services)):
    return [s.to_dict() for s in await services.insider.related_submissions(submission_id)]


# -----------------------------------------------------------------------------
# Chat
# -----------------------------------------------------------------------------


@router.get("/chat/rooms/{room_id}/messages", tags=["Chat"])
async def room_messages(
    room_id: str,
    limit: int = Query(50, ge=1, le=200),
    services: Services = Depends(get_services),
):
    return [m.public_dict() for m in await services.chat.recent_messages(room_id, limit)]


@router.get("/chat/rooms/{room_id}/stats", tags=["Chat"])
async def room_stats(room_id: str, services: Services = Depends(get_services)):
    return await services.chat.room_stats(room_id)


@router.post("/chat/messages/{message_id}/flag", tags=["Chat"])
async def flag_message(message_id: str, body: ReportRequest, services: Services = Depends(get_services)):
    message = await services.chat.flag_message(message_id, body.user_id, body.reason)
    return message.public_dict()


@router.post("/chat/messages/{message_id}/moderate", tags=["Chat"])
async def moderate_message(message_id: str, body: ModerationRequest, services: Services = Depends(get_services)):
    message = await services.chat.moderate_message(message_id, body.moderator_id, body.status, body.reason)
    return message.public_dict()
