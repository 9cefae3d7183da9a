"""
Service graph for the API: built once in the lifespan, resolved per request
through FastAPI dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass

from starlette.requests import HTTPConnection

from rugwatch.alerts import NotificationDispatcher
from rugwatch.analysis_engine.scorer import RiskScorer
from rugwatch.chain import ChainDataProvider, Web3ChainProvider
from rugwatch.community.chat import ChatRelay
from rugwatch.community.insider import InsiderService
from rugwatch.community.tombstones import TombstoneService
from rugwatch.config import Settings
from rugwatch.database import Database
from rugwatch.ml import load_risk_model
from rugwatch.scheduler import MonitoringConfig, MonitoringScheduler
from rugwatch.warning_signs.service import WarningService


@dataclass
class Services:
    """Everything a route or WebSocket handler needs."""

    settings: Settings
    db: Database
    dispatcher: NotificationDispatcher
    warnings: WarningService
    scheduler: MonitoringScheduler
    tombstones: TombstoneService
    insider: InsiderService
    chat: ChatRelay


def build_services(settings: Settings, *, chain: ChainDataProvider | None = None, db: Database | None = None) -> Services:
    if db is None:
        db = Database(settings.database_url)
        db.ensure_schema()
    chain = chain if chain is not None else Web3ChainProvider(settings)
    dispatcher = NotificationDispatcher()
    scorer = RiskScorer(load_risk_model(settings.risk_model_path or None))
    warnings = WarningService(
        db,
        scorer,
        dispatcher,
        chain=chain,
        provider_timeout_sec=settings.provider_timeout_sec,
    )
    scheduler = MonitoringScheduler(
        warnings,
        chain,
        MonitoringConfig(
            interval_sec=settings.monitoring_interval_sec,
            provider_timeout_sec=settings.provider_timeout_sec,
        ),
    )
    warnings.attach_monitor(scheduler)
    return Services(
        settings=settings,
        db=db,
        dispatcher=dispatcher,
        warnings=warnings,
        scheduler=scheduler,
        tombstones=TombstoneService(db, chain=chain, scorer=scorer, provider_timeout_sec=settings.provider_timeout_sec),
        insider=InsiderService(
            db,
            secret=settings.submitter_hash_secret,
            report_threshold=settings.escalation_report_threshold,
        ),
        chat=ChatRelay(db, dispatcher, flag_threshold=settings.escalation_report_threshold),
    )


def get_services(conn: HTTPConnection) -> Services:
    """Dependency for both HTTP and WebSocket routes."""
    return conn.app.state.services
