"""
Document-style persistence for Rugwatch records, backed by SQLAlchemy.

Uses DATABASE_URL (PostgreSQL or any SQLAlchemy URL) when set; otherwise a
local SQLite file. All methods are synchronous; async callers go through
rugwatch.core.providers.run_blocking so the event loop never waits on I/O.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from sqlalchemy import create_engine, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from rugwatch.community.models import ChatMessage, InsiderSubmission, RugCoinTombstone
from rugwatch.config import get_settings
from rugwatch.core.exceptions import DuplicateRecordError
from rugwatch.database.models import Base, ChatMessageRow, InsiderRow, TombstoneRow, WarningRow
from rugwatch.logging import get_logger
from rugwatch.warning_signs.models import WarningSign

logger = get_logger(__name__)

# Chat visibilities never shown in room history
HIDDEN_VISIBILITIES = ("deleted", "moderated")


def _redact_url(url: str) -> str:
    return url.split("?")[0].split("//")[-1].split("@")[-1]


class Database:
    """
    CRUD plus the indexed queries the services need. One engine per instance
    so tests can point a Database at a temporary SQLite file.
    """

    def __init__(self, url: str) -> None:
        self.url = url
        connect_args: dict[str, Any] = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self._engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Single session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist. Safe on every startup."""
        Base.metadata.create_all(bind=self._engine)
        logger.info("database_schema_ready", url=_redact_url(self.url))

    def dispose(self) -> None:
        self._engine.dispose()

    # -------------------------------------------------------------------------
    # Warnings
    # -------------------------------------------------------------------------

    def save_warning(self, warning: WarningSign) -> None:
        """Insert or replace the warning document and its indexed columns."""
        with self._session_scope() as session:
            row = session.get(WarningRow, warning.id)
            if row is None:
                row = WarningRow(id=warning.id, created_ts=warning.created_at.timestamp())
                session.add(row)
            row.network = warning.network.value
            row.status = warning.status.value
            row.risk_level = warning.risk_level.value
            row.risk_score = warning.ai_analysis.risk_score
            row.contract_address = warning.contract_address
            row.document = warning.to_dict()

    def get_warning(self, warning_id: str) -> WarningSign | None:
        with self._session_scope() as session:
            row = session.get(WarningRow, warning_id)
            return WarningSign.from_dict(row.document) if row else None

    def delete_warning(self, warning_id: str) -> bool:
        with self._session_scope() as session:
            deleted = session.query(WarningRow).filter(WarningRow.id == warning_id).delete()
        return deleted > 0

    def query_warnings(
        self,
        *,
        network: str | None = None,
        status: str | None = None,
        risk_level: str | None = None,
        order_by_score: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[WarningSign]:
        """Filtered list; newest first unless order_by_score (risk score descending)."""
        with self._session_scope() as session:
            q = session.query(WarningRow)
            if network:
                q = q.filter(WarningRow.network == network)
            if status:
                q = q.filter(WarningRow.status == status)
            if risk_level:
                q = q.filter(WarningRow.risk_level == risk_level)
            if order_by_score:
                q = q.order_by(WarningRow.risk_score.desc(), WarningRow.created_ts.desc())
            else:
                q = q.order_by(WarningRow.created_ts.desc())
            if offset:
                q = q.offset(offset)
            if limit is not None:
                q = q.limit(limit)
            return [WarningSign.from_dict(r.document) for r in q.all()]

    def warnings_between(self, start: datetime, end: datetime) -> list[WarningSign]:
        with self._session_scope() as session:
            rows = (
                session.query(WarningRow)
                .filter(WarningRow.created_ts >= start.timestamp(), WarningRow.created_ts <= end.timestamp())
                .order_by(WarningRow.created_ts)
                .all()
            )
            return [WarningSign.from_dict(r.document) for r in rows]

    # -------------------------------------------------------------------------
    # Tombstones
    # -------------------------------------------------------------------------

    def insert_tombstone(self, tombstone: RugCoinTombstone) -> None:
        """Insert a new tombstone. DuplicateRecordError on symbol/network or address clash."""
        try:
            with self._session_scope() as session:
                session.add(
                    TombstoneRow(
                        id=tombstone.id,
                        token_symbol=tombstone.token_symbol,
                        network=tombstone.network.value,
                        contract_address=tombstone.contract_address,
                        verification_status=tombstone.verification_status.value,
                        rug_pull_ts=tombstone.rug_pull_date.timestamp(),
                        document=tombstone.to_dict(),
                    )
                )
                session.flush()
        except IntegrityError as e:
            logger.info(
                "tombstone_duplicate",
                token_symbol=tombstone.token_symbol,
                network=tombstone.network.value,
            )
            raise DuplicateRecordError(
                "Tombstone already exists for this token/network or contract address",
                {"token_symbol": tombstone.token_symbol, "network": tombstone.network.value},
            ) from e

    def save_tombstone(self, tombstone: RugCoinTombstone) -> None:
        with self._session_scope() as session:
            row = session.get(TombstoneRow, tombstone.id)
            if row is None:
                raise KeyError(tombstone.id)
            row.verification_status = tombstone.verification_status.value
            row.document = tombstone.to_dict()

    def get_tombstone(self, tombstone_id: str) -> RugCoinTombstone | None:
        with self._session_scope() as session:
            row = session.get(TombstoneRow, tombstone_id)
            return RugCoinTombstone.from_dict(row.document) if row else None

    def query_tombstones(
        self,
        *,
        network: str | None = None,
        verification_status: str | None = None,
        limit: int | None = None,
    ) -> list[RugCoinTombstone]:
        """Filtered list, most recent rug-pull date first."""
        with self._session_scope() as session:
            q = session.query(TombstoneRow)
            if network:
                q = q.filter(TombstoneRow.network == network)
            if verification_status:
                q = q.filter(TombstoneRow.verification_status == verification_status)
            q = q.order_by(TombstoneRow.rug_pull_ts.desc())
            if limit is not None:
                q = q.limit(limit)
            return [RugCoinTombstone.from_dict(r.document) for r in q.all()]

    # -------------------------------------------------------------------------
    # Insider submissions
    # -------------------------------------------------------------------------

    def insert_submission(self, submission: InsiderSubmission) -> None:
        """Insert a new submission. DuplicateRecordError when the hash already exists."""
        try:
            with self._session_scope() as session:
                session.add(
                    InsiderRow(
                        id=submission.id,
                        submission_hash=submission.submission_hash,
                        project_name=submission.project_name,
                        network=submission.network.value,
                        verification_status=submission.verification_status.value,
                        credibility_score=submission.credibility_score,
                        created_ts=submission.created_at.timestamp(),
                        document=submission.to_dict(),
                    )
                )
                session.flush()
        except IntegrityError as e:
            logger.info("insider_submission_duplicate", submission_hash=submission.submission_hash[:16])
            raise DuplicateRecordError(
                "Identical submission already exists",
                {"submission_hash": submission.submission_hash},
            ) from e

    def save_submission(self, submission: InsiderSubmission) -> None:
        with self._session_scope() as session:
            row = session.get(InsiderRow, submission.id)
            if row is None:
                raise KeyError(submission.id)
            row.verification_status = submission.verification_status.value
            row.credibility_score = submission.credibility_score
            row.document = submission.to_dict()

    def get_submission(self, submission_id: str) -> InsiderSubmission | None:
        with self._session_scope() as session:
            row = session.get(InsiderRow, submission_id)
            return InsiderSubmission.from_dict(row.document) if row else None

    def query_submissions(
        self,
        *,
        verification_status: str | None = None,
        network: str | None = None,
        limit: int | None = None,
    ) -> list[InsiderSubmission]:
        """Filtered list, highest credibility first."""
        with self._session_scope() as session:
            q = session.query(InsiderRow)
            if verification_status:
                q = q.filter(InsiderRow.verification_status == verification_status)
            if network:
                q = q.filter(InsiderRow.network == network)
            q = q.order_by(InsiderRow.credibility_score.desc(), InsiderRow.created_ts.desc())
            if limit is not None:
                q = q.limit(limit)
            return [InsiderSubmission.from_dict(r.document) for r in q.all()]

    def submissions_between(self, start: datetime, end: datetime) -> list[InsiderSubmission]:
        with self._session_scope() as session:
            rows = (
                session.query(InsiderRow)
                .filter(InsiderRow.created_ts >= start.timestamp(), InsiderRow.created_ts <= end.timestamp())
                .order_by(InsiderRow.created_ts)
                .all()
            )
            return [InsiderSubmission.from_dict(r.document) for r in rows]

    # -------------------------------------------------------------------------
    # Chat messages
    # -------------------------------------------------------------------------

    def save_chat_message(self, message: ChatMessage) -> None:
        with self._session_scope() as session:
            row = session.get(ChatMessageRow, message.id)
            if row is None:
                row = ChatMessageRow(
                    id=message.id,
                    room_id=message.room_id,
                    created_ts=message.created_at.timestamp(),
                )
                session.add(row)
            row.visibility = message.visibility.value
            row.document = message.to_dict()

    def get_chat_message(self, message_id: str) -> ChatMessage | None:
        with self._session_scope() as session:
            row = session.get(ChatMessageRow, message_id)
            return ChatMessage.from_dict(row.document) if row else None

    def list_room_messages(self, room_id: str, *, limit: int = 50) -> list[ChatMessage]:
        """Most recent visible messages in a room, oldest first."""
        with self._session_scope() as session:
            rows = (
                session.query(ChatMessageRow)
                .filter(ChatMessageRow.room_id == room_id, ChatMessageRow.visibility.notin_(HIDDEN_VISIBILITIES))
                .order_by(ChatMessageRow.created_ts.desc())
                .limit(limit)
                .all()
            )
            return [ChatMessage.from_dict(r.document) for r in reversed(rows)]

    def room_activity(self, room_id: str) -> tuple[int, float | None]:
        """(stored message count, newest created_ts) for a room, all visibilities."""
        with self._session_scope() as session:
            count, newest = (
                session.query(func.count(ChatMessageRow.id), func.max(ChatMessageRow.created_ts))
                .filter(ChatMessageRow.room_id == room_id)
                .one()
            )
            return int(count), newest


_default_db: Database | None = None


def get_database(url: str | None = None) -> Database:
    """
    Return a Database for the given URL, or the process-wide default from
    settings. The default instance is created once and its schema ensured.
    """
    global _default_db
    if url is not None:
        db = Database(url)
        db.ensure_schema()
        return db
    if _default_db is None:
        _default_db = Database(get_settings().database_url)
        _default_db.ensure_schema()
    return _default_db
