"""
Chat relay between WebSocket clients and the room topics of the dispatcher.

Connection handling lives in the API layer. The relay owns the message
semantics: every inbound chat frame is scanned for risk keywords, sentiment
and credibility, persisted, then broadcast on the room topic. Flags and
moderation decisions publish ChatMessageUpdated on the same topic.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from rugwatch.alerts.dispatcher import EventKind, NotificationDispatcher
from rugwatch.analysis_engine.credibility import analyze_chat_message
from rugwatch.community.models import (
    ChatMessage,
    MessageVisibility,
    ModerationStatus,
    UserReport,
)
from rugwatch.core.exceptions import DuplicateRecordError, NotFoundError, ValidationError
from rugwatch.core.providers import run_blocking
from rugwatch.database import Database
from rugwatch.logging import get_logger
from rugwatch.ml.text_model import LexiconTextModel
from rugwatch.warning_signs.locks import EntityLocks
from rugwatch.warning_signs.models import parse_enum, utcnow

logger = get_logger(__name__)

DEFAULT_FLAG_THRESHOLD = 5
HISTORY_LIMIT = 50
MESSAGE_TYPES = ("text", "image", "link", "evidence")


class ChatRelay:
    def __init__(
        self,
        db: Database,
        dispatcher: NotificationDispatcher,
        *,
        text_model: LexiconTextModel | None = None,
        flag_threshold: int = DEFAULT_FLAG_THRESHOLD,
    ) -> None:
        self.db = db
        self.dispatcher = dispatcher
        self.text_model = text_model or LexiconTextModel()
        self.flag_threshold = flag_threshold
        self.locks = EntityLocks()
        self._members: dict[str, set[str]] = {}

    # -------------------------------------------------------------------------
    # Inbound frames
    # -------------------------------------------------------------------------

    async def handle_inbound(self, frame: Mapping[str, Any]) -> dict[str, Any]:
        """
        Dispatch one client frame. Returns the reply for the sender:
        history for join, ack for leave and chat. Unknown types raise
        ValidationError.
        """
        kind = frame.get("type")
        room_id = str(frame.get("roomId") or "").strip()
        user_id = str(frame.get("userId") or "").strip()
        if kind not in ("join", "leave", "chat"):
            raise ValidationError("Unknown message type", {"type": kind})
        if not room_id or not user_id:
            raise ValidationError("roomId and userId are required")

        if kind == "join":
            self._members.setdefault(room_id, set()).add(user_id)
            history = await self.recent_messages(room_id)
            self._system_message(room_id, f"{user_id} joined the room")
            return {"type": "history", "roomId": room_id, "messages": [m.public_dict() for m in history]}
        if kind == "leave":
            members = self._members.get(room_id)
            if members is not None:
                members.discard(user_id)
                if not members:
                    del self._members[room_id]
            self._system_message(room_id, f"{user_id} left the room")
            return {"type": "left", "roomId": room_id}

        message = await self.post_message(
            room_id,
            user_id,
            str(frame.get("content") or ""),
            anonymous=bool(frame.get("anonymous", False)),
            message_type=str(frame.get("messageType") or "text"),
            metadata=frame.get("metadata") or {},
        )
        return {"type": "ack", "roomId": room_id, "messageId": message.id}

    def _system_message(self, room_id: str, content: str) -> None:
        self.dispatcher.publish(
            EventKind.CHAT_MESSAGE_SENT,
            {"type": "system", "roomId": room_id, "content": content, "timestamp": utcnow().isoformat()},
            key=room_id,
        )

    async def post_message(
        self,
        room_id: str,
        user_id: str,
        content: str,
        *,
        anonymous: bool = False,
        message_type: str = "text",
        metadata: Mapping[str, Any] | None = None,
    ) -> ChatMessage:
        if message_type not in MESSAGE_TYPES:
            raise ValidationError(f"Unknown message type: {message_type}", {"field": "message_type"})
        message = ChatMessage(
            room_id=room_id,
            sender_id=user_id,
            content=content,
            anonymous=anonymous,
            message_type=message_type,
            metadata=dict(metadata or {}),
        )
        message.analysis = analyze_chat_message(message.content, self.text_model)
        await run_blocking(self.db.save_chat_message, message)

        if message.analysis["risk_indicators"]:
            logger.warning(
                "chat_message_needs_review",
                message_id=message.id,
                room_id=room_id,
                risk_indicators=message.analysis["risk_indicators"],
                credibility_score=message.analysis["credibility_score"],
            )
        self.dispatcher.publish(
            EventKind.CHAT_MESSAGE_SENT,
            {"type": "chat", "message": message.public_dict()},
            key=room_id,
        )
        return message

    async def recent_messages(self, room_id: str, limit: int = HISTORY_LIMIT) -> list[ChatMessage]:
        """Newest visible messages, oldest first. Moderated and deleted messages are filtered in the query."""
        return await run_blocking(self.db.list_room_messages, room_id, limit=limit)

    async def room_stats(self, room_id: str) -> dict[str, Any]:
        """Joined users right now, stored message count and time of the newest message."""
        count, newest = await run_blocking(self.db.room_activity, room_id)
        return {
            "room_id": room_id,
            "active_users": len(self._members.get(room_id, ())),
            "message_count": count,
            "last_activity": datetime.fromtimestamp(newest, tz=timezone.utc).isoformat() if newest else None,
        }

    # -------------------------------------------------------------------------
    # Flags and moderation
    # -------------------------------------------------------------------------

    async def get_message(self, message_id: str) -> ChatMessage:
        message = await run_blocking(self.db.get_chat_message, message_id)
        if message is None:
            raise NotFoundError("ChatMessage", message_id)
        return message

    def _publish_update(self, message: ChatMessage) -> None:
        self.dispatcher.publish(
            EventKind.CHAT_MESSAGE_UPDATED,
            {"type": "message_updated", "message": message.public_dict()},
            key=message.room_id,
        )

    async def flag_message(self, message_id: str, user_id: str, reason: str = "") -> ChatMessage:
        """Add a flag; the threshold-th flag hides the message pending moderator review."""
        async with self.locks.lock(message_id):
            message = await self.get_message(message_id)
            if any(f.user_id == user_id for f in message.flags):
                raise DuplicateRecordError("User already flagged this message", {"user_id": user_id})
            message.flags.append(UserReport(user_id=user_id, reason=reason))
            escalated = len(message.flags) == self.flag_threshold
            if escalated:
                message.visibility = MessageVisibility.MODERATED
                message.moderation_status = ModerationStatus.PENDING
            await run_blocking(self.db.save_chat_message, message)

        logger.info(
            "chat_message_flagged",
            message_id=message_id,
            room_id=message.room_id,
            flag_count=len(message.flags),
            escalated=escalated,
        )
        self._publish_update(message)
        return message

    async def moderate_message(
        self,
        message_id: str,
        moderator_id: str,
        status: str,
        reason: str = "",
    ) -> ChatMessage:
        target = parse_enum(ModerationStatus, status, "moderation_status")
        async with self.locks.lock(message_id):
            message = await self.get_message(message_id)
            message.moderation_status = target
            message.moderated_by = moderator_id
            message.moderation_time = utcnow()
            message.moderation_reason = reason or None
            if target == ModerationStatus.REJECTED:
                message.visibility = MessageVisibility.MODERATED
            elif target == ModerationStatus.APPROVED and message.visibility == MessageVisibility.MODERATED:
                message.visibility = MessageVisibility.PUBLIC
            await run_blocking(self.db.save_chat_message, message)

        logger.info("chat_message_moderated", message_id=message_id, status=target.value, moderator_id=moderator_id)
        self._publish_update(message)
        return message
