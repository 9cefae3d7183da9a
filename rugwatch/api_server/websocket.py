"""
WebSocket channels.

/ws/warnings streams warning_created and warning_updated events; with a
warning_id query parameter only that warning's updates are sent.
/ws/chat/{room_id} relays {type, roomId, userId, content} frames through the
ChatRelay and streams the room's chat events back. Delivery is live only: a
client sees events published while it is connected and nothing earlier.
"""

from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from rugwatch.alerts import EventKind, Subscription
from rugwatch.api_server.deps import Services, get_services
from rugwatch.core.exceptions import RugwatchError
from rugwatch.logging import get_logger

logger = get_logger(__name__)

ws_router = APIRouter()


async def _forward(websocket: WebSocket, sub: Subscription) -> None:
    async for event in sub:
        await websocket.send_json(event.to_dict())


async def _drain_until_disconnect(websocket: WebSocket) -> None:
    while True:
        await websocket.receive_text()


@ws_router.websocket("/ws/warnings")
async def warnings_feed(
    websocket: WebSocket,
    warning_id: str | None = None,
    services: Services = Depends(get_services),
):
    await websocket.accept()
    if warning_id:
        subs = [services.dispatcher.subscribe(EventKind.WARNING_UPDATED, warning_id)]
    else:
        subs = [
            services.dispatcher.subscribe(EventKind.WARNING_CREATED),
            services.dispatcher.subscribe(EventKind.WARNING_UPDATED),
        ]
    logger.info("ws_warnings_connected", warning_id=warning_id)
    forwarders = [asyncio.create_task(_forward(websocket, s)) for s in subs]
    try:
        await _drain_until_disconnect(websocket)
    except WebSocketDisconnect:
        pass
    finally:
        for task in forwarders:
            task.cancel()
        await asyncio.gather(*forwarders, return_exceptions=True)
        for sub in subs:
            sub.close()
        logger.info("ws_warnings_disconnected", warning_id=warning_id)


@ws_router.websocket("/ws/chat/{room_id}")
async def chat_room(websocket: WebSocket, room_id: str, services: Services = Depends(get_services)):
    await websocket.accept()
    subs = [
        services.dispatcher.subscribe(EventKind.CHAT_MESSAGE_SENT, room_id),
        services.dispatcher.subscribe(EventKind.CHAT_MESSAGE_UPDATED, room_id),
    ]
    forwarders = [asyncio.create_task(_forward(websocket, s)) for s in subs]
    joined_as: str | None = None
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": "error", "message": "Invalid message format"})
                continue
            if not isinstance(frame, dict):
                await websocket.send_json({"type": "error", "message": "Frame must be a JSON object"})
                continue
            frame.setdefault("roomId", room_id)
            if frame["roomId"] != room_id:
                await websocket.send_json({"type": "error", "message": "Not joined to a room"})
                continue
            if frame.get("type") == "chat":
                if joined_as is None:
                    await websocket.send_json({"type": "error", "message": "Not joined to a room"})
                    continue
                # Posts always go out as the user who joined on this connection
                frame["userId"] = joined_as
            try:
                reply = await services.chat.handle_inbound(frame)
            except RugwatchError as e:
                await websocket.send_json({"type": "error", **e.to_dict()})
                continue
            if frame.get("type") == "join":
                joined_as = str(frame.get("userId"))
            elif frame.get("type") == "leave":
                joined_as = None
            await websocket.send_json(reply)
    except WebSocketDisconnect:
        pass
    finally:
        for task in forwarders:
            task.cancel()
        await asyncio.gather(*forwarders, return_exceptions=True)
        for sub in subs:
            sub.close()
        if joined_as is not None:
            await services.chat.handle_inbound({"type": "leave", "roomId": room_id, "userId": joined_as})
        logger.info("ws_chat_disconnected", room_id=room_id)
