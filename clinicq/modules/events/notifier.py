# clinicq/modules/events/notifier.py
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Mapping, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

LOGGER = logging.getLogger(__name__)


class QueueEvent(str, Enum):
    NEW_APPOINTMENT = "newAppointment"
    APPOINTMENT_UPDATED = "appointmentUpdated"
    APPOINTMENT_NO_SHOW = "appointmentNoShow"
    QUEUE_UPDATE = "queueUpdate"
    TOKEN_CALLED = "tokenCalled"
    QUEUE_PAUSED = "queuePaused"
    QUEUE_RESUMED = "queueResumed"


class EventNotifier:
    """
    Publish side of the live-refresh channel.

    Delivery is best effort: no persistence, no replay, no acknowledgement.
    Subscribers must re-fetch the queue through the query endpoints; events
    only tell them *which* view changed.
    """

    async def publish(self, event: QueueEvent | str, payload: Mapping[str, Any]) -> None:
        raise NotImplementedError


class NullNotifier(EventNotifier):
    async def publish(self, event: QueueEvent | str, payload: Mapping[str, Any]) -> None:
        LOGGER.debug("event %s dropped (no transport)", _name(event))


class BroadcastHub(EventNotifier):
    """
    Fans every event out to all connected WebSocket clients.
    A client whose send fails is dropped; publishing never raises.
    """

    def __init__(self) -> None:
        self._clients: Set[WebSocket] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        LOGGER.info("realtime subscriber connected (%d total)", len(self._clients))

    def disconnect(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)

    async def publish(self, event: QueueEvent | str, payload: Mapping[str, Any]) -> None:
        if not self._clients:
            return
        message: Dict[str, Any] = {"event": _name(event), "data": jsonable_encoder(dict(payload))}
        clients = list(self._clients)
        results = await asyncio.gather(
            *(ws.send_json(message) for ws in clients), return_exceptions=True
        )
        for ws, result in zip(clients, results):
            if isinstance(result, Exception):
                LOGGER.warning("dropping realtime subscriber after send failure: %s", result)
                self.disconnect(ws)


def _name(event: QueueEvent | str) -> str:
    return event.value if isinstance(event, QueueEvent) else str(event)


async def emit(notifier: EventNotifier, event: QueueEvent, payload: Mapping[str, Any]) -> None:
    """
    Publish after the change has committed. A failing transport is logged
    and otherwise ignored: the database stays the source of truth.
    """
    try:
        await notifier.publish(event, payload)
    except Exception:
        LOGGER.exception("publishing %s failed", _name(event))
