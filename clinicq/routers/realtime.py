# clinicq/routers/realtime.py
from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

router = APIRouter(tags=["realtime"])


@router.websocket("/ws/queue")
async def queue_updates(websocket: WebSocket):
    """
    Push channel for queue displays and staff desks. Messages look like
    {"event": "tokenCalled", "data": {...}}; anything the client sends is ignored.
    """
    hub = websocket.app.state.notifier
    await hub.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
