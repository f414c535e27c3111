# src/runboard/api/live.py

"""WebSocket channel pushing the live viewer count."""

import anyio
from fastapi import APIRouter, WebSocket

from runboard.services.presence import PresenceBroadcaster

router = APIRouter(tags=["Live"])


@router.websocket("/ws")
async def live_viewers(websocket: WebSocket) -> None:
    """Count the viewer for as long as the socket stays open.

    Every connect and disconnect pushes {"event": "userCount", "data": n}
    to all open sockets. Client frames are ignored.
    """
    presence: PresenceBroadcaster = websocket.app.state.presence
    await websocket.accept()
    try:
        # Registration happens before the first await in connect, so the
        # finally block always has a viewer to remove
        await presence.connect(websocket)
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        # Remaining viewers must hear about the departure even when the
        # handler is being cancelled
        with anyio.CancelScope(shield=True):
            await presence.disconnect(websocket)
