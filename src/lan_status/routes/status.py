"""
Live status routes.

The websocket feed pushes a full snapshot on connect (if one is cached)
and after every completed cycle.
"""

import asyncio
import logging

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect

from .._types import StatusSnapshot

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_EVENT = "network-status"


def snapshot_message(snapshot: StatusSnapshot) -> dict:
    return {"event": STATUS_EVENT, **snapshot.to_dict()}


@router.get("/api/status")
async def get_status(request: Request) -> dict:
    """Get the most recent snapshot (null before the first cycle)."""
    latest = request.app.state.broadcaster.latest

    return {
        "success": True,
        "data": latest.to_dict() if latest else None,
    }


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Clients never send anything meaningful; only watch for the close
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/status")
async def status_feed(websocket: WebSocket):
    """Push every published snapshot to the connected client."""
    broadcaster = websocket.app.state.broadcaster

    await websocket.accept()
    subscription = broadcaster.subscribe()
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))

    try:
        while True:
            next_snapshot = asyncio.create_task(subscription.get())
            done, _ = await asyncio.wait(
                {next_snapshot, disconnected},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if disconnected in done:
                next_snapshot.cancel()
                if (error := disconnected.exception()) is not None:
                    logger.debug(
                        f"Status feed receive failed for subscriber {subscription.id}: {error}"
                    )
                break

            await websocket.send_json(snapshot_message(next_snapshot.result()))

    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug(f"Status feed closed for subscriber {subscription.id}: {e}")

    finally:
        disconnected.cancel()
        subscription.close()
