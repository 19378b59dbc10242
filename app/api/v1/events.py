"""Progress websocket: pushes every download event to connected clients."""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()

# Set by main.py during lifespan (same pattern as downloads.py)
_broadcaster = None


def set_broadcaster(broadcaster):
    global _broadcaster
    _broadcaster = broadcaster


async def progress_socket(websocket: WebSocket):
    """Acknowledge with a client id, then stream events until either side closes.

    Anything the client sends is read and discarded.
    """
    await websocket.accept()
    broadcaster = _broadcaster
    if broadcaster is None:
        await websocket.close(code=1013)
        return

    observer = broadcaster.subscribe()
    try:
        await websocket.send_json({"type": "connected", "clientId": observer.id})
        reader = asyncio.ensure_future(_discard_incoming(websocket))
        writer = asyncio.ensure_future(_pump(websocket, observer))
        done, pending = await asyncio.wait(
            {reader, writer}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.debug("Observer %s closed: %r", observer.id, task.exception())
        if writer in done and writer.exception() is None:
            # Server side is shutting the observer down
            await websocket.close()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unsubscribe(observer)


async def _pump(websocket: WebSocket, observer) -> None:
    while True:
        message = await observer.get()
        if message is None:
            return
        await websocket.send_json(message)


async def _discard_incoming(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


router.add_api_websocket_route("/ws", progress_socket)
