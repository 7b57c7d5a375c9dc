# realtime_endpoints.py
from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, status

from docstore import AsyncDocumentDatabase, StoreError
from endpoints.api_endpoints import api_key_matches

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def realtime_updates(websocket: WebSocket):
    """
    Push channel for store events.

    On connect the client gets {"event": "collections:init", ...}; afterwards
    every insert/update/delete/drop/clear/backup/restore is forwarded as
    {"event": "<name>", ...payload}. Writes go through the REST API.
    """
    settings = websocket.app.state.settings
    if not api_key_matches(settings.api_key, websocket.headers, websocket.query_params):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    db: AsyncDocumentDatabase = websocket.app.state.database
    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    # Store events fire on worker threads; hop back onto this loop.
    def _forward(event: str, payload: dict[str, Any]) -> None:
        loop.call_soon_threadsafe(outbox.put_nowait, {"event": event, **payload})

    unsubscribe = db.subscribe(_forward)
    client = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "unknown"
    logger.info("WebSocket client connected: %s", client)
    try:
        try:
            names = await db.list_collection_names()
            await websocket.send_json(
                {
                    "event": "collections:init",
                    "collections": names,
                    "message": "Collection-based storage ready for real-time operations",
                }
            )
        except StoreError:
            logger.error("WebSocket init failed for %s", client, exc_info=True)
            await websocket.send_json({"event": "collections:init", "collections": [], "error": "Failed to load collections"})

        sender = asyncio.create_task(_pump(websocket, outbox))
        receiver = asyncio.create_task(_drain(websocket))
        done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.debug("WebSocket %s closed: %r", client, task.exception())
    finally:
        unsubscribe()
        logger.info("WebSocket client disconnected: %s", client)


async def _pump(websocket: WebSocket, outbox: asyncio.Queue[dict[str, Any]]) -> None:
    while True:
        message = await outbox.get()
        await websocket.send_json(message)


async def _drain(websocket: WebSocket) -> None:
    # Incoming messages are ignored; we only watch for the disconnect.
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
