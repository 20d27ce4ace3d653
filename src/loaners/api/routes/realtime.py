"""WebSocket channel for live reservation updates.

Clients connect to /ws/reservations and receive every create/update/delete
as {"event", "action", "data"}. Nothing is replayed on connect: a client
fetches GET /reservations first, then applies incoming messages.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from loaners.realtime.broadcast import BroadcastHub, Subscription

router = APIRouter(tags=["realtime"])


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        message = await subscription.get()
        await websocket.send_json(message)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Clients never send anything meaningful; receive only to notice the close.
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/reservations")
async def reservation_updates(websocket: WebSocket) -> None:
    hub: BroadcastHub = websocket.app.state.broadcast_hub
    subscription = hub.subscribe()
    await websocket.accept()

    forward = asyncio.create_task(_forward(websocket, subscription))
    disconnect = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        done, pending = await asyncio.wait(
            {forward, disconnect}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            exc = task.exception()
            # A send on a closed socket is a disconnect, not an error.
            if exc is not None and not isinstance(exc, (WebSocketDisconnect, RuntimeError)):
                raise exc
    finally:
        forward.cancel()
        disconnect.cancel()
        hub.unsubscribe(subscription)
