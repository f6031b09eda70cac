"""Realtime endpoints: the WebSocket fan-out and its statistics"""

from typing import Optional

from fastapi import APIRouter, Query, WebSocket

from ...realtime.broadcaster import SubscriptionBroadcaster
from ...schemas.common import utc_now_iso
from ..dependencies import BroadcasterDep

router = APIRouter(prefix="/realtime")
ws_router = APIRouter()


@router.get("/stats")
async def realtime_stats(broadcaster: SubscriptionBroadcaster = BroadcasterDep):
    return {"success": True, "data": broadcaster.get_stats(), "timestamp": utc_now_iso()}


@ws_router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    user_id: Optional[str] = Query(None, alias="userId"),
    tenant_id: Optional[str] = Query(None, alias="tenantId"),
):
    """
    Subscribe to outcome events.

    Identity comes from the ``userId``/``tenantId`` query parameters,
    falling back to the ``x-user-id``/``x-tenant-id`` headers.
    """
    broadcaster: SubscriptionBroadcaster = websocket.app.state.container.broadcaster
    connection = await broadcaster.connect(
        websocket,
        user_id=user_id or websocket.headers.get("x-user-id"),
        tenant_id=tenant_id or websocket.headers.get("x-tenant-id"),
    )
    try:
        # The broadcaster may close and drop the connection (heartbeat, failed send)
        while connection.connection_id in broadcaster.connections:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            if message.get("text") is not None:
                await broadcaster.handle_message(connection.connection_id, message["text"])
            else:
                await broadcaster.reject_binary(connection.connection_id)
    finally:
        broadcaster.forget(connection.connection_id)
