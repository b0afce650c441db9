# routers/websocket_router.py — Live board updates
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, Query, HTTPException

from auth import AuthService
from notifications import ConnectionManager, BOARD_GROUP, get_connection_manager

router = APIRouter(tags=["WebSocket"])
logger = logging.getLogger("taskboard.ws")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.websocket("/hubs/tasks")
async def task_hub(
    websocket: WebSocket,
    access_token: str = Query(...),
):
    """Board hub. Browsers cannot set headers on WebSockets, so the JWT rides in the query."""
    payload = AuthService.decode_access_token(access_token)
    if not payload:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    manager: ConnectionManager = getattr(websocket.app.state, "connections", None)
    if manager is None:
        await websocket.close(code=1011, reason="Hub unavailable")
        return

    user_id = payload["sub"]
    connection_id = await manager.connect(websocket, user_id)

    await websocket.send_json({
        "type": "connected",
        "connection_id": connection_id,
        "user_id": user_id,
        "timestamp": _now(),
    })

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type", "")

            if msg_type == "ping":
                await websocket.send_json({"type": "pong", "timestamp": _now()})

            elif msg_type == "join_board":
                manager.join(connection_id, BOARD_GROUP)
                await websocket.send_json({"type": "joined", "group": BOARD_GROUP})

            elif msg_type == "leave_board":
                manager.leave(connection_id, BOARD_GROUP)
                await websocket.send_json({"type": "left", "group": BOARD_GROUP})

            else:
                await websocket.send_json({"type": "error", "detail": f"Unknown message type: {msg_type}"})

    except WebSocketDisconnect:
        manager.disconnect(connection_id)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        manager.disconnect(connection_id)


@router.get("/hubs/tasks/stats")
async def hub_stats(manager: Optional[ConnectionManager] = Depends(get_connection_manager)):
    """Get WebSocket connection statistics"""
    if manager is None:
        raise HTTPException(status_code=503, detail="Hub unavailable")
    return manager.get_stats()
