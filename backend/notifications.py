# notifications.py — Live board updates over WebSocket
import uuid
import logging
from datetime import datetime, timezone
from typing import Dict, Set, Optional, List, Any

from fastapi import Request, WebSocket

logger = logging.getLogger("taskboard.ws")

BOARD_GROUP = "TaskBoard"


class ConnectionManager:
    """Tracks open WebSocket connections and the groups they joined"""

    def __init__(self):
        self._connections: Dict[str, WebSocket] = {}  # connection_id -> ws
        self._users: Dict[str, str] = {}  # connection_id -> user_id
        self._groups: Dict[str, Set[str]] = {}  # group -> {connection_ids}

    async def connect(self, websocket: WebSocket, user_id: str) -> str:
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        self._connections[connection_id] = websocket
        self._users[connection_id] = user_id
        logger.info(f"WS connected: user={user_id[:8]} conn={connection_id[:8]}")
        return connection_id

    def disconnect(self, connection_id: str):
        self._connections.pop(connection_id, None)
        user_id = self._users.pop(connection_id, "")
        for group in list(self._groups.keys()):
            self._groups[group].discard(connection_id)
            if not self._groups[group]:
                del self._groups[group]
        logger.info(f"WS disconnected: user={user_id[:8]} conn={connection_id[:8]}")

    def join(self, connection_id: str, group: str):
        if connection_id not in self._connections:
            return
        self._groups.setdefault(group, set()).add(connection_id)

    def leave(self, connection_id: str, group: str):
        if group in self._groups:
            self._groups[group].discard(connection_id)

    def members(self, group: str) -> List[str]:
        return list(self._groups.get(group, set()))

    async def send(self, connection_id: str, message: dict):
        ws = self._connections.get(connection_id)
        if ws is None:
            return
        try:
            await ws.send_json(message)
        except Exception as e:
            logger.warning(f"WS send failed, dropping conn={connection_id[:8]}: {e}")
            self.disconnect(connection_id)

    async def broadcast_to_group(self, group: str, message: dict):
        for connection_id in self.members(group):
            await self.send(connection_id, message)

    async def close_all(self, code: int = 1001):
        """Close every open socket (1001 going away) and forget all state"""
        for connection_id, ws in list(self._connections.items()):
            try:
                await ws.close(code=code)
            except Exception as e:
                logger.warning(f"WS close failed for conn={connection_id[:8]}: {e}")
        self._connections.clear()
        self._users.clear()
        self._groups.clear()

    def get_stats(self) -> dict:
        return {
            "total_connections": len(self._connections),
            "users": len(set(self._users.values())),
            "groups": {g: len(c) for g, c in self._groups.items()},
        }


class BoardNotifier:
    """Publishes task events to everyone watching the board"""

    def __init__(self, manager: ConnectionManager, group: str = BOARD_GROUP):
        self.manager = manager
        self.group = group

    async def _publish(self, event: str, payload: Dict[str, Any]):
        await self.manager.broadcast_to_group(self.group, {
            "type": event,
            **payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    async def task_created(self, task: dict, created_by: str):
        await self._publish("TaskCreated", {"task": task, "created_by": created_by})

    async def task_updated(self, task: dict):
        await self._publish("TaskUpdated", {"task": task})

    async def task_assigned(self, task: dict, assigned_to_user_id: str):
        await self._publish("TaskAssigned", {"task": task, "assigned_to_user_id": assigned_to_user_id})

    async def task_deleted(self, task_id: str):
        await self._publish("TaskDeleted", {"task_id": task_id})

    async def tasks_archived(self, task_ids: List[str]):
        await self._publish("TasksArchived", {"task_ids": task_ids})


def get_connection_manager(request: Request) -> Optional[ConnectionManager]:
    return getattr(request.app.state, "connections", None)


def get_notifier(request: Request) -> Optional[BoardNotifier]:
    return getattr(request.app.state, "notifier", None)
