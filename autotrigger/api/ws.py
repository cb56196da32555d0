"""WebSocket route — snapshot push + command messages."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from autotrigger.core.schedule.types import SchedulerSnapshot
from autotrigger.engine.controller import TriggerController
from autotrigger.engine.errors import AutoTriggerError

router = APIRouter()


# ── Connection Registry ──────────────────────────────────────


class ConnectionManager:
    """In-memory registry of WebSocket observers.

    Single event loop, so no locking is needed.
    """

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()

    def connect(self, ws: WebSocket) -> None:
        self._connections.add(ws)
        logger.debug(f"WS connected, total={len(self._connections)}")

    def disconnect(self, ws: WebSocket) -> None:
        self._connections.discard(ws)
        logger.debug(f"WS disconnected, total={len(self._connections)}")

    @property
    def count(self) -> int:
        return len(self._connections)

    async def broadcast(self, event: dict) -> int:
        """Send an event to every connection. Returns how many received it.

        Broken connections are dropped silently.
        """
        sent = 0
        broken: list[WebSocket] = []
        for ws in list(self._connections):
            try:
                await ws.send_json(event)
                sent += 1
            except Exception:
                broken.append(ws)
        for ws in broken:
            self._connections.discard(ws)
        return sent

    async def push_snapshot(self, snap: SchedulerSnapshot) -> None:
        """Controller subscriber — fan a snapshot out to every client."""
        await self.broadcast(_state_event(snap))


def _state_event(snap: SchedulerSnapshot) -> dict[str, Any]:
    return {"type": "state_update", "data": snap.model_dump(mode="json")}


# ── Command dispatch ─────────────────────────────────────────


async def _handle(controller: TriggerController, message: dict[str, Any]) -> dict | None:
    """Run one client command. State changes reach the client via push."""
    if not isinstance(message, dict):
        return {"type": "error", "data": "Message must be a JSON object"}
    kind = message.get("type")
    data = message.get("data") or {}

    if kind == "get_state":
        return _state_event(controller.snapshot())
    if kind == "authorize":
        await controller.authorize()
    elif kind == "revoke":
        await controller.revoke()
    elif kind == "confirm_revoke":
        await controller.confirm_revoke()
    elif kind == "cancel_revoke":
        await controller.cancel_revoke()
    elif kind == "save_schedule":
        await controller.save_schedule(data)
    elif kind == "toggle":
        await controller.toggle_enabled()
    elif kind == "test":
        await controller.request_test(data.get("models") or None)
    elif kind == "clear_history":
        await controller.clear_history()
    elif kind == "backend_update":
        await controller.notify_backend_update()
    elif kind == "preview":
        runs = controller.preview(count=data.get("count"))
        return {"type": "preview", "data": [r.isoformat() for r in runs]}
    elif kind == "validate_crontab":
        result = controller.validate_crontab(str(data.get("expression", "")))
        return {"type": "crontab_validation", "data": result.model_dump(mode="json")}
    else:
        logger.warning(f"Unknown WS message type: {kind}")
        return {"type": "error", "data": f"Unknown message type: {kind}"}
    return None


# ── WebSocket Endpoint ───────────────────────────────────────


@router.websocket("/ws/state")
async def ws_state(websocket: WebSocket):
    """Push every snapshot; accept command messages from the client."""
    controller: TriggerController = websocket.app.state.controller
    manager: ConnectionManager = websocket.app.state.ws_manager

    await websocket.accept()
    manager.connect(websocket)
    try:
        await websocket.send_json(_state_event(controller.snapshot()))
        while True:
            message = await websocket.receive_json()
            try:
                reply = await _handle(controller, message)
            except AutoTriggerError as e:
                reply = {"type": "error", "data": str(e)}
            except Exception as e:
                logger.error(f"WS command error: {e}")
                reply = {"type": "error", "data": str(e)}
            if reply is not None:
                await websocket.send_json(reply)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
