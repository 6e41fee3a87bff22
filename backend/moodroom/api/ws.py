from __future__ import annotations

from fastapi import APIRouter, WebSocket

from moodroom.runtime import CollabRuntime

router = APIRouter(tags=["websocket"])


def _runtime_for(ws: WebSocket) -> CollabRuntime:
    return ws.app.state.runtime


@router.websocket("/api/ws")
async def websocket_api(ws: WebSocket) -> None:
    await _runtime_for(ws).handle_websocket(ws)


@router.websocket("/ws")
async def websocket_compat(ws: WebSocket) -> None:
    await _runtime_for(ws).handle_websocket(ws)
