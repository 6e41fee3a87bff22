from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from .config import Settings, settings as default_settings
from .runtime_broadcast import RoomBroadcaster
from .runtime_errors import AlreadyJoinedError, CollabError, JoinValidationError, NotInRoomError
from .runtime_history import replay_for
from .runtime_membership import join as join_membership
from .runtime_membership import leave as leave_membership
from .runtime_membership import users_event, validate_join_fields
from .runtime_message_handlers import handle_message as handle_room_message
from .runtime_message_handlers import parse_event
from .runtime_registry import RoomRegistry
from .runtime_types import ClientConnection, RoomRuntime, TextSocket
from .runtime_utils import mask_identity, now_ms, random_id, resolve_client_identity

logger = logging.getLogger(__name__)


class CollabRuntime:
    def __init__(
        self,
        registry: RoomRegistry | None = None,
        config: Settings | None = None,
    ) -> None:
        self.registry = registry if registry is not None else RoomRegistry()
        self.settings = config if config is not None else default_settings
        self.broadcaster = RoomBroadcaster(
            on_delivery_failure=self._on_delivery_failure,
            on_dead_connection=self._drop_dead_connection,
            outbox_size=self.settings.outbound_queue_size,
        )
        self.connections: dict[str, ClientConnection] = {}
        self._sweeper: asyncio.Task[None] | None = None
        self._ws_stats: dict[str, int] = {
            "connectSuccess": 0,
            "disconnects": 0,
            "sendFailures": 0,
            "messageReceived": 0,
            "invalidMessages": 0,
            "pingReceived": 0,
            "joinRejected": 0,
            "roomsSwept": 0,
            "activeConnections": 0,
            "peakConnections": 0,
        }

    @property
    def active_rooms_count(self) -> int:
        return self.registry.active_rooms_count

    def _increment_stat(self, key: str, amount: int = 1) -> None:
        self._ws_stats[key] = int(self._ws_stats.get(key, 0)) + amount

    def _on_connect(self) -> None:
        self._increment_stat("connectSuccess")
        active_connections = int(self._ws_stats.get("activeConnections", 0)) + 1
        self._ws_stats["activeConnections"] = active_connections
        if active_connections > int(self._ws_stats.get("peakConnections", 0)):
            self._ws_stats["peakConnections"] = active_connections

    def _on_disconnect(self) -> None:
        self._increment_stat("disconnects")
        active_connections = max(0, int(self._ws_stats.get("activeConnections", 0)) - 1)
        self._ws_stats["activeConnections"] = active_connections

    def _log_ws_event(self, event: str, level: int = logging.INFO, **fields: object) -> None:
        logger.log(
            level,
            "ws.%s %s",
            event,
            json.dumps(fields, ensure_ascii=False, separators=(",", ":")),
        )

    def _on_delivery_failure(
        self,
        room: RoomRuntime | None,
        connection: ClientConnection,
        exc: BaseException,
    ) -> None:
        self._increment_stat("sendFailures")
        self._log_ws_event(
            "delivery_failed",
            level=logging.DEBUG,
            roomId=room.room_id if room is not None else "-",
            connId=connection.conn_id,
            reason=repr(exc),
        )

    async def _drop_dead_connection(self, connection: ClientConnection) -> None:
        room = await self.registry.get_room(connection.room_id)
        if room is None:
            connection.closed = True
            return
        async with room.lock:
            self.broadcaster.drop_member(room, connection)

    async def get_ws_stats(self) -> dict[str, Any]:
        room_summaries = await self.registry.summaries()
        room_summaries.sort(key=lambda item: int(item.get("connections", 0)), reverse=True)
        return {
            "generatedAt": now_ms(),
            "activeRooms": len(room_summaries),
            "stats": dict(self._ws_stats),
            "rooms": room_summaries[:50],
        }

    def open_connection(self, websocket: TextSocket, identity: str) -> ClientConnection:
        connection = ClientConnection(conn_id=random_id(), identity=identity, websocket=websocket)
        self.connections[connection.conn_id] = connection
        self.broadcaster.attach(connection)
        self._on_connect()
        self._log_ws_event(
            "connect",
            connId=connection.conn_id,
            identity=mask_identity(identity),
        )
        return connection

    async def handle_raw(self, connection: ClientConnection, raw: str | bytes) -> None:
        """Process one inbound frame from ``connection``.

        Every ``CollabError`` is reported to the sender alone.
        """
        self._increment_stat("messageReceived")
        try:
            event = parse_event(raw)
            if event is None:
                return
            await handle_room_message(self, connection, event)
        except CollabError as exc:
            if exc.code == "INVALID_MESSAGE_FORMAT":
                self._increment_stat("invalidMessages")
            self.broadcaster.send(connection, exc.to_event())

    async def join_room(
        self,
        connection: ClientConnection,
        room_id_raw: Any,
        name_raw: Any,
    ) -> list[str]:
        try:
            if connection.closed:
                # Dropped connections are never re-admitted.
                raise NotInRoomError()
            if connection.room_id is not None:
                raise AlreadyJoinedError()
            room_id, name = validate_join_fields(
                room_id_raw,
                name_raw,
                self.settings.max_name_length,
            )
        except (AlreadyJoinedError, JoinValidationError, NotInRoomError) as exc:
            self._increment_stat("joinRejected")
            self._log_ws_event(
                "join_rejected",
                level=logging.WARNING,
                connId=connection.conn_id,
                code=exc.code,
            )
            raise

        while True:
            room = await self.registry.get_or_create_room(room_id)
            async with room.lock:
                if room.closed:
                    # Lost a race with the idle sweep; the registry hands out a fresh room.
                    continue
                roster = join_membership(room, connection, name)
                self._log_ws_event(
                    "join",
                    roomId=room_id,
                    connId=connection.conn_id,
                    name=name,
                    identity=mask_identity(connection.identity),
                    members=len(roster),
                )
                self.broadcaster.broadcast(room, users_event(roster))
                if room.history and connection.conn_id in room.members:
                    replayed = self.broadcaster.send(
                        connection,
                        {"type": "messages", "messages": replay_for(room, connection.identity)},
                    )
                    if not replayed:
                        self.broadcaster.drop_member(room, connection)
                return roster

    async def room_for(self, connection: ClientConnection) -> RoomRuntime:
        room = await self.registry.get_room(connection.room_id)
        if room is None or connection.closed:
            raise NotInRoomError()
        return room

    async def close_connection(
        self,
        connection: ClientConnection,
        reason: str = "unknown",
        close_code: int | None = None,
    ) -> None:
        if self.connections.pop(connection.conn_id, None) is None:
            return
        self._on_disconnect()

        room_id = connection.room_id
        room = await self.registry.get_room(room_id)
        connection.closed = True
        await self.broadcaster.detach(connection)
        if room is not None:
            async with room.lock:
                roster = leave_membership(room, connection)
                if roster is not None:
                    self.broadcaster.broadcast(room, users_event(roster))
                elif not room.members:
                    logger.info("Room %s is empty, will be cleaned up if inactive", room.room_id)

        self._log_ws_event(
            "disconnect",
            roomId=room_id or "-",
            connId=connection.conn_id,
            name=connection.name,
            reason=reason,
            closeCode=close_code,
        )

    async def handle_websocket(self, websocket: WebSocket) -> None:
        await websocket.accept()
        identity = resolve_client_identity(websocket, self.settings.trust_forwarded_for)
        connection = self.open_connection(websocket, identity)

        disconnect_code: int | None = None
        disconnect_reason = "unknown"
        try:
            while True:
                raw = await websocket.receive_text()
                await self.handle_raw(connection, raw)
        except WebSocketDisconnect as exc:
            disconnect_code = exc.code
            disconnect_reason = "websocket_disconnect"
        except Exception:
            disconnect_reason = "server_error"
            logger.exception("Unexpected websocket error for connection %s", connection.conn_id)
        finally:
            await self.close_connection(
                connection,
                reason=disconnect_reason,
                close_code=disconnect_code,
            )

    async def sweep_idle_rooms(self, now: int | None = None) -> list[str]:
        removed = await self.registry.sweep_idle_rooms(
            now if now is not None else now_ms(),
            self.settings.room_idle_timeout_seconds * 1000,
        )
        for room_id in removed:
            self._increment_stat("roomsSwept")
            self._log_ws_event("room_swept", roomId=room_id)
        return removed

    def start_sweeper(self) -> None:
        if self._sweeper is not None and not self._sweeper.done():
            return

        interval_s = self.settings.room_sweep_interval_seconds

        async def runner() -> None:
            while True:
                await asyncio.sleep(interval_s)
                try:
                    await self.sweep_idle_rooms()
                except Exception:
                    logger.exception("Idle room sweep failed")

        self._sweeper = asyncio.create_task(runner(), name="room-sweeper")

    async def stop_sweeper(self) -> None:
        task = self._sweeper
        self._sweeper = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def shutdown(self) -> None:
        await self.stop_sweeper()
        for connection in list(self.connections.values()):
            connection.closed = True
            await self.broadcaster.detach(connection)
        await self.registry.clear()
        self.connections.clear()
        self._ws_stats["activeConnections"] = 0
