from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .runtime_membership import leave, users_event
from .runtime_types import ClientConnection, RoomRuntime

logger = logging.getLogger(__name__)

DeliveryFailureHook = Callable[[RoomRuntime | None, ClientConnection, BaseException], None]
DeadConnectionHook = Callable[[ClientConnection], Awaitable[None]]

DEFAULT_OUTBOX_SIZE = 256


def serialize_event(event: dict[str, Any]) -> str:
    return json.dumps(event, ensure_ascii=False, separators=(",", ":"))


class RoomBroadcaster:
    """Fan-out of serialized events to per-connection outboxes.

    Room state changes and serialization happen under ``room.lock``; network
    writes never do. Every attached connection owns a bounded queue drained by
    its own writer task, so one slow peer only ever delays itself. An outbox
    that overflows, or a socket write that raises, counts as a delivery
    failure and the connection is dropped from its room.
    """

    def __init__(
        self,
        on_delivery_failure: DeliveryFailureHook | None = None,
        on_dead_connection: DeadConnectionHook | None = None,
        outbox_size: int = DEFAULT_OUTBOX_SIZE,
    ) -> None:
        self._on_delivery_failure = on_delivery_failure
        self._on_dead_connection = on_dead_connection
        self._outbox_size = max(1, outbox_size)
        self._outboxes: dict[str, asyncio.Queue[str]] = {}
        self._writers: dict[str, asyncio.Task[None]] = {}
        self._evicted: set[str] = set()
        # Frames queued but not yet written or discarded, across all outboxes.
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()

    def attach(self, connection: ClientConnection) -> None:
        if connection.conn_id in self._writers:
            return
        outbox: asyncio.Queue[str] = asyncio.Queue(maxsize=self._outbox_size)
        self._outboxes[connection.conn_id] = outbox
        self._writers[connection.conn_id] = asyncio.create_task(
            self._drain(connection, outbox),
            name=f"ws-writer:{connection.conn_id}",
        )

    async def detach(self, connection: ClientConnection) -> None:
        """Stop the writer; frames still queued for ``connection`` are discarded."""
        self._outboxes.pop(connection.conn_id, None)
        task = self._writers.pop(connection.conn_id, None)
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def flush(self) -> None:
        """Wait until every queued frame has been written or discarded."""
        await self._idle.wait()

    def _track(self) -> None:
        self._pending += 1
        self._idle.clear()

    def _settle(self, count: int) -> None:
        if count <= 0:
            return
        self._pending = max(0, self._pending - count)
        if self._pending == 0:
            self._idle.set()

    def _report(self, room: RoomRuntime | None, connection: ClientConnection, exc: BaseException) -> None:
        if self._on_delivery_failure is not None:
            self._on_delivery_failure(room, connection, exc)

    def _enqueue(
        self,
        connection: ClientConnection,
        text: str,
        room: RoomRuntime | None = None,
    ) -> bool:
        outbox = self._outboxes.get(connection.conn_id)
        if connection.closed or outbox is None:
            return False
        try:
            outbox.put_nowait(text)
        except asyncio.QueueFull as exc:
            self._report(room, connection, exc)
            return False
        self._track()
        return True

    async def _close_socket(self, connection: ClientConnection) -> None:
        try:
            await connection.websocket.close()
        except Exception:
            logger.debug("Close after failed delivery raised for %s", connection.conn_id)

    async def _drain(self, connection: ClientConnection, outbox: asyncio.Queue[str]) -> None:
        held = 0
        try:
            while not connection.closed:
                text = await outbox.get()
                held = 1
                try:
                    await connection.websocket.send_text(text)
                except Exception as exc:
                    self._report(None, connection, exc)
                    if self._on_dead_connection is not None:
                        await self._on_dead_connection(connection)
                    connection.closed = True
                    self._evicted.add(connection.conn_id)
                    break
                held = 0
                self._settle(1)
        finally:
            if connection.conn_id in self._evicted:
                self._evicted.discard(connection.conn_id)
                await self._close_socket(connection)
            discarded = 0
            while not outbox.empty():
                outbox.get_nowait()
                discarded += 1
            self._settle(held + discarded)

    def _evict(self, room: RoomRuntime, connection: ClientConnection) -> None:
        leave(room, connection)
        connection.closed = True
        self._outboxes.pop(connection.conn_id, None)
        task = self._writers.pop(connection.conn_id, None)
        if task is None or task.done():
            return
        self._evicted.add(connection.conn_id)
        if task is not asyncio.current_task():
            task.cancel()

    def drop_member(self, room: RoomRuntime, connection: ClientConnection) -> None:
        """Remove an undeliverable member and refresh the roster for the rest.

        The caller holds ``room.lock``.
        """
        was_member = connection.conn_id in room.members
        self._evict(room, connection)
        if was_member and room.members:
            self.broadcast(room, users_event(room.roster()))

    def send(self, connection: ClientConnection, event: dict[str, Any]) -> bool:
        """Queue one event for a single connection; failure is reported, never raised."""
        return self._enqueue(connection, serialize_event(event))

    def broadcast(self, room: RoomRuntime, event: dict[str, Any]) -> None:
        """Queue one event for every member present at call time.

        Members whose outbox cannot take the frame are dropped from the room
        as if they had left, and the survivors get a fresh roster. The caller
        holds ``room.lock``.
        """
        targets = list(room.members.values())
        if not targets:
            return

        text = serialize_event(event)
        failed = [target for target in targets if not self._enqueue(target, text, room)]
        if not failed:
            return

        removed_any = False
        for connection in failed:
            if connection.conn_id not in room.members:
                continue
            self._evict(room, connection)
            removed_any = True

        if removed_any and room.members:
            self.broadcast(room, users_event(room.roster()))
