from __future__ import annotations

import asyncio
import logging
from typing import Any

from .runtime_types import RoomRuntime
from .runtime_utils import now_ms

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Owns every live room, keyed by room id.

    ``rooms_lock`` guards the mapping itself and each room's ``lock`` guards
    that room's state. No code path takes ``rooms_lock`` while it holds a room
    lock.
    """

    def __init__(self) -> None:
        self.rooms: dict[str, RoomRuntime] = {}
        self.rooms_lock = asyncio.Lock()

    @property
    def active_rooms_count(self) -> int:
        return len(self.rooms)

    async def get_or_create_room(self, room_id: str) -> RoomRuntime:
        async with self.rooms_lock:
            existing = self.rooms.get(room_id)
            if existing is not None and not existing.closed:
                return existing

            room = RoomRuntime(room_id=room_id, last_activity=now_ms())
            self.rooms[room_id] = room
            logger.info("Created room %s", room_id)
            return room

    async def get_room(self, room_id: str | None) -> RoomRuntime | None:
        if not room_id:
            return None
        async with self.rooms_lock:
            room = self.rooms.get(room_id)
        if room is None or room.closed:
            return None
        return room

    async def sweep_idle_rooms(self, now: int, idle_threshold_ms: int) -> list[str]:
        """Delete rooms that are empty and idle for longer than the threshold.

        The emptiness check runs under the room's own lock, so it is ordered
        with joins. A swept room is marked closed before it leaves the mapping,
        and a join that finds it closed retries against a fresh room.
        """
        async with self.rooms_lock:
            candidates = list(self.rooms.values())

        swept: list[RoomRuntime] = []
        for room in candidates:
            async with room.lock:
                if room.closed or room.members:
                    continue
                if now - room.last_activity <= idle_threshold_ms:
                    continue
                room.closed = True
                room.game = None
                swept.append(room)

        if not swept:
            return []

        removed: list[str] = []
        async with self.rooms_lock:
            for room in swept:
                if self.rooms.get(room.room_id) is room:
                    self.rooms.pop(room.room_id, None)
                removed.append(room.room_id)
        return removed

    async def summaries(self) -> list[dict[str, Any]]:
        async with self.rooms_lock:
            return [room.summary() for room in self.rooms.values()]

    async def clear(self) -> None:
        async with self.rooms_lock:
            rooms = list(self.rooms.values())
            self.rooms.clear()

        for room in rooms:
            async with room.lock:
                room.closed = True
