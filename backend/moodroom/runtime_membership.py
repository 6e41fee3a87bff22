from __future__ import annotations

from typing import Any

from .runtime_constants import MAX_NAME_LENGTH
from .runtime_errors import AlreadyJoinedError, JoinValidationError
from .runtime_types import ClientConnection, RoomRuntime
from .runtime_utils import now_ms, sanitize_display_name, sanitize_room_id


def validate_join_fields(
    room_id_raw: Any,
    name_raw: Any,
    max_name_length: int = MAX_NAME_LENGTH,
) -> tuple[str, str]:
    room_id = sanitize_room_id(room_id_raw)
    name = sanitize_display_name(name_raw)
    if not room_id or not name:
        raise JoinValidationError("Room ID and name are required")
    if len(name) > max_name_length:
        raise JoinValidationError(f"Name is too long (max {max_name_length} characters)")
    return room_id, name


def join(room: RoomRuntime, connection: ClientConnection, name: str) -> list[str]:
    """Bind the connection to the room and return the full roster.

    The caller holds ``room.lock`` and broadcasts the roster afterwards.
    """
    if connection.room_id is not None:
        raise AlreadyJoinedError()

    connection.name = name
    connection.room_id = room.room_id
    room.members[connection.conn_id] = connection
    room.identities[connection.identity] = connection.conn_id
    room.last_activity = now_ms()
    return room.roster()


def leave(room: RoomRuntime, connection: ClientConnection) -> list[str] | None:
    """Drop the connection from the room.

    Returns the remaining roster to broadcast, or None when nothing should be
    sent because the connection was not a member or the room is now empty.
    """
    removed = room.members.pop(connection.conn_id, None)
    if connection.room_id == room.room_id:
        connection.room_id = None
    if removed is None:
        return None

    # Another live connection may share the identity; keep its mapping.
    if room.identities.get(connection.identity) == connection.conn_id:
        room.identities.pop(connection.identity, None)
        for member in room.members.values():
            if member.identity == connection.identity:
                room.identities[member.identity] = member.conn_id
                break
    room.last_activity = now_ms()

    if not room.members:
        return None
    return room.roster()


def users_event(roster: list[str]) -> dict[str, Any]:
    return {"type": "users", "users": list(roster)}
