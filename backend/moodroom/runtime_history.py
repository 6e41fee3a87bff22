from __future__ import annotations

from typing import Any

from .runtime_constants import HISTORY_LIMIT
from .runtime_errors import MessageNotFoundError
from .runtime_types import ChatMessage, ReactionEntry, RoomRuntime
from .runtime_utils import now_ms, random_message_id


def post_message(
    room: RoomRuntime,
    author: str,
    emoji: str,
    history_limit: int = HISTORY_LIMIT,
) -> ChatMessage:
    message = ChatMessage(
        id=random_message_id(),
        name=author,
        emoji=emoji,
        timestamp=now_ms(),
    )
    room.history.append(message)
    if len(room.history) > history_limit:
        room.history = room.history[-history_limit:]
    room.last_activity = message.timestamp
    return message


def find_message(room: RoomRuntime, message_id: str) -> ChatMessage | None:
    return next((message for message in room.history if message.id == message_id), None)


def find_reaction_by_identity(
    message: ChatMessage,
    identity: str,
) -> tuple[str, str] | None:
    for label, reactors in message.reactions.items():
        for name, entry in reactors.items():
            if entry.identity == identity:
                return label, name
    return None


def reaction_event(message_id: str, label: str, name: str, status: bool) -> dict[str, Any]:
    return {
        "type": "reaction",
        "messageId": message_id,
        "reaction": label,
        "name": name,
        "status": status,
    }


def add_or_move_reaction(
    room: RoomRuntime,
    message_id: str,
    label: str,
    reactor_name: str,
    reactor_identity: str,
) -> list[dict[str, Any]]:
    """Record a reaction, replacing any reaction the identity already holds.

    An identity holds at most one reaction per message across all labels.
    When one exists it is removed first, and the removal event carries the
    display name stored when that reaction was made.
    """
    message = find_message(room, message_id)
    if message is None:
        raise MessageNotFoundError()

    events: list[dict[str, Any]] = []
    existing = find_reaction_by_identity(message, reactor_identity)
    if existing is not None:
        old_label, old_name = existing
        reactors = message.reactions[old_label]
        reactors.pop(old_name, None)
        if not reactors:
            message.reactions.pop(old_label, None)
        events.append(reaction_event(message.id, old_label, old_name, False))

    timestamp = now_ms()
    message.reactions.setdefault(label, {})[reactor_name] = ReactionEntry(
        identity=reactor_identity,
        timestamp=timestamp,
    )
    room.last_activity = timestamp
    events.append(reaction_event(message.id, label, reactor_name, True))
    return events


def project_message(message: ChatMessage, viewer_identity: str | None) -> dict[str, Any]:
    return {
        "type": "emoji",
        "id": message.id,
        "name": message.name,
        "emoji": message.emoji,
        "timestamp": message.timestamp,
        "reactions": {
            label: {
                name: viewer_identity is not None and entry.identity == viewer_identity
                for name, entry in reactors.items()
            }
            for label, reactors in message.reactions.items()
        },
    }


def replay_for(room: RoomRuntime, viewer_identity: str | None) -> list[dict[str, Any]]:
    return [project_message(message, viewer_identity) for message in room.history]
