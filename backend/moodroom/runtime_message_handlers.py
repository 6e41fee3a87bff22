from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from .runtime_errors import MalformedEventError, NotInRoomError
from .runtime_games import end_game, game_start_event, run_game_action, start_game
from .runtime_history import add_or_move_reaction, post_message, project_message
from .runtime_utils import now_ms
from .schemas.events import (
    EVENT_MODELS,
    EmojiEvent,
    EndGameEvent,
    GameActionEvent,
    InboundEvent,
    JoinEvent,
    PingEvent,
    ReactionEvent,
    StartGameEvent,
)

if TYPE_CHECKING:
    from .runtime import CollabRuntime
    from .runtime_types import ClientConnection

logger = logging.getLogger(__name__)


def parse_event(raw: str | bytes) -> InboundEvent | None:
    """Decode one inbound frame.

    Returns None for a well-formed event of an unknown kind, which is logged
    and ignored. Anything that is not a JSON object with a string ``type`` is
    malformed.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedEventError() from exc

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise MalformedEventError()

    model = EVENT_MODELS.get(data["type"])
    if model is None:
        logger.warning("Unknown message type: %s", data["type"][:64])
        return None

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise MalformedEventError() from exc


async def handle_message(
    runtime: "CollabRuntime",
    connection: "ClientConnection",
    event: InboundEvent,
) -> None:
    if isinstance(event, PingEvent):
        runtime._increment_stat("pingReceived")
        runtime.broadcaster.send(connection, {"type": "pong", "serverTime": now_ms()})
        return

    if isinstance(event, JoinEvent):
        await runtime.join_room(connection, event.roomId, event.name)
        return

    room = await runtime.room_for(connection)
    async with room.lock:
        if connection.conn_id not in room.members:
            raise NotInRoomError()
        author = str(connection.name)

        if isinstance(event, EmojiEvent):
            message = post_message(room, author, event.emoji, runtime.settings.history_limit)
            runtime.broadcaster.broadcast(room, project_message(message, None))
            return

        if isinstance(event, ReactionEvent):
            events = add_or_move_reaction(
                room,
                event.messageId,
                event.reaction,
                author,
                connection.identity,
            )
            for outbound in events:
                runtime.broadcaster.broadcast(room, outbound)
            return

        if isinstance(event, StartGameEvent):
            game = start_game(
                room,
                event.gameType,
                initiator=event.initiator or author,
                turn_gated_games=runtime.settings.turn_gated_games,
            )
            if game is None:
                return
            logger.info(
                "Game %s started in room %s by %s with %d players",
                game.game_type,
                room.room_id,
                game.initiator,
                len(game.players),
            )
            runtime.broadcaster.broadcast(room, game_start_event(game))
            return

        if isinstance(event, GameActionEvent):
            outcome, events = run_game_action(room, event.action, event.data, author)
            if outcome == "rejected":
                logger.debug(
                    "Game action %s from %s rejected in room %s",
                    event.action[:32],
                    author,
                    room.room_id,
                )
            for outbound in events:
                runtime.broadcaster.broadcast(room, outbound)
            return

        if isinstance(event, EndGameEvent):
            runtime.broadcaster.broadcast(room, end_game(room))
            return
