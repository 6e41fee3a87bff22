from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class InboundEvent(BaseModel):
    type: str


class JoinEvent(InboundEvent):
    type: Literal["join"] = "join"
    # Emptiness and length are checked by membership so the client gets a
    # specific message instead of a generic format error.
    roomId: str | None = None
    name: str | None = None


class EmojiEvent(InboundEvent):
    type: Literal["emoji"] = "emoji"
    emoji: str = Field(min_length=1)


class ReactionEvent(InboundEvent):
    type: Literal["reaction"] = "reaction"
    messageId: str = Field(min_length=1)
    reaction: str = Field(min_length=1)


class StartGameEvent(InboundEvent):
    type: Literal["startGame"] = "startGame"
    gameType: str
    initiator: str = ""


class GameActionEvent(InboundEvent):
    type: Literal["gameAction"] = "gameAction"
    action: str
    data: dict[str, Any] = Field(default_factory=dict)


class EndGameEvent(InboundEvent):
    type: Literal["endGame"] = "endGame"


class PingEvent(InboundEvent):
    type: Literal["ping"] = "ping"


EVENT_MODELS: dict[str, type[InboundEvent]] = {
    "join": JoinEvent,
    "emoji": EmojiEvent,
    "reaction": ReactionEvent,
    "startGame": StartGameEvent,
    "gameAction": GameActionEvent,
    "endGame": EndGameEvent,
    "ping": PingEvent,
}
