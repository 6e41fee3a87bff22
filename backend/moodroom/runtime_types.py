from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol

if TYPE_CHECKING:
    from .runtime_games import MiniGame

GameType = Literal["Quick Poll", "Word Chain", "Emoji Story", "Team Trivia"]
Outcome = Literal["continue", "end", "rejected"]


class TextSocket(Protocol):
    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


@dataclass
class ClientConnection:
    conn_id: str
    identity: str
    websocket: TextSocket
    name: str | None = None
    room_id: str | None = None
    closed: bool = False


@dataclass
class ReactionEntry:
    identity: str
    timestamp: int


@dataclass
class ChatMessage:
    id: str
    name: str
    emoji: str
    timestamp: int
    # label -> reactor display name -> entry
    reactions: dict[str, dict[str, ReactionEntry]] = field(default_factory=dict)


@dataclass
class RoomRuntime:
    room_id: str
    members: dict[str, ClientConnection] = field(default_factory=dict)
    identities: dict[str, str] = field(default_factory=dict)
    history: list[ChatMessage] = field(default_factory=list)
    last_activity: int = 0
    game: "MiniGame | None" = None
    closed: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def roster(self) -> list[str]:
        return [str(member.name) for member in self.members.values()]

    def summary(self) -> dict[str, Any]:
        return {
            "roomId": self.room_id,
            "connections": len(self.members),
            "messages": len(self.history),
            "game": self.game.game_type if self.game is not None else None,
        }
