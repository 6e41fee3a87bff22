from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, ClassVar

from .runtime_constants import EMOJI_STORY_LENGTH, POLL_CHOICES
from .runtime_errors import NoActiveGameError, UnknownGameTypeError
from .runtime_types import GameType, Outcome, RoomRuntime


@dataclass
class MiniGame:
    """One turn-based game running in a room.

    Variants implement ``_transition``; ``apply_action`` is the shared entry
    point and applies the turn policy before delegating.
    """

    game_type: ClassVar[GameType]
    # Actions that belong to the player whose turn it is.
    turn_actions: ClassVar[frozenset[str]] = frozenset()

    players: list[str]
    initiator: str = ""
    turn_gated: bool = False
    current_player_index: int = 0
    scores: dict[str, int] = field(default_factory=dict)

    @property
    def current_player(self) -> str | None:
        if not self.players:
            return None
        return self.players[self.current_player_index]

    def award(self, name: str, points: int = 1) -> None:
        self.scores[name] = self.scores.get(name, 0) + points

    def advance_turn(self) -> str | None:
        if not self.players:
            return None
        self.current_player_index = (self.current_player_index + 1) % len(self.players)
        return self.players[self.current_player_index]

    def apply_action(self, action: str, data: dict[str, Any], actor: str) -> Outcome:
        if self.turn_gated and action in self.turn_actions and actor != self.current_player:
            return "rejected"
        return self._transition(action, data if isinstance(data, dict) else {}, actor)

    def _transition(self, action: str, data: dict[str, Any], actor: str) -> Outcome:
        raise NotImplementedError

    def payload(self) -> dict[str, Any]:
        raise NotImplementedError


@dataclass
class QuickPoll(MiniGame):
    game_type: ClassVar[GameType] = "Quick Poll"

    question: str | None = None
    votes: dict[str, int] = field(default_factory=dict)
    voted: set[str] = field(default_factory=set)

    def _transition(self, action: str, data: dict[str, Any], actor: str) -> Outcome:
        if action == "submitPoll":
            question = data.get("question")
            if not isinstance(question, str):
                return "rejected"
            self.question = question
            self.votes = {choice: 0 for choice in POLL_CHOICES}
            self.voted = set()
            return "continue"

        if action == "vote":
            choice = data.get("vote")
            if self.question is None or not isinstance(choice, str) or choice not in self.votes:
                return "rejected"
            if actor in self.voted:
                return "rejected"
            self.votes[choice] += 1
            self.voted.add(actor)
            if len(self.voted) >= len(self.players):
                # The closing voter takes the point.
                self.award(actor)
                return "end"
            return "continue"

        return "rejected"

    def payload(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "votes": dict(self.votes),
            "voted": sorted(self.voted),
        }


@dataclass
class WordChain(MiniGame):
    game_type: ClassVar[GameType] = "Word Chain"
    turn_actions: ClassVar[frozenset[str]] = frozenset({"submitWord"})

    words: list[str] = field(default_factory=list)
    last_letter: str | None = None
    used_words: set[str] = field(default_factory=set)

    def _transition(self, action: str, data: dict[str, Any], actor: str) -> Outcome:
        if action != "submitWord":
            return "rejected"

        raw_word = data.get("word")
        if not isinstance(raw_word, str):
            return "rejected"
        word = raw_word.strip().lower()
        if not word:
            return "rejected"
        if self.last_letter and word[0] != self.last_letter:
            return "rejected"
        if word in self.used_words:
            return "rejected"

        self.words.append(word)
        self.used_words.add(word)
        self.last_letter = word[-1]
        self.award(actor)
        return "continue"

    def payload(self) -> dict[str, Any]:
        return {
            "words": list(self.words),
            "lastLetter": self.last_letter,
            "usedWords": sorted(self.used_words),
        }


@dataclass
class EmojiStory(MiniGame):
    game_type: ClassVar[GameType] = "Emoji Story"
    turn_actions: ClassVar[frozenset[str]] = frozenset({"addEmoji"})

    story: list[str] = field(default_factory=list)
    guesses: list[str] = field(default_factory=list)
    current_round: int = 1

    def _transition(self, action: str, data: dict[str, Any], actor: str) -> Outcome:
        if action != "addEmoji":
            return "rejected"

        emoji = data.get("emoji")
        if not isinstance(emoji, str) or not emoji.strip():
            return "rejected"

        self.story.append(emoji)
        self.award(actor)
        if len(self.story) >= EMOJI_STORY_LENGTH:
            return "end"
        return "continue"

    def payload(self) -> dict[str, Any]:
        return {
            "story": list(self.story),
            "guesses": list(self.guesses),
            "currentRound": self.current_round,
        }


@dataclass
class TeamTrivia(MiniGame):
    game_type: ClassVar[GameType] = "Team Trivia"

    current_question: str | None = None
    answers: dict[str, Any] = field(default_factory=dict)
    score: dict[str, int] = field(default_factory=dict)

    def _transition(self, action: str, data: dict[str, Any], actor: str) -> Outcome:
        # No rule set yet: every action passes the turn and leaves the payload alone.
        return "continue"

    def payload(self) -> dict[str, Any]:
        return {
            "currentQuestion": self.current_question,
            "answers": dict(self.answers),
            "score": dict(self.score),
        }


GAME_VARIANTS: dict[str, type[MiniGame]] = {
    variant.game_type: variant for variant in (QuickPoll, WordChain, EmojiStory, TeamTrivia)
}


def start_game(
    room: RoomRuntime,
    game_type: str,
    initiator: str = "",
    turn_gated_games: Iterable[str] = (),
) -> MiniGame | None:
    """Start a game over a snapshot of the current roster.

    Returns None without touching the room when nobody is present. A game
    that is already running is replaced.
    """
    variant = GAME_VARIANTS.get(game_type)
    if variant is None:
        raise UnknownGameTypeError()
    if not room.members:
        return None

    game = variant(
        players=room.roster(),
        initiator=initiator,
        turn_gated=game_type in set(turn_gated_games),
    )
    room.game = game
    return game


def game_start_event(game: MiniGame) -> dict[str, Any]:
    return {
        "type": "gameStart",
        "gameType": game.game_type,
        "initialData": game.payload(),
        "firstPlayer": game.current_player,
    }


def game_end_event(game: MiniGame) -> dict[str, Any]:
    return {"type": "gameEnd", "scores": dict(game.scores)}


def run_game_action(
    room: RoomRuntime,
    action: str,
    data: dict[str, Any],
    actor: str,
) -> tuple[Outcome, list[dict[str, Any]]]:
    game = room.game
    if game is None:
        raise NoActiveGameError()

    outcome = game.apply_action(action, data, actor)
    if outcome == "end":
        room.game = None
        return outcome, [game_end_event(game)]
    if outcome == "continue":
        next_player = game.advance_turn()
        return outcome, [
            {
                "type": "gameUpdate",
                "gameData": game.payload(),
                "nextPlayer": next_player,
            }
        ]
    return outcome, []


def end_game(room: RoomRuntime) -> dict[str, Any]:
    game = room.game
    if game is None:
        raise NoActiveGameError()
    room.game = None
    return game_end_event(game)
