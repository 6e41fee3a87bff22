"""
Mini-game variants and the room-level engine around them.
"""
import pytest

from conftest import make_member
from moodroom.runtime_errors import NoActiveGameError, UnknownGameTypeError
from moodroom.runtime_games import (
    EmojiStory,
    QuickPoll,
    TeamTrivia,
    WordChain,
    end_game,
    game_start_event,
    run_game_action,
    start_game,
)
from moodroom.runtime_types import RoomRuntime

PLAYERS = ["Alice", "Bob", "Carol"]


def make_room(names=PLAYERS):
    room = RoomRuntime(room_id="R1")
    for index, name in enumerate(names):
        make_member(room, f"c-{index}", name, f"10.0.0.{index + 1}")
    return room


class TestQuickPoll:
    def test_last_distinct_voter_ends_poll_and_scores(self):
        game = QuickPoll(players=list(PLAYERS))
        assert game.apply_action("submitPoll", {"question": "Coffee?"}, "Alice") == "continue"
        assert game.apply_action("vote", {"vote": "yes"}, "Alice") == "continue"
        assert game.apply_action("vote", {"vote": "no"}, "Bob") == "continue"
        assert game.apply_action("vote", {"vote": "yes"}, "Carol") == "end"
        assert game.scores == {"Carol": 1}
        assert game.votes == {"yes": 2, "no": 1}

    def test_duplicate_vote_rejected_without_change(self):
        game = QuickPoll(players=list(PLAYERS))
        game.apply_action("submitPoll", {"question": "Coffee?"}, "Alice")
        game.apply_action("vote", {"vote": "yes"}, "Bob")
        assert game.apply_action("vote", {"vote": "no"}, "Bob") == "rejected"
        assert game.votes == {"yes": 1, "no": 0}
        assert game.voted == {"Bob"}

    def test_submit_poll_resets_votes(self):
        game = QuickPoll(players=list(PLAYERS))
        game.apply_action("submitPoll", {"question": "Coffee?"}, "Alice")
        game.apply_action("vote", {"vote": "yes"}, "Bob")
        game.apply_action("submitPoll", {"question": "Tea?"}, "Carol")
        assert game.question == "Tea?"
        assert game.votes == {"yes": 0, "no": 0}
        assert game.voted == set()

    def test_vote_before_question_or_bad_choice_rejected(self):
        game = QuickPoll(players=list(PLAYERS))
        assert game.apply_action("vote", {"vote": "yes"}, "Bob") == "rejected"
        game.apply_action("submitPoll", {"question": "Coffee?"}, "Alice")
        assert game.apply_action("vote", {"vote": "maybe"}, "Bob") == "rejected"
        assert game.apply_action("vote", {}, "Bob") == "rejected"

    def test_submit_poll_ignores_turn_gating(self):
        game = QuickPoll(players=list(PLAYERS), turn_gated=True)
        assert game.apply_action("submitPoll", {"question": "Coffee?"}, "Carol") == "continue"

    def test_unknown_action_rejected(self):
        assert QuickPoll(players=list(PLAYERS)).apply_action("submitWord", {"word": "x"}, "Bob") == "rejected"


class TestWordChain:
    def test_accepts_word_matching_last_letter(self):
        game = WordChain(players=list(PLAYERS), last_letter="t", used_words={"test"}, words=["test"])
        assert game.apply_action("submitWord", {"word": "tiger"}, "Bob") == "continue"
        assert game.last_letter == "r"
        assert game.words == ["test", "tiger"]
        assert game.scores == {"Bob": 1}

    def test_used_word_rejected(self):
        game = WordChain(players=list(PLAYERS), last_letter="t", used_words={"test"}, words=["test"])
        assert game.apply_action("submitWord", {"word": "test"}, "Bob") == "rejected"
        assert game.words == ["test"]
        assert game.scores == {}

    def test_wrong_first_letter_rejected(self):
        game = WordChain(players=list(PLAYERS), last_letter="t", used_words={"test"}, words=["test"])
        assert game.apply_action("submitWord", {"word": "apple"}, "Bob") == "rejected"
        assert game.last_letter == "t"
        assert game.scores == {}

    def test_first_word_is_free_and_lowercased(self):
        game = WordChain(players=list(PLAYERS))
        assert game.apply_action("submitWord", {"word": "Apple"}, "Alice") == "continue"
        assert game.words == ["apple"]
        assert game.apply_action("submitWord", {"word": "APPLE"}, "Bob") == "rejected"
        assert game.apply_action("submitWord", {"word": "Egg"}, "Bob") == "continue"
        assert game.last_letter == "g"

    def test_empty_or_non_string_word_rejected(self):
        game = WordChain(players=list(PLAYERS))
        assert game.apply_action("submitWord", {"word": "   "}, "Alice") == "rejected"
        assert game.apply_action("submitWord", {"word": 42}, "Alice") == "rejected"

    def test_turn_gated_rejects_out_of_turn_actor(self):
        game = WordChain(players=list(PLAYERS), turn_gated=True)
        assert game.apply_action("submitWord", {"word": "apple"}, "Bob") == "rejected"
        assert game.apply_action("submitWord", {"word": "apple"}, "Alice") == "continue"

    def test_ungated_allows_any_actor(self):
        game = WordChain(players=list(PLAYERS))
        assert game.apply_action("submitWord", {"word": "apple"}, "Carol") == "continue"


class TestEmojiStory:
    def test_tenth_emoji_ends_story_in_order(self):
        game = EmojiStory(players=list(PLAYERS))
        emojis = ["😀", "🐶", "🌧️", "☂️", "🏠", "🍕", "🎉", "😴", "🌙", "⭐"]
        outcomes = [game.apply_action("addEmoji", {"emoji": e}, PLAYERS[i % 3]) for i, e in enumerate(emojis)]
        assert outcomes == ["continue"] * 9 + ["end"]
        assert game.story == emojis
        assert game.scores == {"Alice": 4, "Bob": 3, "Carol": 3}

    def test_other_actions_rejected(self):
        game = EmojiStory(players=list(PLAYERS))
        assert game.apply_action("vote", {"vote": "yes"}, "Alice") == "rejected"
        assert game.apply_action("addEmoji", {}, "Alice") == "rejected"
        assert game.story == []


class TestTeamTrivia:
    def test_any_action_continues_without_change(self):
        game = TeamTrivia(players=list(PLAYERS))
        before = game.payload()
        assert game.apply_action("answer", {"answer": 1}, "Alice") == "continue"
        assert game.payload() == before
        assert game.scores == {}


class TestEngine:
    def test_start_game_snapshots_roster(self):
        room = make_room()
        game = start_game(room, "Word Chain", initiator="Alice")
        assert room.game is game
        assert game.players == PLAYERS
        assert game.current_player_index == 0
        assert game.scores == {}
        assert game_start_event(game) == {
            "type": "gameStart",
            "gameType": "Word Chain",
            "initialData": {"words": [], "lastLetter": None, "usedWords": []},
            "firstPlayer": "Alice",
        }

    def test_start_game_in_empty_room_is_noop(self):
        room = RoomRuntime(room_id="R1")
        assert start_game(room, "Quick Poll") is None
        assert room.game is None

    def test_unknown_game_type_raises(self):
        with pytest.raises(UnknownGameTypeError):
            start_game(make_room(), "Chess")

    def test_turn_gating_follows_configured_types(self):
        room = make_room()
        game = start_game(room, "Emoji Story", turn_gated_games={"Emoji Story"})
        assert game.turn_gated is True
        game = start_game(room, "Word Chain", turn_gated_games={"Emoji Story"})
        assert game.turn_gated is False

    def test_continue_advances_turn_with_wraparound(self):
        room = make_room()
        start_game(room, "Emoji Story")
        next_players = []
        for _ in range(4):
            outcome, events = run_game_action(room, "addEmoji", {"emoji": "😀"}, "Alice")
            assert outcome == "continue"
            next_players.append(events[0]["nextPlayer"])
        assert next_players == ["Bob", "Carol", "Alice", "Bob"]
        assert room.game.current_player_index == 1
        assert events[0]["gameData"]["story"] == ["😀"] * 4

    def test_rejected_produces_no_events_or_turn_change(self):
        room = make_room()
        start_game(room, "Word Chain")
        outcome, events = run_game_action(room, "addEmoji", {"emoji": "😀"}, "Alice")
        assert outcome == "rejected"
        assert events == []
        assert room.game.current_player_index == 0

    def test_end_clears_game_and_reports_scores(self):
        room = make_room()
        start_game(room, "Quick Poll")
        run_game_action(room, "submitPoll", {"question": "Coffee?"}, "Alice")
        run_game_action(room, "vote", {"vote": "yes"}, "Alice")
        run_game_action(room, "vote", {"vote": "yes"}, "Bob")
        outcome, events = run_game_action(room, "vote", {"vote": "no"}, "Carol")
        assert outcome == "end"
        assert events == [{"type": "gameEnd", "scores": {"Carol": 1}}]
        assert room.game is None

    def test_action_without_game_raises(self):
        with pytest.raises(NoActiveGameError):
            run_game_action(make_room(), "vote", {"vote": "yes"}, "Alice")

    def test_explicit_end(self):
        room = make_room()
        start_game(room, "Word Chain")
        run_game_action(room, "submitWord", {"word": "apple"}, "Alice")
        assert end_game(room) == {"type": "gameEnd", "scores": {"Alice": 1}}
        assert room.game is None
        with pytest.raises(NoActiveGameError):
            end_game(room)
