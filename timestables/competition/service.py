"""
Competition Service: several players racing through one problem set.

Lifecycle of a room:

    waiting --(host starts, everyone ready)--> countdown (3s)
            --(host advances)--> playing --(every player finished)--> finished

Scoring here is simpler than in solo practice: an answer is right or wrong,
time is accumulated in milliseconds, and there are no retry rounds. Ranking
is a pure function of a room snapshot.
"""

from __future__ import annotations

import random
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace

from loguru import logger

from timestables.core.errors import CompetitionError
from timestables.competition.room import (
    CompetitionExercise,
    CompetitionPlayer,
    CompetitionRoom,
    RoomListener,
    RoomSettings,
    RoomStore,
)
from timestables.exercises.catalog import DEFAULT_TABLES, generate_exercises_for_tables, get_correct_answer
from timestables.exercises.shuffler import shuffle

ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6
MAX_PLAYERS = 10
COUNTDOWN_SECONDS = 3


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PlayerResult:
    player_id: str
    player_name: str
    correct_answers: int
    wrong_answers: int
    total_time: int
    accuracy: float
    rank: int


def generate_room_code(rng: random.Random | None = None) -> str:
    """Six characters without look-alikes (no I, O, 0 or 1)."""
    source = rng or random
    return "".join(source.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def generate_competition_exercises(
    count: int, selected_tables: Sequence[int], rng: random.Random | None = None
) -> list[CompetitionExercise]:
    """Shuffle the catalog for the tables (3..9 when empty) and take up to count."""
    tables = list(selected_tables) or list(DEFAULT_TABLES)
    chosen = shuffle(generate_exercises_for_tables(tables), rng)[: max(0, count)]
    return [
        CompetitionExercise(
            id=f"exercise-{i}",
            num1=ex.factors[0],
            num2=ex.factors[1],
            correct_answer=get_correct_answer(ex),
        )
        for i, ex in enumerate(chosen)
    ]


def rank_players(room: CompetitionRoom) -> list[PlayerResult]:
    """Order by correct answers (desc) then total time (asc); ranks start at 1."""
    results = []
    for player in room.players.values():
        answered = player.correct_answers + player.wrong_answers
        results.append(
            PlayerResult(
                player_id=player.id,
                player_name=player.name,
                correct_answers=player.correct_answers,
                wrong_answers=player.wrong_answers,
                total_time=player.total_time,
                accuracy=player.correct_answers / answered * 100 if answered else 0.0,
                rank=0,
            )
        )
    results.sort(key=lambda r: (-r.correct_answers, r.total_time))
    return [
        replace(result, rank=index + 1) for index, result in enumerate(results)
    ]


def countdown_remaining(room: CompetitionRoom, now_ms: int | None = None) -> int:
    """Whole seconds left in the countdown (0 when not counting down or done)."""
    if room.status != "countdown" or room.countdown_started_at is None:
        return 0
    elapsed = (now_ms if now_ms is not None else _now_ms()) - room.countdown_started_at
    return max(0, COUNTDOWN_SECONDS - elapsed // 1000)


class CompetitionService:
    """Room operations on top of a RoomStore."""

    def __init__(
        self,
        store: RoomStore,
        clock: Callable[[], int] = _now_ms,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.clock = clock
        self._rng = rng

    def _new_player_id(self) -> str:
        return uuid.uuid4().hex[:12]

    def _require_room(self, room_id: str) -> CompetitionRoom:
        room = self.store.read(room_id.upper())
        if room is None:
            raise CompetitionError("Room not found")
        return room

    def _require_player(self, room: CompetitionRoom, player_id: str) -> CompetitionPlayer:
        player = room.players.get(player_id)
        if player is None:
            raise CompetitionError("Player is not in this room")
        return player

    # ========================================
    # Lobby
    # ========================================

    def create_room(self, host_name: str, settings: RoomSettings) -> tuple[str, str]:
        """
        Create a room hosted by host_name.

        Returns:
            (room_id, host player id)
        """
        room_id = generate_room_code(self._rng)
        while self.store.read(room_id) is not None:
            room_id = generate_room_code(self._rng)

        player_id = self._new_player_id()
        host = CompetitionPlayer(id=player_id, name=host_name, is_host=True)
        room = CompetitionRoom(
            id=room_id,
            host_id=player_id,
            players={player_id: host},
            exercises=generate_competition_exercises(
                settings.exercise_count, settings.selected_tables, self._rng
            ),
            settings=settings,
            created_at=self.clock(),
        )
        self.store.create(room)
        logger.info("Room {} created by {}", room_id, host_name)
        return room_id, player_id

    def join_room(self, room_id: str, player_name: str) -> str:
        """Join a waiting room. Returns the new player id."""
        room = self._require_room(room_id)
        if room.status != "waiting":
            raise CompetitionError("The game has already started")
        if len(room.players) >= MAX_PLAYERS:
            raise CompetitionError(f"Room is full (maximum {MAX_PLAYERS} players)")

        player_id = self._new_player_id()
        self.store.put_player(room.id, CompetitionPlayer(id=player_id, name=player_name))
        logger.info("{} joined room {}", player_name, room.id)
        return player_id

    def set_ready(self, room_id: str, player_id: str, is_ready: bool = True) -> None:
        room = self._require_room(room_id)
        self._require_player(room, player_id)
        self.store.update_player(room.id, player_id, {"isReady": is_ready})

    def start_countdown(self, room_id: str, player_id: str) -> None:
        """Host only; every player must be ready."""
        room = self._require_room(room_id)
        if room.host_id != player_id:
            raise CompetitionError("Only the host can start the game")
        if room.status != "waiting":
            raise CompetitionError("The game has already started")
        if not all(p.is_ready for p in room.players.values()):
            raise CompetitionError("Not every player is ready")
        self.store.update(room.id, {"status": "countdown", "countdownStartedAt": self.clock()})

    def start_game(self, room_id: str) -> None:
        room = self._require_room(room_id)
        if room.status not in ("waiting", "countdown"):
            raise CompetitionError(f"Cannot start a {room.status} game")
        self.store.update(room.id, {"status": "playing", "startedAt": self.clock()})
        logger.info("Room {} playing with {} players", room.id, len(room.players))

    def advance_countdown(self, room_id: str, player_id: str) -> bool:
        """
        Start the game once the countdown has run out.

        Only the host's client advances the room. Returns True if the game started.
        """
        room = self._require_room(room_id)
        if room.status != "countdown" or room.host_id != player_id:
            return False
        if countdown_remaining(room, self.clock()) > 0:
            return False
        self.start_game(room.id)
        return True

    # ========================================
    # Play
    # ========================================

    def current_exercise(self, room: CompetitionRoom, player_id: str) -> CompetitionExercise | None:
        player = self._require_player(room, player_id)
        if player.current_exercise_index >= len(room.exercises):
            return None
        return room.exercises[player.current_exercise_index]

    def submit_answer(self, room_id: str, player_id: str, answer: int, time_spent_ms: int) -> bool:
        """
        Record an answer for the player's current exercise.

        Finishing the last exercise marks the player finished. Returns whether
        the answer was correct.
        """
        room = self._require_room(room_id)
        if room.status != "playing":
            raise CompetitionError("The game is not in progress")
        player = self._require_player(room, player_id)
        exercise = self.current_exercise(room, player_id)
        if exercise is None or player.is_finished:
            raise CompetitionError("Player has already finished")

        correct = answer == exercise.correct_answer
        changes = {
            "currentExerciseIndex": player.current_exercise_index + 1,
            "totalTime": player.total_time + max(0, int(time_spent_ms)),
        }
        if correct:
            changes["correctAnswers"] = player.correct_answers + 1
        else:
            changes["wrongAnswers"] = player.wrong_answers + 1
        self.store.update_player(room.id, player_id, changes)

        if player.current_exercise_index + 1 >= len(room.exercises):
            self.finish_game(room.id, player_id)
        return correct

    def finish_game(self, room_id: str, player_id: str) -> None:
        """Mark the player finished; the room finishes once everyone has."""
        room = self._require_room(room_id)
        self._require_player(room, player_id)
        self.store.update_player(room.id, player_id, {"finishedAt": self.clock()})
        self._finish_if_done(room.id)

    def _finish_if_done(self, room_id: str) -> None:
        room = self.store.read(room_id)
        if room is None or room.status != "playing" or not room.players:
            return
        if all(p.is_finished for p in room.players.values()):
            self.store.update(room_id, {"status": "finished"})
            logger.info("Room {} finished", room_id)

    def leave_room(self, room_id: str, player_id: str) -> None:
        """Leave the room; the room is deleted when the host leaves."""
        room = self.store.read(room_id.upper())
        if room is None:
            return
        if room.host_id == player_id:
            self.store.delete(room.id)
            logger.info("Room {} closed by host", room.id)
            return
        self.store.delete_player(room.id, player_id)
        self._finish_if_done(room.id)

    def subscribe(self, room_id: str, on_change: RoomListener) -> Callable[[], None]:
        return self.store.subscribe(room_id.upper(), on_change)

    def results(self, room_id: str) -> list[PlayerResult]:
        return rank_players(self._require_room(room_id))
