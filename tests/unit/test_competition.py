"""
Unit tests for competition rooms.

Run: pytest tests/unit/test_competition.py -v
"""

import random

import pytest

from timestables.competition import (
    CompetitionPlayer,
    CompetitionRoom,
    CompetitionService,
    InMemoryRoomStore,
    RoomSettings,
    countdown_remaining,
    generate_competition_exercises,
    generate_room_code,
    rank_players,
)
from timestables.competition.service import MAX_PLAYERS, ROOM_CODE_ALPHABET
from timestables.core.errors import CompetitionError


class FakeClock:
    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return CompetitionService(InMemoryRoomStore(), clock=clock, rng=random.Random(5))


def answer_all(service, room_id, player_id, wrong=0, time_ms=1000):
    """Answer every remaining exercise; the first `wrong` answers are wrong."""
    index = 0
    while True:
        room = service.store.read(room_id)
        exercise = service.current_exercise(room, player_id)
        if exercise is None:
            return
        answer = exercise.correct_answer + (1 if index < wrong else 0)
        service.submit_answer(room_id, player_id, answer, time_ms)
        index += 1


def started_room(service, clock, names=("Ann", "Bob"), count=3):
    room_id, host_id = service.create_room(names[0], RoomSettings(exercise_count=count, selected_tables=[3, 4]))
    player_ids = [host_id] + [service.join_room(room_id, name) for name in names[1:]]
    for player_id in player_ids:
        service.set_ready(room_id, player_id)
    service.start_countdown(room_id, host_id)
    clock.now += 3000
    assert service.advance_countdown(room_id, host_id)
    return room_id, player_ids


# ========================================
# Pure helpers
# ========================================


class TestHelpers:
    """Test code generation, exercises and ranking."""

    def test_room_code(self):
        code = generate_room_code(random.Random(1))
        assert len(code) == 6
        assert all(ch in ROOM_CODE_ALPHABET for ch in code)
        assert not set("IO01") & set(ROOM_CODE_ALPHABET)

    def test_exercises(self):
        exercises = generate_competition_exercises(5, [3, 4], random.Random(2))
        assert [ex.id for ex in exercises] == [f"exercise-{i}" for i in range(4)]
        assert all(ex.correct_answer == ex.num1 * ex.num2 for ex in exercises)
        assert {(ex.num1, ex.num2) for ex in exercises} == {(3, 3), (3, 4), (4, 3), (4, 4)}

    def test_exercises_default_tables(self):
        exercises = generate_competition_exercises(10, [], random.Random(2))
        assert len(exercises) == 10
        assert all(3 <= ex.num1 <= 9 and 3 <= ex.num2 <= 9 for ex in exercises)

    def test_rank_players(self):
        room = CompetitionRoom(
            id="ABCDEF",
            host_id="a",
            players={
                "a": CompetitionPlayer(id="a", name="Ann", correct_answers=8, wrong_answers=2, total_time=30000),
                "b": CompetitionPlayer(id="b", name="Bob", correct_answers=9, wrong_answers=1, total_time=50000),
                "c": CompetitionPlayer(id="c", name="Cy", correct_answers=8, wrong_answers=2, total_time=20000),
            },
        )
        results = rank_players(room)
        assert [r.player_name for r in results] == ["Bob", "Cy", "Ann"]
        assert [r.rank for r in results] == [1, 2, 3]
        assert results[0].accuracy == pytest.approx(90.0)

    def test_rank_player_without_answers(self):
        room = CompetitionRoom(id="ABCDEF", host_id="a", players={"a": CompetitionPlayer(id="a", name="Ann")})
        assert rank_players(room)[0].accuracy == 0.0

    def test_room_json_uses_camel_case(self):
        room = CompetitionRoom(id="ABCDEF", host_id="a", countdown_started_at=5)
        data = room.to_json()
        assert data["hostId"] == "a"
        assert data["countdownStartedAt"] == 5
        assert data["settings"]["exerciseCount"] == 10
        assert CompetitionRoom.model_validate(data) == room


# ========================================
# Lobby
# ========================================


class TestLobby:
    """Test creating, joining and starting rooms."""

    def test_create_room(self, service, clock):
        room_id, host_id = service.create_room("Ann", RoomSettings(exercise_count=4, selected_tables=[5]))
        room = service.store.read(room_id)
        assert room.status == "waiting"
        assert room.players[host_id].is_host
        assert room.created_at == clock.now
        assert len(room.exercises) == 1

    def test_join_is_case_insensitive(self, service):
        room_id, _ = service.create_room("Ann", RoomSettings())
        player_id = service.join_room(room_id.lower(), "Bob")
        assert player_id in service.store.read(room_id).players

    def test_join_missing_room(self, service):
        with pytest.raises(CompetitionError):
            service.join_room("ZZZZZZ", "Bob")

    def test_room_full(self, service):
        room_id, _ = service.create_room("Host", RoomSettings())
        for i in range(MAX_PLAYERS - 1):
            service.join_room(room_id, f"P{i}")
        with pytest.raises(CompetitionError):
            service.join_room(room_id, "Late")

    def test_only_host_starts(self, service):
        room_id, host_id = service.create_room("Ann", RoomSettings())
        guest_id = service.join_room(room_id, "Bob")
        service.set_ready(room_id, host_id)
        service.set_ready(room_id, guest_id)
        with pytest.raises(CompetitionError):
            service.start_countdown(room_id, guest_id)

    def test_everyone_must_be_ready(self, service):
        room_id, host_id = service.create_room("Ann", RoomSettings())
        service.join_room(room_id, "Bob")
        service.set_ready(room_id, host_id)
        with pytest.raises(CompetitionError):
            service.start_countdown(room_id, host_id)

    def test_countdown(self, service, clock):
        room_id, host_id = service.create_room("Ann", RoomSettings())
        service.set_ready(room_id, host_id)
        service.start_countdown(room_id, host_id)
        room = service.store.read(room_id)
        assert room.status == "countdown"
        assert countdown_remaining(room, clock.now) == 3
        assert countdown_remaining(room, clock.now + 1500) == 2
        assert not service.advance_countdown(room_id, host_id)

        clock.now += 3000
        assert countdown_remaining(room, clock.now) == 0
        assert service.advance_countdown(room_id, host_id)
        assert service.store.read(room_id).status == "playing"

    def test_cannot_join_started_game(self, service, clock):
        room_id, _ = started_room(service, clock)
        with pytest.raises(CompetitionError):
            service.join_room(room_id, "Late")


# ========================================
# Play
# ========================================


class TestPlay:
    """Test answering, finishing and leaving."""

    def test_submit_answer_updates_player(self, service, clock):
        room_id, (ann, _) = started_room(service, clock)
        room = service.store.read(room_id)
        exercise = service.current_exercise(room, ann)
        assert service.submit_answer(room_id, ann, exercise.correct_answer, 1200)
        player = service.store.read(room_id).players[ann]
        assert player.current_exercise_index == 1
        assert player.correct_answers == 1
        assert player.total_time == 1200

    def test_wrong_answer(self, service, clock):
        room_id, (ann, _) = started_room(service, clock)
        exercise = service.current_exercise(service.store.read(room_id), ann)
        assert not service.submit_answer(room_id, ann, exercise.correct_answer + 1, 800)
        assert service.store.read(room_id).players[ann].wrong_answers == 1

    def test_submit_before_start(self, service):
        room_id, host_id = service.create_room("Ann", RoomSettings())
        with pytest.raises(CompetitionError):
            service.submit_answer(room_id, host_id, 9, 100)

    def test_room_finishes_when_everyone_finished(self, service, clock):
        room_id, (ann, bob) = started_room(service, clock)
        answer_all(service, room_id, ann)
        room = service.store.read(room_id)
        assert room.players[ann].is_finished
        assert room.status == "playing"

        answer_all(service, room_id, bob, wrong=1)
        assert service.store.read(room_id).status == "finished"

        results = service.results(room_id)
        assert [r.player_id for r in results] == [ann, bob]

    def test_finished_player_cannot_answer(self, service, clock):
        room_id, (ann, _) = started_room(service, clock)
        answer_all(service, room_id, ann)
        with pytest.raises(CompetitionError):
            service.submit_answer(room_id, ann, 1, 100)

    def test_guest_leaving_can_finish_room(self, service, clock):
        room_id, (ann, bob) = started_room(service, clock)
        answer_all(service, room_id, ann)
        service.leave_room(room_id, bob)
        room = service.store.read(room_id)
        assert bob not in room.players
        assert room.status == "finished"

    def test_host_leaving_deletes_room(self, service, clock):
        room_id, (ann, _) = started_room(service, clock)
        service.leave_room(room_id, ann)
        assert service.store.read(room_id) is None


# ========================================
# Subscriptions
# ========================================


class TestSubscriptions:
    """Test room change notifications."""

    def test_subscriber_sees_updates_and_deletion(self, service):
        room_id, host_id = service.create_room("Ann", RoomSettings())
        snapshots = []
        unsubscribe = service.subscribe(room_id, snapshots.append)

        guest_id = service.join_room(room_id, "Bob")
        assert guest_id in snapshots[-1].players

        service.leave_room(room_id, host_id)
        assert snapshots[-1] is None

        unsubscribe()
        count = len(snapshots)
        service.create_room("Cy", RoomSettings())
        assert len(snapshots) == count
