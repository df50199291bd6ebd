"""
Competition room records and the shared-room store interface.

The room record is shared by every participant and stored with camelCase
keys so it can live in any realtime JSON store:

    {id, hostId, status, players: {playerId: {...}}, exercises: [...],
     settings: {exerciseCount, selectedTables}, createdAt, ...}

Transport is outside the drill: RoomStore is the interface a backend must
provide (create/read/update/delete plus subscribe), and InMemoryRoomStore is
the process-local implementation used for hot-seat play and tests. Concurrent
updates are last-write-wins per field.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Literal, Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from timestables.core.errors import CompetitionError

RoomStatus = Literal["waiting", "countdown", "playing", "finished"]
RoomListener = Callable[["CompetitionRoom | None"], None]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CompetitionPlayer(_CamelModel):
    id: str
    name: str
    is_host: bool = False
    is_ready: bool = False
    current_exercise_index: int = 0
    correct_answers: int = 0
    wrong_answers: int = 0
    total_time: int = 0  # milliseconds
    finished_at: int | None = None  # epoch ms

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None


class CompetitionExercise(_CamelModel):
    id: str
    num1: int
    num2: int
    correct_answer: int


class RoomSettings(_CamelModel):
    exercise_count: int = Field(default=10, ge=1)
    selected_tables: list[int] = Field(default_factory=list)


class CompetitionRoom(_CamelModel):
    id: str
    host_id: str
    status: RoomStatus = "waiting"
    players: dict[str, CompetitionPlayer] = Field(default_factory=dict)
    exercises: list[CompetitionExercise] = Field(default_factory=list)
    settings: RoomSettings = Field(default_factory=RoomSettings)
    created_at: int = 0
    started_at: int | None = None
    countdown_started_at: int | None = None


class RoomStore(Protocol):
    """Protocol for shared-room backends."""

    def create(self, room: CompetitionRoom) -> None:
        ...

    def read(self, room_id: str) -> CompetitionRoom | None:
        ...

    def update(self, room_id: str, changes: dict[str, Any]) -> None:
        """Shallow-merge camelCase fields into the room."""
        ...

    def put_player(self, room_id: str, player: CompetitionPlayer) -> None:
        ...

    def update_player(self, room_id: str, player_id: str, changes: dict[str, Any]) -> None:
        """Shallow-merge camelCase fields into one player."""
        ...

    def delete(self, room_id: str) -> None:
        ...

    def delete_player(self, room_id: str, player_id: str) -> None:
        ...

    def subscribe(self, room_id: str, on_change: RoomListener) -> Callable[[], None]:
        """Push every new room snapshot (None once deleted). Returns unsubscribe."""
        ...


class InMemoryRoomStore:
    """Thread-safe process-local room store with synchronous notifications."""

    def __init__(self) -> None:
        self._rooms: dict[str, dict[str, Any]] = {}
        self._listeners: dict[str, list[RoomListener]] = {}
        self._lock = threading.RLock()

    def create(self, room: CompetitionRoom) -> None:
        with self._lock:
            if room.id in self._rooms:
                raise CompetitionError(f"Room {room.id} already exists")
            self._rooms[room.id] = room.to_json()
        self._notify(room.id)

    def read(self, room_id: str) -> CompetitionRoom | None:
        with self._lock:
            raw = self._rooms.get(room_id)
            return None if raw is None else CompetitionRoom.model_validate(raw)

    def update(self, room_id: str, changes: dict[str, Any]) -> None:
        with self._lock:
            raw = self._require(room_id)
            raw.update(changes)
        self._notify(room_id)

    def put_player(self, room_id: str, player: CompetitionPlayer) -> None:
        with self._lock:
            raw = self._require(room_id)
            raw.setdefault("players", {})[player.id] = player.to_json()
        self._notify(room_id)

    def update_player(self, room_id: str, player_id: str, changes: dict[str, Any]) -> None:
        with self._lock:
            raw = self._require(room_id)
            player = raw.get("players", {}).get(player_id)
            if player is None:
                raise CompetitionError(f"Player {player_id} is not in room {room_id}")
            player.update(changes)
        self._notify(room_id)

    def delete(self, room_id: str) -> None:
        with self._lock:
            existed = self._rooms.pop(room_id, None) is not None
        if existed:
            self._notify(room_id)

    def delete_player(self, room_id: str, player_id: str) -> None:
        with self._lock:
            raw = self._require(room_id)
            raw.get("players", {}).pop(player_id, None)
        self._notify(room_id)

    def subscribe(self, room_id: str, on_change: RoomListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.setdefault(room_id, []).append(on_change)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(room_id, [])
                if on_change in listeners:
                    listeners.remove(on_change)

        return unsubscribe

    def _require(self, room_id: str) -> dict[str, Any]:
        raw = self._rooms.get(room_id)
        if raw is None:
            raise CompetitionError(f"Room {room_id} not found")
        return raw

    def _notify(self, room_id: str) -> None:
        snapshot = self.read(room_id)
        with self._lock:
            listeners = list(self._listeners.get(room_id, []))
        logger.debug("Room {} changed ({} listeners)", room_id, len(listeners))
        for listener in listeners:
            listener(snapshot)
