"""
Competition Module - Shared-room races.

Components:
- room: Room records, RoomStore interface, InMemoryRoomStore
- service: CompetitionService lifecycle operations and rank_players
"""

from timestables.competition.room import (
    CompetitionExercise,
    CompetitionPlayer,
    CompetitionRoom,
    InMemoryRoomStore,
    RoomSettings,
    RoomStore,
)
from timestables.competition.service import (
    CompetitionService,
    PlayerResult,
    countdown_remaining,
    generate_competition_exercises,
    generate_room_code,
    rank_players,
)

__all__ = [
    "CompetitionExercise",
    "CompetitionPlayer",
    "CompetitionRoom",
    "InMemoryRoomStore",
    "RoomSettings",
    "RoomStore",
    "CompetitionService",
    "PlayerResult",
    "countdown_remaining",
    "generate_competition_exercises",
    "generate_room_code",
    "rank_players",
]
