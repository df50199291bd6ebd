"""
Persistence for the active practice session and its closed rounds.

Only one session is tracked at a time (the most recently started one). Rounds
are stored together with the id of the session they belong to, so a stale
rounds list is never attributed to a new session.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from loguru import logger

from timestables.storage.kv import KeyValueStore
from timestables.storage.schemas import PracticeSession, Round, load_record, load_records, utc_now_iso

SESSION_KEY = "drill.session"
ROUNDS_KEY = "drill.rounds"

_UPDATABLE_FIELDS = frozenset(
    {"status", "current_round", "pending_exercises", "active_exercise", "end_time"}
)


class SessionRepository:
    """Reads and writes the current session record and its rounds."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def create_session(self, selected_tables: Sequence[int], user_id: str | None = None) -> PracticeSession:
        """Start a new in-progress session, replacing any previous record."""
        session = PracticeSession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            start_time=utc_now_iso(),
            selected_tables=list(selected_tables),
        )
        self.store.put(SESSION_KEY, session.to_json())
        self.store.put(ROUNDS_KEY, {"session_id": session.id, "rounds": []})
        logger.debug("Created session {}", session.id)
        return session

    def get_session(self) -> PracticeSession | None:
        return load_record(PracticeSession, self.store.get(SESSION_KEY))

    def get_active_session(self) -> PracticeSession | None:
        session = self.get_session()
        return session if session is not None and session.is_active else None

    def update_session(self, session_id: str, **updates) -> PracticeSession | None:
        """
        Apply updates to the stored session.

        Returns None without writing when the stored session is a different
        one, missing, or already completed/stopped. Only progression fields
        may be updated.
        """
        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")

        session = self.get_session()
        if session is None or session.id != session_id:
            logger.debug("Skipping update for session {} (not current)", session_id)
            return None
        if not session.is_active:
            logger.debug("Skipping update for session {} ({} is final)", session_id, session.status)
            return None

        if "current_round" in updates and updates["current_round"] < session.current_round:
            raise ValueError("current_round cannot decrease")

        updated = PracticeSession.model_validate(
            {**session.to_json(), **updates, "updated_at": utc_now_iso()}
        )
        self.store.put(SESSION_KEY, updated.to_json())
        return updated

    def save_round(self, session_id: str, round_: Round) -> Round:
        """
        Store a closed round, replacing any stored round with the same number.

        Saving the same round twice leaves a single copy.
        """
        existing = self.get_rounds(session_id)
        stored = round_.model_copy(
            update={
                "id": round_.id or str(uuid.uuid4()),
                "created_at": round_.created_at or utc_now_iso(),
            }
        )
        rounds = [r for r in existing if r.round_number != stored.round_number]
        rounds.append(stored)
        rounds.sort(key=lambda r: r.round_number)
        self.store.put(
            ROUNDS_KEY, {"session_id": session_id, "rounds": [r.to_json() for r in rounds]}
        )
        return stored

    def get_rounds(self, session_id: str) -> list[Round]:
        raw = self.store.get(ROUNDS_KEY)
        if not isinstance(raw, dict) or raw.get("session_id") != session_id:
            return []
        return load_records(Round, raw.get("rounds"))

    def clear(self) -> None:
        self.store.delete(SESSION_KEY)
        self.store.delete(ROUNDS_KEY)
