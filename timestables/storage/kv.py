"""
Durable key-value stores for drill state.

Every backend exposes the same three calls over string keys with
JSON-serializable values:

    store.put("drill.session", {...})
    store.get("drill.session")      # -> value or None
    store.delete("drill.session")

Backends:
- MemoryKeyValueStore: process-local, used by tests and hot-seat races
- JsonFileKeyValueStore: one JSON file per key under ~/.timestables/
- SqlKeyValueStore: SQLite (or any SQLAlchemy URL) table of key/value rows

A write either replaces the whole value or leaves the previous value intact.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from loguru import logger
from sqlalchemy import DateTime, String, Text, create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from timestables.core.errors import ConfigurationError, PersistenceError


class KeyValueStore(Protocol):
    """Protocol for durable key-value backends."""

    def get(self, key: str) -> Any | None:
        """Return the stored value, or None when the key is absent."""
        ...

    def put(self, key: str, value: Any) -> None:
        """Replace the value stored under key."""
        ...

    def delete(self, key: str) -> None:
        """Remove key if present."""
        ...


def _encode(key: str, value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"Value for '{key}' is not JSON-serializable", exc) from exc


# =============================================================================
# Memory
# =============================================================================


class MemoryKeyValueStore:
    """
    In-process store.

    Values are stored as encoded JSON so callers never share mutable
    objects with the store, matching the durable backends.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = _encode(key, value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


# =============================================================================
# JSON files
# =============================================================================


class JsonFileKeyValueStore:
    """
    Stores each key as <data_dir>/<key>.json.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so a failed write never leaves a half-written value.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir).expanduser()
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(f"Cannot use data directory {self.data_dir}", exc) from exc

    def _path(self, key: str) -> Path:
        safe = key.replace("/", "_").replace(os.sep, "_")
        return self.data_dir / f"{safe}.json"

    def get(self, key: str) -> Any | None:
        filepath = self._path(key)
        if not filepath.exists():
            return None
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupted store file {}", filepath)
            return None
        except OSError as exc:
            raise PersistenceError(f"Failed to read '{key}'", exc) from exc

    def put(self, key: str, value: Any) -> None:
        payload = _encode(key, value)
        filepath = self._path(key)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=".tmp-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, filepath)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Failed to write '{key}'", exc) from exc

    def delete(self, key: str) -> None:
        filepath = self._path(key)
        try:
            filepath.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to delete '{key}'", exc) from exc


# =============================================================================
# SQLAlchemy
# =============================================================================


class Base(DeclarativeBase):
    pass


class KeyValueRecord(Base):
    """One stored key."""

    __tablename__ = "kv_store"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class SqlKeyValueStore:
    """Key-value rows in a single SQL table."""

    def __init__(self, database_url: str, echo: bool = False):
        try:
            self.engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            raise ConfigurationError(f"Cannot open store at {database_url}", exc) from exc
        self._session_factory = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        logger.debug("SqlKeyValueStore initialized at {}", database_url)

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:  # Intentionally broad - rollback on any error before re-raising
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, key: str) -> Any | None:
        try:
            with self.session_scope() as session:
                raw = session.scalar(select(KeyValueRecord.value).where(KeyValueRecord.key == key))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read '{key}'", exc) from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupted store row {}", key)
            return None

    def put(self, key: str, value: Any) -> None:
        payload = _encode(key, value)
        try:
            with self.session_scope() as session:
                record = session.get(KeyValueRecord, key)
                if record is None:
                    session.add(KeyValueRecord(key=key, value=payload))
                else:
                    record.value = payload
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to write '{key}'", exc) from exc

    def delete(self, key: str) -> None:
        try:
            with self.session_scope() as session:
                record = session.get(KeyValueRecord, key)
                if record is not None:
                    session.delete(record)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete '{key}'", exc) from exc


def create_store(settings) -> KeyValueStore:
    """Build the backend selected by settings.store_backend."""
    backend = settings.store_backend
    if backend == "memory":
        return MemoryKeyValueStore()
    if backend == "json":
        return JsonFileKeyValueStore(settings.data_dir)
    if backend == "sqlite":
        try:
            Path(settings.data_dir).expanduser().mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(f"Cannot use data directory {settings.data_dir}", exc) from exc
        return SqlKeyValueStore(settings.get_database_url())
    raise ConfigurationError(f"Unknown store backend: {backend}")
