"""Persistence for game sessions and player records."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Union

from errors import ConcurrentUpdate, PlayerNotFound, SessionNotFound, StoreError
from game import Outcome
from models import GameSession, PlayerRecord

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class Store(ABC):
    """Load/save contract the session controller relies on.

    Loads hand out copies. ``save_session`` and ``commit`` compare the
    session's ``version`` with the stored one and raise ConcurrentUpdate
    on a mismatch; on success they return the stored copy with the new
    version.
    """

    @abstractmethod
    def load_session(self, session_id: str) -> GameSession: ...

    @abstractmethod
    def save_session(self, session: GameSession) -> GameSession: ...

    @abstractmethod
    def load_player(self, player_id: str) -> PlayerRecord: ...

    @abstractmethod
    def save_player(self, player: PlayerRecord) -> None: ...

    @abstractmethod
    def commit(self, session: GameSession, record: Optional[Outcome] = None) -> GameSession:
        """Save the session and, when ``record`` is given, count it in the
        owning player's tally. Both happen or neither does."""

    @abstractmethod
    def list_sessions(self) -> List[GameSession]: ...

    @abstractmethod
    def list_players(self) -> List[PlayerRecord]: ...


class MemoryStore(Store):
    """Dict-backed store. Safe to share between threads."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sessions: Dict[str, GameSession] = {}
        self._players: Dict[str, PlayerRecord] = {}

    # ── sessions ──

    def load_session(self, session_id: str) -> GameSession:
        with self._lock:
            stored = self._sessions.get(session_id)
            if stored is None:
                raise SessionNotFound(session_id)
            return replace(stored)

    def save_session(self, session: GameSession) -> GameSession:
        return self.commit(session)

    def list_sessions(self) -> List[GameSession]:
        with self._lock:
            return [replace(s) for s in self._sessions.values()]

    # ── players ──

    def load_player(self, player_id: str) -> PlayerRecord:
        with self._lock:
            stored = self._players.get(player_id)
            if stored is None:
                raise PlayerNotFound(player_id)
            return replace(stored)

    def save_player(self, player: PlayerRecord) -> None:
        with self._lock:
            previous = self._players.get(player.player_id)
            self._players[player.player_id] = replace(player)
            try:
                self._flush()
            except StoreError:
                self._restore_player(player.player_id, previous)
                raise

    def list_players(self) -> List[PlayerRecord]:
        with self._lock:
            return [replace(p) for p in self._players.values()]

    # ── atomic write ──

    def commit(self, session: GameSession, record: Optional[Outcome] = None) -> GameSession:
        with self._lock:
            current = self._sessions.get(session.session_id)
            if current is not None and current.version != session.version:
                logger.warning(
                    "Rejected stale write to game %s (version %d, stored %d)",
                    session.session_id, session.version, current.version,
                )
                raise ConcurrentUpdate(session.session_id, session.version, current.version)

            # The tally is read and bumped under the same lock as the write,
            # so games of one player finishing together are all counted.
            previous_player = None
            if record is not None:
                previous_player = self._players.get(session.player_id)
                if previous_player is None:
                    raise PlayerNotFound(session.player_id)
                player = replace(previous_player)
                player.record(record)

            saved = replace(session, version=session.version + 1)
            self._sessions[saved.session_id] = saved
            if record is not None:
                self._players[player.player_id] = player
            try:
                self._flush()
            except StoreError:
                if current is None:
                    del self._sessions[saved.session_id]
                else:
                    self._sessions[saved.session_id] = current
                if record is not None:
                    self._restore_player(session.player_id, previous_player)
                raise
            return replace(saved)

    def _restore_player(self, player_id: str, previous: Optional[PlayerRecord]) -> None:
        if previous is None:
            self._players.pop(player_id, None)
        else:
            self._players[player_id] = previous

    def _flush(self) -> None:
        """Hook for subclasses that persist the dicts somewhere."""


class JsonFileStore(MemoryStore):
    """MemoryStore mirrored to a JSON file, rewritten atomically on every write."""

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._load()
        else:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            sessions = [GameSession.from_dict(d) for d in data.get("sessions", [])]
            players = [PlayerRecord.from_dict(d) for d in data.get("players", [])]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StoreError(f"Could not read {self.path}: {e}") from e

        self._sessions = {s.session_id: s for s in sessions}
        self._players = {p.player_id: p for p in players}
        logger.info(
            "Loaded %d games and %d players from %s",
            len(self._sessions), len(self._players), self.path,
        )

    def _flush(self) -> None:
        data = {
            "schema_version": SCHEMA_VERSION,
            "players": [p.to_dict() for p in self._players.values()],
            "sessions": [s.to_dict() for s in self._sessions.values()],
        }
        text = json.dumps(data, ensure_ascii=False, sort_keys=True, indent=2)
        fd, tmp = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, self.path)
        except OSError as e:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise StoreError(f"Could not write {self.path}: {e}") from e
