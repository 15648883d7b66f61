"""Runs one human move plus the bot's reply against a stored game."""

from __future__ import annotations

import logging
import random
import threading
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from errors import SessionAlreadyTerminal
from game import BOT, HUMAN, Board, Outcome, RandomSource, choose_move, classify
from models import GameSession
from store import Store

logger = logging.getLogger(__name__)

Responder = Callable[[Board, RandomSource], Optional[int]]


class _SessionLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class GameController:
    """Applies moves to game sessions kept in a Store.

    Moves on the same session are serialized with a per-session lock; the
    store's version check catches writers that bypass this controller
    (another process, or a retried request holding a stale copy).
    """

    def __init__(
        self,
        store: Store,
        rng: Optional[RandomSource] = None,
        responder: Responder = choose_move,
    ) -> None:
        self.store = store
        self.rng = rng if rng is not None else random.Random()
        self.responder = responder
        self._locks: Dict[str, _SessionLock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _session_lock(self, session_id: str) -> Iterator[None]:
        """Hold the session's lock; the entry is dropped once nobody uses it."""
        with self._locks_guard:
            entry = self._locks.get(session_id)
            if entry is None:
                entry = self._locks[session_id] = _SessionLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[session_id]

    def start_game(self, player_id: str) -> GameSession:
        """Create a new game for an existing player."""
        self.store.load_player(player_id)
        session = GameSession(session_id=uuid.uuid4().hex, player_id=player_id)
        session = self.store.save_session(session)
        logger.info("Player %s started game %s", player_id, session.session_id)
        return session

    def get_session(self, session_id: str) -> GameSession:
        return self.store.load_session(session_id)

    def list_sessions(self, player_id: Optional[str] = None) -> List[GameSession]:
        """All games, newest first, optionally only those of one player."""
        sessions = self.store.list_sessions()
        if player_id is not None:
            sessions = [s for s in sessions if s.player_id == player_id]
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)

    def make_move(self, session_id: str, position: int) -> GameSession:
        """Place X at ``position``, let the bot answer, and save the result.

        Nothing is written unless the whole move succeeds.
        """
        with self._session_lock(session_id):
            session = self.store.load_session(session_id)
            if session.is_over:
                raise SessionAlreadyTerminal(session_id, session.outcome)

            board = session.board.place(position, HUMAN)
            outcome = classify(board)

            # No bot reply once the human has won or filled the board.
            if not outcome.is_terminal:
                reply = self.responder(board, self.rng)
                if reply is None:
                    outcome = Outcome.DRAW
                else:
                    board = board.place(reply, BOT)
                    outcome = classify(board)
                    logger.debug("Bot answered %d in game %s", reply, session_id)

            session.board = board
            return self.commit_outcome(session, outcome)

    def commit_outcome(self, session: GameSession, outcome: Outcome) -> GameSession:
        """Save ``session`` with ``outcome``, updating the player's tally once.

        A session that already carries a final outcome is returned as is,
        so repeating the commit never counts the game twice.
        """
        if session.is_over:
            logger.warning(
                "Game %s is already %s; not recording %s",
                session.session_id, session.outcome.value, outcome.value,
            )
            return session

        session.outcome = outcome
        try:
            saved = self.store.commit(session, outcome if outcome.is_terminal else None)
        except Exception:
            session.outcome = Outcome.IN_PROGRESS
            raise

        if outcome.is_terminal:
            logger.info(
                "Game %s finished: %s for player %s (board %s)",
                saved.session_id, outcome.value, saved.player_id, saved.board,
            )
        return saved
