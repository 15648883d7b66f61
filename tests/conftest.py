import sys
from pathlib import Path

import pytest

# Ensure the repository root is on sys.path for test imports without installing the package
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from game import Board  # noqa: E402
from models import GameSession, PlayerRecord  # noqa: E402
from session import GameController  # noqa: E402
from store import MemoryStore  # noqa: E402


class FixedRng:
    """Always picks the same position in the candidate list."""

    def __init__(self, pick: int = 0):
        self.pick = pick
        self.calls = []

    def randrange(self, n: int) -> int:
        self.calls.append(n)
        return min(self.pick, n - 1)


@pytest.fixture
def store():
    s = MemoryStore()
    s.save_player(PlayerRecord(player_id="p1", name="Alice", email="alice@example.com"))
    return s


@pytest.fixture
def rng():
    return FixedRng()


@pytest.fixture
def controller(store, rng):
    return GameController(store, rng=rng)


@pytest.fixture
def seed_session(store):
    """Store a game with the given board and return it."""

    def _seed(board: str, session_id: str = "g1", **kwargs) -> GameSession:
        session = GameSession(session_id=session_id, player_id="p1", board=Board.from_string(board), **kwargs)
        return store.save_session(session)

    return _seed


@pytest.fixture
def rng_factory():
    return FixedRng
