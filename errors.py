"""Errors raised by the game engine, session controller and store."""


class TicTacToeError(Exception):
    """Base class for every error this project raises on purpose."""

    retryable = False


class InvalidMove(TicTacToeError):
    """A placement was rejected before touching the board."""


class OutOfRange(InvalidMove):
    def __init__(self, index) -> None:
        super().__init__(f"Position {index!r} is outside 0-8")
        self.index = index


class CellOccupied(InvalidMove):
    def __init__(self, index: int) -> None:
        super().__init__(f"Cell {index} is already occupied")
        self.index = index


class SessionAlreadyTerminal(TicTacToeError):
    def __init__(self, session_id: str, outcome) -> None:
        super().__init__(f"Game {session_id} is already over ({outcome.value})")
        self.session_id = session_id
        self.outcome = outcome


class NotFound(TicTacToeError):
    """Lookup against the store found nothing."""


class SessionNotFound(NotFound):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Game not found: {session_id}")
        self.session_id = session_id


class PlayerNotFound(NotFound):
    def __init__(self, player_ref: str) -> None:
        super().__init__(f"Player not found: {player_ref}")
        self.player_ref = player_ref


class PlayerAlreadyExists(TicTacToeError):
    pass


class ConcurrentUpdate(TicTacToeError):
    """Someone else committed the session first. Reload and try again."""

    retryable = True

    def __init__(self, session_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Game {session_id} changed concurrently "
            f"(expected version {expected}, found {actual})"
        )
        self.session_id = session_id
        self.expected = expected
        self.actual = actual


class StoreError(TicTacToeError):
    """The backing storage could not be read or written."""
