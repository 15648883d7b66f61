"""Tic-Tac-Toe game logic: board, rules and the random bot."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol, Tuple

from errors import CellOccupied, OutOfRange


class Cell(Enum):
    EMPTY = "-"
    X = "X"
    O = "O"

    def opponent(self) -> "Cell":
        """Return the other symbol. EMPTY has no opponent."""
        if self is Cell.X:
            return Cell.O
        if self is Cell.O:
            return Cell.X
        raise ValueError("EMPTY has no opponent")


class Outcome(Enum):
    """Result of a game from the human (X) player's point of view."""

    IN_PROGRESS = "IN_PROGRESS"
    WIN = "WIN"
    LOSS = "LOSS"
    DRAW = "DRAW"

    @property
    def is_terminal(self) -> bool:
        return self is not Outcome.IN_PROGRESS


# Display symbols
SYMBOLS = {
    Cell.EMPTY: "·",
    Cell.X: "❌",
    Cell.O: "⭕",
}

SIZE = 9

# All winning lines: rows, columns, diagonals (row-major indices)
WIN_LINES = [
    # Rows
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    # Columns
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    # Diagonals
    (0, 4, 8),
    (2, 4, 6),
]

HUMAN = Cell.X
BOT = Cell.O


@dataclass(frozen=True)
class Board:
    """Immutable 3x3 board stored as 9 cells, row-major (0 = top-left)."""

    cells: Tuple[Cell, ...] = field(default_factory=lambda: (Cell.EMPTY,) * SIZE)

    def __post_init__(self) -> None:
        if len(self.cells) != SIZE:
            raise ValueError(f"A board has {SIZE} cells, got {len(self.cells)}")

    @classmethod
    def empty(cls) -> "Board":
        return cls()

    @classmethod
    def from_string(cls, text: str) -> "Board":
        """Parse the 9-character transport form, e.g. ``"XO-------"``."""
        if len(text) != SIZE:
            raise ValueError(f"Board string must be {SIZE} characters: {text!r}")
        try:
            return cls(tuple(Cell(ch) for ch in text))
        except ValueError:
            raise ValueError(f"Board string may only contain '-', 'X', 'O': {text!r}") from None

    def to_string(self) -> str:
        return "".join(cell.value for cell in self.cells)

    def __str__(self) -> str:
        return self.to_string()

    def place(self, index: int, symbol: Cell) -> "Board":
        """Return a new board with ``symbol`` at ``index``.

        Raises OutOfRange or CellOccupied without changing anything.
        """
        if symbol is Cell.EMPTY:
            raise ValueError("Cannot place an empty cell")
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < SIZE:
            raise OutOfRange(index)
        if self.cells[index] is not Cell.EMPTY:
            raise CellOccupied(index)
        cells = list(self.cells)
        cells[index] = symbol
        return Board(tuple(cells))

    def is_full(self) -> bool:
        """Check if all cells are filled."""
        return all(cell is not Cell.EMPTY for cell in self.cells)

    def empty_indices(self) -> List[int]:
        """Return the indices of empty cells in ascending order."""
        return [i for i, cell in enumerate(self.cells) if cell is Cell.EMPTY]

    def row(self, r: int) -> Tuple[Cell, ...]:
        return self.cells[r * 3:r * 3 + 3]


# ─── Rules ───


def winning_line(board: Board) -> Optional[Tuple[int, int, int]]:
    """Return the first completed line, or None."""
    cells = board.cells
    for a, b, c in WIN_LINES:
        if cells[a] is not Cell.EMPTY and cells[a] is cells[b] is cells[c]:
            return (a, b, c)
    return None


def winner(board: Board) -> Cell:
    """Return the symbol that has three in a row, or Cell.EMPTY."""
    line = winning_line(board)
    if line is None:
        return Cell.EMPTY
    return board.cells[line[0]]


def classify(board: Board, me: Cell = HUMAN) -> Outcome:
    """Classify the board from the point of view of ``me``."""
    w = winner(board)
    if w is me:
        return Outcome.WIN
    if w is me.opponent():
        return Outcome.LOSS
    if board.is_full():
        return Outcome.DRAW
    return Outcome.IN_PROGRESS


# ─── Random bot ───


class RandomSource(Protocol):
    """Anything that can pick a uniform index in ``range(n)``."""

    def randrange(self, n: int) -> int: ...


def choose_move(board: Board, rng: Optional[RandomSource] = None) -> Optional[int]:
    """Pick an empty cell uniformly at random. Returns None on a full board."""
    candidates = board.empty_indices()
    if not candidates:
        return None
    if rng is None:
        rng = random
    return candidates[rng.randrange(len(candidates))]
