"""Records kept by the store: one game session and one player's tally."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from game import Board, Outcome


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PlayerRecord:
    player_id: str
    name: str
    email: Optional[str] = None
    wins: int = 0
    losses: int = 0
    draws: int = 0

    @property
    def games_played(self) -> int:
        return self.wins + self.losses + self.draws

    def record(self, outcome: Outcome) -> None:
        """Count one finished game. Only the session controller calls this."""
        if outcome is Outcome.WIN:
            self.wins += 1
        elif outcome is Outcome.LOSS:
            self.losses += 1
        elif outcome is Outcome.DRAW:
            self.draws += 1
        else:
            raise ValueError(f"Cannot record a game that is {outcome.value}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "name": self.name,
            "email": self.email,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlayerRecord":
        return cls(
            player_id=str(data["player_id"]),
            name=str(data["name"]),
            email=data.get("email"),
            wins=int(data.get("wins", 0)),
            losses=int(data.get("losses", 0)),
            draws=int(data.get("draws", 0)),
        )


@dataclass
class GameSession:
    """One game against the bot.

    ``version`` is the stored version this copy was read at; the store
    refuses to save a copy whose version is out of date.
    """

    session_id: str
    player_id: str
    board: Board = field(default_factory=Board.empty)
    outcome: Outcome = Outcome.IN_PROGRESS
    created_at: datetime = field(default_factory=utcnow)
    version: int = 0

    @property
    def is_over(self) -> bool:
        return self.outcome.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "player_id": self.player_id,
            "board": self.board.to_string(),
            "outcome": self.outcome.value,
            "created_at": self.created_at.isoformat(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GameSession":
        return cls(
            session_id=str(data["session_id"]),
            player_id=str(data["player_id"]),
            board=Board.from_string(data["board"]),
            outcome=Outcome(data["outcome"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            version=int(data.get("version", 0)),
        )
