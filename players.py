"""Player registration, lookup and the leaderboard."""

from __future__ import annotations

import logging
from typing import List, Optional

from errors import PlayerAlreadyExists, PlayerNotFound
from models import PlayerRecord
from store import Store

logger = logging.getLogger(__name__)


def _normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


class PlayerDirectory:
    def __init__(self, store: Store) -> None:
        self.store = store

    def register(self, player_id: str, name: str, email: Optional[str] = None) -> PlayerRecord:
        """Create a player. Ids and emails must be unique."""
        email = _normalize_email(email)
        for existing in self.store.list_players():
            if existing.player_id == player_id:
                raise PlayerAlreadyExists(f"Player {player_id} already exists.")
            if email is not None and existing.email == email:
                raise PlayerAlreadyExists(f"User email {email} already exists.")

        player = PlayerRecord(player_id=player_id, name=name, email=email)
        self.store.save_player(player)
        logger.info("Registered player %s (%s)", player_id, name)
        return player

    def get(self, player_id: str) -> PlayerRecord:
        return self.store.load_player(player_id)

    def get_or_register(self, player_id: str, name: str) -> PlayerRecord:
        try:
            return self.store.load_player(player_id)
        except PlayerNotFound:
            return self.register(player_id, name)

    def all_players(self) -> List[PlayerRecord]:
        return sorted(self.store.list_players(), key=lambda p: p.name.lower())

    def leaderboard(self, limit: int = 10) -> List[PlayerRecord]:
        """Top players by wins; fewer losses breaks ties, then name."""
        ranked = sorted(
            self.store.list_players(),
            key=lambda p: (-p.wins, p.losses, p.name.lower()),
        )
        return ranked[:max(limit, 0)]
