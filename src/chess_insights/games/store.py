import dataclasses
import logging
from pathlib import Path
from typing import Protocol

import msgspec

from chess_insights.games.models import GameRecord

logger = logging.getLogger(__name__)

SUMMARIES_FILE = "summaries.json"


class GameStore(Protocol):
    """Supplies the analyzed games of one identity"""

    def load_games(self, identity: str) -> list[GameRecord]: ...


@dataclasses.dataclass
class JsonGameStore:
    """Keeps the games of every identity in `<data_root>/<identity>/summaries.json`"""

    data_root: Path

    def _summaries_file(self, identity: str) -> Path:
        if not identity or "/" in identity or "\\" in identity or identity in (".", ".."):
            raise ValueError(f"Invalid identity: {identity!r}")
        return self.data_root / identity / SUMMARIES_FILE

    def load_games(self, identity: str) -> list[GameRecord]:
        """Load all games of an identity, an unknown identity has no games."""
        summaries_file = self._summaries_file(identity)
        if not summaries_file.exists():
            logger.info(f"No games stored for {identity=}")
            return []

        with summaries_file.open("rb") as f:
            games = msgspec.json.decode(f.read(), type=list[GameRecord])
        logger.info(f"Loaded {len(games)} games for {identity=}")
        return games

    def save_games(self, identity: str, games: list[GameRecord]) -> None:
        """Replace the stored games of an identity."""
        summaries_file = self._summaries_file(identity)
        summaries_file.parent.mkdir(parents=True, exist_ok=True)
        with summaries_file.open("wb") as f:
            f.write(msgspec.json.encode(games))

    def upsert_games(self, identity: str, games: list[GameRecord]) -> None:
        """Add new games and replace stored games with the same `game_id`."""
        by_id = {game.game_id: game for game in self.load_games(identity)}
        for game in games:
            by_id[game.game_id] = game
        self.save_games(identity, list(by_id.values()))
