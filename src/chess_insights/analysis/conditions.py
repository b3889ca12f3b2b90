from collections.abc import Iterable
from typing import Final

import msgspec

from chess_insights.analysis.features import PositionFeatures


class Condition(msgspec.Struct, frozen=True, rename="camel"):
    """A context partition of the positions, e.g. `game_phase == "endgame"`"""

    key: str
    value: str
    label: str  # reads as a suffix: "in the endgame", "in blitz games"

    def matches(self, features: PositionFeatures) -> bool:
        return getattr(features, self.key) == self.value


# Families of conditions by context field. New conditions only need an entry here.
CONDITIONS: Final[dict[str, tuple[Condition, ...]]] = {
    "game_phase": tuple(
        Condition("game_phase", phase, f"in the {phase}")
        for phase in ("opening", "middlegame", "endgame")
    ),
    "time_control": tuple(
        Condition("time_control", tc, f"in {tc} games")
        for tc in ("bullet", "blitz", "rapid")
    ),
    "user_color": tuple(
        Condition("user_color", color, f"with the {color} pieces")
        for color in ("white", "black")
    ),
}


def conditions_for(keys: Iterable[str]) -> list[Condition]:
    """All conditions of the given families, in a stable order."""
    return [condition for key in keys for condition in CONDITIONS[key]]
