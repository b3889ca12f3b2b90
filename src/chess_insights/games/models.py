from typing import Literal

import msgspec

TimeControlClass = Literal["bullet", "blitz", "rapid", "daily", "unknown"]
GameResult = Literal[
    "win",
    "loss",
    "draw",
    "abort",
    "timeout",
    "resign",
    "checkmate",
    "stalemate",
    "other",
]
Color = Literal["white", "black"]


class TimeControl(msgspec.Struct, rename="camel"):
    type: TimeControlClass = "unknown"
    base: int | None = None  # seconds
    increment: int | None = None


class Opening(msgspec.Struct, rename="camel"):
    eco: str | None = None
    name: str | None = None


class KeyPosition(msgspec.Struct, rename="camel"):
    """A single analyzed move of a game.

    `fen` is the board before the move was played. Evaluations are in pawns from
    White's point of view, as reported by the engine.
    """

    move_no: int
    side: Literal["W", "B"]  # side that played the move
    fen: str | None = None
    move: str | None = None
    best_move: str | None = None
    eval_before: float | None = None
    eval_after: float | None = None


class GameRecord(msgspec.Struct, rename="camel"):
    """A played game with per-move engine evaluations, owned by the game store"""

    game_id: str
    date: str  # ISO-8601
    user_color: Color
    time_control: TimeControl = msgspec.field(default_factory=TimeControl)
    user_rating: int | None = None
    opp_rating: int | None = None
    result: GameResult = "other"
    opening: Opening = msgspec.field(default_factory=Opening)
    key_positions: list[KeyPosition] = []
    url: str | None = None
    opponent: str | None = None
