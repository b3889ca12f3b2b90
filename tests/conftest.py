import random

import chess
import pytest

from chess_insights.analysis.features import PositionFeatures
from chess_insights.analysis.results import Pattern
from chess_insights.games.models import GameRecord, KeyPosition, Opening, TimeControl

OPENINGS = [
    Opening("C50", "Italian Game"),
    Opening("B20", "Sicilian Defense"),
    Opening("D06", "Queen's Gambit"),
    Opening("A45", "Indian Game"),
    Opening(None, None),
]
TIME_CONTROLS = [
    TimeControl("bullet", 60, 0),
    TimeControl("blitz", 180, 2),
    TimeControl("rapid", 600, 5),
]


def make_features(**overrides) -> PositionFeatures:
    """A qualifying user position; any field can be overridden."""
    values = {
        "game_id": "g00",
        "move_no": 20,
        "fen": chess.STARTING_FEN,
        "move_side": "user",
        "eval_known": True,
        "game_phase": "middlegame",
        "time_control": "blitz",
        "user_color": "white",
        "game_date": "2024-01-01",
    }
    values.update(overrides)
    return PositionFeatures(**values)


def random_game(rng: random.Random, game_no: int, max_moves: int = 20) -> GameRecord:
    """Play random moves and attach made-up engine evaluations.

    The mover loses evaluation on every move, more so when in check or when one of its
    pieces is attacked, so the swing is related to the board.
    """
    board = chess.Board()
    user_color = rng.choice(["white", "black"])
    evaluation = rng.uniform(-0.3, 0.3)
    key_positions = []

    while not board.is_game_over() and board.fullmove_number <= max_moves:
        moves = list(board.legal_moves)
        move = rng.choice(moves)
        best_move = move if rng.random() < 0.3 else rng.choice(moves)

        loss = rng.expovariate(1 / 30) / 100
        if board.is_check():
            loss += 1.0
        attacked = any(
            board.is_attacked_by(not board.turn, square)
            for square, piece in board.piece_map().items()
            if piece.color == board.turn and piece.piece_type != chess.KING
        )
        if attacked:
            loss += rng.uniform(0.0, 0.8)

        before = evaluation
        evaluation += -loss if board.turn == chess.WHITE else loss
        key_positions.append(
            KeyPosition(
                move_no=board.fullmove_number,
                side="W" if board.turn == chess.WHITE else "B",
                fen=board.fen(),
                move=move.uci(),
                best_move=best_move.uci(),
                eval_before=round(before, 2),
                eval_after=round(evaluation, 2),
            ),
        )
        board.push(move)

    return GameRecord(
        game_id=f"game-{game_no:03d}",
        date=f"2024-{1 + game_no % 12:02d}-{1 + game_no % 28:02d}T12:{game_no % 60:02d}:00",
        user_color=user_color,
        time_control=rng.choice(TIME_CONTROLS),
        user_rating=rng.randint(1000, 1800),
        opp_rating=rng.randint(1000, 1800),
        result=rng.choice(["win", "loss", "draw", "resign", "timeout"]),
        opening=rng.choice(OPENINGS),
        key_positions=key_positions,
        url=f"https://example.org/game/{game_no}",
        opponent=f"opponent{game_no % 7}",
    )


def random_games(n: int, seed: int = 42) -> list[GameRecord]:
    rng = random.Random(seed)
    return [random_game(rng, i) for i in range(n)]


class InMemoryGameStore:
    def __init__(self, games: dict[str, list[GameRecord]] | None = None):
        self.games = games or {}
        self.calls = 0

    def load_games(self, identity: str) -> list[GameRecord]:
        self.calls += 1
        return list(self.games.get(identity, []))


def hanging_pieces_positions() -> list[PositionFeatures]:
    """31 positions over 18 games where every hanging piece costs 100cp plus noise.

    The noise sums to zero within each hanging-piece count, which gives r ~ -0.731.
    """
    noise_by_group: dict[int, int] = {}
    records = []
    for i in range(31):
        hanging = 1 + i % 3
        k = noise_by_group.get(hanging, 0)
        noise_by_group[hanging] = k + 1
        noise = 78 if k < 5 else -78 if k < 10 else 0
        records.append(
            make_features(
                game_id=f"g{i % 18:02d}",
                move_no=15 + i,
                hanging_pieces_user=hanging,
                eval_swing_cp=-100 * hanging + noise,
                game_date=f"2024-03-{1 + i % 18:02d}",
            ),
        )
    return records


@pytest.fixture(scope="session")
def sample_games() -> list[GameRecord]:
    return random_games(100)


@pytest.fixture
def hanging_positions() -> list[PositionFeatures]:
    return hanging_pieces_positions()


def make_pattern(pattern_id: str, **overrides) -> Pattern:
    """A retained weakness pattern; any field can be overridden."""
    values = {
        "id": pattern_id,
        "strategy": "correlation",
        "feature": "hanging_pieces_user",
        "label": "Hanging Pieces",
        "domain": "tactical",
        "frequency": 10,
        "sample_size": 20,
        "games": 5,
        "game_ids": ["g1"],
        "statistic": -0.5,
        "strength": 0.5,
        "p_value": 0.01,
        "effect_cp": -100.0,
        "mean_swing_cp": -120.0,
        "direction": "weakness",
    }
    values.update(overrides)
    return Pattern(**values)
