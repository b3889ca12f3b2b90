from math import isclose

import pytest
from conftest import make_features

from chess_insights.analysis.config import AnalysisConfig
from chess_insights.analysis.summary import (
    average_rating,
    score_rate,
    summarize_openings,
    summarize_phases,
    summarize_time_controls,
)
from chess_insights.games.models import GameRecord, Opening, TimeControl


def _game(game_id: str, result: str, **kwargs) -> GameRecord:
    return GameRecord(game_id=game_id, date="2024-01-01", user_color="white", result=result,
                      **kwargs)


@pytest.mark.parametrize(
    "results, expected",
    [
        ([], 0.0),
        (["win"], 1.0),
        (["win", "loss"], 0.5),
        (["win", "draw", "loss", "loss"], 0.375),
        (["stalemate", "resign"], 0.25),
    ],
)
def test_score_rate(results, expected):
    assert isclose(score_rate(results), expected)


def test_average_rating():
    games = [
        _game("a", "win", user_rating=1500),
        _game("b", "loss", user_rating=1700),
        _game("c", "draw"),  # unrated counts as 1200
    ]
    assert isclose(average_rating(games), 1400.0)
    assert average_rating([]) is None


def test_opening_scores():
    italian = Opening("C50", "Italian Game")
    games = [
        _game("1", "win", opening=italian),
        _game("2", "draw", opening=italian),
        _game("3", "loss", opening=italian),
        _game("4", "loss", opening=Opening("B20", "Sicilian Defense")),
        _game("5", "win", opening=Opening("B20", None)),
        _game("6", "win"),
    ]
    summaries = summarize_openings(games)
    assert [(s.key, s.games) for s in summaries] == [("C50", 3), ("B20", 2), ("unknown", 1)]

    italian_score, sicilian, unknown = summaries
    assert italian_score.name == "Italian Game"
    assert (italian_score.wins, italian_score.draws, italian_score.losses) == (1, 1, 1)
    assert isclose(italian_score.score_rate, 0.5)
    assert sicilian.name == "Sicilian Defense"
    assert isclose(sicilian.score_rate, 0.5)
    assert unknown.name == "unknown"
    assert isclose(unknown.score_rate, 1.0)


def test_time_control_scores():
    games = [
        _game("1", "win", time_control=TimeControl("blitz", 180, 2)),
        _game("2", "loss", time_control=TimeControl("blitz", 300, 0)),
        _game("3", "win", time_control=TimeControl("rapid", 600, 0)),
    ]
    summaries = summarize_time_controls(games)
    assert [(s.key, s.games, s.score_rate) for s in summaries] == [
        ("blitz", 2, 0.5),
        ("rapid", 1, 1.0),
    ]


def test_phase_summary_orders_weakest_first():
    features = [
        make_features(game_phase="opening", eval_swing_cp=-10),
        make_features(game_phase="opening", eval_swing_cp=-30),
        make_features(game_phase="endgame", eval_swing_cp=-120),
        make_features(game_phase="middlegame", eval_swing_cp=-50),
        make_features(game_phase="unknown", eval_swing_cp=-900),
        make_features(game_phase="middlegame", eval_swing_cp=-900, move_side="opponent"),
    ]
    summaries = summarize_phases(features, AnalysisConfig())
    assert [(s.phase, s.positions, s.mean_swing_cp) for s in summaries] == [
        ("endgame", 1, -120.0),
        ("middlegame", 1, -50.0),
        ("opening", 2, -20.0),
    ]
