import logging
from collections.abc import Callable, Iterable
from typing import Final

import numpy as np

from chess_insights.analysis.config import AnalysisConfig
from chess_insights.analysis.features import DEFAULT_RATING, PositionFeatures, normalize_result
from chess_insights.analysis.patterns import UNKNOWN, qualifying_positions
from chess_insights.analysis.results import PhaseSummary, ScoreSummary
from chess_insights.games.models import GameRecord

logger = logging.getLogger(__name__)

RESULT_POINTS: Final = {"win": 1.0, "draw": 0.5}


def score_rate(results: Iterable[str]) -> float:
    """Points per game where a win scores 1 and a draw 0.5, zero without games."""
    outcomes = [normalize_result(result) for result in results]
    if not outcomes:
        return 0.0
    return sum(RESULT_POINTS.get(outcome, 0.0) for outcome in outcomes) / len(outcomes)


def average_rating(games: Iterable[GameRecord]) -> float | None:
    """Mean user rating, unrated games count as the default rating."""
    ratings = [g.user_rating if g.user_rating is not None else DEFAULT_RATING for g in games]
    if not ratings:
        return None
    return float(np.mean(ratings))


def _score_summary(key: str, name: str, results: list[str]) -> ScoreSummary:
    outcomes = [normalize_result(result) for result in results]
    return ScoreSummary(
        key=key,
        name=name,
        games=len(outcomes),
        wins=outcomes.count("win"),
        draws=outcomes.count("draw"),
        losses=outcomes.count("loss"),
        score_rate=score_rate(outcomes),
    )


def summarize_scores(
    games: Iterable[GameRecord],
    group: Callable[[GameRecord], tuple[str, str]],
) -> list[ScoreSummary]:
    """Score the games per group, most played group first.

    Args:
        games: Games to summarize
        group: Returns the group key and its display name for a game. The name of the
            first game by id is used when games of one group disagree.
    """
    groups: dict[str, tuple[str, list[str]]] = {}
    for game in sorted(games, key=lambda g: g.game_id):
        key, name = group(game)
        groups.setdefault(key, (name, []))[1].append(game.result)

    summaries = [_score_summary(key, name, results) for key, (name, results) in groups.items()]
    return sorted(summaries, key=lambda s: (-s.games, s.key))


def _opening_group(game: GameRecord) -> tuple[str, str]:
    eco = game.opening.eco or UNKNOWN
    return eco, game.opening.name or eco


def _time_control_group(game: GameRecord) -> tuple[str, str]:
    return game.time_control.type, game.time_control.type


def summarize_openings(games: Iterable[GameRecord]) -> list[ScoreSummary]:
    return summarize_scores(games, _opening_group)


def summarize_time_controls(games: Iterable[GameRecord]) -> list[ScoreSummary]:
    return summarize_scores(games, _time_control_group)


def summarize_phases(
    features: Iterable[PositionFeatures],
    cfg: AnalysisConfig,
) -> list[PhaseSummary]:
    """Mean swing per game phase over the qualifying positions, weakest phase first."""
    swings: dict[str, list[int]] = {}
    for record in qualifying_positions(features, cfg):
        if record.game_phase != UNKNOWN:
            swings.setdefault(record.game_phase, []).append(record.eval_swing_cp)

    summaries = [
        PhaseSummary(phase=phase, positions=len(values), mean_swing_cp=float(np.mean(values)))
        for phase, values in swings.items()
    ]
    summaries.sort(key=lambda s: (s.mean_swing_cp, s.phase))
    if len(summaries) > 1:
        logger.debug(
            f"Weakest phase {summaries[0].phase} ({summaries[0].mean_swing_cp:+.0f}cp), "
            f"strongest {summaries[-1].phase} ({summaries[-1].mean_swing_cp:+.0f}cp)",
        )
    return summaries
