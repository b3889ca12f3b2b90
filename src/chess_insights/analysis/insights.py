import logging
from collections.abc import Iterable, Sequence
from typing import Final

from chess_insights.analysis.config import AnalysisConfig
from chess_insights.analysis.features import (
    FEATURE_CATALOG,
    PositionFeatures,
    build_feature_table,
    is_present,
)
from chess_insights.analysis.patterns import is_qualifying
from chess_insights.analysis.results import (
    ActionPlan,
    Evidence,
    ExampleGame,
    Insight,
    InsightCategory,
    Pattern,
)
from chess_insights.games.models import GameRecord
from chess_insights.utils import clamp, harmonic_mean, round_half_up

logger = logging.getLogger(__name__)

DOMAIN_TOPICS: Final = {
    "material": "material balance",
    "pawn_structure": "pawn structure",
    "king_safety": "king safety",
    "piece_activity": "piece activity",
    "positional": "positional play",
    "tactical": "tactics",
    "context": "practical play",
    "opening": "opening preparation",
}

DOMAIN_NOTES: Final = {
    "pawn_structure": "This is a pawn structure issue.",
    "king_safety": "This affects king safety.",
    "piece_activity": "This relates to piece activity.",
    "positional": "This is a positional factor.",
    "tactical": "This is a tactical issue.",
}

IMMEDIATE_ACTIONS: Final = {
    "hanging_pieces_user": (
        'Write "Before every move: are all my pieces defended?" on a note and keep it '
        "next to your board."
    ),
    "pieces_under_attack_user": (
        "Before each move, name every piece of yours that is attacked and how it is defended."
    ),
    "king_in_center_user": (
        "In your next game, castle within the first 10 moves unless there is a concrete "
        "tactical reason not to."
    ),
    "king_zone_attacks_user": (
        "When enemy pieces aim at your king, spend one extra minute on defence before "
        "starting your own plans."
    ),
    "doubled_pawns_user": (
        'Before capturing with a pawn, ask: "Does this double my pawns, and is it worth it?"'
    ),
    "isolated_pawns_user": (
        "Study one annotated game with an isolated pawn tonight to see when it is weak "
        "and when it is strong."
    ),
    "development_score_user": (
        "In your next 3 games, develop every minor piece before moving any piece twice."
    ),
    "pawn_islands_user": "Review the basics of pawn structure before your next game.",
}

RECOMMENDATIONS: Final = {
    "doubled_pawns_user": (
        "Study pawn structure fundamentals and avoid pawn trades that double your pawns"
    ),
    "isolated_pawns_user": "Learn how to avoid creating isolated pawns, especially in the opening",
    "backward_pawns_user": "Practice spotting backward pawns before they become targets",
    "king_in_center_user": "Prioritize king safety: castle early and keep your king covered",
    "hanging_pieces_user": (
        'Before each move, ask: "Are all my pieces defended?" This habit alone removes '
        "most cheap losses"
    ),
    "pieces_under_attack_user": "Check which of your pieces are under attack before moving",
    "piece_mobility_user": "Aim for active pieces that control many squares",
    "center_control_user": "Study center control and fight for e4, d4, e5 and d5",
    "development_score_user": "Develop all pieces quickly in the opening before attacking",
}


def calculate_priority(
    frequency: int,
    effect_cp: float,
    *,
    frequency_scale: float = 10.0,
    impact_scale: float = 100.0,
) -> int:
    """Priority in [1, 10], growing with how often a pattern occurs and how much it costs."""
    raw = (frequency / frequency_scale) * (abs(effect_cp) / impact_scale)
    return int(clamp(round_half_up(raw), 1, 10))


def estimate_rating_impact(
    effect_cp: float,
    frequency: int,
    *,
    rating_points_per_pawn: float = 0.3,
) -> int:
    """Rough rating points at stake, monotonic in effect size and frequency."""
    return round(abs(effect_cp) * frequency / 100 * rating_points_per_pawn)


def calculate_confidence(
    sample_size: int,
    strength: float,
    *,
    sample_scale: float = 30.0,
) -> float:
    """Confidence in [0, 1] from sample size and statistical strength.

    The sample factor n / (n + scale) is 0.5 at `scale` positions and approaches 1
    for large samples; it is combined with the strength by harmonic mean so that a
    weak value in either one keeps the confidence low.
    """
    sample_factor = sample_size / (sample_size + sample_scale) if sample_size > 0 else 0.0
    return float(clamp(harmonic_mean(sample_factor, clamp(strength, 0.0, 1.0)), 0.0, 1.0))


def insight_category(pattern: Pattern) -> InsightCategory:
    if pattern.strategy == "opening":
        return "opening"
    if (
        pattern.condition is not None
        and pattern.condition.key == "game_phase"
        and pattern.direction == "weakness"
    ):
        return "phase"
    return pattern.direction


#
# Evidence
#


def _matches(pattern: Pattern, record: PositionFeatures) -> bool:
    if pattern.opening is not None:
        return record.opening_eco == pattern.opening.eco
    if not is_present(getattr(record, pattern.feature)):
        return False
    return pattern.condition is None or pattern.condition.matches(record)


def select_evidence(
    pattern: Pattern,
    features: Iterable[PositionFeatures],
    cfg: AnalysisConfig,
) -> list[PositionFeatures]:
    """Pick the example positions of a pattern.

    Most severe positions first for weaknesses, best first for strengths; ties go to
    the newest game, then game id and move number.
    """
    matching = [
        record
        for record in features
        if record.fen and is_qualifying(record, cfg) and _matches(pattern, record)
    ]
    # stable sorts, least significant key first
    matching.sort(key=lambda r: (r.game_id, r.move_no))
    matching.sort(key=lambda r: r.game_date, reverse=True)
    sign = 1 if pattern.direction == "weakness" else -1
    matching.sort(key=lambda r: sign * r.eval_swing_cp)
    return matching[: cfg.max_examples]


def _describe_example(pattern: Pattern, record: PositionFeatures) -> str:
    swing = record.eval_swing_cp
    if pattern.opening is not None:
        return f"{pattern.opening.name}: critical moment at move {record.move_no} ({swing:+d}cp)"
    verb = "Lost" if swing < 0 else "Gained"
    return f"Move {record.move_no}: {verb} {abs(swing)}cp with {_feature_label(pattern).lower()}"


def _example_game(
    pattern: Pattern,
    record: PositionFeatures,
    games_by_id: dict[str, GameRecord],
) -> ExampleGame:
    game = games_by_id.get(record.game_id)
    return ExampleGame(
        game_id=record.game_id,
        move_no=record.move_no,
        fen=record.fen,
        description=_describe_example(pattern, record),
        eval_swing_cp=record.eval_swing_cp,
        opponent=game.opponent if game else None,
        url=game.url if game else None,
        date=record.game_date or None,
    )


#
# Templates
#


def _feature_label(pattern: Pattern) -> str:
    spec = FEATURE_CATALOG.get(pattern.feature)
    return spec.label if spec else pattern.label


def _correlation_text(pattern: Pattern) -> str:
    r = pattern.statistic
    size = "a strong" if abs(r) > 0.5 else "a moderate"
    outcome = "worse" if pattern.direction == "weakness" else "better"
    return f"shows {size} correlation with {outcome} positions (r = {r:.2f})"


def _weakness_texts(pattern: Pattern, rating: int) -> tuple[str, str, str, ActionPlan]:
    name = _feature_label(pattern).lower()
    topic = DOMAIN_TOPICS.get(pattern.domain, "chess fundamentals")
    sentences = [
        f"{pattern.label} appears in {pattern.frequency} positions across {pattern.games} "
        f"games and {_correlation_text(pattern)}.",
        DOMAIN_NOTES.get(pattern.domain),
        f"Your moves in these positions average {pattern.mean_swing_cp:+.0f}cp.",
    ]
    summary = " ".join(s for s in sentences if s)
    plan = ActionPlan(
        immediate=IMMEDIATE_ACTIONS.get(
            pattern.feature,
            f"Pick one concrete habit against {name} and use it in your next game.",
        ),
        next_games=[
            f"Before each move, check specifically for {name}",
            f"When you notice {name}, take extra time to look for an alternative",
            f"After each game, review the positions with {name}",
        ],
        study_plan=[
            RECOMMENDATIONS.get(pattern.feature, f"Study {topic} to improve your {name}"),
            f"Analyze master games and how they handle {name}",
            f"Solve puzzles on {topic}",
        ],
        resources=[
            f'Search: "chess {name} explained"',
            f"Lessons on {topic}",
        ],
    )
    return (
        f"Weakness: {pattern.label}",
        summary,
        f"This costs you approximately {rating} rating points",
        plan,
    )


def _phase_texts(pattern: Pattern, rating: int) -> tuple[str, str, str, ActionPlan]:
    title, summary, impact, plan = _weakness_texts(pattern, rating)
    phase = pattern.condition.value
    plan = ActionPlan(
        immediate=f"Review your last three {phase} positions with {_feature_label(pattern).lower()}",
        next_games=[
            f"Slow down and calculate more carefully in the {phase}",
            *plan.next_games[:2],
        ],
        study_plan=[
            f"Study {phase} fundamentals",
            f"Solve puzzles taken from {phase} positions",
            *plan.study_plan[:1],
        ],
        resources=[f'Search: "chess {phase} strategy"', *plan.resources[:1]],
    )
    return f"Game Phase: {pattern.label}", summary, impact, plan


def _strength_texts(pattern: Pattern, rating: int) -> tuple[str, str, str, ActionPlan]:
    name = _feature_label(pattern).lower()
    summary = (
        f"{pattern.label} appears in {pattern.frequency} positions across {pattern.games} "
        f"games and {_correlation_text(pattern)}. "
        f"Your moves in these positions average {pattern.mean_swing_cp:+.0f}cp."
    )
    plan = ActionPlan(
        immediate=f"Look for positions with {name} in today's games",
        next_games=[
            f"Actively steer towards {name}",
            f"Trust your judgement when {name} is involved",
            "Replay your successful games to see why this works for you",
        ],
        study_plan=[
            f"Continue leveraging {name}, it is working well for you",
            f"Learn advanced techniques related to {name}",
            "Study how masters convert this kind of advantage",
        ],
        resources=[
            f'Search: "chess {name} technique"',
            f"Annotated master games featuring {name}",
        ],
    )
    return (
        f"Strength: {pattern.label}",
        summary,
        f"This is worth about {rating} rating points to you",
        plan,
    )


def _opening_texts(pattern: Pattern, rating: int) -> tuple[str, str, str, ActionPlan]:
    opening = pattern.opening
    name = opening.name
    summary = (
        f"In {name} ({opening.eco}) your moves average {pattern.mean_swing_cp:+.0f}cp over "
        f"{pattern.frequency} positions in {pattern.games} games. The {opening.worst_phase} "
        f"is your weakest phase there ({opening.worst_phase_swing_cp:+.0f}cp)"
    )
    if opening.dominant_mistake is not None:
        mistake = FEATURE_CATALOG[opening.dominant_mistake].label.lower()
        summary += f", most often with {mistake}"
        if opening.typical_move_no is not None:
            summary += f" around move {opening.typical_move_no}"
    summary += "."

    if pattern.direction == "strength":
        title = f"Opening Strength: {name}"
        impact = f"This opening is worth about {rating} rating points to you"
        immediate = f"Keep {name} in your repertoire and play it in your next games"
    else:
        title = f"Opening Focus: Improve Your {name}"
        impact = f"Improving this opening could gain you about {rating} rating points"
        immediate = f"Study 3 master games in {name} today"

    plan = ActionPlan(
        immediate=immediate,
        next_games=[
            f"Play {name} deliberately in your next 5 games",
            f"Focus on the typical {opening.worst_phase} plans of this opening",
            "Review your games in this opening after each one",
        ],
        study_plan=[
            f"Study typical plans in {name}, especially {opening.worst_phase} positions",
            f"Learn the key pawn breaks and piece maneuvers in {name}",
        ],
        resources=[f'Search: "{name} repertoire"', f"Opening explorer for {opening.eco}"],
    )
    return title, summary, impact, plan


TEMPLATES: Final = {
    "weakness": _weakness_texts,
    "phase": _phase_texts,
    "strength": _strength_texts,
    "opening": _opening_texts,
}


def build_insight(
    pattern: Pattern,
    features: Sequence[PositionFeatures],
    games_by_id: dict[str, GameRecord],
    cfg: AnalysisConfig,
) -> Insight:
    """Turn one pattern into an insight with evidence."""
    category = insight_category(pattern)
    rating = estimate_rating_impact(
        pattern.effect_cp,
        pattern.frequency,
        rating_points_per_pawn=cfg.rating_points_per_pawn,
    )
    title, summary, impact, plan = TEMPLATES[category](pattern, rating)
    examples = [
        _example_game(pattern, record, games_by_id)
        for record in select_evidence(pattern, features, cfg)
    ]

    return Insight(
        id=f"insight:{pattern.id}",
        category=category,
        title=title,
        summary=summary,
        impact=impact,
        action_plan=plan,
        evidence=Evidence(
            total_games=pattern.games,
            total_positions=pattern.frequency,
            example_games=examples,
        ),
        estimated_rating_impact=rating,
        confidence=calculate_confidence(
            pattern.sample_size,
            pattern.strength,
            sample_scale=cfg.confidence_sample_scale,
        ),
        priority=calculate_priority(
            pattern.frequency,
            pattern.effect_cp,
            frequency_scale=cfg.priority_frequency_scale,
            impact_scale=cfg.priority_impact_scale,
        ),
        pattern_ids=[pattern.id],
    )


def _newest_evidence(insight: Insight) -> str:
    return max((e.date or "" for e in insight.evidence.example_games), default="")


def sort_insights(insights: Iterable[Insight]) -> list[Insight]:
    """Priority, then confidence, then the newest evidence, then id."""
    ordered = sorted(insights, key=lambda i: i.id)
    ordered.sort(key=_newest_evidence, reverse=True)
    ordered.sort(key=lambda i: (-i.priority, -i.confidence))
    return ordered


def potential_rating_gain(insights: Iterable[Insight], patterns: Iterable[Pattern]) -> int:
    """Sum of the rating impacts of the insights about weaknesses."""
    weaknesses = {p.id for p in patterns if p.direction == "weakness"}
    return sum(
        insight.estimated_rating_impact
        for insight in insights
        if any(pattern_id in weaknesses for pattern_id in insight.pattern_ids)
    )


def generate_insights(
    patterns: Iterable[Pattern],
    games: Iterable[GameRecord],
    cfg: AnalysisConfig,
    *,
    features: Sequence[PositionFeatures] | None = None,
) -> list[Insight]:
    """Generate prioritized, evidence-backed insights from discovered patterns.

    Args:
        patterns: Patterns from `discover_patterns`
        games: The games the patterns were discovered in
        cfg: Analysis configuration
        features: Feature records of `games`, rebuilt when omitted

    Returns:
        Insights sorted by priority, at most `cfg.max_insights` if set
    """
    games = list(games)
    if features is None:
        features = build_feature_table(games).records
    games_by_id = {game.game_id: game for game in games}

    insights = sort_insights(
        build_insight(pattern, features, games_by_id, cfg) for pattern in patterns
    )
    if cfg.max_insights is not None:
        insights = insights[: cfg.max_insights]

    logger.info(f"Generated {len(insights)} insights")
    return insights
