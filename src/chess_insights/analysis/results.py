from typing import Literal

import msgspec

from chess_insights.analysis.conditions import Condition

Strategy = Literal["correlation", "conditional", "opening"]
Direction = Literal["weakness", "strength"]
InsightCategory = Literal["weakness", "strength", "opening", "phase"]

# Ranking tie-break order of the discovery strategies
STRATEGY_ORDER: dict[str, int] = {"correlation": 0, "conditional": 1, "opening": 2}


class OpeningSummary(msgspec.Struct, frozen=True, rename="camel"):
    eco: str
    name: str
    worst_phase: str
    worst_phase_swing_cp: float
    dominant_mistake: str | None  # feature key of the most frequent mistake flag
    typical_move_no: int | None


class Pattern(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    """A statistically validated relationship between a feature and the eval swing.

    `frequency` counts the positions where the feature is present (for openings: the
    positions of the opening), `sample_size` the positions the statistic was computed
    over. `statistic` is r for correlations and the mean swing for openings.
    """

    id: str
    strategy: Strategy
    feature: str
    label: str
    domain: str
    frequency: int
    sample_size: int
    games: int
    game_ids: list[str]
    statistic: float
    strength: float
    p_value: float
    effect_cp: float
    mean_swing_cp: float
    direction: Direction
    condition: Condition | None = None
    opening: OpeningSummary | None = None

    @property
    def score(self) -> float:
        return abs(self.effect_cp) * self.strength

    def sort_key(self) -> tuple:
        return (-self.score, -self.frequency, STRATEGY_ORDER[self.strategy], self.id)


class PatternSummary(msgspec.Struct, frozen=True, rename="camel"):
    id: str
    strategy: Strategy
    label: str
    direction: Direction
    frequency: int
    effect_cp: float
    strength: float
    p_value: float

    @classmethod
    def from_pattern(cls, pattern: Pattern) -> "PatternSummary":
        return cls(
            id=pattern.id,
            strategy=pattern.strategy,
            label=pattern.label,
            direction=pattern.direction,
            frequency=pattern.frequency,
            effect_cp=pattern.effect_cp,
            strength=pattern.strength,
            p_value=pattern.p_value,
        )


class ActionPlan(msgspec.Struct, frozen=True, rename="camel"):
    immediate: str
    next_games: list[str]
    study_plan: list[str]
    resources: list[str] = []


class ExampleGame(msgspec.Struct, frozen=True, rename="camel"):
    """A concrete position backing an insight"""

    game_id: str
    move_no: int
    fen: str
    description: str
    eval_swing_cp: int
    opponent: str | None = None
    url: str | None = None
    date: str | None = None


class Evidence(msgspec.Struct, frozen=True, rename="camel"):
    total_games: int
    total_positions: int
    example_games: list[ExampleGame]


class Insight(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    id: str
    category: InsightCategory
    title: str
    summary: str
    impact: str
    action_plan: ActionPlan
    evidence: Evidence
    estimated_rating_impact: int
    confidence: float
    priority: int
    pattern_ids: list[str]


class ScoreSummary(msgspec.Struct, frozen=True, rename="camel"):
    """Results of the games sharing an opening or a time control"""

    key: str
    name: str
    games: int
    wins: int
    draws: int
    losses: int
    score_rate: float


class PhaseSummary(msgspec.Struct, frozen=True, rename="camel"):
    phase: str
    positions: int
    mean_swing_cp: float


class AnalysisStatistics(msgspec.Struct, kw_only=True, rename="camel"):
    total_games: int = 0
    total_positions: int = 0
    skipped_positions: int = 0
    qualifying_positions: int = 0
    patterns_discovered: int = 0
    insights_generated: int = 0
    weakness_patterns: int = 0
    strength_patterns: int = 0
    score_rate: float = 0.0  # points per game, draws count half
    average_rating: float | None = None
    feature_time_ms: float = 0.0
    pattern_time_ms: float = 0.0
    insight_time_ms: float = 0.0
    analysis_time_ms: float = 0.0
    potential_rating_gain: int = 0


class AnalysisReport(msgspec.Struct, kw_only=True, rename="camel"):
    """Result of analyzing the games of one identity"""

    identity: str
    insights: list[Insight]
    patterns: list[PatternSummary]
    statistics: AnalysisStatistics
    openings: list[ScoreSummary] = []
    time_controls: list[ScoreSummary] = []
    phases: list[PhaseSummary] = []
