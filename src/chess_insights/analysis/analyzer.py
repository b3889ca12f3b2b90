import logging
import time
from dataclasses import dataclass, field

from chess_insights.analysis.config import AnalysisConfig
from chess_insights.analysis.features import build_feature_table
from chess_insights.analysis.insights import generate_insights, potential_rating_gain
from chess_insights.analysis.patterns import discover_patterns, qualifying_positions
from chess_insights.analysis.results import (
    AnalysisReport,
    AnalysisStatistics,
    PatternSummary,
)
from chess_insights.analysis.summary import (
    average_rating,
    score_rate,
    summarize_openings,
    summarize_phases,
    summarize_time_controls,
)
from chess_insights.games.store import GameStore

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


@dataclass
class InsightAnalyzer:
    """Runs features -> patterns -> insights for the games of one identity"""

    store: GameStore
    cfg: AnalysisConfig = field(default_factory=AnalysisConfig)
    show_progress: bool = False

    def analyze(self, identity: str, cfg: AnalysisConfig | None = None) -> AnalysisReport:
        """Analyze all stored games of `identity`.

        Args:
            identity: Player whose games are analyzed
            cfg: Configuration for this run, defaults to the analyzer's configuration

        Returns:
            Report with insights, pattern summaries, score summaries and run statistics

        Raises:
            ValueError: If the identity is empty
            InvalidConfigError: If the configuration is out of range
        """
        if not identity or not identity.strip():
            raise ValueError("identity must not be empty")
        if cfg is None:
            cfg = self.cfg
        cfg.validate()

        start = time.perf_counter()
        games = self.store.load_games(identity)

        stage_start = time.perf_counter()
        table = build_feature_table(games, show_progress=self.show_progress)
        feature_time_ms = _elapsed_ms(stage_start)

        stage_start = time.perf_counter()
        patterns = discover_patterns(table.records, cfg)
        pattern_time_ms = _elapsed_ms(stage_start)

        stage_start = time.perf_counter()
        insights = generate_insights(patterns, games, cfg, features=table.records)
        insight_time_ms = _elapsed_ms(stage_start)

        openings = summarize_openings(games)
        time_controls = summarize_time_controls(games)
        phases = summarize_phases(table.records, cfg)

        statistics = AnalysisStatistics(
            total_games=table.total_games,
            total_positions=len(table.records),
            skipped_positions=table.skipped_positions,
            qualifying_positions=len(qualifying_positions(table.records, cfg)),
            patterns_discovered=len(patterns),
            insights_generated=len(insights),
            weakness_patterns=sum(1 for p in patterns if p.direction == "weakness"),
            strength_patterns=sum(1 for p in patterns if p.direction == "strength"),
            score_rate=score_rate(g.result for g in games),
            average_rating=average_rating(games),
            feature_time_ms=feature_time_ms,
            pattern_time_ms=pattern_time_ms,
            insight_time_ms=insight_time_ms,
            analysis_time_ms=_elapsed_ms(start),
            potential_rating_gain=potential_rating_gain(insights, patterns),
        )
        logger.info(
            f"Analyzed {identity=}: {statistics.total_games} games, "
            f"{statistics.patterns_discovered} patterns, {statistics.insights_generated} "
            f"insights in {statistics.analysis_time_ms:.0f}ms",
        )

        return AnalysisReport(
            identity=identity,
            insights=insights,
            patterns=[PatternSummary.from_pattern(p) for p in patterns],
            statistics=statistics,
            openings=openings,
            time_controls=time_controls,
            phases=phases,
        )
