import logging
from collections.abc import Iterable

import numpy as np

from chess_insights.analysis.conditions import Condition, conditions_for
from chess_insights.analysis.config import AnalysisConfig
from chess_insights.analysis.features import (
    FEATURE_CATALOG,
    INACCURACY_CP,
    MISTAKE_FLAGS,
    FeatureSpec,
    PositionFeatures,
)
from chess_insights.analysis.results import Direction, OpeningSummary, Pattern
from chess_insights.analysis.stats import correlate_feature, mean_p_value
from chess_insights.utils import round_half_up

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


class FeatureColumns:
    """Columns of the qualifying positions, extracted once per discovery run"""

    def __init__(self, records: list[PositionFeatures]):
        self.records = records
        self.swing = np.array([r.eval_swing_cp for r in records], dtype=float)
        self.game_ids = np.array([r.game_id for r in records], dtype=object)
        self._values: dict[str, np.ndarray] = {}
        self._labels: dict[str, np.ndarray] = {}

    def __len__(self) -> int:
        return len(self.records)

    def values(self, key: str) -> np.ndarray:
        """Numeric column, booleans as 0/1."""
        if key not in self._values:
            self._values[key] = np.array(
                [getattr(r, key) for r in self.records],
                dtype=float,
            )
        return self._values[key]

    def labels(self, key: str) -> np.ndarray:
        """Categorical column."""
        if key not in self._labels:
            self._labels[key] = np.array(
                [getattr(r, key) for r in self.records],
                dtype=object,
            )
        return self._labels[key]


def is_qualifying(record: PositionFeatures, cfg: AnalysisConfig) -> bool:
    """User moves with a known evaluation, mates and resignations excluded."""
    return (
        record.move_side == "user"
        and record.eval_known
        and abs(record.eval_swing_cp) < cfg.mate_swing_cap_cp
    )


def qualifying_positions(
    features: Iterable[PositionFeatures],
    cfg: AnalysisConfig,
) -> list[PositionFeatures]:
    return [record for record in features if is_qualifying(record, cfg)]


def _passes_thresholds(
    cfg: AnalysisConfig,
    *,
    strength: float,
    effect_cp: float,
    frequency: int,
    p_value: float,
) -> bool:
    return (
        strength >= cfg.min_correlation
        and abs(effect_cp) >= cfg.min_impact_cp
        and frequency >= cfg.min_frequency
        and p_value <= cfg.max_p_value
    )


def _direction(value: float) -> Direction:
    return "weakness" if value < 0 else "strength"


def _feature_pattern(
    columns: FeatureColumns,
    spec: FeatureSpec,
    mask: np.ndarray,
    cfg: AnalysisConfig,
    condition: Condition | None = None,
) -> Pattern | None:
    x = columns.values(spec.key)[mask]
    y = columns.swing[mask]
    result = correlate_feature(x, y)
    if result is None:
        return None

    present = x != 0
    frequency = int(present.sum())
    if not _passes_thresholds(
        cfg,
        strength=abs(result.coefficient),
        effect_cp=result.effect_cp,
        frequency=frequency,
        p_value=result.p_value,
    ):
        return None

    game_ids = sorted(set(columns.game_ids[mask][present].tolist()))
    if condition is None:
        pattern_id = f"corr:{spec.key}"
        label = spec.label
    else:
        pattern_id = f"cond:{spec.key}:{condition.key}={condition.value}"
        label = f"{spec.label} {condition.label}"

    return Pattern(
        id=pattern_id,
        strategy="correlation" if condition is None else "conditional",
        feature=spec.key,
        label=label,
        domain=spec.domain,
        frequency=frequency,
        sample_size=result.sample_size,
        games=len(game_ids),
        game_ids=game_ids,
        statistic=result.coefficient,
        strength=abs(result.coefficient),
        p_value=result.p_value,
        effect_cp=result.effect_cp,
        mean_swing_cp=result.mean_swing_cp,
        direction=_direction(result.coefficient),
        condition=condition,
    )


def find_correlation_patterns(
    columns: FeatureColumns,
    cfg: AnalysisConfig,
) -> list[Pattern]:
    """Correlate every catalogue feature with the swing over all qualifying positions."""
    mask = np.ones(len(columns), dtype=bool)
    patterns = []
    for spec in FEATURE_CATALOG.values():
        pattern = _feature_pattern(columns, spec, mask, cfg)
        if pattern is not None:
            patterns.append(pattern)
    logger.debug(f"Found {len(patterns)} correlation patterns")
    return patterns


def find_conditional_patterns(
    columns: FeatureColumns,
    cfg: AnalysisConfig,
) -> list[Pattern]:
    """Repeat the correlation search inside each context partition."""
    patterns = []
    for condition in conditions_for(cfg.condition_keys):
        mask = columns.labels(condition.key) == condition.value
        if mask.sum() < 2 or mask.all():
            logger.debug(
                f"Skipping partition {condition.key}={condition.value} "
                f"with {int(mask.sum())}/{len(columns)} positions",
            )
            continue

        for spec in FEATURE_CATALOG.values():
            pattern = _feature_pattern(columns, spec, mask, cfg, condition)
            if pattern is not None:
                patterns.append(pattern)
    logger.debug(f"Found {len(patterns)} conditional patterns")
    return patterns


def _worst_phase(phases: np.ndarray, swings: np.ndarray) -> tuple[str, float]:
    by_phase = {
        phase: float(swings[phases == phase].mean()) for phase in sorted(set(phases.tolist()))
    }
    phase = min(by_phase, key=lambda p: (by_phase[p], p))
    return phase, by_phase[phase]


def _dominant_mistake(columns: FeatureColumns, mistakes: np.ndarray) -> str | None:
    """Most frequent mistake flag among the given positions, in `MISTAKE_FLAGS` order on ties."""
    if not mistakes.any():
        return None
    counts = [int((columns.values(flag)[mistakes] != 0).sum()) for flag in MISTAKE_FLAGS]
    best = max(range(len(MISTAKE_FLAGS)), key=lambda i: (counts[i], -i))
    return MISTAKE_FLAGS[best] if counts[best] > 0 else None


def _opening_pattern(
    columns: FeatureColumns,
    eco: str,
    mask: np.ndarray,
    cfg: AnalysisConfig,
) -> Pattern | None:
    game_ids = sorted(set(columns.game_ids[mask].tolist()))
    if len(game_ids) < cfg.opening_min_games:
        logger.debug(f"Skipping opening {eco} with {len(game_ids)} games")
        return None

    swings = columns.swing[mask]
    mean_swing = float(swings.mean())
    strength = min(1.0, len(game_ids) / cfg.opening_full_strength_games)
    p_value = mean_p_value(swings)
    frequency = int(mask.sum())
    if not _passes_thresholds(
        cfg,
        strength=strength,
        effect_cp=mean_swing,
        frequency=frequency,
        p_value=p_value,
    ):
        return None

    worst_phase, worst_phase_swing = _worst_phase(columns.labels("game_phase")[mask], swings)
    mistakes = mask & (columns.swing < INACCURACY_CP)
    typical_move_no = (
        round_half_up(float(np.median(columns.values("move_no")[mistakes])))
        if mistakes.any()
        else None
    )
    name = columns.labels("opening_name")[mask][0]

    return Pattern(
        id=f"opening:{eco}",
        strategy="opening",
        feature="opening_eco",
        label=f"{name} ({eco})" if name != eco else eco,
        domain="opening",
        frequency=frequency,
        sample_size=frequency,
        games=len(game_ids),
        game_ids=game_ids,
        statistic=mean_swing,
        strength=strength,
        p_value=p_value,
        effect_cp=mean_swing,
        mean_swing_cp=mean_swing,
        direction=_direction(mean_swing),
        opening=OpeningSummary(
            eco=eco,
            name=name,
            worst_phase=worst_phase,
            worst_phase_swing_cp=worst_phase_swing,
            dominant_mistake=_dominant_mistake(columns, mistakes),
            typical_move_no=typical_move_no,
        ),
    )


def find_opening_patterns(
    columns: FeatureColumns,
    cfg: AnalysisConfig,
) -> list[Pattern]:
    """Group positions by ECO code and test each group's mean swing against zero."""
    ecos = columns.labels("opening_eco")
    patterns = []
    for eco in sorted(set(ecos.tolist()) - {UNKNOWN}):
        pattern = _opening_pattern(columns, eco, ecos == eco, cfg)
        if pattern is not None:
            patterns.append(pattern)
    logger.debug(f"Found {len(patterns)} opening patterns")
    return patterns


def rank_patterns(patterns: Iterable[Pattern], max_patterns: int) -> list[Pattern]:
    """Order by |effect| x strength, then frequency, strategy and id, and truncate."""
    return sorted(patterns, key=Pattern.sort_key)[:max_patterns]


def discover_patterns(
    features: Iterable[PositionFeatures],
    cfg: AnalysisConfig,
) -> list[Pattern]:
    """Find the statistically significant patterns in the positions of one player.

    Args:
        features: Feature records of all positions
        cfg: Thresholds of the discovery

    Returns:
        The retained patterns, best first. Empty if nothing is significant.
    """
    columns = FeatureColumns(qualifying_positions(features, cfg))
    if len(columns) < 2:
        logger.info(f"Not enough qualifying positions ({len(columns)}) to discover patterns")
        return []

    candidates = [
        *find_correlation_patterns(columns, cfg),
        *find_conditional_patterns(columns, cfg),
        *find_opening_patterns(columns, cfg),
    ]
    patterns = rank_patterns(candidates, cfg.max_patterns)
    logger.info(
        f"Discovered {len(candidates)} candidate patterns in {len(columns)} positions, "
        f"kept {len(patterns)}",
    )
    return patterns
