import functools
from enum import StrEnum
from typing import Any

import msgspec

CONFIG_FILE = "insight_configs.toml"

CONDITION_KEYS = ("game_phase", "time_control", "user_color")


class InvalidConfigError(ValueError):
    """Raised when an analysis configuration is out of range"""


class AnalysisConfig(msgspec.Struct, frozen=True, kw_only=True):
    """Contains the thresholds and scaling constants for an analysis run

    Attributes:
        min_frequency: Minimum number of positions a pattern must occur in
        min_impact_cp: Minimum effect size in centipawns
        min_correlation: Minimum |r| (or group strength) for a pattern
        max_patterns: Number of patterns kept after ranking
        max_p_value: Significance cap, patterns with a larger p-value are dropped
        opening_min_games: Distinct games an opening needs to be analyzed
        opening_full_strength_games: Games at which an opening group reaches strength 1.0
        max_insights: Optional cap on the number of insights returned
        max_examples: Example positions attached to each insight
        mate_swing_cap_cp: Swings at or above this size are mates/resignations and ignored
        priority_frequency_scale: Frequency normalization for the priority formula
        priority_impact_scale: Impact normalization for the priority formula
        rating_points_per_pawn: Rating points attributed to one pawn of lost evaluation
        confidence_sample_scale: Sample size at which the sample factor of confidence is 0.5
        condition_keys: Context fields used to partition positions for conditional patterns
    """

    min_frequency: int = 5
    min_impact_cp: float = 30.0
    min_correlation: float = 0.15
    max_patterns: int = 20
    max_p_value: float = 0.05

    opening_min_games: int = 3
    opening_full_strength_games: int = 10

    max_insights: int | None = None
    max_examples: int = 3

    mate_swing_cap_cp: int = 5000

    priority_frequency_scale: float = 10.0
    priority_impact_scale: float = 100.0
    rating_points_per_pawn: float = 0.3
    confidence_sample_scale: float = 30.0

    condition_keys: tuple[str, ...] = CONDITION_KEYS

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:  # noqa: C901
        """Raise `InvalidConfigError` if any option is out of range."""
        if self.min_frequency < 1:
            raise InvalidConfigError("min_frequency must be at least 1")
        if self.min_impact_cp < 0:
            raise InvalidConfigError("min_impact_cp must not be negative")
        if not 0 <= self.min_correlation <= 1:
            raise InvalidConfigError("min_correlation must be between 0 and 1")
        if self.max_patterns < 1:
            raise InvalidConfigError("max_patterns must be at least 1")
        if not 0 < self.max_p_value <= 1:
            raise InvalidConfigError("max_p_value must be in (0, 1]")
        if self.opening_min_games < 1:
            raise InvalidConfigError("opening_min_games must be at least 1")
        if self.opening_full_strength_games < 1:
            raise InvalidConfigError("opening_full_strength_games must be at least 1")
        if self.max_insights is not None and self.max_insights < 0:
            raise InvalidConfigError("max_insights must not be negative")
        if self.max_examples < 0:
            raise InvalidConfigError("max_examples must not be negative")
        if self.mate_swing_cap_cp <= 0:
            raise InvalidConfigError("mate_swing_cap_cp must be positive")
        for name in (
            "priority_frequency_scale",
            "priority_impact_scale",
            "rating_points_per_pawn",
            "confidence_sample_scale",
        ):
            if getattr(self, name) <= 0:
                raise InvalidConfigError(f"{name} must be positive")
        if unknown := set(self.condition_keys) - set(CONDITION_KEYS):
            raise InvalidConfigError(f"Unknown condition keys: {sorted(unknown)}")

    def with_overrides(self, **options: Any) -> "AnalysisConfig":
        """Return a copy with the given options replaced; `None` values are ignored."""
        changes = {k: v for k, v in options.items() if v is not None}
        if unknown := set(changes) - set(self.__struct_fields__):
            raise InvalidConfigError(f"Unknown configuration options: {sorted(unknown)}")
        try:
            return msgspec.convert(
                {**msgspec.structs.asdict(self), **changes},
                type=AnalysisConfig,
            )
        except msgspec.ValidationError as e:
            raise InvalidConfigError(f"Invalid configuration options: {e}") from e


class ConfigId(StrEnum):
    DEFAULT = "default"
    STRICT = "strict"
    EXPLORATORY = "exploratory"


class AnalysisConfigs(msgspec.Struct):
    """Container for all configurations"""

    configs: dict[str, AnalysisConfig]


@functools.cache
def load_configs(path: str = CONFIG_FILE) -> AnalysisConfigs:
    """Load all config presets from a TOML file"""
    with open(path, "rb") as f:
        try:
            return msgspec.toml.decode(f.read(), type=AnalysisConfigs)
        except msgspec.ValidationError as e:
            raise InvalidConfigError(f"Invalid configuration in {path}: {e}") from e


def load_config(
    config_id: str | ConfigId = ConfigId.DEFAULT,
    path: str = CONFIG_FILE,
) -> AnalysisConfig:
    """Load a specific config preset by its ID"""
    config_id = ConfigId(config_id)
    return load_configs(path).configs[config_id.value]
