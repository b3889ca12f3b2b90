from pathlib import Path

import pytest

from chess_insights.analysis.config import (
    AnalysisConfig,
    ConfigId,
    InvalidConfigError,
    load_config,
    load_configs,
)

CONFIG_FILE = str(Path(__file__).resolve().parent.parent / "insight_configs.toml")


def test_defaults():
    cfg = AnalysisConfig()
    assert cfg.min_frequency == 5
    assert cfg.min_impact_cp == 30.0
    assert cfg.max_patterns == 20
    assert cfg.min_correlation == 0.15
    assert cfg.max_insights is None
    assert cfg.condition_keys == ("game_phase", "time_control", "user_color")


@pytest.mark.parametrize("config_id", list(ConfigId))
def test_presets_load(config_id):
    cfg = load_config(config_id, CONFIG_FILE)
    assert isinstance(cfg, AnalysisConfig)


def test_default_preset_matches_defaults():
    assert load_config(ConfigId.DEFAULT, CONFIG_FILE) == AnalysisConfig()


def test_strict_preset_is_stricter():
    default = load_config("default", CONFIG_FILE)
    strict = load_config("strict", CONFIG_FILE)
    assert strict.min_frequency > default.min_frequency
    assert strict.max_p_value < default.max_p_value
    assert strict.max_insights == 5


def test_unknown_preset():
    with pytest.raises(ValueError):
        load_config("lenient", CONFIG_FILE)


@pytest.mark.parametrize(
    "options",
    [
        {"min_frequency": 0},
        {"min_impact_cp": -1.0},
        {"min_correlation": 1.5},
        {"min_correlation": -0.1},
        {"max_patterns": 0},
        {"max_p_value": 0.0},
        {"max_insights": -1},
        {"priority_impact_scale": 0.0},
        {"condition_keys": ["weather"]},
    ],
)
def test_invalid_values_are_rejected(options):
    with pytest.raises(InvalidConfigError):
        AnalysisConfig(**options)


def test_with_overrides():
    cfg = AnalysisConfig().with_overrides(min_frequency=8, max_patterns=None)
    assert cfg.min_frequency == 8
    assert cfg.max_patterns == 20

    with pytest.raises(InvalidConfigError):
        AnalysisConfig().with_overrides(min_frequncy=8)
    with pytest.raises(InvalidConfigError):
        AnalysisConfig().with_overrides(min_correlation=3.0)


@pytest.mark.parametrize(
    "options",
    [
        {"min_frequency": "5"},
        {"min_impact_cp": "30"},
        {"max_insights": 2.5},
        {"condition_keys": "game_phase"},
    ],
)
def test_with_overrides_rejects_wrong_types(options):
    with pytest.raises(InvalidConfigError):
        AnalysisConfig().with_overrides(**options)


def test_with_overrides_accepts_lists_for_condition_keys():
    cfg = AnalysisConfig().with_overrides(condition_keys=["game_phase"])
    assert cfg.condition_keys == ("game_phase",)


def test_config_is_immutable():
    cfg = AnalysisConfig()
    with pytest.raises(AttributeError):
        cfg.min_frequency = -5


def test_invalid_toml_values_are_rejected(tmp_path):
    config_file = tmp_path / "configs.toml"
    config_file.write_text("[configs.default]\nmin_correlation = 2.0\n")
    with pytest.raises(InvalidConfigError):
        load_configs(str(config_file))
