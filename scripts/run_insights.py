import argparse
import logging
from pathlib import Path

import msgspec

from chess_insights.analysis.analyzer import InsightAnalyzer
from chess_insights.analysis.config import CONFIG_FILE, ConfigId, load_config
from chess_insights.games.store import JsonGameStore

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate coaching insights for a player")
    parser.add_argument("identity", type=str, help="Player whose games are analyzed")
    parser.add_argument(
        "--data-root",
        type=Path,
        default=Path("data"),
        help="Directory with one folder of game summaries per player",
    )
    parser.add_argument(
        "--config",
        type=str,
        choices=[c.value for c in ConfigId],
        default=ConfigId.DEFAULT.value,
        help="Configuration preset to use",
    )
    parser.add_argument(
        "--config-file",
        type=str,
        default=CONFIG_FILE,
        help="TOML file with the configuration presets",
    )
    parser.add_argument("--min-frequency", type=int, default=None)
    parser.add_argument("--min-impact", type=float, default=None, help="Minimum impact in cp")
    parser.add_argument("--min-correlation", type=float, default=None)
    parser.add_argument("--max-patterns", type=int, default=None)
    parser.add_argument("--max-insights", type=int, default=None)
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Output file, defaults to <data-root>/<identity>/insights.json",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    cfg = load_config(args.config, args.config_file).with_overrides(
        min_frequency=args.min_frequency,
        min_impact_cp=args.min_impact,
        min_correlation=args.min_correlation,
        max_patterns=args.max_patterns,
        max_insights=args.max_insights,
    )

    analyzer = InsightAnalyzer(JsonGameStore(args.data_root), cfg, show_progress=True)
    report = analyzer.analyze(args.identity)

    output_file = args.output or args.data_root / args.identity / "insights.json"
    output_file.parent.mkdir(parents=True, exist_ok=True)
    with open(output_file, "wb") as f:
        f.write(msgspec.json.format(msgspec.json.encode(report)))

    stats = report.statistics
    logger.info(
        f"Score {stats.score_rate:.1%} over {stats.total_games} games, "
        f"{stats.weakness_patterns} weaknesses and {stats.strength_patterns} strengths, "
        f"potential gain {stats.potential_rating_gain} rating points",
    )
    for insight in report.insights:
        logger.info(f"[{insight.priority:>2}] {insight.title}")
    logger.info(f"Report saved to {output_file}")


if __name__ == "__main__":
    main()
