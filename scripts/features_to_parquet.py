import argparse
import logging
from pathlib import Path

import msgspec
import polars as pl

from chess_insights.analysis.features import build_feature_table
from chess_insights.games.store import JsonGameStore

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Export the position features of a player to parquet",
    )
    parser.add_argument("identity", type=str, help="Player whose games are exported")
    parser.add_argument("--data-root", type=Path, default=Path("data"))
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Output file, defaults to <data-root>/<identity>/features.parquet",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    games = JsonGameStore(args.data_root).load_games(args.identity)
    table = build_feature_table(games, show_progress=True)
    if not table.records:
        logger.warning(f"No positions found for {args.identity}")
        return

    features_df = pl.DataFrame([msgspec.structs.asdict(r) for r in table.records])

    output_file = args.output or args.data_root / args.identity / "features.parquet"
    output_file.parent.mkdir(parents=True, exist_ok=True)
    features_df.write_parquet(output_file)
    logger.info(f"Wrote {features_df.height} positions to {output_file}")

    by_phase = (
        features_df.filter(pl.col("eval_known") & (pl.col("move_side") == "user"))
        .group_by("game_phase")
        .agg(
            pl.len().alias("positions"),
            pl.col("eval_swing_cp").mean().alias("mean_swing_cp"),
            pl.col("was_blunder").sum().alias("blunders"),
        )
        .sort("game_phase")
    )
    logger.info(f"Swing by game phase:\n{by_phase}")


if __name__ == "__main__":
    main()
