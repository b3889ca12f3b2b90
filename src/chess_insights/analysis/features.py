import dataclasses
import logging
from collections.abc import Iterable
from typing import Final, Literal

import chess
import msgspec
from tqdm import tqdm

from chess_insights.games.models import GameRecord, KeyPosition

logger = logging.getLogger(__name__)

FeatureKind = Literal["numeric", "boolean", "categorical"]
GamePhase = Literal["opening", "middlegame", "endgame", "unknown"]
MoveSide = Literal["user", "opponent"]

DEFAULT_RATING: Final = 1200
BLUNDER_CP: Final = -200
MISTAKE_CP: Final = -100
INACCURACY_CP: Final = -50
ACCURACY_SWING_CP: Final = 300
OPENING_MOVES: Final = 10
ENDGAME_MATERIAL: Final = 20  # pawn units, both sides, kings excluded

PIECE_VALUES: Final[dict[chess.PieceType, int]] = {
    chess.PAWN: 100,
    chess.KNIGHT: 320,
    chess.BISHOP: 330,
    chess.ROOK: 500,
    chess.QUEEN: 900,
    chess.KING: 0,
}
CENTER: Final = (chess.D4, chess.E4, chess.D5, chess.E5)

# Per-side descriptor names whose feature field is not simply `<name>_<side>`
SIDE_FEATURE_NAMES: Final = {
    "doubled": "doubled_pawns",
    "isolated": "isolated_pawns",
    "backward": "backward_pawns",
    "passed": "passed_pawns",
    "islands": "pawn_islands",
}


class PositionFeatures(msgspec.Struct, frozen=True, kw_only=True):
    """Feature vector for one analyzed position.

    `_user` / `_opp` fields describe the player's and the opponent's pieces, independent
    of who is to move. Every field has a neutral default so a record is always complete.
    """

    # identity
    game_id: str
    move_no: int
    fen: str = ""
    move_side: MoveSide = "user"

    # material
    material_balance: int = 0  # centipawns, positive = user ahead
    material_user: int = 0
    material_opp: int = 0
    material_total: float = 0.0  # pawn units
    has_queens: bool = False
    piece_count_pawns_user: int = 0
    piece_count_pawns_opp: int = 0
    piece_count_knights_user: int = 0
    piece_count_knights_opp: int = 0
    piece_count_bishops_user: int = 0
    piece_count_bishops_opp: int = 0
    piece_count_rooks_user: int = 0
    piece_count_rooks_opp: int = 0
    piece_count_queens_user: int = 0
    piece_count_queens_opp: int = 0

    # pawn structure
    doubled_pawns_user: int = 0
    doubled_pawns_opp: int = 0
    isolated_pawns_user: int = 0
    isolated_pawns_opp: int = 0
    backward_pawns_user: int = 0
    backward_pawns_opp: int = 0
    passed_pawns_user: int = 0
    passed_pawns_opp: int = 0
    pawn_islands_user: int = 0
    pawn_islands_opp: int = 0

    # king safety
    king_pawn_shield_user: int = 0
    king_pawn_shield_opp: int = 0
    king_open_files_user: int = 0
    king_open_files_opp: int = 0
    king_castled_user: bool = False
    king_castled_opp: bool = False
    king_in_center_user: bool = False
    king_in_center_opp: bool = False
    can_castle_user: bool = False
    can_castle_opp: bool = False
    king_zone_attacks_user: int = 0  # king zone squares attacked by the opponent
    king_zone_attacks_opp: int = 0

    # piece activity
    knight_on_outpost_user: bool = False
    knight_on_outpost_opp: bool = False
    bishop_pair_user: bool = False
    bishop_pair_opp: bool = False
    rook_on_open_file_user: int = 0
    rook_on_open_file_opp: int = 0
    rook_on_seventh_user: bool = False
    rook_on_seventh_opp: bool = False
    piece_mobility_user: int = 0
    piece_mobility_opp: int = 0
    mobility_diff: int = 0

    # positional
    center_control_user: int = 0
    center_control_opp: int = 0
    center_pawn_count_user: int = 0
    center_pawn_count_opp: int = 0
    development_score_user: int = 0
    development_score_opp: int = 0
    space_user: int = 0
    space_opp: int = 0
    space_advantage: int = 0

    # tactical
    hanging_pieces_user: int = 0
    hanging_pieces_opp: int = 0
    pieces_under_attack_user: int = 0
    pieces_under_attack_opp: int = 0
    checks_available_user: int = 0
    checks_available_opp: int = 0
    pinned_pieces_user: int = 0
    pinned_pieces_opp: int = 0
    in_check: bool = False
    can_capture_queen: bool = False
    captures_available: int = 0

    # move quality
    eval_before_cp: int = 0
    eval_after_cp: int = 0
    eval_swing_cp: int = 0  # mover's perspective, negative = the move lost evaluation
    eval_known: bool = False
    move_accuracy: float = 0.0
    was_best_move: bool = False
    was_blunder: bool = False
    was_mistake: bool = False
    was_inaccuracy: bool = False

    # context
    time_control: str = "unknown"
    game_phase: GamePhase = "unknown"
    user_color: str = "unknown"
    user_rating: int = DEFAULT_RATING
    opponent_rating: int = DEFAULT_RATING
    rating_diff: int = 0
    opening_eco: str = "unknown"
    opening_name: str = "unknown"
    game_result: str = "other"
    game_date: str = ""


class FeatureSpec(msgspec.Struct, frozen=True):
    """An analyzable feature with its display label and domain"""

    key: str
    label: str
    domain: str


def _spec_pairs(domain: str, items: Iterable[tuple[str, str]]) -> list[FeatureSpec]:
    """Create user and opponent specs for `<base>_user` / `<base>_opp` features."""
    specs = []
    for base, label in items:
        specs.append(FeatureSpec(f"{base}_user", label, domain))
        specs.append(FeatureSpec(f"{base}_opp", f"Opponent {label}", domain))
    return specs


# fmt: off
FEATURE_CATALOG: Final[dict[str, FeatureSpec]] = {
    spec.key: spec
    for spec in [
        FeatureSpec("material_balance", "Material Balance", "material"),
        FeatureSpec("material_total", "Total Material", "material"),
        FeatureSpec("has_queens", "Queens on Board", "material"),
        *_spec_pairs("material", [
            ("piece_count_pawns", "Pawn Count"), ("piece_count_knights", "Knight Count"),
            ("piece_count_bishops", "Bishop Count"), ("piece_count_rooks", "Rook Count"),
            ("piece_count_queens", "Queen Count"),
        ]),
        *_spec_pairs("pawn_structure", [
            ("doubled_pawns", "Doubled Pawns"), ("isolated_pawns", "Isolated Pawns"),
            ("backward_pawns", "Backward Pawns"), ("passed_pawns", "Passed Pawns"),
            ("pawn_islands", "Pawn Islands"),
        ]),
        *_spec_pairs("king_safety", [
            ("king_pawn_shield", "King Pawn Shield"), ("king_open_files", "Open Files Near King"),
            ("king_castled", "Castled King"), ("king_in_center", "King in Center"),
            ("can_castle", "Castling Rights"), ("king_zone_attacks", "King Zone Pressure"),
        ]),
        *_spec_pairs("piece_activity", [
            ("knight_on_outpost", "Knight Outpost"), ("bishop_pair", "Bishop Pair"),
            ("rook_on_open_file", "Rook on Open File"), ("rook_on_seventh", "Rook on Seventh"),
            ("piece_mobility", "Piece Mobility"),
        ]),
        FeatureSpec("mobility_diff", "Mobility Advantage", "piece_activity"),
        *_spec_pairs("positional", [
            ("center_control", "Center Control"), ("center_pawn_count", "Center Pawns"),
            ("development_score", "Development"), ("space", "Space"),
        ]),
        FeatureSpec("space_advantage", "Space Advantage", "positional"),
        *_spec_pairs("tactical", [
            ("hanging_pieces", "Hanging Pieces"), ("pieces_under_attack", "Pieces Under Attack"),
            ("checks_available", "Checks Available"), ("pinned_pieces", "Pinned Pieces"),
        ]),
        FeatureSpec("in_check", "In Check", "tactical"),
        FeatureSpec("can_capture_queen", "Queen Capture Available", "tactical"),
        FeatureSpec("captures_available", "Captures Available", "tactical"),
        FeatureSpec("rating_diff", "Rating Difference", "context"),
    ]
}
# fmt: on

# Flags inspected when naming the dominant mistake of a group of positions, in
# tie-break order.
MISTAKE_FLAGS: Final[tuple[str, ...]] = (
    "hanging_pieces_user",
    "pieces_under_attack_user",
    "pinned_pieces_user",
    "king_in_center_user",
    "king_zone_attacks_user",
    "doubled_pawns_user",
    "isolated_pawns_user",
    "backward_pawns_user",
    "in_check",
)


def feature_kinds() -> dict[str, FeatureKind]:
    """Map every `PositionFeatures` field to its kind."""
    kinds: dict[str, FeatureKind] = {}
    for field in msgspec.structs.fields(PositionFeatures):
        if field.type is bool:
            kinds[field.name] = "boolean"
        elif field.type in (int, float):
            kinds[field.name] = "numeric"
        else:
            kinds[field.name] = "categorical"
    return kinds


def is_present(value: float | bool) -> bool:
    """A feature is present in a position when it is set/non-zero."""
    return value != 0


@dataclasses.dataclass(frozen=True)
class FeatureTable:
    """Feature records of one analysis run plus the positions that could not be used"""

    records: list[PositionFeatures]
    total_games: int
    skipped_positions: int = 0
    positions_without_board: int = 0


#
# Board descriptors
#


def _relative_rank(square: chess.Square, color: chess.Color) -> int:
    rank = chess.square_rank(square)
    return rank if color == chess.WHITE else 7 - rank


def _pawn_files(board: chess.Board, color: chess.Color) -> dict[int, list[int]]:
    files: dict[int, list[int]] = {}
    for square in board.pieces(chess.PAWN, color):
        files.setdefault(chess.square_file(square), []).append(
            _relative_rank(square, color),
        )
    return files


def _material(board: chess.Board, user: chess.Color) -> dict:
    counts = {}
    totals = {}
    for side, color in (("user", user), ("opp", not user)):
        totals[side] = sum(
            PIECE_VALUES[piece_type] * chess.popcount(board.pieces_mask(piece_type, color))
            for piece_type in PIECE_VALUES
        )
        for piece_type, name in (
            (chess.PAWN, "pawns"),
            (chess.KNIGHT, "knights"),
            (chess.BISHOP, "bishops"),
            (chess.ROOK, "rooks"),
            (chess.QUEEN, "queens"),
        ):
            counts[f"piece_count_{name}_{side}"] = chess.popcount(
                board.pieces_mask(piece_type, color),
            )

    return {
        "material_balance": totals["user"] - totals["opp"],
        "material_user": totals["user"],
        "material_opp": totals["opp"],
        "material_total": (totals["user"] + totals["opp"]) / 100,
        "has_queens": bool(board.queens),
        **counts,
    }


def _pawn_structure(board: chess.Board, color: chess.Color) -> dict[str, int]:
    own = _pawn_files(board, color)
    enemy = _pawn_files(board, not color)
    forward = 1 if color == chess.WHITE else -1

    doubled = sum(len(ranks) - 1 for ranks in own.values())
    isolated = sum(
        len(ranks)
        for file, ranks in own.items()
        if file - 1 not in own and file + 1 not in own
    )

    passed = 0
    backward = 0
    for square in board.pieces(chess.PAWN, color):
        file = chess.square_file(square)
        rank = _relative_rank(square, color)
        adjacent = [f for f in (file - 1, file + 1) if 0 <= f <= 7]

        # enemy ranks are relative to the enemy, so `7 - r` is the rank seen from us
        if not any(
            7 - enemy_rank > rank
            for f in (file, *adjacent)
            for enemy_rank in enemy.get(f, [])
        ):
            passed += 1

        supported = any(r <= rank for f in adjacent for r in own.get(f, []))
        stop_rank = chess.square_rank(square) + forward
        if not supported and 0 <= stop_rank <= 7:
            stop = chess.square(file, stop_rank)
            if chess.BB_PAWN_ATTACKS[color][stop] & board.pieces_mask(chess.PAWN, not color):
                backward += 1

    islands = 0
    in_island = False
    for file in range(8):
        if file in own:
            if not in_island:
                islands += 1
            in_island = True
        else:
            in_island = False

    return {
        "doubled": doubled,
        "isolated": isolated,
        "backward": backward,
        "passed": passed,
        "islands": islands,
    }


def _king_safety(
    board: chess.Board,
    color: chess.Color,
    enemy_attacks: chess.SquareSet,
) -> dict:
    king = board.king(color)
    if king is None:
        return {}

    file = chess.square_file(king)
    rank = chess.square_rank(king)
    relative_rank = _relative_rank(king, color)
    forward = 1 if color == chess.WHITE else -1
    own_pawns = board.pieces(chess.PAWN, color)
    files = [f for f in (file - 1, file, file + 1) if 0 <= f <= 7]

    shield = sum(
        1
        for f in files
        for step in (1, 2)
        if 0 <= rank + step * forward <= 7
        and chess.square(f, rank + step * forward) in own_pawns
    )
    open_files = sum(
        1 for f in files if not any(chess.square_file(p) == f for p in own_pawns)
    )
    zone = board.attacks(king) | chess.SquareSet([king])

    return {
        "king_pawn_shield": shield,
        "king_open_files": open_files,
        "king_castled": file in (2, 6) and relative_rank == 0,
        "king_in_center": file in (3, 4) and relative_rank <= 3,
        "can_castle": board.has_castling_rights(color),
        "king_zone_attacks": len(zone & enemy_attacks),
    }


def _line_blockers(board: chess.Board, king: chess.Square, attacker: chess.Color) -> int:
    """Pieces of either color that stand alone between `king` and a slider of `attacker`."""
    rooks_and_queens = board.rooks | board.queens
    bishops_and_queens = board.bishops | board.queens
    snipers = (
        (chess.BB_RANK_ATTACKS[king][0] | chess.BB_FILE_ATTACKS[king][0]) & rooks_and_queens
    ) | (chess.BB_DIAG_ATTACKS[king][0] & bishops_and_queens)

    blockers = 0
    for sniper in chess.scan_reversed(snipers & board.occupied_co[attacker]):
        between = chess.between(king, sniper) & board.occupied
        if chess.popcount(between) == 1:
            blockers |= between
    return blockers


def _check_squares(board: chess.Board, king: chess.Square) -> dict[chess.PieceType, int]:
    """Squares from which each piece type of the other color would attack `king`."""
    occupied = board.occupied
    diagonal = chess.BB_DIAG_ATTACKS[king][chess.BB_DIAG_MASKS[king] & occupied]
    straight = (
        chess.BB_RANK_ATTACKS[king][chess.BB_RANK_MASKS[king] & occupied]
        | chess.BB_FILE_ATTACKS[king][chess.BB_FILE_MASKS[king] & occupied]
    )
    king_color = board.color_at(king)
    return {
        chess.PAWN: chess.BB_PAWN_ATTACKS[king_color][king],
        chess.KNIGHT: chess.BB_KNIGHT_ATTACKS[king],
        chess.BISHOP: diagonal,
        chess.ROOK: straight,
        chess.QUEEN: diagonal | straight,
        chess.KING: 0,
    }


def _pawn_targets(
    board: chess.Board,
    square: chess.Square,
    color: chess.Color,
    capturable: int,
) -> int:
    targets = board.attacks_mask(square) & capturable
    push = square + (8 if color == chess.WHITE else -8)
    if 0 <= push < 64 and not board.occupied & chess.BB_SQUARES[push]:
        targets |= chess.BB_SQUARES[push]
        double = push + (8 if color == chess.WHITE else -8)
        if _relative_rank(square, color) == 1 and not board.occupied & chess.BB_SQUARES[double]:
            targets |= chess.BB_SQUARES[double]
    return targets


def _move_counts(board: chess.Board, color: chess.Color, enemy_attacks: int) -> dict:
    """Pseudo-legal move statistics of `color`, computed from attack masks.

    Castling and underpromotions are not counted and the king never steps onto an
    attacked square. Checks include discovered checks.
    """
    own = board.occupied_co[color]
    enemy = board.occupied_co[not color]
    capturable = enemy
    if board.turn == color and board.ep_square is not None:
        capturable |= chess.BB_SQUARES[board.ep_square]

    enemy_king = board.king(not color)
    check_squares = _check_squares(board, enemy_king) if enemy_king is not None else {}
    discoverers = (
        _line_blockers(board, enemy_king, color) & own if enemy_king is not None else 0
    )

    mobility = 0
    captures = 0
    checks = 0
    queen_capture = False
    for square in chess.scan_forward(own):
        piece_type = board.piece_type_at(square)
        if piece_type == chess.PAWN:
            targets = _pawn_targets(board, square, color, capturable)
        else:
            targets = board.attacks_mask(square) & ~own
            if piece_type == chess.KING:
                targets &= ~enemy_attacks

        mobility += chess.popcount(targets)
        captures += chess.popcount(targets & capturable)
        queen_capture = queen_capture or bool(targets & enemy & board.queens)
        if check_squares:
            giving = check_squares[piece_type]
            if discoverers & chess.BB_SQUARES[square]:
                giving |= chess.BB_ALL & ~chess.ray(enemy_king, square)
            checks += chess.popcount(targets & giving)

    return {
        "mobility": mobility,
        "captures": captures,
        "checks": checks,
        "queen_capture": queen_capture,
    }


def _piece_activity(board: chess.Board, color: chess.Color, mobility: int) -> dict:
    enemy_pawns = _pawn_files(board, not color)
    own_pawns = board.pieces_mask(chess.PAWN, color)

    outpost = False
    for knight in board.pieces(chess.KNIGHT, color):
        rank = _relative_rank(knight, color)
        file = chess.square_file(knight)
        if not 3 <= rank <= 5:
            continue
        defended = bool(chess.BB_PAWN_ATTACKS[not color][knight] & own_pawns)
        challengeable = any(
            7 - enemy_rank > rank
            for f in (file - 1, file + 1)
            for enemy_rank in enemy_pawns.get(f, [])
        )
        if defended and not challengeable:
            outpost = True
            break

    pawn_files = {chess.square_file(p) for p in chess.scan_forward(board.pawns)}
    rooks = board.pieces(chess.ROOK, color)

    return {
        "knight_on_outpost": outpost,
        "bishop_pair": len(board.pieces(chess.BISHOP, color)) >= 2,
        "rook_on_open_file": sum(1 for r in rooks if chess.square_file(r) not in pawn_files),
        "rook_on_seventh": any(_relative_rank(r, color) == 6 for r in rooks),
        "piece_mobility": mobility,
    }


def _positional(
    board: chess.Board,
    color: chess.Color,
    attacks: chess.SquareSet,
) -> dict[str, int]:
    back_rank = 0 if color == chess.WHITE else 7
    minors = board.pieces(chess.KNIGHT, color) | board.pieces(chess.BISHOP, color)
    return {
        "center_control": sum(1 for sq in CENTER if sq in attacks),
        "center_pawn_count": sum(
            1 for sq in CENTER if sq in board.pieces(chess.PAWN, color)
        ),
        "development_score": sum(1 for sq in minors if chess.square_rank(sq) != back_rank),
        "space": sum(1 for sq in attacks if _relative_rank(sq, color) >= 4),
    }


def _tactical(board: chess.Board, color: chess.Color, attacks: int, enemy_attacks: int) -> dict:
    pieces = board.occupied_co[color] & ~board.kings
    attacked = pieces & enemy_attacks
    king = board.king(color)
    pinned = _line_blockers(board, king, not color) & pieces if king is not None else 0
    return {
        "hanging_pieces": chess.popcount(attacked & ~attacks),
        "pieces_under_attack": chess.popcount(attacked),
        "pinned_pieces": chess.popcount(pinned),
    }


def _attack_set(board: chess.Board, color: chess.Color) -> chess.SquareSet:
    """All squares attacked by at least one piece of `color`."""
    mask = 0
    for square in chess.scan_forward(board.occupied_co[color]):
        mask |= board.attacks_mask(square)
    return chess.SquareSet(mask)


def board_features(board: chess.Board, user: chess.Color) -> dict:
    """Compute all board-derived features of a position from the user's point of view.

    Move-based descriptors are counted from attack masks, one pass over the pieces of
    each side, without generating legal moves.
    """
    features = _material(board, user)
    attacks = {color: _attack_set(board, color) for color in chess.COLORS}

    moves = {}
    for side, color in (("user", user), ("opp", not user)):
        moves[color] = _move_counts(board, color, int(attacks[not color]))
        per_side = {
            **_pawn_structure(board, color),
            **_king_safety(board, color, attacks[not color]),
            **_piece_activity(board, color, moves[color]["mobility"]),
            **_positional(board, color, attacks[color]),
            **_tactical(board, color, int(attacks[color]), int(attacks[not color])),
            "checks_available": moves[color]["checks"],
        }
        for name, value in per_side.items():
            features[f"{SIDE_FEATURE_NAMES.get(name, name)}_{side}"] = value

    to_move = moves[board.turn]
    features.update(
        mobility_diff=moves[user]["mobility"] - moves[not user]["mobility"],
        space_advantage=features["space_user"] - features["space_opp"],
        in_check=board.is_check(),
        can_capture_queen=to_move["queen_capture"],
        captures_available=to_move["captures"],
    )
    return features


#
# Move quality and context
#


def _move_quality(position: KeyPosition) -> dict:
    if position.eval_before is None or position.eval_after is None:
        return {}

    before_cp = round(position.eval_before * 100)
    after_cp = round(position.eval_after * 100)
    swing = after_cp - before_cp
    if position.side == "B":
        swing = -swing

    return {
        "eval_before_cp": before_cp,
        "eval_after_cp": after_cp,
        "eval_swing_cp": swing,
        "eval_known": True,
        "move_accuracy": max(0.0, 1 - abs(swing) / ACCURACY_SWING_CP),
        "was_best_move": position.move is not None and position.move == position.best_move,
        "was_blunder": swing < BLUNDER_CP,
        "was_mistake": BLUNDER_CP <= swing < MISTAKE_CP,
        "was_inaccuracy": MISTAKE_CP <= swing < INACCURACY_CP,
    }


def determine_phase(move_no: int, material_total: float | None) -> GamePhase:
    """Opening by move number, endgame by remaining material, `unknown` without a board."""
    if move_no <= OPENING_MOVES:
        return "opening"
    if material_total is None:
        return "unknown"
    return "endgame" if material_total < ENDGAME_MATERIAL else "middlegame"


def normalize_result(result: str) -> str:
    if result in ("win", "loss"):
        return result
    if result in ("draw", "stalemate"):
        return "draw"
    return "other"


def _game_context(game: GameRecord) -> dict:
    user_rating = game.user_rating if game.user_rating is not None else DEFAULT_RATING
    opp_rating = game.opp_rating if game.opp_rating is not None else DEFAULT_RATING
    return {
        "time_control": game.time_control.type,
        "user_color": game.user_color,
        "user_rating": user_rating,
        "opponent_rating": opp_rating,
        "rating_diff": user_rating - opp_rating,
        "opening_eco": game.opening.eco or "unknown",
        "opening_name": game.opening.name or game.opening.eco or "unknown",
        "game_result": normalize_result(game.result),
        "game_date": game.date,
    }


def _parse_board(fen: str | None) -> chess.Board | None:
    if not fen:
        return None
    try:
        return chess.Board(fen)
    except ValueError:
        logger.debug(f"Unparseable FEN {fen!r}")
        return None


def extract_position_features(
    game: GameRecord,
    position: KeyPosition,
    board: chess.Board | None,
) -> PositionFeatures:
    """Build the feature record of one position; missing data keeps neutral defaults."""
    user = chess.WHITE if game.user_color == "white" else chess.BLACK
    mover = chess.WHITE if position.side == "W" else chess.BLACK

    values = {
        "game_id": game.game_id,
        "move_no": position.move_no,
        "move_side": "user" if mover == user else "opponent",
        **_game_context(game),
        **_move_quality(position),
    }
    material_total = None
    if board is not None:
        values["fen"] = board.fen()
        values.update(board_features(board, user))
        material_total = values["material_total"]
    values["game_phase"] = determine_phase(position.move_no, material_total)

    return PositionFeatures(**values)


def sort_games_by_recency(games: Iterable[GameRecord]) -> list[GameRecord]:
    """Newest game first, ties broken by game id."""
    by_id = sorted(games, key=lambda g: g.game_id)
    return sorted(by_id, key=lambda g: g.date, reverse=True)


def build_feature_table(
    games: Iterable[GameRecord],
    *,
    show_progress: bool = False,
) -> FeatureTable:
    """Convert analyzed games into one feature record per position.

    Records are ordered by game recency, then by move number (White before Black).
    A position with neither a usable board nor a complete evaluation is skipped and
    counted; a position with only an evaluation keeps neutral board features.
    """
    ordered = sort_games_by_recency(games)
    total_positions = sum(len(g.key_positions) for g in ordered)

    records = []
    skipped = 0
    without_board = 0
    with tqdm(
        total=total_positions,
        desc="Extracting features",
        disable=not show_progress,
    ) as progress_bar:
        for game in ordered:
            positions = sorted(
                game.key_positions,
                key=lambda p: (p.move_no, p.side != "W"),
            )
            for position in positions:
                progress_bar.update(1)
                board = _parse_board(position.fen)
                has_eval = (
                    position.eval_before is not None and position.eval_after is not None
                )
                if board is None and not has_eval:
                    skipped += 1
                    continue
                if board is None:
                    without_board += 1
                records.append(extract_position_features(game, position, board))

    logger.info(
        f"Extracted {len(records)} position features from {len(ordered)} games "
        f"({skipped=}, {without_board=})",
    )
    return FeatureTable(
        records=records,
        total_games=len(ordered),
        skipped_positions=skipped,
        positions_without_board=without_board,
    )
