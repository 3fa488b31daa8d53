"""Move application via python-chess."""

from dataclasses import dataclass

import chess

from ..errors import IllegalMove, InvalidFen, InvalidUci


@dataclass(frozen=True)
class AppliedMove:
    """Result of playing one move: notation plus the resulting position."""

    san: str
    uci: str
    fen: str


def _board(fen: str) -> chess.Board:
    try:
        return chess.Board(fen)
    except ValueError:
        raise InvalidFen(fen) from None


def apply_move(fen: str, uci: str) -> AppliedMove:
    """Play ``uci`` on ``fen``; raises InvalidFen, InvalidUci or IllegalMove."""
    board = _board(fen)
    try:
        move = chess.Move.from_uci(uci.strip().lower())
    except (ValueError, chess.InvalidMoveError):
        raise InvalidUci(uci) from None

    if move not in board.legal_moves:
        raise IllegalMove(uci)

    san = board.san(move)
    board.push(move)
    return AppliedMove(san=san, uci=move.uci(), fen=board.fen())


def legal_moves(fen: str) -> list[str]:
    """All legal moves of ``fen`` in UCI notation."""
    return [move.uci() for move in _board(fen).legal_moves]


def validate_fen(fen: str) -> None:
    """Raise InvalidFen unless ``fen`` parses."""
    _board(fen)
