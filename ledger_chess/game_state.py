from typing import Iterable

import chess

from ledger_chess.errors import IllegalMove, MalformedPosition
from ledger_chess.models import STARTING_FEN, Color

PROMOTION_PIECES = {
    "q": chess.QUEEN,
    "r": chess.ROOK,
    "b": chess.BISHOP,
    "n": chess.KNIGHT,
}


def _square(name: str) -> chess.Square | None:
    try:
        return chess.parse_square(name.strip().lower())
    except ValueError:
        return None


# Owns the single loaded position and answers every rules question about it
class PositionEngine:
    def __init__(self, fen: str | None = None) -> None:
        self.board = chess.Board()
        if fen is not None:
            self.load_position(fen)

    @staticmethod
    def parse(fen: str) -> chess.Board:
        """
        Build a board from a full six-field FEN.
        Raises MalformedPosition if the text or the position itself is invalid.
        """
        fields = fen.split()
        if len(fields) != 6:
            raise MalformedPosition(fen, f"expected 6 fields, got {len(fields)}")
        try:
            board = chess.Board(fen)
        except ValueError as exc:
            raise MalformedPosition(fen, str(exc)) from exc

        status = board.status()
        if status != chess.STATUS_VALID:
            raise MalformedPosition(fen, f"impossible position ({status!r})")
        return board

    def load_position(self, fen: str) -> None:
        """Replace the loaded position. Leaves it untouched on failure."""
        self.board = self.parse(fen)

    def reset_to_initial(self) -> None:
        self.board = chess.Board(STARTING_FEN)

    def replay(self, moves: Iterable[str]) -> str:
        """
        Rebuild the position by playing `moves` (UCI) from the start.
        All or nothing: the loaded position only changes if every move is legal.
        """
        moves = list(moves)
        board = chess.Board(STARTING_FEN)
        for ply, uci in enumerate(moves, start=1):
            try:
                move = chess.Move.from_uci(uci)
            except ValueError as exc:
                raise MalformedPosition(",".join(moves), f"ply {ply}: bad move text {uci!r}") from exc
            if not board.is_legal(move):
                raise MalformedPosition(",".join(moves), f"ply {ply}: illegal move {uci}")
            board.push(move)
        self.board = board
        return board.fen()

    def current_serialization(self) -> str:
        return self.board.fen()

    @property
    def turn(self) -> Color:
        return "white" if self.board.turn == chess.WHITE else "black"

    def color_at(self, square: str) -> Color | None:
        sq = _square(square)
        piece = self.board.piece_at(sq) if sq is not None else None
        if piece is None:
            return None
        return "white" if piece.color == chess.WHITE else "black"

    def legal_destinations(self, origin: str) -> set[str]:
        """Squares the piece on `origin` may legally move to (empty if none or not its turn)."""
        src = _square(origin)
        if src is None:
            return set()
        piece = self.board.piece_at(src)
        if piece is None or piece.color != self.board.turn:
            return set()
        return {
            chess.square_name(mv.to_square)
            for mv in self.board.generate_legal_moves(from_mask=chess.BB_SQUARES[src])
        }

    def is_promotion(self, origin: str, destination: str) -> bool:
        src, dst = _square(origin), _square(destination)
        if src is None or dst is None:
            return False
        piece = self.board.piece_at(src)
        return (
            piece is not None
            and piece.piece_type == chess.PAWN
            and chess.square_rank(dst) in (0, 7)
        )

    def apply_move(self, origin: str, destination: str, promotion: str | None = None) -> str:
        """
        Play a move on the loaded position and return the resulting FEN.
        Raises IllegalMove (position unchanged) if the move cannot be played.
        """
        src, dst = _square(origin), _square(destination)
        if src is None or dst is None:
            raise IllegalMove(f"invalid square in move {origin}-{destination}")

        if chess.square_name(dst) not in self.legal_destinations(origin):
            raise IllegalMove(f"{origin}-{destination} is not legal in this position")

        promoting = self.is_promotion(origin, destination)
        promo = (promotion or "").strip().lower() or None
        if promoting and promo is None:
            raise IllegalMove(f"{origin}-{destination} needs a promotion piece")
        if promo is not None and not promoting:
            raise IllegalMove(f"{origin}-{destination} is not a promotion")
        if promo is not None and promo not in PROMOTION_PIECES:
            raise IllegalMove(f"invalid promotion piece: {promotion}")

        move = chess.Move(src, dst, promotion=PROMOTION_PIECES.get(promo) if promo else None)
        if not self.board.is_legal(move):
            raise IllegalMove(f"{move.uci()} is not legal in this position")
        self.board.push(move)
        return self.board.fen()

    def outcome(self) -> chess.Outcome | None:
        """Checkmate, stalemate or an automatic draw; None while play continues."""
        return self.board.outcome()
