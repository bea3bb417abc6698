from dataclasses import dataclass

import chess

from ledger_chess.coordinator import CoordinatorEvent, OptimisticMoveCoordinator
from ledger_chess.models import Color, GameStatus, Move, opposite

FILES = "abcdefgh"
RANKS = "12345678"


@dataclass(frozen=True)
class SquareView:
    name: str
    glyph: str
    light: bool
    selected: bool
    target: bool
    last: bool


# Click-to-move selection state on top of the coordinator; no drawing happens here
class BoardController:
    def __init__(self, coordinator: OptimisticMoveCoordinator, orientation: Color | None = None) -> None:
        self.coordinator = coordinator
        self.orientation: Color = orientation or coordinator.player_color or "white"
        self.selected: str | None = None
        self.legal_targets: set[str] = set()
        # Our latest move, shown as last move until the ledger record includes it
        self._played: str | None = None
        coordinator.add_listener(self._on_event)

    @property
    def engine(self):
        return self.coordinator.engine

    def is_my_turn(self) -> bool:
        color = self.coordinator.player_color
        return (
            color is not None
            and self.coordinator.record.status == GameStatus.ACTIVE
            and self.engine.turn == color
        )

    def square_belongs_to_me(self, square: str) -> bool:
        color = self.coordinator.player_color
        return color is not None and self.engine.color_at(square) == color

    def clear_selection(self) -> None:
        self.selected = None
        self.legal_targets = set()

    def click(self, square: str) -> Move | None:
        """
        Handle a click on `square`.
        Returns the Move to submit once a selection is completed, otherwise None.
        """
        square = square.strip().lower()
        if self.coordinator.is_pending or not self.is_my_turn():
            return None

        if self.selected is None:
            if self.square_belongs_to_me(square):
                self.selected = square
                self.legal_targets = self.engine.legal_destinations(square)
            return None

        if square == self.selected:
            self.clear_selection()
            return None

        # Clicking another own piece switches the selection
        if self.square_belongs_to_me(square):
            self.selected = square
            self.legal_targets = self.engine.legal_destinations(square)
            return None

        if square not in self.legal_targets:
            self.clear_selection()
            return None

        origin = self.selected
        promotion = "q" if self.engine.is_promotion(origin, square) else None
        self.clear_selection()
        return Move(origin=origin, destination=square, promotion=promotion)

    def flip(self) -> None:
        self.orientation = opposite(self.orientation)

    def last_move(self) -> tuple[str, str] | None:
        if self.coordinator.pending is not None:
            uci = self.coordinator.pending.move.uci
        elif self._played is not None:
            uci = self._played
        elif self.coordinator.record.moves:
            uci = self.coordinator.record.moves[-1]
        else:
            return None
        return uci[:2], uci[2:4]

    def rows(self) -> list[list[SquareView]]:
        """Board squares top row first, as seen from `orientation`."""
        files = FILES if self.orientation == "white" else FILES[::-1]
        ranks = RANKS[::-1] if self.orientation == "white" else RANKS
        last = self.last_move() or ()
        board = self.engine.board

        rows = []
        for r_idx, r in enumerate(ranks):
            row = []
            for f_idx, f in enumerate(files):
                name = f"{f}{r}"
                piece = board.piece_at(chess.parse_square(name))
                row.append(
                    SquareView(
                        name=name,
                        glyph=piece.unicode_symbol() if piece else "",
                        light=(f_idx + r_idx) % 2 == 0,
                        selected=name == self.selected,
                        target=name in self.legal_targets,
                        last=name in last,
                    )
                )
            rows.append(row)
        return rows

    def _on_event(self, event: CoordinatorEvent) -> None:
        if event == CoordinatorEvent.APPLIED:
            self._played = self.coordinator.pending.move.uci
        elif event in (CoordinatorEvent.ROLLED_BACK, CoordinatorEvent.RELOADED):
            self._played = None
            self.clear_selection()
