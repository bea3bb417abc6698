"""
Optimistic move application with rollback.

The coordinator owns the pair (last confirmed position, at most one
speculative move on top of it). A move is shown as soon as the engine accepts
it; the ledger's answer, or a newer authoritative record, then either
confirms it or rolls the board back to the exact FEN it was played on.

States:
- Idle: no pending move.
- AwaitingConfirmation: one move applied locally, its write still unresolved.
"""
import logging
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Callable

from ledger_chess.collaborators import SessionContext
from ledger_chess.errors import (
    GameNotActive,
    MalformedPosition,
    MoveInProgress,
    NotYourTurn,
    SubmissionRejected,
)
from ledger_chess.game_state import PositionEngine
from ledger_chess.models import Color, GameRecord, GameStatus, Move, WriteResult

log = logging.getLogger(__name__)


class CoordinatorEvent(StrEnum):
    APPLIED = "applied"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"
    RELOADED = "reloaded"


Listener = Callable[[CoordinatorEvent], None]


@dataclass(frozen=True)
class PendingMove:
    move: Move
    pre_pending_fen: str
    # Authoritative history the move was played on top of
    base_moves: tuple[str, ...]

    @property
    def expected_moves(self) -> tuple[str, ...]:
        return self.base_moves + (self.move.uci,)


class OptimisticMoveCoordinator:
    def __init__(self, context: SessionContext, engine: PositionEngine, record: GameRecord) -> None:
        self.context = context
        self.engine = engine
        self.record = record
        self.confirmed_fen = engine.current_serialization()
        self.pending: PendingMove | None = None
        self.last_error: SubmissionRejected | None = None
        self._listeners: list[Listener] = []
        self._load_authoritative(record)

    # ---- projection ----
    @property
    def is_pending(self) -> bool:
        return self.pending is not None

    @property
    def move_error(self) -> str | None:
        return str(self.last_error) if self.last_error is not None else None

    @property
    def player_color(self) -> Color | None:
        return self.record.color_of(self.context.player)

    def clear_move_error(self) -> None:
        self.last_error = None

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # ---- local moves ----
    async def submit_move(self, move: Move) -> bool:
        """
        Apply `move` locally, then send it to the ledger.

        Raises IllegalMove or MoveInProgress synchronously, before anything
        changes. Otherwise returns True if the write was accepted and False if
        the move was rolled back (see move_error).
        """
        if self.pending is not None:
            raise MoveInProgress(f"{self.pending.move.uci} is still awaiting confirmation")
        self._check_can_move()

        before = self.engine.current_serialization()
        resulting = self.engine.apply_move(move.origin, move.destination, move.promotion)
        marker = PendingMove(
            move=replace(move, resulting_fen=resulting),
            pre_pending_fen=before,
            base_moves=self.record.moves,
        )
        self.pending = marker
        self.last_error = None
        log.debug("applied %s speculatively", marker.move.uci)
        self._notify(CoordinatorEvent.APPLIED)

        try:
            result = await self.context.writer.submit_move(
                self.context.game_id, move.origin, move.destination, move.promotion
            )
        except Exception as exc:
            log.exception("write path raised while submitting %s", marker.move.uci)
            result = WriteResult.failed(str(exc) or type(exc).__name__)

        if self.pending is not marker:
            # An authoritative reload already settled this move
            log.info("late write result for %s ignored (accepted=%s)", marker.move.uci, result.accepted)
            return result.accepted

        if result.accepted:
            self.pending = None
            log.info("move %s accepted by the ledger", marker.move.uci)
            self._notify(CoordinatorEvent.CONFIRMED)
            return True

        self._rollback(marker, result.error or "rejected by the ledger")
        return False

    def _check_can_move(self) -> None:
        if self.record.status != GameStatus.ACTIVE:
            raise GameNotActive(f"Game is not active: {self.record.status}")
        color = self.player_color
        if color is None:
            raise NotYourTurn("You are not a player in this game")
        if self.engine.turn != color:
            raise NotYourTurn("Not your turn")

    def _rollback(self, marker: PendingMove, reason: str) -> None:
        self.engine.load_position(marker.pre_pending_fen)
        self.pending = None
        self.last_error = SubmissionRejected(f"{marker.move.uci}: {reason}")
        log.info("rolled back %s: %s", marker.move.uci, reason)
        self._notify(CoordinatorEvent.ROLLED_BACK)

    # ---- authoritative updates ----
    def apply_authoritative(self, record: GameRecord) -> None:
        """Reconcile with a fetched record whose move history may have changed."""
        if record.moves == self.record.moves:
            self.refresh_metadata(record)
            return

        marker = self.pending
        if marker is not None:
            expected = marker.expected_moves
            if record.moves[: len(expected)] == expected:
                # Our move is on record, possibly already followed by replies
                self.pending = None
                if record.moves == expected and record.current_fen != marker.move.resulting_fen:
                    log.warning(
                        "ledger position for %s differs from local result: %s != %s",
                        marker.move.uci,
                        record.current_fen,
                        marker.move.resulting_fen,
                    )
                log.info("pending move %s confirmed by authoritative record", marker.move.uci)
                self._notify(CoordinatorEvent.CONFIRMED)
            else:
                self._rollback(marker, "superseded by the authoritative record")

        self._load_authoritative(record)

    def refresh_metadata(self, record: GameRecord) -> None:
        """Take status, draw offer and clocks from a record with an unchanged history."""
        self.record = record

    def _load_authoritative(self, record: GameRecord) -> None:
        try:
            self.engine.load_position(record.current_fen)
        except MalformedPosition as exc:
            log.warning(
                "game %s: authoritative FEN rejected (%s); replaying %d moves",
                record.id,
                exc.reason,
                len(record.moves),
            )
            try:
                self.engine.replay(record.moves)
            except MalformedPosition as replay_exc:
                log.error(
                    "game %s: history replay failed (%s); keeping last good position",
                    record.id,
                    replay_exc.reason,
                )
        self.record = record
        self.confirmed_fen = self.engine.current_serialization()
        self._notify(CoordinatorEvent.RELOADED)

    def _notify(self, event: CoordinatorEvent) -> None:
        for listener in list(self._listeners):
            listener(event)
