"""
GameSession: one player's live view of one game.

Wires the position engine, the optimistic coordinator, the sync poller and
the board controller together around a SessionContext, and exposes what a
UI needs: position, legal targets, pending flag, move error, clocks, status.
"""
import logging

from ledger_chess.board import BoardController
from ledger_chess.clock import ClockView, clock_view
from ledger_chess.collaborators import SessionContext
from ledger_chess.coordinator import OptimisticMoveCoordinator
from ledger_chess.errors import GameNotFound
from ledger_chess.game_state import PositionEngine
from ledger_chess.models import GameRecord, GameStatus, Move, WriteResult
from ledger_chess.poller import SyncPoller
from ledger_chess.scheduling import Scheduler, VisibilitySource

log = logging.getLogger(__name__)


class GameSession:
    def __init__(
        self,
        context: SessionContext,
        record: GameRecord,
        scheduler: Scheduler,
        visibility: VisibilitySource,
        engine: PositionEngine | None = None,
    ) -> None:
        self.context = context
        self.engine = engine or PositionEngine()
        self.coordinator = OptimisticMoveCoordinator(context, self.engine, record)
        self.poller = SyncPoller(context, self.coordinator, scheduler, visibility)
        self.board = BoardController(self.coordinator)

    @classmethod
    async def open(
        cls, context: SessionContext, scheduler: Scheduler, visibility: VisibilitySource
    ) -> "GameSession":
        """Fetch the record and clock once, then start polling."""
        record = await context.reader.fetch_game_record(context.game_id)
        if record is None:
            raise GameNotFound(f"Game {context.game_id} not found")
        session = cls(context, record, scheduler, visibility)
        session.poller.time_status = await context.reader.fetch_time_status(context.game_id)
        session.poller.start()
        return session

    def close(self) -> None:
        self.poller.stop()

    # ---- projection ----
    @property
    def fen(self) -> str:
        return self.engine.current_serialization()

    @property
    def record(self) -> GameRecord:
        return self.coordinator.record

    @property
    def status(self) -> GameStatus:
        return self.coordinator.record.status

    @property
    def is_terminal(self) -> bool:
        return self.coordinator.record.is_terminal

    @property
    def is_pending(self) -> bool:
        return self.coordinator.is_pending

    @property
    def move_error(self) -> str | None:
        return self.coordinator.move_error

    def clear_move_error(self) -> None:
        self.coordinator.clear_move_error()

    def legal_destinations(self, origin: str) -> set[str]:
        return self.engine.legal_destinations(origin)

    def clock(self) -> ClockView | None:
        status = self.poller.time_status
        if status is None:
            return None
        return clock_view(status, self.context.settings)

    # ---- actions ----
    async def submit_move(self, move: Move) -> bool:
        accepted = await self.coordinator.submit_move(move)
        if accepted:
            await self.poller.refresh()
        return accepted

    async def click(self, square: str) -> bool | None:
        """Forward a board click; submits when it completes a move."""
        move = self.board.click(square)
        if move is None:
            return None
        return await self.submit_move(move)

    async def resign(self) -> WriteResult:
        result = await self.context.writer.submit_resign(self.context.game_id)
        return await self._after_write("resign", result)

    async def propose_draw(self) -> WriteResult:
        result = await self.context.writer.submit_propose_draw(self.context.game_id)
        return await self._after_write("propose draw", result)

    async def respond_to_draw(self, accept: bool) -> WriteResult:
        result = await self.context.writer.submit_respond_to_draw(self.context.game_id, accept)
        return await self._after_write("accept draw" if accept else "decline draw", result)

    async def _after_write(self, action: str, result: WriteResult) -> WriteResult:
        if result.accepted:
            await self.poller.refresh()
        else:
            log.warning("%s rejected for game %s: %s", action, self.context.game_id, result.error)
        return result
