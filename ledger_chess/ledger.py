"""
In-process reference ledger.

Holds authoritative GameRecords and applies the same rules as the on-chain
contract: turn order, block-based time control with increments, move
validation, end-of-game detection, resignation and draw offers. It is what
the HTTP service exposes and what the client tests run against.

Block height comes from an injected callable; by default one block per
wall-clock second since the ledger was created.
"""
import logging
import time
from typing import Callable

import chess

from ledger_chess.clock import increment_for, is_expired
from ledger_chess.config import SETTINGS, Settings
from ledger_chess.errors import (
    CannotRespondToOwnProposal,
    DrawAlreadyProposed,
    GameAlreadyExists,
    GameNotActive,
    GameNotFound,
    IllegalMove,
    LedgerError,
    LedgerIllegalMove,
    NoDrawProposal,
    NotPlayerInGame,
    NotYourTurn,
)
from ledger_chess.game_state import PositionEngine
from ledger_chess.models import (
    STARTING_FEN,
    Color,
    GameRecord,
    GameStatus,
    Move,
    TimeStatus,
    WriteResult,
    opposite,
    won_by,
)

log = logging.getLogger(__name__)


def _wall_clock_height() -> Callable[[], int]:
    started = time.monotonic()
    return lambda: int(time.monotonic() - started)


class InMemoryLedger:
    def __init__(self, height: Callable[[], int] | None = None, settings: Settings = SETTINGS) -> None:
        self._games: dict[str, GameRecord] = {}
        self._height = height or _wall_clock_height()
        self.settings = settings

    @property
    def height(self) -> int:
        return self._height()

    # ---- queries ----
    def game_ids(self) -> list[str]:
        return list(self._games)

    def get_game(self, game_id: str) -> GameRecord | None:
        return self._games.get(game_id)

    def player_games(self, player: str) -> list[GameRecord]:
        return [g for g in self._games.values() if player in (g.white, g.black)]

    def check_time_status(self, game_id: str) -> TimeStatus:
        game = self._load(game_id)
        snapshot = TimeStatus(
            white_time_remaining=game.white_time_remaining,
            black_time_remaining=game.black_time_remaining,
            current_player=game.current_turn,
            move_count=game.move_count,
            time_since_last_move=max(0, self.height - game.last_move_block),
        )
        return snapshot.model_copy(update={"time_expired": is_expired(snapshot)})

    # ---- transactions ----
    def create_game(
        self, sender: str, game_id: str, opponent: str, time_control: str = "1d"
    ) -> GameRecord:
        if game_id in self._games:
            raise GameAlreadyExists(f"Game already exists with ID: {game_id}")
        if not opponent or opponent == sender:
            raise LedgerError("Invalid opponent address")

        height = self.height
        game = GameRecord(
            id=game_id,
            white=sender,
            black=opponent,
            current_fen=STARTING_FEN,
            status=GameStatus.ACTIVE,
            current_turn="white",
            last_move_block=height,
            white_time_remaining=self.settings.initial_time_blocks,
            black_time_remaining=self.settings.initial_time_blocks,
            created_block=height,
            time_control=time_control,
        )
        self._games[game_id] = game
        log.info("created game %s: %s vs %s", game_id, sender, opponent)
        return game

    def make_move(
        self,
        sender: str,
        game_id: str,
        origin: str,
        destination: str,
        promotion: str | None = None,
    ) -> GameRecord:
        game = self._load(game_id)
        color = self._player_color(game, sender)
        if game.current_turn != color:
            raise NotYourTurn("It's not your turn")
        if game.status != GameStatus.ACTIVE:
            raise GameNotActive("Game is not active")

        height = self.height
        remaining = {"white": game.white_time_remaining, "black": game.black_time_remaining}

        # The clock only runs once both players have made their first move
        if game.move_count >= 2:
            used = max(0, height - game.last_move_block)
            if used >= remaining[color]:
                self._games[game_id] = game.model_copy(
                    update={
                        "status": won_by(opposite(color)),
                        f"{color}_time_remaining": 0,
                    }
                )
                log.info("game %s: %s ran out of time", game_id, color)
                raise LedgerIllegalMove("Time expired - you have lost the game")
            remaining[color] -= used

        engine = PositionEngine(game.current_fen)
        try:
            new_fen = engine.apply_move(origin, destination, promotion)
        except IllegalMove as exc:
            raise LedgerIllegalMove(f"Illegal chess move: {exc}") from exc

        status = self._status_after_move(engine, color)
        remaining[color] += increment_for(game.move_count, self.settings)
        uci = Move(origin, destination, promotion).uci

        updated = game.model_copy(
            update={
                "moves": game.moves + (uci,),
                "current_fen": new_fen,
                "status": status,
                "current_turn": opposite(color) if status == GameStatus.ACTIVE else color,
                "white_time_remaining": remaining["white"],
                "black_time_remaining": remaining["black"],
                "move_count": game.move_count + 1,
                "last_move_block": height,
                "draw_proposed_by": None,
            }
        )
        self._games[game_id] = updated
        log.info("game %s: %s played %s (status %s)", game_id, color, uci, status)
        return updated

    def resign(self, sender: str, game_id: str) -> GameRecord:
        game = self._load(game_id)
        color = self._player_color(game, sender)
        self._require_active(game)
        return self._save(game, status=won_by(opposite(color)))

    def propose_draw(self, sender: str, game_id: str) -> GameRecord:
        game = self._load(game_id)
        self._player_color(game, sender)
        self._require_active(game)
        if game.draw_proposed_by == sender:
            raise DrawAlreadyProposed("Draw already proposed by this player")
        return self._save(game, draw_proposed_by=sender)

    def respond_to_draw(self, sender: str, game_id: str, accept: bool) -> GameRecord:
        game = self._load(game_id)
        self._player_color(game, sender)
        self._require_active(game)
        if game.draw_proposed_by is None:
            raise NoDrawProposal("No draw proposal to respond to")
        if game.draw_proposed_by == sender:
            raise CannotRespondToOwnProposal("Cannot respond to your own draw proposal")
        if accept:
            return self._save(game, status=GameStatus.DRAW, draw_proposed_by=None)
        return self._save(game, draw_proposed_by=None)

    # ---- collaborator adapters ----
    def reader(self) -> "LedgerReader":
        return LedgerReader(self)

    def writer(self, sender: str) -> "LedgerWriter":
        return LedgerWriter(self, sender)

    # ---- helpers ----
    def _load(self, game_id: str) -> GameRecord:
        game = self._games.get(game_id)
        if game is None:
            raise GameNotFound(f"Game {game_id} not found")
        return game

    def _save(self, game: GameRecord, **changes) -> GameRecord:
        updated = game.model_copy(update=changes)
        self._games[game.id] = updated
        return updated

    @staticmethod
    def _player_color(game: GameRecord, sender: str) -> Color:
        color = game.color_of(sender)
        if color is None:
            raise NotPlayerInGame("You are not a player in this game")
        return color

    @staticmethod
    def _require_active(game: GameRecord) -> None:
        if game.status != GameStatus.ACTIVE:
            raise GameNotActive("Game is not active")

    @staticmethod
    def _status_after_move(engine: PositionEngine, mover: Color) -> GameStatus:
        outcome = engine.outcome()
        if outcome is None:
            return GameStatus.ACTIVE
        if outcome.termination == chess.Termination.CHECKMATE:
            return won_by(mover)
        if outcome.termination == chess.Termination.STALEMATE:
            return GameStatus.STALEMATE
        return GameStatus.DRAW


class LedgerReader:
    """Read path over an InMemoryLedger."""

    def __init__(self, ledger: InMemoryLedger) -> None:
        self.ledger = ledger

    async def fetch_game_record(self, game_id: str) -> GameRecord | None:
        return self.ledger.get_game(game_id)

    async def fetch_time_status(self, game_id: str) -> TimeStatus:
        return self.ledger.check_time_status(game_id)


class LedgerWriter:
    """Write path over an InMemoryLedger, signing as `sender`."""

    def __init__(self, ledger: InMemoryLedger, sender: str) -> None:
        self.ledger = ledger
        self.sender = sender

    async def submit_move(
        self, game_id: str, origin: str, destination: str, promotion: str | None = None
    ) -> WriteResult:
        return self._execute(self.ledger.make_move, game_id, origin, destination, promotion)

    async def submit_resign(self, game_id: str) -> WriteResult:
        return self._execute(self.ledger.resign, game_id)

    async def submit_propose_draw(self, game_id: str) -> WriteResult:
        return self._execute(self.ledger.propose_draw, game_id)

    async def submit_respond_to_draw(self, game_id: str, accept: bool) -> WriteResult:
        return self._execute(self.ledger.respond_to_draw, game_id, accept)

    def _execute(self, action, *args) -> WriteResult:
        try:
            action(self.sender, *args)
        except (LedgerError, IllegalMove) as exc:
            log.info("%s rejected for %s: %s", action.__name__, self.sender, exc)
            return WriteResult.failed(str(exc))
        return WriteResult.ok()
