"""
Shapes of the ledger read/write paths the client core depends on, and the
per-session context handed to every component.
"""
from dataclasses import dataclass, field
from typing import Protocol

from ledger_chess.config import SETTINGS, Settings
from ledger_chess.models import GameRecord, TimeStatus, WriteResult


class GameReader(Protocol):
    async def fetch_game_record(self, game_id: str) -> GameRecord | None: ...

    async def fetch_time_status(self, game_id: str) -> TimeStatus: ...


class GameWriter(Protocol):
    """Write path bound to one signing identity."""

    async def submit_move(
        self, game_id: str, origin: str, destination: str, promotion: str | None = None
    ) -> WriteResult: ...

    async def submit_resign(self, game_id: str) -> WriteResult: ...

    async def submit_propose_draw(self, game_id: str) -> WriteResult: ...

    async def submit_respond_to_draw(self, game_id: str, accept: bool) -> WriteResult: ...


@dataclass(frozen=True)
class SessionContext:
    """Everything scoped to one player watching one game."""

    game_id: str
    player: str
    reader: GameReader
    writer: GameWriter
    settings: Settings = field(default=SETTINGS)
