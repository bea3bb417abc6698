"""
Data shared between the ledger, the sync loop and the client core.

GameRecord and TimeStatus are pydantic models that parse the ledger's JSON
shapes as-is (field names match the contract). Move and WriteResult are
plain immutable dataclasses created on the client side.
"""
from dataclasses import dataclass
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

Color = Literal["white", "black"]

STARTING_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


def opposite(color: Color) -> Color:
    return "black" if color == "white" else "white"


class GameStatus(StrEnum):
    ACTIVE = "active"
    CHECKMATE_CLAIMED = "checkmate_claimed"
    DISPUTED = "disputed"
    WHITE_WON = "white_won"
    BLACK_WON = "black_won"
    DRAW = "draw"
    STALEMATE = "stalemate"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        GameStatus.WHITE_WON,
        GameStatus.BLACK_WON,
        GameStatus.DRAW,
        GameStatus.STALEMATE,
        GameStatus.TIMEOUT,
    }
)


def won_by(color: Color) -> GameStatus:
    return GameStatus.WHITE_WON if color == "white" else GameStatus.BLACK_WON


class GameRecord(BaseModel):
    """Authoritative game record as stored by the ledger."""

    model_config = ConfigDict(frozen=True)

    id: str
    white: str
    black: str
    # The ledger keeps a comma-joined string of UCI moves
    moves: tuple[str, ...] = ()
    current_fen: str = STARTING_FEN
    status: GameStatus = GameStatus.ACTIVE
    current_turn: Color = "white"
    last_move_block: int = Field(0, ge=0)
    white_time_remaining: int = Field(0, ge=0)
    black_time_remaining: int = Field(0, ge=0)
    created_block: int = Field(0, ge=0)
    claim_block: int | None = None
    time_control: str = "1d"
    move_count: int = Field(0, ge=0)
    draw_proposed_by: str | None = None

    @field_validator("moves", mode="before")
    @classmethod
    def _split_moves(cls, value):
        if isinstance(value, str):
            return tuple(m.strip() for m in value.split(",") if m.strip())
        return value

    @field_serializer("moves")
    def _join_moves(self, moves: tuple[str, ...]) -> str:
        return ",".join(moves)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def color_of(self, address: str) -> Color | None:
        """Colour played by `address`, or None for spectators."""
        if address == self.white:
            return "white"
        if address == self.black:
            return "black"
        return None

    def address_of(self, color: Color) -> str:
        return self.white if color == "white" else self.black


class TimeStatus(BaseModel):
    """Clock snapshot: counters as of the last move plus blocks elapsed since."""

    model_config = ConfigDict(frozen=True)

    white_time_remaining: int = Field(ge=0)
    black_time_remaining: int = Field(ge=0)
    current_player: Color
    time_expired: bool = False
    move_count: int = Field(0, ge=0)
    time_since_last_move: int = Field(0, ge=0)

    def remaining(self, side: Color) -> int:
        return self.white_time_remaining if side == "white" else self.black_time_remaining


@dataclass(frozen=True)
class Move:
    """A user's move. `resulting_fen` is carried for audit and never trusted."""

    origin: str
    destination: str
    promotion: str | None = None
    resulting_fen: str | None = None

    @property
    def uci(self) -> str:
        return f"{self.origin}{self.destination}{self.promotion or ''}".lower()


@dataclass(frozen=True)
class WriteResult:
    accepted: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> "WriteResult":
        return cls(accepted=True)

    @classmethod
    def failed(cls, error: str) -> "WriteResult":
        return cls(accepted=False, error=error)
