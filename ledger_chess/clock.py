"""
Block-based chess clock, computed on the client from a TimeStatus snapshot.

Everything here is a pure function. The ledger does the real accounting;
these values only drive the display between polls.
"""
from dataclasses import dataclass

from ledger_chess.config import SETTINGS, Settings
from ledger_chess.models import Color, TimeStatus

# 1 block ~ 1 second
SECONDS_PER_DAY = 86_400
SECONDS_PER_HOUR = 3_600

LOW_TIME = 600
CRITICAL_TIME = 60


def clock_running(status: TimeStatus) -> bool:
    """The clock only starts once both players have made their first move."""
    return status.move_count >= 2


def live_remaining(status: TimeStatus, side: Color) -> int:
    remaining = status.remaining(side)
    if clock_running(status) and side == status.current_player:
        remaining -= status.time_since_last_move
    return max(0, remaining)


def is_expired(status: TimeStatus) -> bool:
    if status.time_expired:
        return True
    return clock_running(status) and live_remaining(status, status.current_player) <= 0


def format_remaining(seconds: int) -> str:
    if seconds <= 0:
        return "0:00"
    days, rest = divmod(seconds, SECONDS_PER_DAY)
    hours, rest = divmod(rest, SECONDS_PER_HOUR)
    minutes, secs = divmod(rest, 60)
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def urgency(seconds: int) -> str:
    if seconds < CRITICAL_TIME:
        return "critical"
    if seconds < LOW_TIME:
        return "low"
    return "normal"


def increment_for(move_count: int, settings: Settings = SETTINGS) -> int:
    """Blocks the ledger adds to the mover's clock at this move count."""
    if move_count < 2:
        return 0
    if move_count <= settings.increment_phase_moves:
        return settings.opening_increment_blocks
    return settings.late_increment_blocks


def increment_text(move_count: int, settings: Settings = SETTINGS) -> str:
    increment = increment_for(move_count, settings)
    if increment == 0:
        return "Time starts after both players' first move"
    if increment % 60 == 0:
        return f"+{increment // 60} min/move"
    return f"+{increment} s/move"


@dataclass(frozen=True)
class SideClock:
    side: Color
    remaining: int
    display: str
    running: bool
    urgency: str


@dataclass(frozen=True)
class ClockView:
    white: SideClock
    black: SideClock
    current_player: Color
    time_expired: bool
    increment_text: str

    def side(self, color: Color) -> SideClock:
        return self.white if color == "white" else self.black


def _side_clock(status: TimeStatus, side: Color) -> SideClock:
    remaining = live_remaining(status, side)
    return SideClock(
        side=side,
        remaining=remaining,
        display=format_remaining(remaining),
        running=clock_running(status) and side == status.current_player,
        urgency=urgency(remaining),
    )


def clock_view(status: TimeStatus, settings: Settings = SETTINGS) -> ClockView:
    return ClockView(
        white=_side_clock(status, "white"),
        black=_side_clock(status, "black"),
        current_player=status.current_player,
        time_expired=is_expired(status),
        increment_text=increment_text(status.move_count, settings),
    )
