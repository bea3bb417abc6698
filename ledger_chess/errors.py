"""
Error types raised by the client core and the reference ledger.
"""


class LedgerChessError(Exception):
    """Base class for everything this package raises on purpose."""


# ---- Client core ----
class MalformedPosition(LedgerChessError):
    """A FEN that is not a syntactically and semantically valid board."""

    def __init__(self, fen: str, reason: str) -> None:
        super().__init__(f"Malformed position {fen!r}: {reason}")
        self.fen = fen
        self.reason = reason


class IllegalMove(LedgerChessError):
    """The move cannot be applied to the loaded position."""


class NotYourTurn(IllegalMove):
    pass


class GameNotActive(IllegalMove):
    pass


class MoveInProgress(LedgerChessError):
    """A speculative move is already waiting for confirmation."""


class SubmissionRejected(LedgerChessError):
    """The write path refused the move, or an authoritative update superseded it."""


# ---- Reference ledger ----
class LedgerError(LedgerChessError):
    """A request the ledger refuses. Mirrors the contract's error variants."""


class GameNotFound(LedgerError):
    pass


class GameAlreadyExists(LedgerError):
    pass


class NotPlayerInGame(LedgerError):
    pass


class LedgerIllegalMove(LedgerError):
    pass


class DrawAlreadyProposed(LedgerError):
    pass


class NoDrawProposal(LedgerError):
    pass


class CannotRespondToOwnProposal(LedgerError):
    pass
