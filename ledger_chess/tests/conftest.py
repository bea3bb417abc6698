import pytest

from ledger_chess.config import Settings
from ledger_chess.coordinator import OptimisticMoveCoordinator
from ledger_chess.game_state import PositionEngine
from ledger_chess.ledger import InMemoryLedger
from ledger_chess.tests.fakes import BLACK, GAME_ID, WHITE, BlockClock, make_context


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def block_clock() -> BlockClock:
    return BlockClock()


@pytest.fixture
def ledger(block_clock, settings) -> InMemoryLedger:
    ledger = InMemoryLedger(height=block_clock, settings=settings)
    ledger.create_game(WHITE, GAME_ID, BLACK)
    return ledger


@pytest.fixture
def white_context(ledger, settings):
    return make_context(ledger, WHITE, settings)


@pytest.fixture
def white_coordinator(ledger, white_context) -> OptimisticMoveCoordinator:
    return OptimisticMoveCoordinator(white_context, PositionEngine(), ledger.get_game(GAME_ID))
