import asyncio

import pytest

from ledger_chess.coordinator import CoordinatorEvent, OptimisticMoveCoordinator
from ledger_chess.errors import GameNotActive, IllegalMove, MoveInProgress, NotYourTurn
from ledger_chess.game_state import PositionEngine
from ledger_chess.models import STARTING_FEN, Move
from ledger_chess.tests.fakes import BLACK, GAME_ID, WHITE, make_context


def fen_after(*moves: str) -> str:
    engine = PositionEngine()
    return engine.replay(moves)


def test_e2e4_is_shown_then_confirmed(ledger, white_coordinator):
    coord = white_coordinator
    writer = coord.context.writer

    async def scenario():
        writer.gate = asyncio.Event()
        task = asyncio.create_task(coord.submit_move(Move("e2", "e4")))
        await asyncio.sleep(0)

        # Speculative position: black to move, no capture, half-move clock reset
        assert coord.is_pending
        fields = coord.engine.current_serialization().split()
        assert fields[1] == "b"
        assert fields[4] == "0"
        assert coord.pending.move.resulting_fen == coord.engine.current_serialization()
        assert coord.confirmed_fen == STARTING_FEN

        writer.gate.set()
        return await task

    assert asyncio.run(scenario()) is True
    assert not coord.is_pending
    assert coord.move_error is None

    record = ledger.get_game(GAME_ID)
    assert record.moves == ("e2e4",)
    coord.apply_authoritative(record)
    assert coord.move_error is None
    assert coord.confirmed_fen == record.current_fen
    assert coord.engine.current_serialization() == record.current_fen


def test_second_move_while_pending_is_refused(white_coordinator):
    coord = white_coordinator
    writer = coord.context.writer

    async def scenario():
        writer.gate = asyncio.Event()
        task = asyncio.create_task(coord.submit_move(Move("e2", "e4")))
        await asyncio.sleep(0)

        with pytest.raises(MoveInProgress):
            await coord.submit_move(Move("d2", "d4"))
        assert coord.pending.move.uci == "e2e4"
        assert len(writer.calls) == 1

        writer.gate.set()
        await task

    asyncio.run(scenario())


def test_rejected_move_rolls_back_exactly(white_coordinator):
    coord = white_coordinator
    coord.context.writer.reject_with = "out of gas"
    events = []
    coord.add_listener(events.append)
    before = coord.engine.current_serialization()

    accepted = asyncio.run(coord.submit_move(Move("e2", "e4")))

    assert accepted is False
    assert coord.engine.current_serialization() == before
    assert not coord.is_pending
    assert "out of gas" in coord.move_error
    assert events == [CoordinatorEvent.APPLIED, CoordinatorEvent.ROLLED_BACK]

    coord.clear_move_error()
    assert coord.move_error is None


def test_write_path_exception_rolls_back(white_coordinator):
    coord = white_coordinator
    coord.context.writer.raise_exc = ConnectionError("rpc down")

    accepted = asyncio.run(coord.submit_move(Move("g1", "f3")))

    assert accepted is False
    assert coord.engine.current_serialization() == STARTING_FEN
    assert "rpc down" in coord.move_error


def test_illegal_move_changes_nothing(white_coordinator):
    coord = white_coordinator

    with pytest.raises(IllegalMove):
        asyncio.run(coord.submit_move(Move("e2", "e5")))

    assert not coord.is_pending
    assert coord.engine.current_serialization() == STARTING_FEN
    assert coord.context.writer.calls == []


def test_cannot_move_on_opponents_turn(ledger, settings):
    coord = OptimisticMoveCoordinator(
        make_context(ledger, BLACK, settings), PositionEngine(), ledger.get_game(GAME_ID)
    )

    with pytest.raises(NotYourTurn):
        asyncio.run(coord.submit_move(Move("e7", "e5")))
    assert coord.engine.current_serialization() == STARTING_FEN


def test_spectator_cannot_move(ledger, settings):
    coord = OptimisticMoveCoordinator(
        make_context(ledger, "carol", settings), PositionEngine(), ledger.get_game(GAME_ID)
    )
    with pytest.raises(NotYourTurn):
        asyncio.run(coord.submit_move(Move("e2", "e4")))


def test_cannot_move_in_finished_game(ledger, white_coordinator):
    ledger.resign(BLACK, GAME_ID)
    white_coordinator.refresh_metadata(ledger.get_game(GAME_ID))

    with pytest.raises(GameNotActive):
        asyncio.run(white_coordinator.submit_move(Move("e2", "e4")))


def test_poll_confirms_pending_move_before_write_returns(ledger, white_coordinator):
    coord = white_coordinator
    writer = coord.context.writer

    async def scenario():
        writer.gate = asyncio.Event()
        task = asyncio.create_task(coord.submit_move(Move("e2", "e4")))
        await asyncio.sleep(0)

        # The transaction lands on the ledger while our write call is still hanging
        ledger.make_move(WHITE, GAME_ID, "e2", "e4")
        coord.apply_authoritative(ledger.get_game(GAME_ID))
        assert not coord.is_pending
        assert coord.move_error is None

        writer.gate.set()
        await task

    asyncio.run(scenario())
    # The late write result (a duplicate, refused by the ledger) is ignored
    assert coord.move_error is None
    assert coord.engine.current_serialization() == fen_after("e2e4")


def test_different_recorded_move_supersedes_pending(ledger, white_coordinator):
    coord = white_coordinator
    writer = coord.context.writer
    superseding = ledger.get_game(GAME_ID).model_copy(
        update={"moves": ("d2d4",), "current_fen": fen_after("d2d4"), "current_turn": "black", "move_count": 1}
    )
    events = []
    coord.add_listener(events.append)

    async def scenario():
        writer.gate = asyncio.Event()
        task = asyncio.create_task(coord.submit_move(Move("e2", "e4")))
        await asyncio.sleep(0)

        coord.apply_authoritative(superseding)
        assert not coord.is_pending
        assert coord.move_error is not None

        writer.gate.set()
        await task

    asyncio.run(scenario())
    assert coord.engine.current_serialization() == fen_after("d2d4")
    assert coord.confirmed_fen == fen_after("d2d4")
    assert events == [CoordinatorEvent.APPLIED, CoordinatorEvent.ROLLED_BACK, CoordinatorEvent.RELOADED]


def test_unchanged_history_keeps_pending(ledger, white_coordinator):
    coord = white_coordinator
    writer = coord.context.writer

    async def scenario():
        writer.gate = asyncio.Event()
        task = asyncio.create_task(coord.submit_move(Move("e2", "e4")))
        await asyncio.sleep(0)

        coord.apply_authoritative(ledger.get_game(GAME_ID))
        assert coord.is_pending
        assert coord.engine.current_serialization() == fen_after("e2e4")

        writer.gate.set()
        return await task

    assert asyncio.run(scenario()) is True


def test_malformed_fen_falls_back_to_history_replay(ledger, white_coordinator):
    record = ledger.get_game(GAME_ID).model_copy(
        update={"moves": ("e2e4", "e7e5"), "current_fen": "garbage", "move_count": 2}
    )

    white_coordinator.apply_authoritative(record)

    assert white_coordinator.engine.current_serialization() == fen_after("e2e4", "e7e5")
    assert white_coordinator.record is record


def test_unrecoverable_record_keeps_last_good_position(ledger, white_coordinator):
    record = ledger.get_game(GAME_ID).model_copy(
        update={"moves": ("e2e5",), "current_fen": "8/8/8/8 w - - 0 1", "move_count": 1}
    )

    white_coordinator.apply_authoritative(record)

    assert white_coordinator.engine.current_serialization() == STARTING_FEN
    assert white_coordinator.confirmed_fen == STARTING_FEN


def test_pending_move_followed_by_reply_is_confirmed(ledger, white_coordinator):
    coord = white_coordinator
    writer = coord.context.writer
    events = []
    coord.add_listener(events.append)

    async def scenario():
        writer.gate = asyncio.Event()
        task = asyncio.create_task(coord.submit_move(Move("e2", "e4")))
        await asyncio.sleep(0)

        # Our move lands and the opponent answers before the write call returns
        ledger.make_move(WHITE, GAME_ID, "e2", "e4")
        ledger.make_move(BLACK, GAME_ID, "e7", "e5")
        coord.apply_authoritative(ledger.get_game(GAME_ID))
        assert not coord.is_pending
        assert coord.move_error is None

        writer.gate.set()
        await task

    asyncio.run(scenario())
    assert coord.move_error is None
    assert coord.engine.current_serialization() == fen_after("e2e4", "e7e5")
    assert events == [CoordinatorEvent.APPLIED, CoordinatorEvent.CONFIRMED, CoordinatorEvent.RELOADED]


def test_longer_history_with_other_move_supersedes(ledger, white_coordinator):
    coord = white_coordinator
    writer = coord.context.writer

    async def scenario():
        writer.gate = asyncio.Event()
        task = asyncio.create_task(coord.submit_move(Move("e2", "e4")))
        await asyncio.sleep(0)

        ledger.make_move(WHITE, GAME_ID, "d2", "d4")
        ledger.make_move(BLACK, GAME_ID, "d7", "d5")
        coord.apply_authoritative(ledger.get_game(GAME_ID))
        assert "superseded" in coord.move_error

        writer.gate.set()
        await task

    asyncio.run(scenario())
    assert coord.engine.current_serialization() == fen_after("d2d4", "d7d5")
