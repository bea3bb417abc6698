"""
HTTP front for the reference ledger, for local two-player development.

Run with: uvicorn ledger_chess.server:app
Clients poll GET /games/{id} and GET /games/{id}/time; there is no push.
"""
import hashlib
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from ledger_chess.config import SETTINGS
from ledger_chess.errors import (
    GameAlreadyExists,
    GameNotActive,
    GameNotFound,
    IllegalMove,
    LedgerChessError,
    LedgerIllegalMove,
    NotPlayerInGame,
    NotYourTurn,
)
from ledger_chess.ledger import InMemoryLedger

logging.basicConfig(
    level=getattr(logging, SETTINGS.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)


# ---- Request bodies ----
class CreateGameRequest(BaseModel):
    sender: str = Field(..., min_length=1)
    opponent: str = Field(..., min_length=1)
    game_id: str | None = None
    time_control: str = "1d"


class MoveRequest(BaseModel):
    sender: str = Field(..., min_length=1)
    from_square: str = Field(..., min_length=2, max_length=2, alias="from")
    to_square: str = Field(..., min_length=2, max_length=2, alias="to")
    promotion: str | None = Field(None, min_length=1, max_length=1)

    model_config = ConfigDict(populate_by_name=True)


class SenderRequest(BaseModel):
    sender: str = Field(..., min_length=1)


class DrawResponseRequest(SenderRequest):
    accept: bool


def generate_game_id(white: str, black: str, height: int) -> str:
    """Deterministic id from the players and the creation block."""
    digest = hashlib.sha256(f"{white}_{black}_{height}".encode()).hexdigest()
    return f"game_{digest[:16]}"


def _status_code(exc: LedgerChessError) -> int:
    if isinstance(exc, GameNotFound):
        return 404
    if isinstance(exc, NotPlayerInGame):
        return 403
    # Turn order and finished games are conflicts with the current record
    if isinstance(exc, (GameAlreadyExists, NotYourTurn, GameNotActive)):
        return 409
    if isinstance(exc, (LedgerIllegalMove, IllegalMove)):
        return 422
    return 400


def create_app(ledger: InMemoryLedger) -> FastAPI:
    app = FastAPI(title="ledger-chess", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.ledger = ledger

    @app.exception_handler(LedgerChessError)
    async def ledger_error(request: Request, exc: LedgerChessError) -> JSONResponse:
        log.info("%s %s refused: %s", request.method, request.url.path, exc)
        return JSONResponse({"detail": str(exc)}, status_code=_status_code(exc))

    @app.get("/health")
    async def health() -> PlainTextResponse:
        return PlainTextResponse("ok")

    # ---- Queries ----
    @app.get("/games")
    async def list_games() -> dict:
        return {"game_ids": ledger.game_ids()}

    @app.get("/games/{game_id}")
    async def get_game(game_id: str) -> dict:
        game = ledger.get_game(game_id)
        if game is None:
            raise GameNotFound(f"Game {game_id} not found")
        return game.model_dump(mode="json")

    @app.get("/games/{game_id}/time")
    async def time_status(game_id: str) -> dict:
        return ledger.check_time_status(game_id).model_dump(mode="json")

    @app.get("/players/{address}/games")
    async def player_games(address: str) -> dict:
        return {"games": [g.model_dump(mode="json") for g in ledger.player_games(address)]}

    # ---- Transactions ----
    @app.post("/games")
    async def create_game(req: CreateGameRequest) -> dict:
        game_id = req.game_id or generate_game_id(req.sender, req.opponent, ledger.height)
        game = ledger.create_game(req.sender, game_id, req.opponent, req.time_control)
        return game.model_dump(mode="json")

    @app.post("/games/{game_id}/move")
    async def make_move(game_id: str, req: MoveRequest) -> dict:
        game = ledger.make_move(req.sender, game_id, req.from_square, req.to_square, req.promotion)
        return game.model_dump(mode="json")

    @app.post("/games/{game_id}/resign")
    async def resign(game_id: str, req: SenderRequest) -> dict:
        return ledger.resign(req.sender, game_id).model_dump(mode="json")

    @app.post("/games/{game_id}/draw/propose")
    async def propose_draw(game_id: str, req: SenderRequest) -> dict:
        return ledger.propose_draw(req.sender, game_id).model_dump(mode="json")

    @app.post("/games/{game_id}/draw/respond")
    async def respond_to_draw(game_id: str, req: DrawResponseRequest) -> dict:
        return ledger.respond_to_draw(req.sender, game_id, req.accept).model_dump(mode="json")

    return app


app = create_app(InMemoryLedger())
