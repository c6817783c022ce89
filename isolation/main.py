"""
Isolation Game Service - FastAPI Application
Exposes session lifecycle, statistics and evaluator endpoints
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import ServiceConfig
from .errors import (
    InvalidPositionError,
    InvalidStateError,
    IsolationError,
    SessionNotFoundError,
)
from .models import (
    CreateGameRequest,
    EvaluateRequest,
    PositionRequest,
    TrainRequest,
)
from .service import IsolationService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _status_for(error: IsolationError) -> int:
    if isinstance(error, SessionNotFoundError):
        return 404
    if isinstance(error, (InvalidStateError, InvalidPositionError)):
        return 400
    return 500


def _http_error(error: Exception, action: str) -> HTTPException:
    """Translate a service error into the HTTP status the client sees."""
    if isinstance(error, IsolationError):
        status = _status_for(error)
        if status == 500:
            logger.error(f"Error {action}: {error}", exc_info=True)
        return HTTPException(status_code=status, detail=error.message)
    logger.error(f"Error {action}: {str(error)}", exc_info=True)
    return HTTPException(status_code=500, detail=str(error))


async def _sweep_loop(service: IsolationService, interval_sec: int) -> None:
    """Periodically evict stale sessions until cancelled."""
    while True:
        await asyncio.sleep(interval_sec)
        try:
            service.sweep_sessions()
        except Exception as e:
            logger.error(f"Session sweep failed: {e}", exc_info=True)


def create_app(
    config: Optional[ServiceConfig] = None,
    service: Optional[IsolationService] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Startup configuration (defaults to ``ServiceConfig.from_env()``)
        service: Pre-built service, mainly for tests; ``start()`` is still
            called from the lifespan
    """
    config = config or (service.config if service else ServiceConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the service at startup, stop the sweep at shutdown."""
        logger.info("Starting Isolation Game Service...")
        svc = service or IsolationService.from_config(config)
        svc.start()
        app.state.service = svc
        sweeper = asyncio.create_task(_sweep_loop(svc, config.sweep_interval_sec))
        yield
        logger.info("Shutting down Isolation Game Service...")
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        svc.shutdown()

    app = FastAPI(
        title="Isolation Game Service",
        description="Human vs. AI isolation game with a learned position evaluator",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_service(request: Request) -> IsolationService:
        return request.app.state.service

    # ------------------------------------------------------------------
    # Service
    # ------------------------------------------------------------------

    @app.get("/health")
    async def health_check():
        """Health check for container orchestration"""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        data = generate_latest()
        return Response(content=data, media_type=CONTENT_TYPE_LATEST)

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    @app.post("/games", status_code=201)
    async def create_game(request: Request, body: Optional[CreateGameRequest] = None):
        try:
            player_id = body.player_id if body else None
            return get_service(request).create_session(player_id).model_dump(by_alias=True)
        except Exception as e:
            raise _http_error(e, "creating game")

    # Registered before /games/{game_id} so "admin" is not taken as an id
    @app.get("/games/admin/active")
    async def active_games(request: Request):
        try:
            sessions = get_service(request).list_sessions()
            return {
                "activeGames": len(sessions),
                "games": [s.model_dump(by_alias=True) for s in sessions],
            }
        except Exception as e:
            raise _http_error(e, "listing games")

    @app.post("/games/{game_id}/start")
    async def start_game(game_id: str, body: PositionRequest, request: Request):
        try:
            state = get_service(request).place_start(game_id, body.row, body.col)
            return state.model_dump(by_alias=True)
        except Exception as e:
            raise _http_error(e, "starting game")

    @app.post("/games/{game_id}/move")
    async def human_move(game_id: str, body: PositionRequest, request: Request):
        try:
            state = get_service(request).apply_human_move(game_id, body.row, body.col)
            return state.model_dump(by_alias=True)
        except Exception as e:
            raise _http_error(e, "applying move")

    @app.post("/games/{game_id}/ai-move")
    async def ai_move(game_id: str, request: Request):
        try:
            # The selection loop blocks for up to its time budget
            state = await asyncio.to_thread(get_service(request).apply_software_move, game_id)
            return state.model_dump(by_alias=True)
        except Exception as e:
            raise _http_error(e, "applying AI move")

    @app.get("/games/{game_id}")
    async def get_game(game_id: str, request: Request):
        try:
            return get_service(request).get_session(game_id).model_dump(by_alias=True)
        except Exception as e:
            raise _http_error(e, "fetching game")

    @app.get("/games/{game_id}/valid-moves")
    async def valid_moves(game_id: str, request: Request):
        try:
            return get_service(request).get_valid_moves(game_id).model_dump(by_alias=True)
        except Exception as e:
            raise _http_error(e, "fetching valid moves")

    @app.get("/games/{game_id}/history")
    async def game_history(game_id: str, request: Request):
        try:
            moves = get_service(request).get_history(game_id)
            return {
                "gameId": game_id,
                "moves": [m.model_dump(by_alias=True, exclude={"board"}) for m in moves],
                "totalMoves": len(moves),
            }
        except Exception as e:
            raise _http_error(e, "fetching history")

    @app.post("/games/{game_id}/undo")
    async def undo_move(game_id: str, request: Request):
        try:
            return get_service(request).undo(game_id).model_dump(by_alias=True)
        except Exception as e:
            raise _http_error(e, "undoing move")

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    @app.get("/stats/overview")
    async def stats_overview(request: Request):
        try:
            svc = get_service(request)
            stats = svc.get_stats()
            info = svc.model_info()
            return {
                "games": {
                    "total": stats.total_games,
                    "humanWins": stats.human_wins,
                    "softwareWins": stats.software_wins,
                    "winRate": stats.win_rate,
                    "averageLength": round(stats.average_game_length, 2),
                },
                "ai": {
                    "status": "ready" if info.loaded else "heuristic",
                    "modelLoaded": info.loaded,
                    "totalParams": info.total_params,
                    "layers": info.layers,
                },
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        except Exception as e:
            raise _http_error(e, "fetching stats")

    @app.post("/stats/reset")
    async def reset_stats(request: Request):
        try:
            stats = get_service(request).reset_stats()
            return {"message": "Statistics reset", "stats": stats.model_dump(by_alias=True)}
        except Exception as e:
            raise _http_error(e, "resetting stats")

    # ------------------------------------------------------------------
    # AI
    # ------------------------------------------------------------------

    @app.get("/ai/status")
    async def ai_status(request: Request):
        try:
            return get_service(request).status()
        except Exception as e:
            raise _http_error(e, "fetching AI status")

    @app.get("/ai/insights")
    async def ai_insights(request: Request, top_k: int = 5):
        try:
            return get_service(request).get_insights(top_k).model_dump(by_alias=True)
        except Exception as e:
            raise _http_error(e, "fetching insights")

    @app.get("/ai/training-data")
    async def training_data(request: Request):
        try:
            examples = get_service(request).training_examples()
            return {
                "count": len(examples),
                "examples": [e.model_dump(by_alias=True) for e in examples],
            }
        except Exception as e:
            raise _http_error(e, "exporting training data")

    @app.post("/ai/evaluate")
    async def evaluate_board(body: EvaluateRequest, request: Request):
        try:
            return get_service(request).evaluate_board(body.board).model_dump(by_alias=True)
        except Exception as e:
            raise _http_error(e, "evaluating board")

    @app.post("/ai/suggest-move/{game_id}")
    async def suggest_move(game_id: str, request: Request):
        try:
            suggestion = await asyncio.to_thread(get_service(request).suggest_move, game_id)
            return suggestion.model_dump(by_alias=True)
        except Exception as e:
            raise _http_error(e, "suggesting move")

    @app.post("/ai/train")
    async def train_model(body: TrainRequest, request: Request):
        try:
            result = await asyncio.to_thread(get_service(request).train_model, body)
            return result.model_dump(by_alias=True)
        except Exception as e:
            raise _http_error(e, "training model")

    @app.post("/ai/reset")
    async def reset_model(request: Request):
        try:
            info = get_service(request).reinitialize_model()
            return {"message": "Model reinitialized", "model": info.model_dump(by_alias=True)}
        except Exception as e:
            raise _http_error(e, "reinitializing model")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port_str = os.getenv("ISOLATION_SERVICE_PORT", "8001")
    try:
        port = int(port_str)
    except ValueError:
        port = 8001

    uvicorn.run(app, host="0.0.0.0", port=port)
