"""Composition root for the isolation service.

:class:`IsolationService` builds every component from a
:class:`~isolation.config.ServiceConfig` and exposes the operations the
transport layer calls. Components are passed to each other explicitly;
nothing here is a module-level singleton.
"""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from .ai.base import BaseAI
from .ai.evaluation_provider import EvaluationProvider, FallbackEvaluator, HeuristicEvaluator
from .ai.one_ply_ai import OnePlyAI
from .config import ServiceConfig
from .errors import InvalidPositionError, InvalidStateError, PersistenceError
from .experience import ExperienceRecorder
from .game_engine import GameEngine
from .metrics import observe_persistence_failure
from .models import (
    BOARD_SIZE,
    AIConfig,
    Agent,
    Cell,
    EvaluationResponse,
    GameStats,
    HumanInsights,
    ModelInfo,
    MoveView,
    Position,
    SessionState,
    SessionSummary,
    SuggestMoveResponse,
    TrainingExample,
    TrainRequest,
    TrainResponse,
    ValidMovesResponse,
)
from .session_store import SessionStore

if TYPE_CHECKING:
    from .ai.neural_net import NeuralEvaluator

logger = logging.getLogger(__name__)


class IsolationService:
    """Wires the store, evaluators, selection engines, recorder and engine."""

    def __init__(
        self,
        config: ServiceConfig,
        store: SessionStore,
        engine: GameEngine,
        evaluator: FallbackEvaluator,
        recorder: ExperienceRecorder,
        neural: Optional[NeuralEvaluator] = None,
    ):
        self.config = config
        self.store = store
        self.engine = engine
        self.evaluator = evaluator
        self.recorder = recorder
        self.neural = neural

    @classmethod
    def from_config(
        cls,
        config: ServiceConfig,
        learned: Optional[EvaluationProvider] = None,
        rng: Optional[random.Random] = None,
    ) -> IsolationService:
        """Build the full component graph.

        Args:
            config: Startup configuration
            learned: Learned evaluator to use instead of the torch value
                network. When omitted and ``config.load_model`` is set, a
                :class:`~isolation.ai.neural_net.NeuralEvaluator` is created.
            rng: Shared randomness for placement and pattern flushing
        """
        rng = rng or random.Random()
        neural = None
        if learned is None and config.load_model:
            from .ai.neural_net import NeuralEvaluator

            neural = NeuralEvaluator(
                config.model_path,
                learning_rate=config.learning_rate,
                batch_size=config.training_batch_size,
            )
            learned = neural

        evaluator = FallbackEvaluator(
            learned,
            fallback=HeuristicEvaluator(),
            timeout_ms=config.eval_timeout_ms,
        )
        ai_config = AIConfig(
            think_time=config.search_time_ms,
            max_evaluations=config.search_max_evaluations,
        )
        software_ai: BaseAI = OnePlyAI(Agent.SOFTWARE, ai_config, evaluator)
        hint_ai: BaseAI = OnePlyAI(Agent.HUMAN, ai_config, evaluator)

        store = SessionStore(ttl_seconds=config.session_ttl_sec)
        recorder = ExperienceRecorder(
            config.games_dir,
            config.patterns_path,
            capacity=config.experience_capacity,
            flush_probability=config.pattern_flush_probability,
            rng=rng,
        )
        engine = GameEngine(
            store,
            software_ai,
            recorder=recorder,
            stats_path=config.stats_path,
            hint_selector=hint_ai,
            rng=rng,
        )
        return cls(config, store, engine, evaluator, recorder, neural=neural)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Load durable state. Missing or unreadable files start fresh."""
        if self.neural is not None:
            self.neural.initialize()
        self.engine.load_stats()
        self.recorder.load_patterns()
        logger.info("Isolation service ready")

    def shutdown(self) -> None:
        self.recorder.save_patterns()
        self.evaluator.shutdown()
        logger.info("Isolation service stopped")

    def sweep_sessions(self) -> int:
        return self.store.sweep()

    # ------------------------------------------------------------------
    # Session operations
    # ------------------------------------------------------------------

    def create_session(self, owner_id: Optional[str] = None) -> SessionState:
        return self.engine.create_session(owner_id or "anonymous").to_state()

    def get_session(self, session_id: str) -> SessionState:
        return self.engine.get_session(session_id).to_state()

    def place_start(self, session_id: str, row: int, col: int) -> SessionState:
        return self.engine.place_start(session_id, Position(row=row, col=col)).to_state()

    def apply_human_move(self, session_id: str, row: int, col: int) -> SessionState:
        return self.engine.apply_human_move(session_id, Position(row=row, col=col)).to_state()

    def apply_software_move(self, session_id: str) -> SessionState:
        return self.engine.apply_software_move(session_id).to_state()

    def undo(self, session_id: str) -> SessionState:
        return self.engine.undo(session_id).to_state()

    def get_valid_moves(self, session_id: str) -> ValidMovesResponse:
        session = self.engine.get_session(session_id)
        return ValidMovesResponse(
            valid_moves=self.engine.get_valid_moves(session_id),
            current_player=session.current_player,
            game_phase=session.phase,
        )

    def get_history(self, session_id: str) -> List[MoveView]:
        return self.engine.get_history(session_id)

    def list_sessions(self) -> List[SessionSummary]:
        return self.engine.list_sessions()

    def suggest_move(self, session_id: str) -> SuggestMoveResponse:
        session = self.engine.get_session(session_id)
        return SuggestMoveResponse(
            suggested_move=self.engine.suggest_move(session_id),
            player=session.current_player,
        )

    # ------------------------------------------------------------------
    # Statistics and insights
    # ------------------------------------------------------------------

    def get_stats(self) -> GameStats:
        return self.engine.get_stats()

    def reset_stats(self) -> GameStats:
        return self.engine.reset_stats()

    def get_insights(self, top_k: int = 5) -> HumanInsights:
        return self.recorder.get_insights(top_k)

    def training_examples(self) -> List[TrainingExample]:
        return self.recorder.generate_training_examples()

    # ------------------------------------------------------------------
    # Evaluator
    # ------------------------------------------------------------------

    @staticmethod
    def _check_board(board: Sequence[Sequence[Cell]]) -> None:
        if len(board) != BOARD_SIZE or any(len(row) != BOARD_SIZE for row in board):
            raise InvalidPositionError(
                f"Invalid board format. Expected {BOARD_SIZE}x{BOARD_SIZE} array.",
                context={"rows": len(board)},
            )

    def model_loaded(self) -> bool:
        return self.evaluator.primary_ready()

    def evaluate_board(self, board: Sequence[Sequence[Cell]]) -> EvaluationResponse:
        """Probe the evaluator with an arbitrary board."""
        self._check_board(board)
        value = self.evaluator.evaluate(board)
        return EvaluationResponse(
            ai_win_probability=value,
            human_win_probability=1.0 - value,
            confidence=abs(value - 0.5) * 2,
            model_loaded=self.model_loaded(),
        )

    def model_info(self) -> ModelInfo:
        if self.neural is None:
            return ModelInfo(loaded=self.model_loaded())
        return self.neural.model_info()

    def reinitialize_model(self) -> ModelInfo:
        """Replace the learned model with fresh weights.

        Without a learned model configured this is a no-op that reports
        the heuristic-only state.
        """
        if self.neural is None:
            logger.info("No learned model configured, nothing to reinitialize")
            return self.model_info()
        info = self.neural.reinitialize()
        logger.info("Learned model reinitialized")
        return info

    def train_model(self, request: TrainRequest) -> TrainResponse:
        """Fit the learned model on labelled boards and persist the result."""
        if self.neural is None or not self.neural.is_loaded():
            raise InvalidStateError("Learned model not loaded")
        for sample in request.examples:
            self._check_board(sample.board)

        history = self.neural.train(
            [(sample.board, sample.label) for sample in request.examples],
            epochs=request.epochs,
        )
        try:
            self.neural.save_model()
        except PersistenceError as e:
            logger.warning(f"Trained model could not be saved: {e}")
            observe_persistence_failure("model")

        return TrainResponse(
            final_loss=history["loss"][-1],
            final_val_loss=history["val_loss"][-1] if history["val_loss"] else None,
            epochs=len(history["loss"]),
            model=self.neural.model_info(),
        )

    def status(self) -> Dict[str, Any]:
        info = self.model_info()
        return {
            "status": "ready" if info.loaded else "heuristic",
            "model": info.model_dump(by_alias=True),
            "gameStats": {
                **self.get_stats().model_dump(by_alias=True),
                "winRate": self.get_stats().win_rate,
            },
            "activeSessions": len(self.store),
            "experiences": len(self.recorder.buffer),
            "config": {
                "thinkTime": self.config.search_time_ms,
                "maxEvaluations": self.config.search_max_evaluations,
                "evalTimeoutMs": self.config.eval_timeout_ms,
            },
        }
