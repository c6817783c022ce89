"""
Evaluation Provider Protocol for the isolation AI.

This module defines the evaluation interface that decouples position
evaluation from move selection. Every evaluation is a win probability in
``[0, 1]`` for the software agent, regardless of who moves next.

The design follows the Strategy pattern:
- `EvaluationProvider` - Protocol defining the evaluation interface
- `HeuristicEvaluator` - mobility-ratio evaluation, always available
- `FallbackEvaluator` - wraps a learned evaluator with a hard timeout and
  substitutes the heuristic whenever the learned call is not loaded, raises,
  times out or returns garbage

Usage Example:
```python
learned = NeuralEvaluator(model_dir)
learned.initialize()
evaluator = FallbackEvaluator(learned, timeout_ms=50)
score = evaluator.evaluate(board)  # never raises, always in [0, 1]
```
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Protocol, Sequence, runtime_checkable

from ..board_manager import BoardManager
from ..metrics import observe_fallback
from ..models import Agent, Cell
from ..session import snapshot_board

logger = logging.getLogger(__name__)

BoardLike = Sequence[Sequence[Cell]]


@runtime_checkable
class EvaluationProvider(Protocol):
    """Protocol defining the evaluation interface.

    Any object implementing `evaluate()` can be plugged into the
    selection engine.
    """

    def evaluate(self, board: BoardLike) -> float:
        """Evaluate a board.

        Parameters
        ----------
        board : BoardLike
            The position to evaluate.

        Returns
        -------
        float
            Probability in [0, 1] that the software agent eventually wins.
        """
        ...


class HeuristicEvaluator:
    """Mobility-ratio evaluator.

    With ``m_s`` and ``m_h`` the legal-move counts of the software and
    human agents: 0 if the software agent is stuck, 1 if the human agent
    is stuck, otherwise ``m_s / (m_s + m_h)``.
    """

    def evaluate(self, board: BoardLike) -> float:
        software_moves = BoardManager.mobility(board, Agent.SOFTWARE)
        if software_moves == 0:
            return 0.0
        human_moves = BoardManager.mobility(board, Agent.HUMAN)
        if human_moves == 0:
            return 1.0
        return software_moves / (software_moves + human_moves)

    def get_breakdown(self, board: BoardLike) -> dict[str, float]:
        """Get detailed evaluation breakdown.

        Always includes a "total" key.
        """
        return {
            "total": self.evaluate(board),
            "software_mobility": float(BoardManager.mobility(board, Agent.SOFTWARE)),
            "human_mobility": float(BoardManager.mobility(board, Agent.HUMAN)),
        }


class FallbackEvaluator:
    """Timeout-bounded wrapper around a learned evaluator.

    The learned call runs on a single worker thread and is raced against
    ``timeout_ms``. A stuck call keeps the worker busy, so subsequent calls
    queue behind it and also resolve to the heuristic until it finishes.
    Callers never observe an exception or a value outside ``[0, 1]``; the
    branch taken is visible only through logging and metrics.
    """

    def __init__(
        self,
        primary: EvaluationProvider | None,
        fallback: EvaluationProvider | None = None,
        timeout_ms: int = 50,
    ) -> None:
        self.primary = primary
        self.fallback = fallback or HeuristicEvaluator()
        self.timeout_ms = timeout_ms
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="isolation-nn-eval",
        )

    def primary_ready(self) -> bool:
        if self.primary is None:
            return False
        is_loaded = getattr(self.primary, "is_loaded", None)
        return bool(is_loaded()) if callable(is_loaded) else True

    def evaluate(self, board: BoardLike) -> float:
        if not self.primary_ready():
            observe_fallback("not_loaded")
            return self.fallback.evaluate(board)

        future = self._executor.submit(self.primary.evaluate, snapshot_board(board))
        try:
            value = float(future.result(timeout=self.timeout_ms / 1000.0))
        except FuturesTimeoutError:
            future.cancel()
            logger.debug("Learned evaluation exceeded %dms, using heuristic", self.timeout_ms)
            observe_fallback("timeout")
            return self.fallback.evaluate(board)
        except Exception as e:
            logger.warning("Learned evaluation failed, using heuristic: %s", e)
            observe_fallback("error")
            return self.fallback.evaluate(board)

        if math.isnan(value):
            observe_fallback("invalid")
            return self.fallback.evaluate(board)
        return min(1.0, max(0.0, value))

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
