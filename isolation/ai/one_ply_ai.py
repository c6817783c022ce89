"""Bounded repeated one-ply evaluation.

This agent scores every legal destination by applying it to a private
clone of the session and asking the evaluator for the resulting board's
value. It does this for several rounds until the wall-clock budget
(``AIConfig.think_time``) or the evaluation cap
(``AIConfig.max_evaluations``) is hit, then picks the candidate with the
best mean score. Repetition smooths a noisy evaluator; there is no search
tree and no backpropagation.

Limits are checked before every candidate, in every round. Only the first
candidate is guaranteed a score; candidates the budget never reached keep
a mean of 0. Ties go to the candidate enumerated first.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..board_manager import BoardManager
from ..metrics import AI_SEARCH_EVALUATIONS
from ..models import AIConfig, Agent, Cell, Position
from ..session import GameSession
from .base import BaseAI
from .evaluation_provider import EvaluationProvider

logger = logging.getLogger(__name__)


@dataclass
class SearchStats:
    """Bookkeeping from the most recent :meth:`OnePlyAI.select_move`."""

    evaluations: int = 0
    rounds: int = 0
    elapsed_ms: float = 0.0
    mean_scores: List[float] = field(default_factory=list)


class OnePlyAI(BaseAI):
    """AI that averages repeated one-ply evaluations per candidate move."""

    def __init__(self, agent: Agent, config: AIConfig, evaluator: EvaluationProvider):
        super().__init__(agent, config)
        self.evaluator = evaluator
        self.last_search = SearchStats()

    def select_move(self, session: GameSession) -> Optional[Position]:
        """Select a destination for ``self.agent`` in ``session``.

        ``session`` is never mutated; every candidate is tried on a clone.

        Returns:
            The chosen destination or ``None`` if no legal moves exist.
        """
        valid_moves = self.get_valid_moves(session)
        if not valid_moves:
            return None
        if len(valid_moves) == 1:
            self.last_search = SearchStats(mean_scores=[0.0])
            self.move_count += 1
            return valid_moves[0]

        totals = [0.0] * len(valid_moves)
        visits = [0] * len(valid_moves)
        evaluations = 0
        rounds = 0

        start = time.perf_counter()
        deadline = start + self.config.think_time / 1000.0

        def exhausted() -> bool:
            return (
                evaluations >= self.config.max_evaluations
                or time.perf_counter() >= deadline
            )

        while evaluations == 0 or not exhausted():
            for i, move in enumerate(valid_moves):
                if evaluations > 0 and exhausted():
                    break
                simulation = session.clone()
                BoardManager.apply_move(simulation, self.agent, move)
                totals[i] += self.evaluate_position(simulation.board)
                visits[i] += 1
                evaluations += 1
            rounds += 1

        means = [t / v if v > 0 else 0.0 for t, v in zip(totals, visits)]
        best_index = 0
        for i in range(1, len(means)):
            if means[i] > means[best_index]:
                best_index = i

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        self.last_search = SearchStats(
            evaluations=evaluations,
            rounds=rounds,
            elapsed_ms=elapsed_ms,
            mean_scores=means,
        )
        AI_SEARCH_EVALUATIONS.observe(evaluations)
        logger.debug(
            f"{self.agent.value} chose {valid_moves[best_index].to_key()} "
            f"after {evaluations} evaluations in {elapsed_ms:.0f}ms"
        )

        self.move_count += 1
        return valid_moves[best_index]

    def evaluate_position(self, board: Sequence[Sequence[Cell]]) -> float:
        """Evaluator score oriented toward ``self.agent``."""
        score = self.evaluator.evaluate(board)
        return score if self.agent is Agent.SOFTWARE else 1.0 - score
