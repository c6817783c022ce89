"""Experience and human-pattern recorder.

Observes committed moves and finished games, keeping:

- a bounded FIFO buffer of raw move observations (oldest evicted first),
  used to export offline training examples
- four frequency tables describing how humans play: starting positions,
  phase-qualified move patterns, trap attempts and escapes

The recorder is strictly downstream of the lifecycle manager. Nothing it
does can fail a move: persistence errors are logged, counted and dropped.

Usage:
    recorder = ExperienceRecorder(config.games_dir, config.patterns_path)
    recorder.load_patterns()

    recorder.record_move(session.id, Agent.HUMAN, record, session.board)
    recorder.record_game(session)

    insights = recorder.get_insights()
"""

from __future__ import annotations

import logging
import random
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .board_manager import BoardManager
from .errors import PersistenceError
from .metrics import observe_persistence_failure
from .models import Agent, Cell, HumanInsights, PatternCount, Position, TrainingExample
from .persistence import read_json, write_json_atomic
from .session import BoardSnapshot, GameSession, MoveRecord, snapshot_board, utcnow

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10_000
DEFAULT_FLUSH_PROBABILITY = 0.1

# Blocked-cell fraction thresholds for the derived game phase
OPENING_THRESHOLD = 0.2
MIDGAME_THRESHOLD = 0.6

# Starting-position observations are only taken on a nearly empty board
MAX_STARTING_OCCUPANCY = 2
TRAP_DISTANCE = 2
ESCAPE_MAX_EXITS = 2
WINNING_SEQUENCE_LENGTH = 3


@dataclass(frozen=True)
class Experience:
    """One observed move and the board right after it."""
    session_id: str
    agent: Agent
    move: MoveRecord
    board: BoardSnapshot
    timestamp: datetime
    phase: str


class ExperienceRecorder:
    """Bounded move buffer plus human-play frequency tables."""

    def __init__(
        self,
        games_dir: Path,
        patterns_path: Path,
        capacity: int = DEFAULT_CAPACITY,
        flush_probability: float = DEFAULT_FLUSH_PROBABILITY,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.games_dir = Path(games_dir)
        self.patterns_path = Path(patterns_path)
        self.flush_probability = flush_probability
        self.rng = rng or random.Random()

        self.buffer: deque[Experience] = deque(maxlen=capacity)

        self.starting_positions: Counter[str] = Counter()
        self.move_preferences: Counter[str] = Counter()
        self.trap_attempts: Counter[str] = Counter()
        self.escape_patterns: Counter[str] = Counter()

    @property
    def capacity(self) -> int:
        return self.buffer.maxlen or 0

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def record_move(
        self,
        session_id: str,
        agent: Agent,
        move: MoveRecord,
        board: Sequence[Sequence[Cell]],
    ) -> Experience:
        """Buffer a committed move; human moves also update the tables.

        ``board`` is the board immediately after the move.
        """
        snapshot = snapshot_board(board)
        experience = Experience(
            session_id=session_id,
            agent=agent,
            move=move,
            board=snapshot,
            timestamp=utcnow(),
            phase=self.determine_game_phase(snapshot),
        )
        self.buffer.append(experience)

        if agent is Agent.HUMAN:
            self._analyze_human_move(experience)
        return experience

    def record_game(self, session: GameSession) -> None:
        """Persist a finished game and mine it for sequence patterns."""
        summary = {
            "id": session.id,
            "playerId": session.owner_id,
            "moves": [
                m.to_view(include_board=False).model_dump(by_alias=True, mode="json")
                for m in session.move_history
            ],
            "winner": session.winner.value if session.winner else None,
            "gameLength": len(session.move_history),
            "createdAt": session.created_at.isoformat(),
            "endedAt": session.ended_at.isoformat() if session.ended_at else None,
            "finalBoard": [[cell.value for cell in row] for row in session.board],
        }
        millis = int(utcnow().timestamp() * 1000)
        path = self.games_dir / f"game_{session.id}_{millis}.json"
        try:
            write_json_atomic(path, summary)
        except PersistenceError as e:
            logger.warning(f"Failed to save game record: {e}")
            observe_persistence_failure("game")

        human_moves = [m for m in session.move_history if m.player is Agent.HUMAN]
        if session.winner is Agent.HUMAN:
            self._analyze_winning_sequences(human_moves)
        elif session.winner is Agent.SOFTWARE:
            self._analyze_mistakes(human_moves)

        logger.info(f"Recorded game {session.id} with {len(session.move_history)} moves")

        if self.rng.random() < self.flush_probability:
            self.save_patterns()

    # ------------------------------------------------------------------
    # Pattern analysis
    # ------------------------------------------------------------------

    @staticmethod
    def determine_game_phase(board: Sequence[Sequence[Cell]]) -> str:
        """Classify by blocked-cell fraction: opening, midgame or endgame."""
        total = sum(len(row) for row in board)
        blocked = BoardManager.count_cells(board, Cell.BLOCKED)
        fraction = blocked / total if total else 0.0
        if fraction < OPENING_THRESHOLD:
            return "opening"
        if fraction < MIDGAME_THRESHOLD:
            return "midgame"
        return "endgame"

    @staticmethod
    def encode_move_pattern(destination: Position, phase: str, size: int) -> str:
        center = BoardManager.center(size)
        return f"{phase}_{BoardManager.manhattan(destination, center)}_{destination.to_key()}"

    def _analyze_human_move(self, experience: Experience) -> None:
        board = experience.board
        size = len(board)
        move = experience.move
        destination = move.to

        occupied = BoardManager.count_cells(board, Cell.BLOCKED, Cell.HUMAN, Cell.SOFTWARE)
        if occupied <= MAX_STARTING_OCCUPANCY:
            self.starting_positions[destination.to_key()] += 1

        self.move_preferences[
            self.encode_move_pattern(destination, experience.phase, size)
        ] += 1

        software = BoardManager.find_marker(board, Cell.SOFTWARE)
        if (
            software is not None
            and BoardManager.is_edge(destination, size)
            and BoardManager.manhattan(destination, software) <= TRAP_DISTANCE
        ):
            self.trap_attempts[f"trap_{destination.to_key()}"] += 1

        if move.from_pos is not None:
            # The destination was the only neighbour of the source that changed
            exits_before = len(BoardManager.legal_moves(board, move.from_pos)) + 1
            exits_after = len(BoardManager.legal_moves(board, destination))
            if exits_before <= ESCAPE_MAX_EXITS and exits_after > exits_before:
                self.escape_patterns[f"escape_{experience.phase}_{destination.to_key()}"] += 1

    def _analyze_winning_sequences(self, human_moves: List[MoveRecord]) -> None:
        for i in range(len(human_moves) - WINNING_SEQUENCE_LENGTH + 1):
            window = human_moves[i:i + WINNING_SEQUENCE_LENGTH]
            key = "->".join(m.to.to_key() for m in window)
            self.move_preferences[f"winning_sequence_{key}"] += 1

    def _analyze_mistakes(self, human_moves: List[MoveRecord]) -> None:
        for move, next_move in zip(human_moves, human_moves[1:]):
            mobility_now = len(BoardManager.legal_moves(move.board, move.to))
            mobility_next = len(BoardManager.legal_moves(next_move.board, next_move.to))
            if mobility_next < mobility_now:
                self.move_preferences[f"mistake_{move.to.to_key()}"] += 1

    # ------------------------------------------------------------------
    # Reporting and export
    # ------------------------------------------------------------------

    @staticmethod
    def _top(table: Counter[str], limit: int) -> List[PatternCount]:
        return [PatternCount(pattern=k, count=v) for k, v in table.most_common(limit)]

    def get_insights(self, top_k: int = 5) -> HumanInsights:
        """Top entries of each pattern table.

        Move patterns are reported twice as deep as the other tables since
        that table also collects sequence and mistake tags.
        """
        return HumanInsights(
            total_experiences=len(self.buffer),
            favorite_starting_positions=self._top(self.starting_positions, top_k),
            common_move_patterns=self._top(self.move_preferences, top_k * 2),
            trap_attempts=self._top(self.trap_attempts, top_k),
            escape_patterns=self._top(self.escape_patterns, top_k),
            last_analysis=utcnow(),
        )

    def generate_training_examples(self) -> List[TrainingExample]:
        """Turn buffered human moves into (board, preference weight) examples.

        The weight is the move pattern's share of all recorded human move
        patterns, with unseen patterns counted once.
        """
        total = sum(self.move_preferences.values()) + 1
        examples = []
        for exp in self.buffer:
            if exp.agent is not Agent.HUMAN:
                continue
            key = self.encode_move_pattern(exp.move.to, exp.phase, len(exp.board))
            frequency = self.move_preferences.get(key) or 1
            examples.append(
                TrainingExample(
                    board=[list(row) for row in exp.board],
                    human_move_probability=frequency / total,
                    context=exp.phase,
                )
            )
        return examples

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _tables(self) -> Dict[str, Counter[str]]:
        return {
            "startingPositions": self.starting_positions,
            "movePreferences": self.move_preferences,
            "trapAttempts": self.trap_attempts,
            "escapePatterns": self.escape_patterns,
        }

    def save_patterns(self) -> bool:
        """Flush the pattern tables. Returns False (and logs) on failure."""
        payload: Dict[str, object] = {name: dict(table) for name, table in self._tables().items()}
        payload["lastUpdated"] = utcnow().isoformat()
        try:
            write_json_atomic(self.patterns_path, payload)
        except PersistenceError as e:
            logger.warning(f"Failed to save patterns: {e}")
            observe_persistence_failure("patterns")
            return False
        logger.info("Human patterns saved")
        return True

    def load_patterns(self) -> bool:
        """Reload the pattern tables saved by :meth:`save_patterns`."""
        try:
            data = read_json(self.patterns_path)
        except PersistenceError as e:
            logger.warning(f"Failed to load patterns, starting fresh: {e}")
            observe_persistence_failure("patterns")
            return False

        if not isinstance(data, dict):
            logger.info("No existing patterns found, starting fresh")
            return False

        for name, table in self._tables().items():
            table.clear()
            for key, count in (data.get(name) or {}).items():
                try:
                    table[key] = int(count)
                except (TypeError, ValueError):
                    logger.debug(f"Skipping malformed {name} entry {key!r}")
        logger.info("Human patterns loaded")
        return True
