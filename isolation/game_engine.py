"""Session lifecycle manager for the isolation game.

The engine owns every mutation of canonical session state:

    Starting --place_start--> Playing --(side to act is stuck)--> Ended
        ^                        |
        +---------undo-----------+  (undo of the placement itself)

Validation always happens before mutation, so a rejected call
(:class:`InvalidStateError`, :class:`InvalidPositionError`,
:class:`SessionNotFoundError`) leaves the session exactly as it was.

Every action claims its session in the store for its whole run, from
validation through commit. An overlapping action on the same session is
rejected with :class:`InvalidStateError` instead of interleaving.

Committed moves are forwarded to the :class:`ExperienceRecorder`; finished
games are forwarded as complete records and folded into the aggregate
statistics. Simulation clones never reach either.
"""

from __future__ import annotations

import logging
import random
import time
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .ai.base import BaseAI
from .board_manager import BoardManager
from .errors import InvalidPositionError, InvalidStateError, PersistenceError
from .experience import ExperienceRecorder
from .metrics import AI_MOVE_LATENCY, GAMES_COMPLETED, MOVES_TOTAL, observe_persistence_failure
from .models import Agent, Cell, GamePhase, GameStats, MoveView, Position, SessionSummary
from .persistence import read_json, write_json_atomic
from .session import GameSession, MoveRecord, restore_board, snapshot_board, utcnow
from .session_store import SessionStore

logger = logging.getLogger(__name__)


class GameEngine:
    """Validates and applies session actions on behalf of the transport layer."""

    def __init__(
        self,
        store: SessionStore,
        move_selector: BaseAI,
        recorder: Optional[ExperienceRecorder] = None,
        stats_path: Optional[Path] = None,
        hint_selector: Optional[BaseAI] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            store: Session store shared with the sweep task
            move_selector: Chooser for the software agent's moves
            recorder: Optional experience recorder notified of moves and games
            stats_path: Where aggregate statistics are persisted (None keeps
                them in memory only)
            hint_selector: Chooser used by :meth:`suggest_move` when the human
                is to move
            rng: Source of randomness for the software agent's placement
        """
        self.store = store
        self.move_selector = move_selector
        self.hint_selector = hint_selector
        self.recorder = recorder
        self.stats_path = Path(stats_path) if stats_path is not None else None
        self.rng = rng or random.Random()
        self.stats = GameStats()

    # ------------------------------------------------------------------
    # Session access
    # ------------------------------------------------------------------

    def create_session(self, owner_id: str) -> GameSession:
        session = self.store.create(owner_id)
        logger.info(f"Created game {session.id} for player {owner_id}")
        return session

    def get_session(self, session_id: str) -> GameSession:
        return self.store.get(session_id)

    def list_sessions(self) -> List[SessionSummary]:
        return [s.to_summary() for s in self.store.values()]

    def get_history(self, session_id: str) -> List[MoveView]:
        session = self.store.get(session_id)
        return [m.to_view(include_board=False) for m in session.move_history]

    def get_valid_moves(self, session_id: str) -> List[Position]:
        """Legal destinations for the side to move (empty unless playing)."""
        session = self.store.get(session_id)
        if session.phase is not GamePhase.PLAYING:
            return []
        return BoardManager.legal_moves(session.board, session.position_of(session.current_player))

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def place_start(self, session_id: str, position: Position) -> GameSession:
        """Place the human marker and the software marker next to or on the center."""
        with self.store.claim(session_id) as session:
            return self._place_start(session, position)

    def _place_start(self, session: GameSession, position: Position) -> GameSession:
        if session.phase is not GamePhase.STARTING:
            raise InvalidStateError(
                "Starting positions already placed",
                context={"phase": session.phase.value},
            )
        size = len(session.board)
        if not BoardManager.is_valid_position(position, size):
            raise InvalidPositionError("Position out of bounds", row=position.row, col=position.col)
        if session.board[position.row][position.col] != Cell.EMPTY:
            raise InvalidPositionError("Position is occupied", row=position.row, col=position.col)

        board = session.board
        board[position.row][position.col] = Cell.HUMAN
        session.human_pos = position

        center = BoardManager.center(size)
        if board[center.row][center.col] == Cell.EMPTY:
            software_pos = center
        else:
            software_pos = self.rng.choice(BoardManager.legal_moves(board, center))
        board[software_pos.row][software_pos.col] = Cell.SOFTWARE
        session.software_pos = software_pos

        record = MoveRecord(
            player=Agent.HUMAN,
            from_pos=None,
            to=position,
            timestamp=utcnow(),
            board=snapshot_board(board),
        )
        session.move_history.append(record)
        session.phase = GamePhase.PLAYING
        session.current_player = Agent.HUMAN

        logger.info(
            f"Game {session.id} started: human at {position.to_key()}, "
            f"software at {software_pos.to_key()}"
        )
        self._after_commit(session, Agent.HUMAN, record)
        return session

    def apply_human_move(self, session_id: str, destination: Position) -> GameSession:
        with self.store.claim(session_id) as session:
            return self._apply_human_move(session, destination)

    def _apply_human_move(self, session: GameSession, destination: Position) -> GameSession:
        self._require_turn(session, Agent.HUMAN)
        if not BoardManager.is_valid_position(destination, len(session.board)):
            raise InvalidPositionError(
                "Position out of bounds", row=destination.row, col=destination.col
            )
        if destination not in BoardManager.legal_moves(session.board, session.human_pos):
            raise InvalidPositionError(
                "Invalid move", row=destination.row, col=destination.col
            )

        self._commit(session, Agent.HUMAN, destination)
        return session

    def apply_software_move(self, session_id: str) -> GameSession:
        """Let the software agent move, or end the game if it cannot.

        The session stays claimed while the selector thinks, so no other
        action can change it between the turn check and the commit.
        """
        with self.store.claim(session_id) as session:
            return self._apply_software_move(session)

    def _apply_software_move(self, session: GameSession) -> GameSession:
        self._require_turn(session, Agent.SOFTWARE)

        if BoardManager.is_terminal(session.board, session.software_pos):
            self._end_game(session, Agent.HUMAN)
            return session

        start = time.perf_counter()
        destination = self.move_selector.select_move(session)
        AI_MOVE_LATENCY.observe(time.perf_counter() - start)

        if destination is None:
            self._end_game(session, Agent.HUMAN)
            return session

        self._commit(session, Agent.SOFTWARE, destination)
        return session

    def undo(self, session_id: str) -> GameSession:
        """Revert the most recent human move and everything after it.

        Undoing the placement resets the session to the starting phase.
        Otherwise the board and both positions are restored from the
        snapshot in the last surviving move record.
        """
        with self.store.claim(session_id) as session:
            return self._undo(session)

    def _undo(self, session: GameSession) -> GameSession:
        if session.phase is GamePhase.ENDED:
            raise InvalidStateError("Cannot undo in a finished game")
        if not session.move_history:
            raise InvalidStateError("No moves to undo")

        last_human = max(
            i for i, m in enumerate(session.move_history) if m.player is Agent.HUMAN
        )
        remaining = session.move_history[:last_human]
        if not remaining:
            session.reset()
            logger.info(f"Game {session.id} reset to starting position")
            return session

        snapshot = remaining[-1].board
        session.move_history = remaining
        session.board = restore_board(snapshot)
        session.human_pos = BoardManager.find_marker(snapshot, Cell.HUMAN)
        session.software_pos = BoardManager.find_marker(snapshot, Cell.SOFTWARE)
        session.current_player = Agent.HUMAN
        session.phase = GamePhase.PLAYING
        return session

    def suggest_move(self, session_id: str) -> Position:
        """Best move for the side to act, without touching the session."""
        with self.store.claim(session_id) as session:
            return self._suggest_move(session)

    def _suggest_move(self, session: GameSession) -> Position:
        if session.phase is not GamePhase.PLAYING:
            raise InvalidStateError("Game is not in playing phase")

        selector = (
            self.move_selector
            if session.current_player is Agent.SOFTWARE
            else self.hint_selector
        )
        if selector is None:
            raise InvalidStateError("No move suggestions available for the human side")

        suggestion = selector.select_move(session)
        if suggestion is None:
            raise InvalidStateError("No valid moves available")
        return suggestion

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _require_turn(session: GameSession, agent: Agent) -> None:
        if session.phase is not GamePhase.PLAYING:
            raise InvalidStateError(
                "Game is not in playing phase",
                context={"phase": session.phase.value},
            )
        if session.current_player is not agent:
            raise InvalidStateError(
                f"Not {agent.value}'s turn",
                context={"current_player": session.current_player.value},
            )

    def _commit(self, session: GameSession, agent: Agent, destination: Position) -> None:
        record = BoardManager.apply_move(session, agent, destination)
        self._after_commit(session, agent, record)

    def _after_commit(self, session: GameSession, agent: Agent, record: MoveRecord) -> None:
        if not session.is_simulation:
            MOVES_TOTAL.labels(agent.value).inc()
            if self.recorder is not None:
                self.recorder.record_move(session.id, agent, record, session.board)

        winner = BoardManager.blocked_winner(session)
        if winner is not None:
            self._end_game(session, winner)

    def _end_game(self, session: GameSession, winner: Agent) -> None:
        session.phase = GamePhase.ENDED
        session.winner = winner
        session.ended_at = utcnow()

        if session.is_simulation:
            return

        self._update_stats(session)
        GAMES_COMPLETED.labels(winner.value).inc()
        logger.info(
            f"Game {session.id} ended: {winner.value} wins after "
            f"{len(session.move_history)} moves"
        )
        if self.recorder is not None:
            self.recorder.record_game(session)
        self.save_stats()

    def _update_stats(self, session: GameSession) -> None:
        stats = self.stats
        total = stats.total_games + 1
        length = len(session.move_history)
        self.stats = GameStats(
            total_games=total,
            human_wins=stats.human_wins + (session.winner is Agent.HUMAN),
            software_wins=stats.software_wins + (session.winner is Agent.SOFTWARE),
            average_game_length=(stats.average_game_length * stats.total_games + length) / total,
        )

    # ------------------------------------------------------------------
    # Aggregate statistics
    # ------------------------------------------------------------------

    def get_stats(self) -> GameStats:
        return self.stats

    def load_stats(self) -> None:
        """Load persisted statistics; anything unreadable starts from zero."""
        if self.stats_path is None:
            return
        try:
            data = read_json(self.stats_path)
            if data is not None:
                self.stats = GameStats.model_validate(data)
                logger.info(f"Loaded stats: {self.stats.total_games} games played")
        except (PersistenceError, ValidationError) as e:
            logger.warning(f"Could not load stats, starting fresh: {e}")
            observe_persistence_failure("stats")
            self.stats = GameStats()

    def save_stats(self) -> None:
        if self.stats_path is None:
            return
        try:
            write_json_atomic(self.stats_path, self.stats.model_dump(by_alias=True))
        except PersistenceError as e:
            logger.warning(f"Failed to save stats: {e}")
            observe_persistence_failure("stats")

    def reset_stats(self) -> GameStats:
        self.stats = GameStats()
        self.save_stats()
        logger.info("Game statistics reset")
        return self.stats
