"""Stub evaluators and board builders shared by the test modules."""

import threading
import time
from typing import Iterable, Optional, Sequence

from isolation.ai.base import BaseAI
from isolation.models import AIConfig, Agent, Cell, GamePhase, Position
from isolation.session import GameSession, MoveRecord, new_board, snapshot_board, utcnow


# =============================================================================
# Stub evaluators
# =============================================================================


class ConstantEvaluator:
    """Returns the same score for every board."""

    def __init__(self, value: float = 0.5):
        self.value = value
        self.calls = 0

    def evaluate(self, board) -> float:
        self.calls += 1
        return self.value


class TargetCellEvaluator:
    """Scores 1.0 when ``target`` holds the software marker, else 0.0."""

    def __init__(self, target: Position, marker: Cell = Cell.SOFTWARE):
        self.target = target
        self.marker = marker

    def evaluate(self, board) -> float:
        return 1.0 if board[self.target.row][self.target.col] == self.marker else 0.0


class RaisingEvaluator:
    def __init__(self, exc: Exception = RuntimeError("model exploded")):
        self.exc = exc
        self.calls = 0

    def evaluate(self, board) -> float:
        self.calls += 1
        raise self.exc


class SlowEvaluator:
    def __init__(self, delay_sec: float, value: float = 0.9):
        self.delay_sec = delay_sec
        self.value = value

    def evaluate(self, board) -> float:
        time.sleep(self.delay_sec)
        return self.value


class GatedSelector(BaseAI):
    """Picks the first legal move, but only once ``release`` is set.

    ``entered`` is set as soon as a selection starts, so a test can act
    while the selector is still thinking.
    """

    def __init__(self, agent: Agent = Agent.SOFTWARE):
        super().__init__(agent, AIConfig())
        self.entered = threading.Event()
        self.release = threading.Event()

    def select_move(self, session) -> Optional[Position]:
        self.entered.set()
        self.release.wait(timeout=5)
        moves = self.get_valid_moves(session)
        return moves[0] if moves else None

    def evaluate_position(self, board) -> float:
        return 0.5


# =============================================================================
# Board / session helpers
# =============================================================================


def arrange(
    session: GameSession,
    human: Optional[Position],
    software: Optional[Position],
    blocked: Iterable[Position] = (),
    current_player: Agent = Agent.HUMAN,
    phase: GamePhase = GamePhase.PLAYING,
) -> GameSession:
    """Overwrite ``session`` with markers and blocked cells placed directly.

    The history is replaced by a single placement record so undo and
    recorder analysis see a consistent session.
    """
    board = new_board()
    for cell in blocked:
        board[cell.row][cell.col] = Cell.BLOCKED
    if human is not None:
        board[human.row][human.col] = Cell.HUMAN
    if software is not None:
        board[software.row][software.col] = Cell.SOFTWARE

    session.board = board
    session.human_pos = human
    session.software_pos = software
    session.current_player = current_player
    session.phase = phase
    session.winner = None
    session.move_history = []
    if human is not None:
        session.move_history.append(
            MoveRecord(
                player=Agent.HUMAN,
                from_pos=None,
                to=human,
                timestamp=utcnow(),
                board=snapshot_board(board),
            )
        )
    return session


def make_session(
    human: Optional[Position],
    software: Optional[Position],
    blocked: Iterable[Position] = (),
    current_player: Agent = Agent.HUMAN,
    phase: GamePhase = GamePhase.PLAYING,
    session_id: str = "test-game",
) -> GameSession:
    """Build a detached session (not held by any store)."""
    session = GameSession(id=session_id, owner_id="tester")
    return arrange(session, human, software, blocked, current_player, phase)


def pos(row: int, col: int) -> Position:
    return Position(row=row, col=col)


def all_cells_except(keep: Sequence[Position], size: int = 7) -> list:
    keep_keys = {p.to_key() for p in keep}
    return [
        pos(r, c)
        for r in range(size)
        for c in range(size)
        if f"{r},{c}" not in keep_keys
    ]
