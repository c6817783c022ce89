"""
Internal session state for fast cloning during move selection.

Pydantic models in :mod:`isolation.models` describe what crosses the wire;
this module holds the mutable state the lifecycle manager owns. The
selection engine clones a session once per candidate evaluation, so the
clone is a structural copy of plain containers rather than a validated
model round-trip.

Move records are immutable and carry a tuple snapshot of the board taken
after the move, so copying the history list is enough to give a clone
its own independent history.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from .models import (
    BOARD_SIZE,
    Agent,
    Cell,
    GamePhase,
    MoveView,
    Position,
    SessionState,
    SessionSummary,
)

Board = List[List[Cell]]
BoardSnapshot = Tuple[Tuple[Cell, ...], ...]


def new_board(size: int = BOARD_SIZE) -> Board:
    """Return an all-empty ``size`` x ``size`` board."""
    return [[Cell.EMPTY for _ in range(size)] for _ in range(size)]


def snapshot_board(board: Board) -> BoardSnapshot:
    """Immutable copy of ``board`` for move records."""
    return tuple(tuple(row) for row in board)


def restore_board(snapshot: BoardSnapshot) -> Board:
    """Mutable board rebuilt from a snapshot."""
    return [list(row) for row in snapshot]


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class MoveRecord:
    """One committed move.

    ``from_pos`` is ``None`` only for the initial placement.
    """

    player: Agent
    from_pos: Optional[Position]
    to: Position
    timestamp: datetime
    board: BoardSnapshot

    def to_view(self, include_board: bool = True) -> MoveView:
        return MoveView(
            player=self.player,
            from_pos=self.from_pos,
            to=self.to,
            timestamp=self.timestamp,
            board=[list(row) for row in self.board] if include_board else None,
        )


@dataclass(slots=True)
class GameSession:
    """Canonical mutable state of one game."""

    id: str
    owner_id: str
    board: Board = field(default_factory=new_board)
    human_pos: Optional[Position] = None
    software_pos: Optional[Position] = None
    current_player: Agent = Agent.HUMAN
    phase: GamePhase = GamePhase.STARTING
    move_history: List[MoveRecord] = field(default_factory=list)
    winner: Optional[Agent] = None
    created_at: datetime = field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    is_simulation: bool = False

    def position_of(self, agent: Agent) -> Optional[Position]:
        return self.human_pos if agent is Agent.HUMAN else self.software_pos

    def set_position(self, agent: Agent, position: Optional[Position]) -> None:
        if agent is Agent.HUMAN:
            self.human_pos = position
        else:
            self.software_pos = position

    def clone(self) -> GameSession:
        """Return an independent copy flagged as a simulation.

        Simulation clones never notify the recorder and never touch
        aggregate statistics.
        """
        return GameSession(
            id=self.id,
            owner_id=self.owner_id,
            board=[row[:] for row in self.board],
            human_pos=self.human_pos,
            software_pos=self.software_pos,
            current_player=self.current_player,
            phase=self.phase,
            move_history=list(self.move_history),
            winner=self.winner,
            created_at=self.created_at,
            ended_at=self.ended_at,
            is_simulation=True,
        )

    def reset(self) -> None:
        """Return to the pre-placement state, keeping identity and owner."""
        self.board = new_board(len(self.board))
        self.human_pos = None
        self.software_pos = None
        self.current_player = Agent.HUMAN
        self.phase = GamePhase.STARTING
        self.move_history = []
        self.winner = None
        self.ended_at = None

    def to_state(self, include_boards: bool = True) -> SessionState:
        return SessionState(
            id=self.id,
            player_id=self.owner_id,
            board=[list(row) for row in self.board],
            human_pos=self.human_pos,
            software_pos=self.software_pos,
            current_player=self.current_player,
            game_phase=self.phase,
            winner=self.winner,
            move_history=[m.to_view(include_boards) for m in self.move_history],
            created_at=self.created_at,
            ended_at=self.ended_at,
        )

    def to_summary(self) -> SessionSummary:
        return SessionSummary(
            id=self.id,
            player_id=self.owner_id,
            game_phase=self.phase,
            current_player=self.current_player,
            created_at=self.created_at,
            move_count=len(self.move_history),
        )
