"""Board-level helpers for the isolation game service.

Move rules live here: legal-move generation, terminal checks and the single
routine that commits a move to a session. The lifecycle manager and the
selection engine both go through :meth:`BoardManager.apply_move`, so a
simulated move and a committed move mutate state identically.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from .models import BOARD_SIZE, Agent, Cell, Position
from .session import Board, GameSession, MoveRecord, snapshot_board, utcnow

__all__ = ["BoardManager", "DIRECTIONS"]

# Orthogonal first, then diagonal. Legal moves are enumerated in this order,
# which is also the selection engine's tie-break order.
DIRECTIONS = (
    (-1, 0), (1, 0), (0, -1), (0, 1),
    (-1, -1), (-1, 1), (1, -1), (1, 1),
)


class BoardManager:
    """Helper for board-level operations.

    Everything except :meth:`apply_move` is side-effect-free; callers pass
    in boards and receive derived views.
    """

    @staticmethod
    def is_valid_position(position: Position, size: int = BOARD_SIZE) -> bool:
        """Return True if ``position`` is on a ``size`` x ``size`` board."""
        return 0 <= position.row < size and 0 <= position.col < size

    @staticmethod
    def center(size: int = BOARD_SIZE) -> Position:
        """Middle cell of a square board of odd ``size``."""
        return Position(row=size // 2, col=size // 2)

    @staticmethod
    def legal_moves(board: Sequence[Sequence[Cell]], position: Optional[Position]) -> List[Position]:
        """Return the in-bounds, empty cells at Chebyshev distance 1.

        An unplaced agent (``position is None``) has no legal moves.
        """
        if position is None:
            return []
        size = len(board)
        moves = []
        for dr, dc in DIRECTIONS:
            row, col = position.row + dr, position.col + dc
            if 0 <= row < size and 0 <= col < size and board[row][col] == Cell.EMPTY:
                moves.append(Position(row=row, col=col))
        return moves

    @staticmethod
    def is_terminal(board: Sequence[Sequence[Cell]], position: Optional[Position]) -> bool:
        """True iff the agent at ``position`` has nowhere to go."""
        return not BoardManager.legal_moves(board, position)

    @staticmethod
    def find_marker(board: Sequence[Sequence[Cell]], marker: Cell) -> Optional[Position]:
        """Return the position of ``marker`` or ``None`` if not on the board."""
        for row, cells in enumerate(board):
            for col, cell in enumerate(cells):
                if cell == marker:
                    return Position(row=row, col=col)
        return None

    @staticmethod
    def count_cells(board: Sequence[Sequence[Cell]], *kinds: Cell) -> int:
        """Number of cells holding any of ``kinds``."""
        return sum(1 for cells in board for cell in cells if cell in kinds)

    @staticmethod
    def mobility(board: Sequence[Sequence[Cell]], agent: Agent) -> int:
        """Legal-move count for ``agent``, located by scanning ``board``."""
        return len(BoardManager.legal_moves(board, BoardManager.find_marker(board, agent.marker)))

    @staticmethod
    def manhattan(a: Position, b: Position) -> int:
        """Manhattan distance between two positions."""
        return abs(a.row - b.row) + abs(a.col - b.col)

    @staticmethod
    def is_edge(position: Position, size: int = BOARD_SIZE) -> bool:
        """True for cells on the outer ring of the board."""
        return position.row in (0, size - 1) or position.col in (0, size - 1)

    @staticmethod
    def apply_move(session: GameSession, agent: Agent, destination: Position) -> MoveRecord:
        """Move ``agent`` to ``destination`` and hand the turn to the opponent.

        The vacated cell becomes Blocked. Legality is the caller's
        responsibility; this only performs the mutation and appends the
        move record (with a post-move board snapshot).
        """
        board: Board = session.board
        source = session.position_of(agent)
        if source is not None:
            board[source.row][source.col] = Cell.BLOCKED
        board[destination.row][destination.col] = agent.marker
        session.set_position(agent, destination)

        record = MoveRecord(
            player=agent,
            from_pos=source,
            to=destination,
            timestamp=utcnow(),
            board=snapshot_board(board),
        )
        session.move_history.append(record)
        session.current_player = agent.opponent
        return record

    @staticmethod
    def blocked_winner(session: GameSession) -> Optional[Agent]:
        """Winner if the side now to act is stuck, else ``None``."""
        to_act = session.current_player
        if BoardManager.is_terminal(session.board, session.position_of(to_act)):
            return to_act.opponent
        return None
