"""
Base AI Player class for the isolation game
Abstract base class that all move choosers inherit from
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Sequence

from ..board_manager import BoardManager
from ..models import AIConfig, Agent, Cell, Position
from ..session import GameSession


class BaseAI(ABC):
    """Abstract base class for all AI implementations"""

    def __init__(self, agent: Agent, config: AIConfig):
        """
        Initialize AI player

        Args:
            agent: The side this AI chooses moves for
            config: Move selection budget
        """
        self.agent = agent
        self.config = config
        self.move_count = 0

    @abstractmethod
    def select_move(self, session: GameSession) -> Optional[Position]:
        """
        Select the best move for the current session

        Args:
            session: Session in the playing phase with this AI's side to move

        Returns:
            Selected destination or None if no valid moves
        """
        pass

    @abstractmethod
    def evaluate_position(self, board: Sequence[Sequence[Cell]]) -> float:
        """
        Evaluate a board from this AI's perspective

        Args:
            board: Board to evaluate

        Returns:
            Win probability in [0, 1] for this AI's side
        """
        pass

    def get_valid_moves(self, session: GameSession) -> List[Position]:
        """
        Get all legal destinations for this AI's side.

        Args:
            session: Current session

        Returns:
            Legal destinations in enumeration order
        """
        return BoardManager.legal_moves(session.board, session.position_of(self.agent))

