"""
Pydantic Models for the Isolation game service
Wire shapes shared by the HTTP layer, the recorder and the tests
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from enum import Enum
from datetime import datetime


BOARD_SIZE = 7


class Cell(str, Enum):
    """Cell state enumeration"""
    EMPTY = "."
    BLOCKED = "_"
    HUMAN = "H"
    SOFTWARE = "A"


class Agent(str, Enum):
    """Side of a session"""
    HUMAN = "human"
    SOFTWARE = "software"

    @property
    def marker(self) -> Cell:
        return Cell.HUMAN if self is Agent.HUMAN else Cell.SOFTWARE

    @property
    def opponent(self) -> "Agent":
        return Agent.SOFTWARE if self is Agent.HUMAN else Agent.HUMAN


class GamePhase(str, Enum):
    """Session lifecycle phase"""
    STARTING = "starting"
    PLAYING = "playing"
    ENDED = "ended"


class Position(BaseModel):
    """Board position (row, col), zero-based"""
    row: int
    col: int

    class Config:
        frozen = True

    def to_key(self) -> str:
        """Convert position to string key"""
        return f"{self.row},{self.col}"

    @classmethod
    def from_key(cls, key: str) -> "Position":
        row, col = key.split(",")
        return cls(row=int(row), col=int(col))


class MoveView(BaseModel):
    """Committed move as exposed to callers"""
    player: Agent
    from_pos: Optional[Position] = Field(None, alias="from")
    to: Position
    timestamp: datetime
    board: Optional[List[List[Cell]]] = None

    class Config:
        populate_by_name = True


class SessionState(BaseModel):
    """Complete session state"""
    id: str
    player_id: str = Field(alias="playerId")
    board: List[List[Cell]]
    human_pos: Optional[Position] = Field(None, alias="humanPos")
    software_pos: Optional[Position] = Field(None, alias="softwarePos")
    current_player: Agent = Field(alias="currentPlayer")
    game_phase: GamePhase = Field(alias="gamePhase")
    winner: Optional[Agent] = None
    move_history: List[MoveView] = Field(default_factory=list, alias="moveHistory")
    created_at: datetime = Field(alias="createdAt")
    ended_at: Optional[datetime] = Field(None, alias="endedAt")

    class Config:
        populate_by_name = True


class SessionSummary(BaseModel):
    """Short description of an active session"""
    id: str
    player_id: str = Field(alias="playerId")
    game_phase: GamePhase = Field(alias="gamePhase")
    current_player: Agent = Field(alias="currentPlayer")
    created_at: datetime = Field(alias="createdAt")
    move_count: int = Field(alias="moveCount")

    class Config:
        populate_by_name = True


class GameStats(BaseModel):
    """Aggregate win/loss statistics across finished games"""
    total_games: int = Field(0, alias="totalGames")
    human_wins: int = Field(0, alias="humanWins")
    software_wins: int = Field(0, alias="softwareWins")
    average_game_length: float = Field(0.0, alias="averageGameLength")

    class Config:
        populate_by_name = True

    @property
    def win_rate(self) -> str:
        """Human win rate as a percentage string."""
        if self.total_games == 0:
            return "0%"
        return f"{self.human_wins / self.total_games * 100:.1f}%"


class AIConfig(BaseModel):
    """Move selection budget"""
    think_time: int = Field(500, ge=1, alias="thinkTime")  # milliseconds
    max_evaluations: int = Field(200, ge=1, alias="maxEvaluations")

    class Config:
        populate_by_name = True


class PatternCount(BaseModel):
    pattern: str
    count: int


class HumanInsights(BaseModel):
    """Top human-play patterns for reporting"""
    total_experiences: int = Field(alias="totalExperiences")
    favorite_starting_positions: List[PatternCount] = Field(
        default_factory=list, alias="favoriteStartingPositions"
    )
    common_move_patterns: List[PatternCount] = Field(
        default_factory=list, alias="commonMovePatterns"
    )
    trap_attempts: List[PatternCount] = Field(
        default_factory=list, alias="trapAttempts"
    )
    escape_patterns: List[PatternCount] = Field(
        default_factory=list, alias="escapePatterns"
    )
    last_analysis: datetime = Field(alias="lastAnalysis")

    class Config:
        populate_by_name = True


class TrainingExample(BaseModel):
    """Buffered human move turned into an offline training example"""
    board: List[List[Cell]]
    human_move_probability: float = Field(alias="humanMoveProbability")
    context: str

    class Config:
        populate_by_name = True


class ModelInfo(BaseModel):
    """Learned evaluator description"""
    loaded: bool
    total_params: int = Field(0, alias="totalParams")
    layers: int = 0
    input_size: int = Field(BOARD_SIZE * BOARD_SIZE, alias="inputSize")
    output_size: int = Field(1, alias="outputSize")

    class Config:
        populate_by_name = True


# =============================================================================
# Request / response bodies
# =============================================================================


class CreateGameRequest(BaseModel):
    player_id: Optional[str] = Field(None, alias="playerId")

    class Config:
        populate_by_name = True


class PositionRequest(BaseModel):
    row: int
    col: int


class ValidMovesResponse(BaseModel):
    valid_moves: List[Position] = Field(alias="validMoves")
    current_player: Agent = Field(alias="currentPlayer")
    game_phase: GamePhase = Field(alias="gamePhase")

    class Config:
        populate_by_name = True


class EvaluateRequest(BaseModel):
    board: List[List[Cell]]


class EvaluationResponse(BaseModel):
    ai_win_probability: float = Field(alias="aiWinProbability")
    human_win_probability: float = Field(alias="humanWinProbability")
    confidence: float
    model_loaded: bool = Field(alias="modelLoaded")

    class Config:
        populate_by_name = True
        protected_namespaces = ()


class SuggestMoveResponse(BaseModel):
    suggested_move: Position = Field(alias="suggestedMove")
    player: Agent

    class Config:
        populate_by_name = True


class TrainingSample(BaseModel):
    """Board labelled with the software agent's observed win probability"""
    board: List[List[Cell]]
    label: float = Field(ge=0.0, le=1.0)


class TrainRequest(BaseModel):
    examples: List[TrainingSample] = Field(min_length=1)
    epochs: int = Field(10, ge=1, le=200)


class TrainResponse(BaseModel):
    final_loss: float = Field(alias="finalLoss")
    final_val_loss: Optional[float] = Field(None, alias="finalValLoss")
    epochs: int
    model: ModelInfo

    class Config:
        populate_by_name = True
